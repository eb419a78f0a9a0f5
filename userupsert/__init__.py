"""
Сверка пакета пользовательских записей с внутренним каталогом пользователей
(create / update / suspend / soft-delete) по настраиваемому маппингу полей.
"""

__version__ = "0.3.0"
