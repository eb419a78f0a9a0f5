from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class AuthRegistryProtocol(Protocol):
    """
    Назначение:
        Реестр механизмов аутентификации.
    """

    def is_recognized(self, method_name: str) -> bool: ...


class EmailPolicyProtocol(Protocol):
    """
    Назначение:
        Проверка email: синтаксис и разрешённые/запрещённые домены.
    """

    def is_syntactically_valid(self, email: str) -> bool: ...

    def is_allowed_by_policy(self, email: str) -> str | None:
        """
        Контракт:
            None, если адрес разрешён; иначе текст причины отказа.
        """
        ...


@dataclass(frozen=True)
class SitePolicy:
    """
    Назначение:
        Флаги сайта, влияющие на upsert.
    """

    allow_duplicate_emails: bool = False
    abort_on_ambiguous_match: bool = False
