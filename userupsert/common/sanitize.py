from __future__ import annotations

from typing import Any, Iterable, Mapping

MASK = "***"

# Ключи, маскируемые всегда (без учёта регистра).
DEFAULT_SECRET_KEYS: tuple[str, ...] = ("password", "token", "secret")


def secretFieldNames(externalPasswordField: str | None = None) -> tuple[str, ...]:
    """
    Назначение:
        Набор ключей записи, значения которых нельзя выводить в лог и отчёт.

    Входные данные:
        externalPasswordField: str | None
            Внешнее имя поля, сопоставленного с password (если маппинг задан).
    """
    keys = list(DEFAULT_SECRET_KEYS)
    if externalPasswordField and externalPasswordField.lower() not in keys:
        keys.append(externalPasswordField.lower())
    return tuple(keys)


def maskRecord(record: Mapping[str, Any], secretKeys: Iterable[str] = DEFAULT_SECRET_KEYS) -> dict[str, Any]:
    """
    Назначение:
        Копия входной записи с замаскированными секретами.
        Пустое значение секрета остаётся пустым: отчёт показывает, что пароль был сброшен.
    """
    sensitive = {key.lower() for key in secretKeys}
    masked: dict[str, Any] = {}
    for key, value in record.items():
        if str(key).lower() in sensitive and value not in (None, ""):
            masked[key] = MASK
        else:
            masked[key] = value
    return masked


def maskSecretsInObject(obj: object, secretKeys: Iterable[str] = DEFAULT_SECRET_KEYS) -> object:
    """
    Назначение:
        Рекурсивно маскирует секреты в пакетах записей (list/dict любой вложенности).
    """
    keys = tuple(secretKeys)
    if isinstance(obj, Mapping):
        return {
            key: maskSecretsInObject(value, keys) if isinstance(value, (Mapping, list)) else value
            for key, value in maskRecord(obj, keys).items()
        }
    if isinstance(obj, list):
        return [maskSecretsInObject(item, keys) for item in obj]
    return obj
