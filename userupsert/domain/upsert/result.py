from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from userupsert.domain.exceptions import UpsertError


class UpsertAction(str, Enum):
    """
    Назначение:
        Итоговая ветка обработки записи.
    """

    CREATE = "create"
    UPDATE = "update"
    SUSPEND = "suspend"
    DELETE = "delete"
    NOOP = "noop"


class UpsertState(str, Enum):
    """
    Назначение:
        Состояния обработки одной записи (для диагностики).
    """

    VALIDATING = "validating"
    MATCHING = "matching"
    CREATING = "creating"
    UPDATING = "updating"
    SUSPENDING = "suspending"
    DELETING = "deleting"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class UpsertOk:
    action: UpsertAction
    entity_id: int | None = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class UpsertFailed:
    error: UpsertError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.error)


UpsertResult = Union[UpsertOk, UpsertFailed]
