from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

UPSERT_SUCCEEDED = "upsert_succeeded"
UPSERT_FAILED = "upsert_failed"


@dataclass(frozen=True)
class UpsertEvent:
    """
    Назначение:
        Уведомление о результате upsert одной записи.
    """

    name: str
    item_id: str
    error: str | None = None

    @property
    def description(self) -> str:
        if self.name == UPSERT_FAILED:
            return f"Failed upserting user: '{self.item_id}', error '{self.error}'"
        return f"User upserted: '{self.item_id}'"


class EventSinkProtocol(Protocol):
    """
    Назначение/ответственность:
        Получатель уведомлений upsert (аудит/журнал событий).
    """

    def emit(self, event: UpsertEvent) -> None: ...
