from __future__ import annotations

import logging

from userupsert.domain.ports.events import UPSERT_FAILED, EventSinkProtocol, UpsertEvent
from userupsert.infra.logging.setup import logEvent


class LoggingEventSink(EventSinkProtocol):
    """
    Назначение/ответственность:
        Журнал событий upsert в лог команды (компонент "event").
    """

    def __init__(self, logger: logging.Logger, run_id: str) -> None:
        self.logger = logger
        self.run_id = run_id

    def emit(self, event: UpsertEvent) -> None:
        level = logging.WARNING if event.name == UPSERT_FAILED else logging.INFO
        logEvent(self.logger, level, self.run_id, "event", f"{event.name}: {event.description}")


class InMemoryEventSink(EventSinkProtocol):
    """
    Назначение/ответственность:
        Накопитель событий (отчёт, тесты).
    """

    def __init__(self) -> None:
        self.events: list[UpsertEvent] = []

    def emit(self, event: UpsertEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.name for event in self.events]

