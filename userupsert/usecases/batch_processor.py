from __future__ import annotations

import logging
from typing import Callable, Iterable

from userupsert.domain.exceptions import UpsertError
from userupsert.domain.models import Failure, IncomingRecord, Outcome, Success
from userupsert.domain.upsert.engine import UpsertEngine
from userupsert.domain.upsert.result import UpsertFailed, UpsertOk
from userupsert.infra.logging.setup import logEvent

NOT_SET = "not set"


class BatchProcessor:
    """
    Назначение/ответственность:
        Последовательная обработка пакета записей с изоляцией ошибок по записи.

    Контракт:
        - process(records) -> list[Outcome] в порядке входа;
        - ошибка записи превращается в Failure, обработка продолжается;
        - SchemaError (и AmbiguousMatchError при abort_on_ambiguous_match)
          прерывает пакет.
    """

    def __init__(
        self,
        engine: UpsertEngine,
        logger: logging.Logger | None = None,
        run_id: str = "-",
        on_outcome: Callable[[IncomingRecord, Outcome], None] | None = None,
    ) -> None:
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id
        self.on_outcome = on_outcome

    def resolve_item_id(self, record: IncomingRecord) -> str:
        """
        Назначение:
            Значение поля сопоставления для трассировки; "not set", если поле пустое.
        """
        value = record.get(self.engine.matching_field)
        if value is None:
            return NOT_SET
        value_str = str(value)
        if value_str == "":
            return NOT_SET
        return value_str

    def process(self, records: Iterable[IncomingRecord]) -> list[Outcome]:
        outcomes: list[Outcome] = []
        for index, record in enumerate(records, start=1):
            item_id = self.resolve_item_id(record)
            outcome = self._process_one(record, item_id)
            if isinstance(outcome, Success):
                logEvent(self.logger, logging.INFO, self.run_id, "batch", f"#{index} {outcome.action}", itemId=item_id)
            else:
                logEvent(
                    self.logger,
                    logging.WARNING,
                    self.run_id,
                    "batch",
                    f"#{index} {outcome.code} {outcome.error_message}",
                    itemId=item_id,
                )
            outcomes.append(outcome)
            if self.on_outcome is not None:
                self.on_outcome(record, outcome)
        return outcomes

    def _process_one(self, record: IncomingRecord, item_id: str) -> Outcome:
        result = self.engine.upsert(record)
        if isinstance(result, UpsertOk):
            return Success(match_value=item_id, action=result.action.value)
        if isinstance(result, UpsertFailed):
            return _failure(item_id, result.error)
        raise TypeError(f"Unexpected upsert result: {result!r}")


def _failure(item_id: str, error: UpsertError) -> Failure:
    return Failure(match_value=item_id, error_message=str(error), code=error.code.value)
