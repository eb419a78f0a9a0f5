from __future__ import annotations

from dataclasses import asdict
from typing import Any, Mapping

from userupsert.common.time import getNowIso
from userupsert.domain.models import Failure, Outcome, Success
from userupsert.domain.reporting.models import (
    ReportDiagnostic,
    ReportEnvelope,
    ReportItem,
    ReportMeta,
    ReportSummary,
)

# Действие upsert -> счётчик в summary.ops.
_ACTION_OPS: dict[str, str] = {
    "create": "created",
    "update": "updated",
    "suspend": "updated",
    "delete": "deleted",
    "noop": "skipped",
}


class ReportCollector:
    """
    Назначение/ответственность:
        Единый сборщик отчёта команды.
    """

    def __init__(self, run_id: str, command: str, started_at: str | None = None) -> None:
        self.meta = ReportMeta(run_id=run_id, command=command, started_at=started_at or getNowIso())
        self.summary = ReportSummary()
        self.items: list[ReportItem] = []
        self.context: dict[str, Any] = {}
        self.status: str | None = None

    def set_meta(self, *, items_limit: int | None = None, app_version: str | None = None) -> None:
        if items_limit is not None:
            self.meta.items_limit = items_limit
        if app_version is not None:
            self.meta.app_version = app_version

    def set_context(self, name: str, value: dict[str, Any]) -> None:
        self.context[name] = value

    def add_op(self, name: str, *, ok: int = 0, failed: int = 0, count: int = 0) -> None:
        entry = self.summary.ops.setdefault(name, {"ok": 0, "failed": 0, "count": 0})
        entry["ok"] += ok
        entry["failed"] += failed
        entry["count"] += count

    def add_outcome(self, outcome: Outcome, payload: Mapping[str, Any] | None = None) -> None:
        """
        Назначение:
            Учесть итог одной записи: счётчики, ops и (с учётом лимита) item.
        """
        self.summary.records_total += 1
        index = self.summary.records_total
        if isinstance(outcome, Success):
            self.summary.records_ok += 1
            self.add_op(_ACTION_OPS.get(outcome.action or "", "ok"), ok=1, count=1)
            item = ReportItem(status="OK", index=index, match_value=outcome.match_value, action=outcome.action, payload=payload)
        elif isinstance(outcome, Failure):
            self.summary.records_failed += 1
            self.add_op("failed", failed=1, count=1)
            item = ReportItem(
                status="FAILED",
                index=index,
                match_value=outcome.match_value,
                payload=payload,
                diagnostics=[ReportDiagnostic(severity="error", code=outcome.code or "", message=outcome.error_message)],
            )
        else:
            raise TypeError(f"Unexpected outcome: {outcome!r}")

        if self._should_store_item():
            self.items.append(item)
        else:
            self.meta.items_truncated = True

    def finish(self, finished_at: str | None = None, duration_ms: int | None = None) -> None:
        self.meta.finished_at = finished_at or getNowIso()
        self.meta.duration_ms = duration_ms
        if self.status is None:
            self.status = self._derive_status()

    def build(self) -> ReportEnvelope:
        return ReportEnvelope(
            status=self.status or self._derive_status(),
            meta=self.meta,
            summary=self.summary,
            items=self.items,
            context=self.context,
        )

    def _should_store_item(self) -> bool:
        limit = self.meta.items_limit
        if limit is None:
            return True
        return len(self.items) < limit

    def _derive_status(self) -> str:
        if self.summary.records_failed == 0:
            return "SUCCESS"
        if self.summary.records_ok > 0:
            return "PARTIAL"
        return "FAILED"


def asdict_report(envelope: ReportEnvelope) -> dict[str, Any]:
    return {
        "status": envelope.status,
        "meta": asdict(envelope.meta),
        "summary": asdict(envelope.summary),
        "items": [
            {
                "status": item.status,
                "index": item.index,
                "match_value": item.match_value,
                "action": item.action,
                "payload": dict(item.payload) if item.payload is not None else None,
                "diagnostics": [asdict(diag) for diag in item.diagnostics],
            }
            for item in envelope.items
        ],
        "context": envelope.context,
    }
