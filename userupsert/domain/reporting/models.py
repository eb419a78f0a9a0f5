from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class ReportMeta:
    """
    Назначение:
        Метаданные запуска команды.
    """

    run_id: str
    command: str
    started_at: str
    finished_at: str | None = None
    duration_ms: int | None = None
    items_limit: int | None = None
    items_truncated: bool = False
    app_version: str | None = None


@dataclass
class ReportSummary:
    records_total: int = 0
    records_ok: int = 0
    records_failed: int = 0
    ops: dict[str, dict[str, int]] = field(default_factory=dict)


@dataclass(frozen=True)
class ReportDiagnostic:
    """
    Назначение:
        Диагностика по конкретной записи.
    """

    severity: str
    code: str
    message: str


@dataclass
class ReportItem:
    """
    Назначение:
        Единица отчёта, привязанная к записи пакета.
    """

    status: str
    index: int
    match_value: str
    action: str | None = None
    payload: Mapping[str, Any] | None = None
    diagnostics: list[ReportDiagnostic] = field(default_factory=list)


@dataclass
class ReportEnvelope:
    status: str
    meta: ReportMeta
    summary: ReportSummary
    items: list[ReportItem]
    context: dict[str, Any] = field(default_factory=dict)
