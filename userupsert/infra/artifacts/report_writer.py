from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from userupsert.domain.reporting.collector import ReportCollector, asdict_report

# Счётчики summary.ops, выводимые в сводке upsert (в этом порядке).
UPSERT_SUMMARY_OPS: tuple[str, ...] = ("created", "updated", "deleted", "skipped", "failed")


def createRunReport(
    runId: str,
    command: str,
    configSources: list[str],
    itemsLimit: int | None = None,
    appVersion: str | None = None,
    inputPath: str | None = None,
) -> ReportCollector:
    """
    Назначение:
        Отчёт запуска команды: meta, источники настроек и входной файл.
    """
    collector = ReportCollector(run_id=runId, command=command)
    collector.set_meta(items_limit=itemsLimit, app_version=appVersion)
    if configSources:
        collector.set_context("config", {"sources": configSources})
    if inputPath:
        collector.set_context("input", {"path": inputPath})
    return collector


def summarizeUpsert(report: ReportCollector) -> dict[str, Any]:
    """
    Назначение:
        Сводка пакета upsert для чтения человеком.

    Выходные данные:
        dict
            records, счётчики created/updated/deleted/skipped/failed,
            а также происхождение маппинга и поле сопоставления (если известны).
    """
    ops = report.summary.ops
    summary: dict[str, Any] = {"records": report.summary.records_total}
    for name in UPSERT_SUMMARY_OPS:
        summary[name] = ops.get(name, {}).get("count", 0)
    mapping = report.context.get("mapping", {})
    summary["mapping_origin"] = mapping.get("origin")
    summary["match_field"] = mapping.get("match_field")
    return summary


def finalizeReport(report: ReportCollector, durationMs: int, logFile: str | None, directoryDb: str) -> None:
    """
    Назначение:
        Завершает отчёт: пути запуска, сводка upsert (если записи обрабатывались), время.
    """
    report.set_context("runtime", {"log_file": logFile, "directory_db": directoryDb})
    if report.summary.records_total:
        report.set_context("upsert", summarizeUpsert(report))
    report.finish(duration_ms=durationMs)


def reportFileName(command: str, runId: str) -> str:
    return f"report_{command}_{runId}.json"


def writeReportJson(report: ReportCollector, reportDir: str) -> str:
    """
    Назначение:
        Записывает отчёт в reportDir/report_<command>_<runId>.json.

    Выходные данные:
        str
            Путь к файлу отчёта.
    """
    Path(reportDir).mkdir(parents=True, exist_ok=True)
    reportPath = Path(reportDir) / reportFileName(report.meta.command, report.meta.run_id)
    with reportPath.open("w", encoding="utf-8") as f:
        json.dump(asdict_report(report.build()), f, ensure_ascii=False, indent=2)
    return str(reportPath)
