from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

import typer

from userupsert import __version__
from userupsert.common.run_id import generate_run_id
from userupsert.common.sanitize import maskRecord, secretFieldNames
from userupsert.common.time import getDurationMs
from userupsert.config import Settings, load_mapping_source, load_settings
from userupsert.domain.exceptions import (
    AmbiguousMatchError,
    DirectoryError,
    InvalidRequestError,
    NotConfiguredError,
    PermissionDeniedError,
    SchemaError,
)
from userupsert.domain.mapping.config import FieldMappingConfig
from userupsert.domain.models import IncomingRecord, Outcome, ProfileFieldDefinition
from userupsert.domain.ports.policies import SitePolicy
from userupsert.infra.artifacts.report_writer import createRunReport, finalizeReport, writeReportJson
from userupsert.infra.directory.db import openDirectoryDb
from userupsert.infra.directory.repository import SqliteDirectoryRepository
from userupsert.infra.directory.schema import ensure_directory_schema
from userupsert.infra.directory.sqlite_engine import SqliteEngine
from userupsert.infra.events.sinks import LoggingEventSink
from userupsert.infra.logging.setup import closeCommandLogger, createCommandLogger, logEvent, teeStdStreams
from userupsert.infra.policies.auth_registry import StaticAuthRegistry
from userupsert.infra.policies.email_policy import DomainEmailPolicy
from userupsert.infra.policies.password_policy import PasswordPolicy
from userupsert.infra.sources.records_reader import RecordsFormatError, read_records
from userupsert.usecases.upsert_users_usecase import UPSERT_CAPABILITY, UpsertUsersUseCase

app = typer.Typer(no_args_is_help=True, add_completion=False)
configApp = typer.Typer(no_args_is_help=True)
directoryApp = typer.Typer(no_args_is_help=True)


def ensureDir(path: str) -> None:
    """
    Назначение:
        Создаёт каталог, если он отсутствует.
    """
    Path(path).mkdir(parents=True, exist_ok=True)


def requireFile(path: str | None, optionName: str) -> None:
    """
    Назначение:
        Базовая проверка наличия входного файла.

    Поведение:
        - Путь не задан или файл не существует: exit code 2.
    """
    if not path:
        typer.echo(f"ERROR: {optionName} is required", err=True)
        raise typer.Exit(code=2)

    p = Path(path)
    if not p.exists() or not p.is_file():
        typer.echo(f"ERROR: file not found: {path}", err=True)
        raise typer.Exit(code=2)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска.
    """
    typer.echo(
        f"run_id={runId} command={command} "
        f"directory_db={settings.directory_db} sources={sources} "
        f"log_level={settings.log_level}"
    )


def buildSitePolicy(settings: Settings) -> SitePolicy:
    return SitePolicy(
        allow_duplicate_emails=settings.allow_duplicate_emails,
        abort_on_ambiguous_match=settings.abort_on_ambiguous_match,
    )


def buildPasswordPolicy(settings: Settings) -> PasswordPolicy:
    return PasswordPolicy(
        min_length=settings.password_min_length,
        min_digits=settings.password_min_digits,
        min_lower=settings.password_min_lower,
        min_upper=settings.password_min_upper,
        min_special=settings.password_min_special,
    )


def openDirectory(settings: Settings) -> tuple[sqlite3.Connection, SqliteDirectoryRepository]:
    """
    Назначение:
        Открыть каталог пользователей и подготовить схему.
    """
    conn = openDirectoryDb(settings.directory_db)
    try:
        engine = SqliteEngine(conn)
        ensure_directory_schema(engine)
    except sqlite3.Error:
        conn.close()
        raise
    return conn, SqliteDirectoryRepository(engine, password_policy=buildPasswordPolicy(settings))


def loadMappingConfig(ctx: typer.Context) -> tuple[FieldMappingConfig, str]:
    source, origin = load_mapping_source(ctx.obj["mappingPath"], ctx.obj["configPath"])
    return FieldMappingConfig.from_source(source), origin


def runWithReport(
    ctx: typer.Context,
    commandName: str,
    inputPath: str | None,
    requiresInput: bool,
    runner,
) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - создаёт report.json skeleton
        - валидирует обязательный входной файл
        - перенаправляет stdout/stderr в лог (tee)
        - гарантирует запись отчёта в finally

    Поведение:
        - На ошибке обязательного входа: пишет ошибку в лог и report и завершает exit code 2.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()

    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    report = createRunReport(
        runId=runId,
        command=commandName,
        configSources=sources,
        itemsLimit=settings.report_items_limit,
        appVersion=__version__,
        inputPath=inputPath,
    )

    exitCode: int | None = None

    try:
        with teeStdStreams(logger, runId):
            try:
                logEvent(logger, logging.INFO, runId, "core", "Command started")
                printRunHeader(runId, commandName, settings, sources)

                inputReady = True
                if requiresInput:
                    try:
                        requireFile(inputPath, "--records")
                    except typer.Exit:
                        logEvent(logger, logging.ERROR, runId, "input", "Input file is missing or not accessible")
                        typer.echo("ERROR: invalid or missing input file (see logs/report)", err=True)
                        report.status = "FAILED"
                        exitCode = 2
                        inputReady = False

                if inputReady:
                    exitCode = runner(logger, report)

            finally:
                durationMs = getDurationMs(startMonotonic, time.monotonic())
                finalizeReport(
                    report=report,
                    durationMs=durationMs,
                    logFile=logFilePath,
                    directoryDb=settings.directory_db,
                )
                reportPath = writeReportJson(report, settings.report_dir)
                logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")
    finally:
        closeCommandLogger(logger)

    if exitCode is not None:
        raise typer.Exit(code=exitCode)


def runUpsertCommand(ctx: typer.Context, recordsPath: str | None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            records = read_records(recordsPath or "")
        except (RecordsFormatError, OSError) as exc:
            logEvent(logger, logging.ERROR, runId, "input", f"Failed to read records: {exc}")
            typer.echo(f"ERROR: {exc}", err=True)
            report.status = "FAILED"
            return 2

        try:
            config, origin = loadMappingConfig(ctx)
        except FileNotFoundError as exc:
            logEvent(logger, logging.ERROR, runId, "config", str(exc))
            typer.echo(f"ERROR: {exc}", err=True)
            report.status = "FAILED"
            return 2
        report.set_context("mapping", {"origin": origin, "match_field": config.user_match_field()})
        secretFields = secretFieldNames(config.external_name("password"))

        try:
            conn, directory = openDirectory(settings)
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "directory", f"Failed to open directory DB: {exc}")
            typer.echo("ERROR: failed to open directory DB (see logs/report)", err=True)
            report.status = "FAILED"
            return 2

        def onOutcome(record: IncomingRecord, outcome: Outcome) -> None:
            report.add_outcome(outcome, payload=maskRecord(record, secretFields))

        try:
            usecase = UpsertUsersUseCase(
                config,
                directory,
                StaticAuthRegistry(settings.enabled_auth_methods),
                DomainEmailPolicy(settings.allowed_email_domains, settings.denied_email_domains),
                site_policy=buildSitePolicy(settings),
                events=LoggingEventSink(logger, runId),
                logger=logger,
                run_id=runId,
                on_outcome=onOutcome,
            )
            try:
                results = usecase.execute(records, capabilities={UPSERT_CAPABILITY})
            except (NotConfiguredError, InvalidRequestError, PermissionDeniedError, SchemaError, AmbiguousMatchError) as exc:
                details = f" ({exc.debuginfo})" if isinstance(exc, InvalidRequestError) else ""
                logEvent(logger, logging.ERROR, runId, "upsert", f"{exc.code.value}: {exc}{details}")
                typer.echo(f"ERROR: {exc}{details}", err=True)
                report.set_context("error", {"code": exc.code.value, "message": str(exc)})
                report.status = "FAILED"
                return 2
        finally:
            conn.close()

        failed = [result for result in results if result["error"]]
        for result in failed:
            typer.echo(f"FAILED {result['itemid']}: {result['error']}")
        typer.echo(f"records={len(results)} ok={len(results) - len(failed)} failed={len(failed)}")
        return 1 if failed else 0

    runWithReport(
        ctx=ctx,
        commandName="upsert",
        inputPath=recordsPath,
        requiresInput=True,
        runner=execute,
    )


def runConfigShowCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            config, origin = loadMappingConfig(ctx)
        except FileNotFoundError as exc:
            typer.echo(f"ERROR: {exc}", err=True)
            return 2

        profileFields: list[ProfileFieldDefinition] = []
        if Path(settings.directory_db).is_file():
            try:
                conn, directory = openDirectory(settings)
            except sqlite3.Error as exc:
                logEvent(logger, logging.WARNING, runId, "directory", f"Directory DB is not readable: {exc}")
            else:
                try:
                    profileFields = directory.list_profile_fields()
                finally:
                    conn.close()

        typer.echo(f"mapping_source={origin}")
        typer.echo("fields:")
        for descriptor in config.descriptors():
            typer.echo(f"  {descriptor.name} | {descriptor.description}")
        typer.echo("mapping:")
        for internal, external in config.mapping().items():
            typer.echo(f"  {internal} -> {external}")
        typer.echo(f"match_field={config.user_match_field()}")
        typer.echo(f"default_auth={config.default_auth_method()}")
        typer.echo(f"mandatory_fields={','.join(config.mandatory_fields())}")
        typer.echo("supported_match_fields:")
        for identifier, label in config.supported_match_fields(profileFields).items():
            typer.echo(f"  {identifier}: {label}")

        problems = config.readiness_problems()
        typer.echo(f"ready={'yes' if not problems else 'no'}")
        for problem in problems:
            typer.echo(f"  problem: {problem}")

        report.set_context(
            "mapping",
            {
                "origin": origin,
                "fields": config.get_fields(),
                "mapping": config.mapping(),
                "match_field": config.user_match_field(),
                "ready": not problems,
                "problems": problems,
            },
        )
        return 0 if not problems else 1

    runWithReport(ctx=ctx, commandName="config-show", inputPath=None, requiresInput=False, runner=execute)


def runDirectoryInitCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            conn = openDirectoryDb(settings.directory_db)
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "directory", f"Failed to open directory DB: {exc}")
            typer.echo("ERROR: failed to open directory DB (see logs/report)", err=True)
            return 2
        try:
            version = ensure_directory_schema(SqliteEngine(conn))
        finally:
            conn.close()
        logEvent(logger, logging.INFO, runId, "directory", f"Directory schema ready: version={version}")
        report.set_context("directory", {"schema_version": version})
        typer.echo(f"directory_db={settings.directory_db} schema_version={version}")
        return 0

    runWithReport(ctx=ctx, commandName="directory-init", inputPath=None, requiresInput=False, runner=execute)


def runAddProfileFieldCommand(
    ctx: typer.Context,
    shortname: str,
    name: str | None,
    datatype: str,
    unique: bool,
) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        try:
            conn, directory = openDirectory(settings)
        except sqlite3.Error as exc:
            logEvent(logger, logging.ERROR, runId, "directory", f"Failed to open directory DB: {exc}")
            typer.echo("ERROR: failed to open directory DB (see logs/report)", err=True)
            return 2
        try:
            with directory.transaction():
                created = directory.add_profile_field(
                    ProfileFieldDefinition(
                        shortname=shortname,
                        name=name or shortname,
                        datatype=datatype,
                        force_unique=unique,
                    )
                )
        except DirectoryError as exc:
            logEvent(logger, logging.ERROR, runId, "directory", str(exc))
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        finally:
            conn.close()

        report.set_context("profile_field", {"id": created.id, "shortname": created.shortname})
        typer.echo(f"profile_field_{created.shortname} id={created.id} unique={created.force_unique}")
        return 0

    runWithReport(ctx=ctx, commandName="directory-add-profile-field", inputPath=None, requiresInput=False, runner=execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    mapping: str | None = typer.Option(None, "--mapping", help="Path to field mapping YAML"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    directoryDb: str | None = typer.Option(None, "--directory-db", help="Path to directory SQLite DB."),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/report
        - сохраняет всё в ctx.obj для подкоманд
    """
    if not runId:
        runId = generate_run_id()

    cliOverrides = {
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
        "directory_db": directoryDb,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=2)

    ensureDir(loaded.settings.log_dir)
    ensureDir(loaded.settings.report_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
        "mappingPath": mapping,
    }


@app.command("upsert")
def upsert(
    ctx: typer.Context,
    records: str | None = typer.Option(None, "--records", help="Path to records file (.json or .csv)"),
):
    runUpsertCommand(ctx, recordsPath=records)


@configApp.command("show")
def configShow(ctx: typer.Context):
    runConfigShowCommand(ctx)


@directoryApp.command("init")
def directoryInit(ctx: typer.Context):
    runDirectoryInitCommand(ctx)


@directoryApp.command("add-profile-field")
def directoryAddProfileField(
    ctx: typer.Context,
    shortname: str = typer.Option(..., "--shortname", help="Profile field short name"),
    name: str | None = typer.Option(None, "--name", help="Display name"),
    datatype: str = typer.Option("text", "--datatype", help="Field data type"),
    unique: bool = typer.Option(False, "--unique/--no-unique", help="Values must be unique across users"),
):
    runAddProfileFieldCommand(ctx, shortname=shortname, name=name, datatype=datatype, unique=unique)


app.add_typer(configApp, name="config")
app.add_typer(directoryApp, name="directory")


if __name__ == "__main__":
    app()
