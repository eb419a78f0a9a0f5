from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

LOG_FORMAT = "%(asctime)s %(levelname)s runId=%(runId)s comp=%(component)s item=%(itemId)s msg=%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

LOG_LEVELS: dict[str, int] = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

NO_ITEM = "-"


class RunContextFilter(logging.Filter):
    """
    Назначение:
        Гарантирует наличие runId, component и itemId в LogRecord,
        чтобы форматтер не падал KeyError на сообщениях сторонних модулей.
    """

    def __init__(self, runId: str, defaultComponent: str = "core"):
        super().__init__()
        self.runId = runId
        self.defaultComponent = defaultComponent

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "runId"):
            record.runId = self.runId
        if not hasattr(record, "component"):
            record.component = self.defaultComponent
        if not hasattr(record, "itemId"):
            record.itemId = NO_ITEM
        return True


class StdStreamToLogger:
    """
    Назначение:
        Построчная запись перехваченного stdout/stderr в лог команды.
    """

    def __init__(self, logger: logging.Logger, level: int, runId: str, component: str):
        self.logger = logger
        self.level = level
        self.runId = runId
        self.component = component
        self.buffer = ""

    def write(self, s: str) -> int:
        if not s:
            return 0
        self.buffer += s
        while "\n" in self.buffer:
            line, self.buffer = self.buffer.split("\n", 1)
            self._emit(line)
        return len(s)

    def flush(self) -> None:
        self._emit(self.buffer)
        self.buffer = ""

    def _emit(self, line: str) -> None:
        if line.strip():
            logEvent(self.logger, self.level, self.runId, self.component, line.rstrip())


class TeeStream:
    """
    Назначение:
        Дублирует вывод: пишет в оригинальный stream и в stream-логгер.
    """

    def __init__(self, primary, secondary):
        self.primary = primary
        self.secondary = secondary

    def write(self, s: str) -> int:
        written = self.primary.write(s)
        self.secondary.write(s)
        return written

    def flush(self) -> None:
        self.primary.flush()
        self.secondary.flush()


@contextmanager
def teeStdStreams(logger: logging.Logger, runId: str) -> Iterator[None]:
    """
    Назначение:
        На время команды дублирует stdout (INFO) и stderr (ERROR) в лог.
        Исходные потоки восстанавливаются и при исключении.
    """
    originalStdout = sys.stdout
    originalStderr = sys.stderr
    stdoutTee = TeeStream(originalStdout, StdStreamToLogger(logger, logging.INFO, runId, "stdout"))
    stderrTee = TeeStream(originalStderr, StdStreamToLogger(logger, logging.ERROR, runId, "stderr"))
    sys.stdout = stdoutTee
    sys.stderr = stderrTee
    try:
        yield
    finally:
        stdoutTee.secondary.flush()
        stderrTee.secondary.flush()
        sys.stdout = originalStdout
        sys.stderr = originalStderr


def mapLogLevel(levelName: str) -> int:
    """
    Назначение:
        Преобразует строковый уровень логирования (ERROR|WARN|INFO|DEBUG) в logging level.
    """
    value = (levelName or "").strip().upper()
    if value not in LOG_LEVELS:
        raise ValueError(f"Unsupported log level: {levelName}")
    return LOG_LEVELS[value]


def createCommandLogger(commandName: str, logDir: str, runId: str, logLevel: str) -> tuple[logging.Logger, str]:
    """
    Назначение:
        Создаёт логгер команды с файлом {command}_{runId}.log.

    Выходные данные:
        (logger, logFilePath)
    """
    Path(logDir).mkdir(parents=True, exist_ok=True)
    logFilePath = str(Path(logDir) / f"{commandName}_{runId}.log")

    logger = logging.getLogger(f"userupsert.{commandName}.{runId}")
    closeCommandLogger(logger)
    logger.propagate = False

    level = mapLogLevel(logLevel)
    logger.setLevel(level)

    fileHandler = logging.FileHandler(logFilePath, encoding="utf-8")
    fileHandler.setLevel(level)
    fileHandler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    fileHandler.addFilter(RunContextFilter(runId=runId))
    logger.addHandler(fileHandler)

    return logger, logFilePath


def closeCommandLogger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def logEvent(
    logger: logging.Logger,
    level: int,
    runId: str,
    component: str,
    message: str,
    itemId: str | None = None,
) -> None:
    """
    Назначение:
        Унифицированная запись событий с runId/component и, для записей пакета, itemId.
    """
    logger.log(level, message, extra={"runId": runId, "component": component, "itemId": itemId or NO_ITEM})
