from __future__ import annotations

import sqlite3
from pathlib import Path

IN_MEMORY = ":memory:"


def getDirectoryDbPath(dataDir: str) -> str:
    """
    Возвращает путь к файлу каталога пользователей в указанной директории.
    """
    return str(Path(dataDir) / "directory.sqlite3")


def openDirectoryDb(dbPath: str) -> sqlite3.Connection:
    """
    Открывает/создаёт SQLite БД каталога с нужными PRAGMA/timeout.
    Транзакции управляются явно (isolation_level=None, BEGIN/COMMIT в SqliteEngine).
    """
    if dbPath != IN_MEMORY:
        Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dbPath, timeout=5.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    if dbPath != IN_MEMORY:
        conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn
