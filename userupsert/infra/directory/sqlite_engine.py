from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator


class SqliteEngine:
    """
    Назначение/ответственность:
        Тонкая обёртка над sqlite3.Connection с единым API для SQL-операций.
    Контракт:
        - transaction() реентерабелен: вложенный блок выполняется в SAVEPOINT,
          откат вложенного блока не затрагивает внешний.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._depth = 0

    def execute(self, sql: str, params: tuple | dict | None = None) -> sqlite3.Cursor:
        if params is None:
            return self.conn.execute(sql)
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple | dict | None = None) -> sqlite3.Row | None:
        cur = self.execute(sql, params)
        return cur.fetchone()

    def fetchall(self, sql: str, params: tuple | dict | None = None) -> list[sqlite3.Row]:
        cur = self.execute(sql, params)
        return cur.fetchall()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth > 0:
            savepoint = f"sp_{self._depth}"
            self.conn.execute(f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield
                self.conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            except BaseException:
                self.conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self.conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                raise
            finally:
                self._depth -= 1
            return

        self.conn.execute("BEGIN")
        self._depth += 1
        try:
            yield
            self.conn.execute("COMMIT")
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        finally:
            self._depth -= 1
