from __future__ import annotations

from userupsert.infra.directory.sqlite_engine import SqliteEngine

SCHEMA_VERSION = 2

# Realm локальной аутентификации (аналог хоста по умолчанию).
LOCAL_REALM = "local"


def ensure_directory_schema(engine: SqliteEngine) -> int:
    """
    Назначение:
        Создать schema каталога (meta, users, profile_fields, profile_data) и применить миграции.
    """
    with engine.transaction():
        _create_meta(engine)
        current_version = _get_schema_version(engine) or 0

        if current_version == 0:
            _create_tables(engine)
            _set_schema_version(engine, SCHEMA_VERSION)
            return SCHEMA_VERSION

        if current_version < SCHEMA_VERSION:
            if current_version < 2:
                _migrate_to_v2(engine)
            _set_schema_version(engine, SCHEMA_VERSION)
            return SCHEMA_VERSION

        return current_version


def _create_meta(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )


def _get_schema_version(engine: SqliteEngine) -> int | None:
    row = engine.fetchone("SELECT value FROM meta WHERE key='schema_version'")
    if row is None:
        return None
    try:
        return int(row[0])
    except (TypeError, ValueError):
        return None


def _set_schema_version(engine: SqliteEngine, version: int) -> None:
    engine.execute(
        """
        INSERT INTO meta(key, value)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        ("schema_version", str(version)),
    )


def _create_tables(engine: SqliteEngine) -> None:
    engine.execute(
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL,
            idnumber TEXT NOT NULL DEFAULT '',
            email TEXT NOT NULL DEFAULT '',
            firstname TEXT NOT NULL DEFAULT '',
            lastname TEXT NOT NULL DEFAULT '',
            auth TEXT NOT NULL DEFAULT 'manual',
            password TEXT NOT NULL DEFAULT '',
            suspended INTEGER NOT NULL DEFAULT 0,
            deleted INTEGER NOT NULL DEFAULT 0,
            description TEXT,
            realm TEXT NOT NULL DEFAULT '{LOCAL_REALM}',
            timecreated INTEGER NOT NULL DEFAULT 0,
            timemodified INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    engine.execute("CREATE INDEX IF NOT EXISTS idx_users_username ON users(realm, username)")
    engine.execute("CREATE INDEX IF NOT EXISTS idx_users_email ON users(realm, email)")
    engine.execute("CREATE INDEX IF NOT EXISTS idx_users_idnumber ON users(realm, idnumber)")
    _create_profile_tables(engine)


def _create_profile_tables(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS profile_fields (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            shortname TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            datatype TEXT NOT NULL DEFAULT 'text',
            force_unique INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS profile_data (
            user_id INTEGER NOT NULL REFERENCES users(id),
            field_id INTEGER NOT NULL REFERENCES profile_fields(id),
            data TEXT NOT NULL DEFAULT '',
            PRIMARY KEY (user_id, field_id)
        )
        """
    )
    engine.execute("CREATE INDEX IF NOT EXISTS idx_profile_data_lookup ON profile_data(field_id, data)")


def _migrate_to_v2(engine: SqliteEngine) -> None:
    """
    Миграция с v1: пользовательские атрибуты профиля.
    """
    _create_profile_tables(engine)
