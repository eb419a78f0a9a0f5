from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Mapping

from userupsert.common.time import getUnixTime
from userupsert.domain.exceptions import DirectoryError, SchemaError
from userupsert.domain.mapping.profile_fields import prefix_custom_profile_field
from userupsert.domain.models import (
    CustomField,
    DirectoryEntity,
    FieldRef,
    FixedField,
    Lazy,
    ProfileFieldDefinition,
)
from userupsert.domain.ports.directory import DirectoryRepositoryProtocol
from userupsert.infra.directory.schema import LOCAL_REALM
from userupsert.infra.directory.sqlite_engine import SqliteEngine
from userupsert.infra.policies.password_policy import PasswordPolicy, hash_password
from userupsert.infra.policies.username_policy import check_username

logger = logging.getLogger(__name__)

# Колонки users, по которым допустим поиск.
LOOKUP_COLUMNS: tuple[str, ...] = ("username", "idnumber", "email", "firstname", "lastname", "auth")

# Колонки, читаемые всегда; description загружается отдельно.
_ENTITY_COLUMNS = "u.id, u.username, u.idnumber, u.email, u.firstname, u.lastname, u.auth, u.suspended, u.deleted"

FORCE_UNIQUE_MESSAGE = "This value has already been used."


class SqliteDirectoryRepository(DirectoryRepositoryProtocol):
    """
    Назначение/ответственность:
        Каталог пользователей на SQLite: поиск, создание, обновление,
        мягкое удаление и пользовательские атрибуты профиля.

    Контракт:
        - find_by_field видит только живые сущности своего realm;
        - поиск по неизвестной колонке или неизвестному атрибуту -> SchemaError;
        - insert() не применяет политики username/пароля, update() применяет;
        - нарушение политики или сбой SQLite -> DirectoryError;
        - description читается лениво: незагруженное значение не перезаписывается.
    """

    def __init__(
        self,
        engine: SqliteEngine,
        password_policy: PasswordPolicy | None = None,
        realm: str = LOCAL_REALM,
    ):
        self.engine = engine
        self.password_policy = password_policy or PasswordPolicy()
        self.realm = realm

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.engine.transaction():
            yield

    def find_by_field(
        self,
        field: FieldRef,
        value: str,
        *,
        case_insensitive: bool = False,
    ) -> list[DirectoryEntity]:
        if isinstance(field, CustomField):
            definition = self._get_profile_field(field.shortname)
            if definition is None:
                raise SchemaError(field.identifier)
            comparison = "lower(d.data) = lower(?)" if case_insensitive else "d.data = ?"
            rows = self.engine.fetchall(
                f"""
                SELECT {_ENTITY_COLUMNS}
                FROM users u
                JOIN profile_data d ON d.user_id = u.id
                WHERE d.field_id = ? AND {comparison} AND u.deleted = 0 AND u.realm = ?
                ORDER BY u.id
                """,
                (definition.id, value, self.realm),
            )
        elif isinstance(field, FixedField):
            if field.name not in LOOKUP_COLUMNS:
                raise SchemaError(field.identifier)
            comparison = f"lower(u.{field.name}) = lower(?)" if case_insensitive else f"u.{field.name} = ?"
            rows = self.engine.fetchall(
                f"""
                SELECT {_ENTITY_COLUMNS}
                FROM users u
                WHERE {comparison} AND u.deleted = 0 AND u.realm = ?
                ORDER BY u.id
                """,
                (value, self.realm),
            )
        else:
            raise SchemaError(str(field))

        return [self._to_entity(row) for row in rows]

    def get_by_id(self, entity_id: int) -> DirectoryEntity | None:
        row = self.engine.fetchone(
            f"SELECT {_ENTITY_COLUMNS}, u.description FROM users u WHERE u.id = ?",
            (entity_id,),
        )
        if row is None:
            return None
        entity = self._to_entity(row)
        entity.description = Lazy.of(row["description"])
        return entity

    def get_password_hash(self, entity_id: int) -> str | None:
        row = self.engine.fetchone("SELECT password FROM users WHERE id = ?", (entity_id,))
        return None if row is None else row[0]

    def insert(self, entity: DirectoryEntity) -> int:
        now = getUnixTime()
        password = hash_password(entity.password) if entity.password else ""
        description = entity.description.value if entity.description.loaded else None
        try:
            cur = self.engine.execute(
                """
                INSERT INTO users(
                    username, idnumber, email, firstname, lastname, auth, password,
                    suspended, deleted, description, realm, timecreated, timemodified
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
                """,
                (
                    entity.username,
                    entity.idnumber,
                    entity.email,
                    entity.firstname,
                    entity.lastname,
                    entity.auth,
                    password,
                    int(entity.suspended),
                    description,
                    self.realm,
                    now,
                    now,
                ),
            )
        except sqlite3.Error as exc:
            raise DirectoryError(str(exc)) from exc
        entity_id = int(cur.lastrowid)
        logger.debug("directory insert id=%s username=%s", entity_id, entity.username)
        return entity_id

    def update(self, entity: DirectoryEntity, include_credential: bool) -> None:
        if entity.id is None:
            raise DirectoryError("Cannot update a user without id")

        problems = check_username(entity.username)
        if include_credential:
            problems.extend(self.password_policy.check(entity.password or ""))
        if problems:
            raise DirectoryError("; ".join(problems))

        assignments = [
            "username = ?",
            "idnumber = ?",
            "email = ?",
            "firstname = ?",
            "lastname = ?",
            "auth = ?",
            "suspended = ?",
            "timemodified = ?",
        ]
        params: list[object] = [
            entity.username,
            entity.idnumber,
            entity.email,
            entity.firstname,
            entity.lastname,
            entity.auth,
            int(entity.suspended),
            getUnixTime(),
        ]
        if entity.description.loaded:
            assignments.append("description = ?")
            params.append(entity.description.value)
        if include_credential:
            assignments.append("password = ?")
            params.append(hash_password(entity.password or ""))
        params.append(entity.id)

        try:
            cur = self.engine.execute(f"UPDATE users SET {', '.join(assignments)} WHERE id = ?", tuple(params))
        except sqlite3.Error as exc:
            raise DirectoryError(str(exc)) from exc
        if cur.rowcount == 0:
            raise DirectoryError(f"User not found: {entity.id}")

    def soft_delete(self, entity: DirectoryEntity) -> None:
        if entity.id is None:
            raise DirectoryError("Cannot delete a user without id")
        try:
            self.engine.execute(
                "UPDATE users SET deleted = 1, timemodified = ? WHERE id = ?",
                (getUnixTime(), entity.id),
            )
            self.engine.execute("DELETE FROM profile_data WHERE user_id = ?", (entity.id,))
        except sqlite3.Error as exc:
            raise DirectoryError(str(exc)) from exc
        entity.deleted = True
        entity.profile = {}

    def attribute_save(self, entity_id: int, attributes: Mapping[str, str]) -> None:
        for shortname, value in attributes.items():
            definition = self._get_profile_field(shortname)
            if definition is None:
                raise DirectoryError(f"Unknown profile field: {shortname}")
            try:
                self.engine.execute(
                    """
                    INSERT INTO profile_data(user_id, field_id, data)
                    VALUES (?, ?, ?)
                    ON CONFLICT(user_id, field_id) DO UPDATE SET data=excluded.data
                    """,
                    (entity_id, definition.id, value),
                )
            except sqlite3.Error as exc:
                raise DirectoryError(str(exc)) from exc

    def attribute_validate(
        self,
        entity: DirectoryEntity,
        attributes: Mapping[str, str],
    ) -> list[tuple[str, str]]:
        """
        Назначение:
            Проверить ограничения атрибутов профиля до записи.
        Контракт:
            - возвращает все нарушения, ключ ошибки profile_field_<shortname>;
            - force_unique: значение не должно принадлежать другой живой сущности.
        """
        errors: list[tuple[str, str]] = []
        for shortname, value in attributes.items():
            definition = self._get_profile_field(shortname)
            if definition is None or not definition.force_unique or value == "":
                continue
            row = self.engine.fetchone(
                """
                SELECT d.user_id
                FROM profile_data d
                JOIN users u ON u.id = d.user_id
                WHERE d.field_id = ? AND d.data = ? AND u.deleted = 0 AND u.id != ?
                LIMIT 1
                """,
                (definition.id, value, entity.id if entity.id is not None else -1),
            )
            if row is not None:
                errors.append((prefix_custom_profile_field(shortname), FORCE_UNIQUE_MESSAGE))
        return errors

    def list_profile_fields(self) -> list[ProfileFieldDefinition]:
        rows = self.engine.fetchall(
            "SELECT id, shortname, name, datatype, force_unique FROM profile_fields ORDER BY id"
        )
        return [_to_definition(row) for row in rows]

    def add_profile_field(self, definition: ProfileFieldDefinition) -> ProfileFieldDefinition:
        try:
            cur = self.engine.execute(
                "INSERT INTO profile_fields(shortname, name, datatype, force_unique) VALUES (?, ?, ?, ?)",
                (definition.shortname, definition.name, definition.datatype, int(definition.force_unique)),
            )
        except sqlite3.IntegrityError as exc:
            raise DirectoryError(f"Profile field already exists: {definition.shortname}") from exc
        return ProfileFieldDefinition(
            shortname=definition.shortname,
            name=definition.name,
            datatype=definition.datatype,
            force_unique=definition.force_unique,
            id=int(cur.lastrowid),
        )

    def count_users(self, *, include_deleted: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM users WHERE realm = ?"
        if not include_deleted:
            sql += " AND deleted = 0"
        row = self.engine.fetchone(sql, (self.realm,))
        return int(row[0]) if row else 0

    def _get_profile_field(self, shortname: str) -> ProfileFieldDefinition | None:
        row = self.engine.fetchone(
            "SELECT id, shortname, name, datatype, force_unique FROM profile_fields WHERE shortname = ?",
            (shortname,),
        )
        return _to_definition(row) if row is not None else None

    def _load_profile(self, entity_id: int) -> dict[str, str]:
        rows = self.engine.fetchall(
            """
            SELECT f.shortname, d.data
            FROM profile_data d
            JOIN profile_fields f ON f.id = d.field_id
            WHERE d.user_id = ?
            """,
            (entity_id,),
        )
        return {row[0]: row[1] for row in rows}

    def _to_entity(self, row: sqlite3.Row) -> DirectoryEntity:
        entity_id = int(row["id"])
        return DirectoryEntity(
            id=entity_id,
            username=row["username"],
            idnumber=row["idnumber"],
            email=row["email"],
            firstname=row["firstname"],
            lastname=row["lastname"],
            auth=row["auth"],
            suspended=bool(row["suspended"]),
            deleted=bool(row["deleted"]),
            profile=self._load_profile(entity_id),
        )


def _to_definition(row: sqlite3.Row) -> ProfileFieldDefinition:
    return ProfileFieldDefinition(
        id=int(row["id"]),
        shortname=row["shortname"],
        name=row["name"],
        datatype=row["datatype"],
        force_unique=bool(row["force_unique"]),
    )
