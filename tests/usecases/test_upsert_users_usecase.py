from __future__ import annotations

import logging
from pathlib import Path

import pytest

from userupsert.domain.exceptions import InvalidRequestError, NotConfiguredError, PermissionDeniedError
from userupsert.domain.mapping.config import FieldMappingConfig, default_source
from userupsert.domain.models import DirectoryEntity, FixedField
from userupsert.domain.ports.events import UPSERT_FAILED, UPSERT_SUCCEEDED, UpsertEvent
from userupsert.infra.directory.db import openDirectoryDb
from userupsert.infra.directory.repository import SqliteDirectoryRepository
from userupsert.infra.directory.schema import ensure_directory_schema
from userupsert.infra.directory.sqlite_engine import SqliteEngine
from userupsert.infra.events.sinks import InMemoryEventSink
from userupsert.infra.policies.auth_registry import StaticAuthRegistry
from userupsert.infra.policies.email_policy import DomainEmailPolicy
from userupsert.usecases.upsert_users_usecase import UPSERT_CAPABILITY, UpsertUsersUseCase

GRANTED = {UPSERT_CAPABILITY}


def _build_directory(tmp_path: Path) -> SqliteDirectoryRepository:
    conn = openDirectoryDb(str(tmp_path / "directory.sqlite3"))
    engine = SqliteEngine(conn)
    ensure_directory_schema(engine)
    return SqliteDirectoryRepository(engine)


def _build_usecase(
    directory: SqliteDirectoryRepository,
    config: FieldMappingConfig | None = None,
) -> tuple[UpsertUsersUseCase, InMemoryEventSink]:
    events = InMemoryEventSink()
    usecase = UpsertUsersUseCase(
        config or FieldMappingConfig.from_source(default_source()),
        directory,
        StaticAuthRegistry(),
        DomainEmailPolicy(),
        events=events,
    )
    return usecase, events


def _user(username: str, email: str, status: str = "active") -> dict[str, str]:
    return {"username": username, "email": email, "firstname": "First", "lastname": "Last", "status": status}


def test_results_and_events_per_record(tmp_path: Path):
    directory = _build_directory(tmp_path)
    with directory.transaction():
        directory.insert(DirectoryEntity(username="carol", email="taken@x.com"))
    usecase, events = _build_usecase(directory)

    results = usecase.execute([_user("alice", "a@x.com"), _user("bob", "taken@x.com")], GRANTED)

    assert results == [
        {"itemid": "alice", "error": ""},
        {"itemid": "bob", "error": "Email is already taken: taken@x.com"},
    ]
    assert events.events == [
        UpsertEvent(UPSERT_SUCCEEDED, "alice"),
        UpsertEvent(UPSERT_FAILED, "bob", "Email is already taken: taken@x.com"),
    ]
    assert events.events[0].description == "User upserted: 'alice'"
    assert events.events[1].description == (
        "Failed upserting user: 'bob', error 'Email is already taken: taken@x.com'"
    )


def test_missing_match_value_is_reported_as_not_set(tmp_path: Path):
    usecase, events = _build_usecase(_build_directory(tmp_path))

    results = usecase.execute([{"email": "a@x.com", "status": "active"}], GRANTED)

    assert results == [{"itemid": "not set", "error": "Missing mandatory field username"}]
    assert events.events[0].item_id == "not set"


def test_permission_is_checked_first(tmp_path: Path):
    directory = _build_directory(tmp_path)
    usecase, events = _build_usecase(directory)

    with pytest.raises(PermissionDeniedError) as excinfo:
        usecase.execute([_user("alice", "a@x.com")], capabilities=set())

    assert str(excinfo.value) == "Sorry, but you do not currently have permissions to do that (Upsert users)."
    assert events.events == []
    assert directory.count_users() == 0


def test_unexpected_keys_are_rejected(tmp_path: Path):
    usecase, _ = _build_usecase(_build_directory(tmp_path))

    with pytest.raises(InvalidRequestError) as excinfo:
        usecase.execute([{**_user("alice", "a@x.com"), "invalid": "1"}], GRANTED)

    assert str(excinfo.value) == "Invalid parameter value detected"
    assert excinfo.value.debuginfo == "Unexpected keys (invalid) detected in parameter array."


def test_non_scalar_values_are_rejected(tmp_path: Path):
    usecase, _ = _build_usecase(_build_directory(tmp_path))

    with pytest.raises(InvalidRequestError):
        usecase.execute([{"username": ["alice"]}], GRANTED)


def test_scalar_values_are_coerced_and_nulls_dropped(tmp_path: Path):
    usecase, _ = _build_usecase(_build_directory(tmp_path))

    records = usecase.validate_request([{"username": "alice", "firstname": 42, "password": None}])

    assert records == [{"username": "alice", "firstname": "42"}]


def test_schema_follows_descriptors(tmp_path: Path):
    usecase, _ = _build_usecase(_build_directory(tmp_path))
    schema = usecase.parameters_schema()
    assert set(schema) == {"username", "firstname", "lastname", "email", "auth", "password", "status"}
    assert schema["status"] == "User status. Either active, deleted or suspended"


def test_unready_config_fails_whole_request(tmp_path: Path):
    usecase, events = _build_usecase(_build_directory(tmp_path), config=FieldMappingConfig.parse("", {}))

    with pytest.raises(NotConfiguredError):
        usecase.execute([], GRANTED)

    assert events.events == []


def test_delete_via_usecase(tmp_path: Path):
    directory = _build_directory(tmp_path)
    usecase, _ = _build_usecase(directory)
    usecase.execute([_user("alice", "a@x.com")], GRANTED)

    results = usecase.execute([_user("alice", "a@x.com", status="deleted")], GRANTED)

    assert results == [{"itemid": "alice", "error": ""}]
    assert directory.find_by_field(FixedField("username"), "alice") == []


def test_debug_request_log_masks_password(tmp_path: Path, caplog):
    usecase, _ = _build_usecase(_build_directory(tmp_path))
    caplog.set_level(logging.DEBUG, logger="userupsert.usecases.upsert_users_usecase")

    usecase.execute([{**_user("alice", "a@x.com"), "password": "Secret1!"}], GRANTED)

    request_lines = [record.getMessage() for record in caplog.records if record.getMessage().startswith("request=")]
    assert len(request_lines) == 1
    assert "'password': '***'" in request_lines[0]
    assert "Secret1!" not in caplog.text
