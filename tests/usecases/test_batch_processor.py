from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from userupsert.domain.exceptions import AmbiguousMatchError, EmailTakenError, MissingFieldError
from userupsert.domain.mapping.config import FieldMappingConfig
from userupsert.domain.models import DirectoryEntity, Failure, FixedField, Success
from userupsert.domain.upsert.engine import UpsertEngine
from userupsert.domain.upsert.result import UpsertAction, UpsertFailed, UpsertOk, UpsertResult
from userupsert.infra.directory.db import openDirectoryDb
from userupsert.infra.directory.repository import SqliteDirectoryRepository
from userupsert.infra.directory.schema import ensure_directory_schema
from userupsert.infra.directory.sqlite_engine import SqliteEngine
from userupsert.infra.policies.auth_registry import StaticAuthRegistry
from userupsert.infra.policies.email_policy import DomainEmailPolicy
from userupsert.usecases.batch_processor import NOT_SET, BatchProcessor


@dataclass
class FakeEngine:
    """
    Назначение:
        Движок-заглушка: отдаёт заранее заданные результаты по очереди.
    """

    results: list[UpsertResult | Exception]
    matching_field: str = "U"
    seen: list[dict] = field(default_factory=list)

    def upsert(self, record):
        self.seen.append(dict(record))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_outcomes_preserve_order_and_actions():
    engine = FakeEngine(
        results=[
            UpsertOk(action=UpsertAction.CREATE, entity_id=1),
            UpsertFailed(EmailTakenError("b@x.com")),
            UpsertOk(action=UpsertAction.DELETE, entity_id=2),
        ]
    )

    outcomes = BatchProcessor(engine).process([{"U": "a"}, {"U": "b"}, {"U": "c"}])

    assert outcomes == [
        Success(match_value="a", action="create"),
        Failure(match_value="b", error_message="Email is already taken: b@x.com", code="EMAIL_TAKEN"),
        Success(match_value="c", action="delete"),
    ]


def test_placeholder_item_id_when_match_value_is_missing_or_empty():
    engine = FakeEngine(
        results=[
            UpsertFailed(MissingFieldError("U")),
            UpsertFailed(MissingFieldError("U")),
        ]
    )

    outcomes = BatchProcessor(engine).process([{"E": "a@x.com"}, {"U": ""}])

    assert [outcome.match_value for outcome in outcomes] == [NOT_SET, NOT_SET]
    assert NOT_SET == "not set"
    assert outcomes[0].error_message == "Missing mandatory field U"


def test_fatal_error_stops_the_batch():
    engine = FakeEngine(
        results=[
            UpsertOk(action=UpsertAction.UPDATE, entity_id=1),
            AmbiguousMatchError(field="idnumber", value="X1"),
            UpsertOk(action=UpsertAction.UPDATE, entity_id=3),
        ]
    )
    seen_outcomes = []
    processor = BatchProcessor(engine, on_outcome=lambda record, outcome: seen_outcomes.append(outcome))

    with pytest.raises(AmbiguousMatchError):
        processor.process([{"U": "a"}, {"U": "b"}, {"U": "c"}])

    assert len(engine.seen) == 2
    assert seen_outcomes == [Success(match_value="a", action="update")]


def test_empty_batch():
    assert BatchProcessor(FakeEngine(results=[])).process([]) == []


def test_batch_isolation_against_directory(tmp_path: Path):
    conn = openDirectoryDb(str(tmp_path / "directory.sqlite3"))
    sql = SqliteEngine(conn)
    ensure_directory_schema(sql)
    directory = SqliteDirectoryRepository(sql)
    with directory.transaction():
        directory.insert(DirectoryEntity(username="carol", email="taken@x.com"))

    config = FieldMappingConfig.parse(
        "U | Username\nE | Email\nF | First name\nL | Last name\nS | Status",
        {
            "data_map_username": "U",
            "data_map_email": "E",
            "data_map_firstname": "F",
            "data_map_lastname": "L",
            "data_map_status": "S",
        },
    )
    engine = UpsertEngine(config, directory, StaticAuthRegistry(), DomainEmailPolicy())
    records = [
        {"U": "alice", "E": "alice@x.com", "F": "Alice", "L": "A", "S": "active"},
        {"U": "bob", "E": "taken@x.com", "F": "Bob", "L": "B", "S": "active"},
        {"U": "dave", "E": "dave@x.com", "F": "Dave", "L": "D", "S": "active"},
    ]

    outcomes = BatchProcessor(engine).process(records)

    assert [type(outcome) for outcome in outcomes] == [Success, Failure, Success]
    assert outcomes[1] == Failure(
        match_value="bob",
        error_message="Email is already taken: taken@x.com",
        code="EMAIL_TAKEN",
    )
    assert len(directory.find_by_field(FixedField("username"), "alice")) == 1
    assert directory.find_by_field(FixedField("username"), "bob") == []
    assert len(directory.find_by_field(FixedField("username"), "dave")) == 1
