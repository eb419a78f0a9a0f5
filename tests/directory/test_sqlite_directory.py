from __future__ import annotations

from pathlib import Path

import pytest

from userupsert.domain.exceptions import DirectoryError, SchemaError
from userupsert.domain.models import CustomField, DirectoryEntity, FixedField, Lazy, ProfileFieldDefinition
from userupsert.infra.directory.db import openDirectoryDb
from userupsert.infra.directory.repository import SqliteDirectoryRepository
from userupsert.infra.directory.schema import SCHEMA_VERSION, ensure_directory_schema
from userupsert.infra.directory.sqlite_engine import SqliteEngine
from userupsert.infra.policies.password_policy import verify_password


def _build_engine(tmp_path: Path) -> SqliteEngine:
    conn = openDirectoryDb(str(tmp_path / "directory.sqlite3"))
    engine = SqliteEngine(conn)
    ensure_directory_schema(engine)
    return engine


def _build_repo(tmp_path: Path) -> SqliteDirectoryRepository:
    return SqliteDirectoryRepository(_build_engine(tmp_path))


def _insert(repo: SqliteDirectoryRepository, username: str, email: str = "", **fields) -> DirectoryEntity:
    entity = DirectoryEntity(username=username, email=email, **fields)
    with repo.transaction():
        entity.id = repo.insert(entity)
    return entity


def _add_field(repo: SqliteDirectoryRepository, shortname: str, force_unique: bool = True) -> ProfileFieldDefinition:
    with repo.transaction():
        return repo.add_profile_field(ProfileFieldDefinition(shortname=shortname, name=shortname.title(), force_unique=force_unique))


def test_schema_is_idempotent(tmp_path: Path):
    engine = _build_engine(tmp_path)
    assert ensure_directory_schema(engine) == SCHEMA_VERSION


def test_find_by_fixed_field_live_only(tmp_path: Path):
    repo = _build_repo(tmp_path)
    bob = _insert(repo, "bob", "bob@x.com")
    gone = _insert(repo, "gone", "bob@x.com")
    with repo.transaction():
        repo.soft_delete(gone)

    found = repo.find_by_field(FixedField("email"), "bob@x.com")

    assert [entity.id for entity in found] == [bob.id]
    assert found[0].description == Lazy.unloaded()


def test_find_is_scoped_to_realm(tmp_path: Path):
    engine = _build_engine(tmp_path)
    local = SqliteDirectoryRepository(engine)
    remote = SqliteDirectoryRepository(engine, realm="remote")
    _insert(remote, "bob", "bob@x.com")

    assert local.find_by_field(FixedField("username"), "bob") == []
    assert len(remote.find_by_field(FixedField("username"), "bob")) == 1


def test_case_insensitive_find(tmp_path: Path):
    repo = _build_repo(tmp_path)
    _insert(repo, "bob", "Bob@X.com")

    assert repo.find_by_field(FixedField("email"), "bob@x.com") == []
    assert len(repo.find_by_field(FixedField("email"), "bob@x.com", case_insensitive=True)) == 1


def test_unknown_fields_raise_schema_error(tmp_path: Path):
    repo = _build_repo(tmp_path)

    with pytest.raises(SchemaError) as excinfo:
        repo.find_by_field(FixedField("shoe_size"), "42")
    assert str(excinfo.value) == "Unknown directory field: shoe_size"

    with pytest.raises(SchemaError):
        repo.find_by_field(CustomField("missing"), "x")


def test_find_by_custom_field(tmp_path: Path):
    repo = _build_repo(tmp_path)
    _add_field(repo, "employeeid")
    bob = _insert(repo, "bob")
    with repo.transaction():
        repo.attribute_save(bob.id, {"employeeid": "E-1"})

    found = repo.find_by_field(CustomField("employeeid"), "E-1")

    assert [entity.username for entity in found] == ["bob"]
    assert found[0].profile == {"employeeid": "E-1"}


def test_get_by_id_loads_description(tmp_path: Path):
    repo = _build_repo(tmp_path)
    bob = _insert(repo, "bob", description=Lazy.of("About bob"))

    assert repo.get_by_id(bob.id).description == Lazy.of("About bob")
    assert repo.get_by_id(9999) is None


def test_update_does_not_overwrite_unloaded_description(tmp_path: Path):
    repo = _build_repo(tmp_path)
    bob = _insert(repo, "bob", description=Lazy.of("About bob"))
    entity = repo.find_by_field(FixedField("username"), "bob")[0]
    entity.firstname = "Robert"

    with repo.transaction():
        repo.update(entity, include_credential=False)

    stored = repo.get_by_id(bob.id)
    assert stored.firstname == "Robert"
    assert stored.description == Lazy.of("About bob")


def test_insert_skips_policies_and_update_applies_them(tmp_path: Path):
    repo = _build_repo(tmp_path)
    entity = _insert(repo, "Bob")

    with pytest.raises(DirectoryError) as excinfo:
        repo.update(entity, include_credential=False)
    assert str(excinfo.value) == "The username must be in lower case"


def test_update_with_credential_checks_password_policy(tmp_path: Path):
    repo = _build_repo(tmp_path)
    entity = _insert(repo, "bob")
    entity.password = "short"

    with pytest.raises(DirectoryError):
        repo.update(entity, include_credential=True)

    entity.password = "nhy6^YHN"
    with repo.transaction():
        repo.update(entity, include_credential=True)
    assert verify_password("nhy6^YHN", repo.get_password_hash(entity.id))


def test_soft_delete_removes_profile_data(tmp_path: Path):
    repo = _build_repo(tmp_path)
    _add_field(repo, "employeeid")
    bob = _insert(repo, "bob")
    with repo.transaction():
        repo.attribute_save(bob.id, {"employeeid": "E-1"})
        repo.soft_delete(bob)

    stored = repo.get_by_id(bob.id)
    assert stored.deleted is True
    assert stored.profile == {}
    assert repo.count_users() == 0
    assert repo.count_users(include_deleted=True) == 1


def test_attribute_validate_force_unique(tmp_path: Path):
    repo = _build_repo(tmp_path)
    _add_field(repo, "employeeid", force_unique=True)
    _add_field(repo, "nickname", force_unique=False)
    bob = _insert(repo, "bob")
    alice = _insert(repo, "alice")
    with repo.transaction():
        repo.attribute_save(bob.id, {"employeeid": "E-1", "nickname": "b"})

    errors = repo.attribute_validate(alice, {"employeeid": "E-1", "nickname": "b"})

    assert errors == [("profile_field_employeeid", "This value has already been used.")]
    assert repo.attribute_validate(bob, {"employeeid": "E-1"}) == []


def test_attribute_save_unknown_field(tmp_path: Path):
    repo = _build_repo(tmp_path)
    bob = _insert(repo, "bob")

    with pytest.raises(DirectoryError):
        repo.attribute_save(bob.id, {"missing": "x"})


def test_duplicate_profile_field(tmp_path: Path):
    repo = _build_repo(tmp_path)
    _add_field(repo, "employeeid")

    with pytest.raises(DirectoryError):
        _add_field(repo, "employeeid")
    assert [definition.shortname for definition in repo.list_profile_fields()] == ["employeeid"]


def test_transaction_rollback_and_nested_savepoint(tmp_path: Path):
    repo = _build_repo(tmp_path)

    with pytest.raises(RuntimeError):
        with repo.transaction():
            repo.insert(DirectoryEntity(username="lost"))
            raise RuntimeError("boom")
    assert repo.count_users() == 0

    with repo.transaction():
        repo.insert(DirectoryEntity(username="kept"))
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.insert(DirectoryEntity(username="inner"))
                raise RuntimeError("boom")

    assert [entity.username for entity in repo.find_by_field(FixedField("username"), "kept")] == ["kept"]
    assert repo.find_by_field(FixedField("username"), "inner") == []
