from __future__ import annotations

from pathlib import Path

import pytest

from userupsert.infra.sources.records_reader import RecordsFormatError, read_records


def test_read_json_list(tmp_path: Path):
    path = tmp_path / "records.json"
    path.write_text('[{"username": "alice", "status": "active"}]', encoding="utf-8")
    assert read_records(str(path)) == [{"username": "alice", "status": "active"}]


def test_read_json_users_envelope(tmp_path: Path):
    path = tmp_path / "records.json"
    path.write_text('{"users": [{"username": "alice"}, {"username": "bob"}]}', encoding="utf-8")
    assert [record["username"] for record in read_records(str(path))] == ["alice", "bob"]


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        '{"records": []}',
        '"text"',
        '[1, 2]',
    ],
)
def test_read_json_rejects_bad_structure(tmp_path: Path, content: str):
    path = tmp_path / "records.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(RecordsFormatError):
        read_records(str(path))


def test_read_csv_with_header(tmp_path: Path):
    path = tmp_path / "records.csv"
    path.write_text("username,email,status\nalice,a@x.com,active\nbob,,suspended\n", encoding="utf-8")

    records = read_records(str(path))

    assert records == [
        {"username": "alice", "email": "a@x.com", "status": "active"},
        {"username": "bob", "email": "", "status": "suspended"},
    ]


def test_read_csv_column_count_mismatch(tmp_path: Path):
    path = tmp_path / "records.csv"
    path.write_text("username,email\nalice,a@x.com,extra\n", encoding="utf-8")

    with pytest.raises(RecordsFormatError) as excinfo:
        read_records(str(path))
    assert "line 2" in str(excinfo.value)


def test_unsupported_extension(tmp_path: Path):
    path = tmp_path / "records.xml"
    path.write_text("<users/>", encoding="utf-8")
    with pytest.raises(RecordsFormatError):
        read_records(str(path))
