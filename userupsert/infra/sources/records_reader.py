from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

# Ключ пакета в JSON-объекте запроса.
USERS_KEY = "users"


class RecordsFormatError(Exception):
    """
    Назначение:
        Файл пакета не удаётся разобрать (формат/структура).
    """


def read_records(path: str) -> list[dict[str, Any]]:
    """
    Назначение:
        Прочитать пакет записей из JSON или CSV (по расширению файла).

    Контракт:
        - JSON: массив объектов либо объект {"users": [...]};
        - CSV: первая строка содержит заголовок с внешними именами полей;
        - значения не преобразуются: схема проверяется на уровне use case.
    """
    suffix = Path(path).suffix.lower()
    if suffix == ".json":
        return read_json_records(path)
    if suffix == ".csv":
        return read_csv_records(path)
    raise RecordsFormatError(f"Unsupported records file format: {suffix or path}")


def read_json_records(path: str) -> list[dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise RecordsFormatError(f"Invalid JSON in {path}: {exc}") from exc

    if isinstance(data, dict):
        if USERS_KEY not in data:
            raise RecordsFormatError(f"Missing '{USERS_KEY}' key in {path}")
        data = data[USERS_KEY]
    if not isinstance(data, list):
        raise RecordsFormatError(f"Records must be a list in {path}")
    for index, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise RecordsFormatError(f"Record #{index} is not an object in {path}")
    return data


def read_csv_records(path: str) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f, delimiter=",")
        if reader.fieldnames is None:
            raise RecordsFormatError(f"Missing header in {path}")
        for csv_line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            if None in row:
                extra = row.get(None) or []
                got = len(reader.fieldnames) + len(extra)
                raise RecordsFormatError(
                    f"Invalid column count at line {csv_line_no}: expected {len(reader.fieldnames)}, got {got}"
                )
            records.append({key: value for key, value in row.items() if value is not None})
    return records
