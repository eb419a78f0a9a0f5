from __future__ import annotations

import logging

from userupsert.domain.exceptions import AmbiguousMatchError
from userupsert.domain.models import DirectoryEntity, FieldRef, FixedField
from userupsert.domain.ports.directory import DirectoryRepositoryProtocol

logger = logging.getLogger(__name__)

# Поля, сопоставляемые без учёта регистра.
CASE_INSENSITIVE_FIELDS: frozenset[FieldRef] = frozenset({FixedField("email")})


class DirectoryLookup:
    """
    Назначение/ответственность:
        Поиск не более чем одной живой сущности каталога по полю сопоставления.
    Контракт:
        - 0 кандидатов -> None (не ошибка);
        - email сравнивается без учёта регистра, остальные поля точно;
        - >1 кандидата -> AmbiguousMatchError;
        - неизвестное поле -> SchemaError из репозитория (не перехватывается).
    """

    def __init__(self, directory: DirectoryRepositoryProtocol) -> None:
        self.directory = directory

    def find(self, field: FieldRef, value: str) -> DirectoryEntity | None:
        candidates = self.directory.find_by_field(
            field,
            value,
            case_insensitive=field in CASE_INSENSITIVE_FIELDS,
        )
        if len(candidates) > 1:
            logger.warning(
                "multiple live candidates for %s=%r: ids=%s",
                field.identifier,
                value,
                [candidate.id for candidate in candidates],
            )
            raise AmbiguousMatchError(field=field.identifier, value=value)
        if candidates:
            return candidates[0]
        return None
