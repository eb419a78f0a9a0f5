from __future__ import annotations

from userupsert.domain.models import FieldRef, FixedField
from userupsert.domain.ports.directory import DirectoryRepositoryProtocol


class UniquenessChecker:
    """
    Назначение/ответственность:
        Проверка, занято ли значение (username/email) другой живой сущностью.
    Контракт:
        - сравнение без учёта регистра;
        - сущность exclude_id не учитывается (она может сохранить своё значение).
    """

    def __init__(self, directory: DirectoryRepositoryProtocol) -> None:
        self.directory = directory

    def is_taken(self, field: FieldRef, value: str, exclude_id: int | None = None) -> bool:
        if not value:
            return False
        candidates = self.directory.find_by_field(field, value, case_insensitive=True)
        return any(candidate.id != exclude_id for candidate in candidates)

    def is_email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        return self.is_taken(FixedField("email"), email, exclude_id)

    def is_username_taken(self, username: str, exclude_id: int | None = None) -> bool:
        return self.is_taken(FixedField("username"), username, exclude_id)
