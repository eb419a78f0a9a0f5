from __future__ import annotations

from dataclasses import dataclass

from userupsert.domain.error_codes import ErrorCode


class UpsertError(Exception):
    """
    Назначение:
        Базовая ошибка обработки одной записи пакета.
    Инварианты/гарантии:
        - Не прерывает обработку пакета: BatchProcessor превращает её в Failure.
        - str(exc) это человекочитаемое сообщение для вызывающего.
    """

    def __post_init__(self) -> None:
        Exception.__init__(self, str(self))

    @property
    def code(self) -> ErrorCode:
        raise NotImplementedError


@dataclass
class MissingFieldError(UpsertError):
    field: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.MISSING_FIELD

    def __str__(self) -> str:
        return f"Missing mandatory field {self.field}"


@dataclass
class InvalidStatusError(UpsertError):
    value: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.INVALID_STATUS

    def __str__(self) -> str:
        return f"Invalid status: {self.value}"


@dataclass
class InvalidEmailError(UpsertError):
    value: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.INVALID_EMAIL

    def __str__(self) -> str:
        return f"Invalid email: {self.value}"


@dataclass
class EmailNotAllowedError(UpsertError):
    value: str
    reason: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.EMAIL_NOT_ALLOWED

    def __str__(self) -> str:
        return f"Email is not allowed: {self.value} ({self.reason})"


@dataclass
class EmailTakenError(UpsertError):
    value: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.EMAIL_TAKEN

    def __str__(self) -> str:
        return f"Email is already taken: {self.value}"


@dataclass
class UsernameTakenError(UpsertError):
    value: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.USERNAME_TAKEN

    def __str__(self) -> str:
        return f"Username is already taken: {self.value}"


@dataclass
class InvalidAuthError(UpsertError):
    value: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.INVALID_AUTH

    def __str__(self) -> str:
        return f"Invalid auth method: {self.value}"


@dataclass
class FieldValidationFailedError(UpsertError):
    """
    Назначение:
        Нарушения ограничений пользовательских атрибутов (все ошибки одной записи).
    """

    errors: tuple[tuple[str, str], ...]

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.FIELD_VALIDATION_FAILED

    @property
    def details(self) -> str:
        return ", ".join(f"{attribute}: {message}" for attribute, message in self.errors)

    def __str__(self) -> str:
        return f"Error setting custom fields ({self.details})"


@dataclass
class PersistenceFailedError(UpsertError):
    """
    Назначение:
        Ошибка записи в каталог (политики пароля/username, сбой хранилища).
    """

    details: str
    operation: str = "update"

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.PERSISTENCE_FAILED

    def __str__(self) -> str:
        if self.operation == "create":
            return f"Error creating a user ({self.details})"
        if self.operation == "delete":
            return f"Error deleting a user ({self.details})"
        return f"Error updating profile fields ({self.details})"


@dataclass
class AmbiguousMatchError(UpsertError):
    """
    Назначение:
        Несколько живых сущностей делят значение поля сопоставления.
    """

    field: str
    value: str

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.AMBIGUOUS_MATCH

    def __str__(self) -> str:
        return "More than one user found."


@dataclass
class NotConfiguredError(Exception):
    """
    Назначение:
        Конфигурация маппинга не готова; пакет не может быть обработан.
    """

    reason: str = ""

    def __post_init__(self) -> None:
        super().__init__(str(self))

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.NOT_CONFIGURED

    def __str__(self) -> str:
        return "Upsert plugin is not configured"


@dataclass
class SchemaError(Exception):
    """
    Назначение:
        Поиск по полю, неизвестному схеме каталога (ошибка конфигурации).
    """

    field: str

    def __post_init__(self) -> None:
        super().__init__(str(self))

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.SCHEMA_ERROR

    def __str__(self) -> str:
        return f"Unknown directory field: {self.field}"


class DirectoryError(Exception):
    """
    Назначение:
        Отказ каталога выполнить запись (нарушение политики или сбой хранилища).
    """


@dataclass
class PermissionDeniedError(Exception):
    capability: str
    capability_name: str = "Upsert users"

    def __post_init__(self) -> None:
        super().__init__(str(self))

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.PERMISSION_DENIED

    def __str__(self) -> str:
        return f"Sorry, but you do not currently have permissions to do that ({self.capability_name})."


@dataclass
class InvalidRequestError(Exception):
    """
    Назначение:
        Запрос не соответствует схеме, построенной по текущим описаниям полей.
    """

    debuginfo: str

    def __post_init__(self) -> None:
        super().__init__(str(self))

    @property
    def code(self) -> ErrorCode:
        return ErrorCode.INVALID_REQUEST

    def __str__(self) -> str:
        return "Invalid parameter value detected"


__all__ = [
    "UpsertError",
    "MissingFieldError",
    "InvalidStatusError",
    "InvalidEmailError",
    "EmailNotAllowedError",
    "EmailTakenError",
    "UsernameTakenError",
    "InvalidAuthError",
    "FieldValidationFailedError",
    "PersistenceFailedError",
    "AmbiguousMatchError",
    "NotConfiguredError",
    "SchemaError",
    "DirectoryError",
    "PermissionDeniedError",
    "InvalidRequestError",
]
