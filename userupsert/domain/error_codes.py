from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок upsert.
    """

    NOT_CONFIGURED = "NOT_CONFIGURED"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_STATUS = "INVALID_STATUS"
    INVALID_EMAIL = "INVALID_EMAIL"
    EMAIL_NOT_ALLOWED = "EMAIL_NOT_ALLOWED"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    USERNAME_TAKEN = "USERNAME_TAKEN"
    INVALID_AUTH = "INVALID_AUTH"
    FIELD_VALIDATION_FAILED = "FIELD_VALIDATION_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_REQUEST = "INVALID_REQUEST"

    @property
    def fatal(self) -> bool:
        """
        Назначение:
            Ошибки, означающие системную проблему, а не проблему одной записи.
        """
        return self in (
            ErrorCode.NOT_CONFIGURED,
            ErrorCode.SCHEMA_ERROR,
            ErrorCode.PERMISSION_DENIED,
            ErrorCode.INVALID_REQUEST,
        )
