from __future__ import annotations

import logging
from typing import Any

from userupsert.domain.exceptions import (
    AmbiguousMatchError,
    DirectoryError,
    EmailNotAllowedError,
    EmailTakenError,
    FieldValidationFailedError,
    InvalidAuthError,
    InvalidEmailError,
    InvalidStatusError,
    MissingFieldError,
    NotConfiguredError,
    PersistenceFailedError,
    UpsertError,
    UsernameTakenError,
)
from userupsert.domain.lookup.directory_lookup import DirectoryLookup
from userupsert.domain.lookup.uniqueness import UniquenessChecker
from userupsert.domain.mapping.config import FieldMappingConfig
from userupsert.domain.mapping.profile_fields import parse_field_ref
from userupsert.domain.models import (
    ENTITY_CORE_FIELDS,
    CustomField,
    DirectoryEntity,
    IncomingRecord,
    Lazy,
    Status,
)
from userupsert.domain.ports.directory import DirectoryRepositoryProtocol
from userupsert.domain.ports.policies import AuthRegistryProtocol, EmailPolicyProtocol, SitePolicy
from userupsert.domain.upsert.result import UpsertAction, UpsertFailed, UpsertOk, UpsertResult, UpsertState
from userupsert.infra.logging.setup import logEvent

# Внутренние поля, которые не переносятся на сущность как атрибуты.
_NON_ENTITY_FIELDS = {"status", "password", "auth"}


class UpsertEngine:
    """
    Назначение/ответственность:
        Обработка одной записи: валидация, сопоставление с каталогом и
        create/update/suspend/delete.

    Контракт:
        - конструктор падает NotConfiguredError, если конфигурация не готова;
        - upsert(record) -> UpsertOk | UpsertFailed; ошибки записи возвращаются значением;
        - SchemaError не перехватывается (ошибка конфигурации каталога);
        - AmbiguousMatchError возвращается как UpsertFailed, если
          site_policy.abort_on_ambiguous_match не включён.

    Алгоритм (строго по порядку, первая ошибка побеждает):
        обязательные поля -> статус -> поиск -> [deleted: soft-delete] ->
        email (синтаксис, политика, уникальность) -> username -> auth ->
        создание -> suspended -> поля -> валидация атрибутов -> запись.
    """

    def __init__(
        self,
        config: FieldMappingConfig,
        directory: DirectoryRepositoryProtocol,
        auth_registry: AuthRegistryProtocol,
        email_policy: EmailPolicyProtocol,
        site_policy: SitePolicy | None = None,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ) -> None:
        if not config.is_ready():
            raise NotConfiguredError(reason="; ".join(config.readiness_problems()))

        self.config = config
        self.directory = directory
        self.auth_registry = auth_registry
        self.email_policy = email_policy
        self.site_policy = site_policy or SitePolicy()
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id

        self.lookup = DirectoryLookup(directory)
        self.uniqueness = UniquenessChecker(directory)

        self._mapping = config.mapping()
        self._match_ref = config.match_field_ref()
        self.matching_field = self._require_mapped(config.user_match_field())
        self.username_field = self._require_mapped("username")
        self.email_field = self._require_mapped("email")
        self.status_field = self._require_mapped("status")
        self.auth_field = config.external_name("auth")
        self.password_field = config.external_name("password")

    def _require_mapped(self, internal_field: str) -> str:
        external = self.config.external_name(internal_field)
        if not external:
            raise NotConfiguredError(reason=f"field '{internal_field}' is not mapped")
        return external

    def upsert(self, record: IncomingRecord) -> UpsertResult:
        try:
            with self.directory.transaction():
                action, entity_id = self._upsert(record)
        except AmbiguousMatchError as exc:
            self._trace(UpsertState.REJECTED, f"{exc.code.value}: {exc}")
            if self.site_policy.abort_on_ambiguous_match:
                raise
            return UpsertFailed(exc)
        except UpsertError as exc:
            self._trace(UpsertState.REJECTED, f"{exc.code.value}: {exc}")
            return UpsertFailed(exc)

        self._trace(UpsertState.COMMITTED, f"action={action.value} id={entity_id}")
        return UpsertOk(action=action, entity_id=entity_id)

    def _upsert(self, record: IncomingRecord) -> tuple[UpsertAction, int | None]:
        self._trace(UpsertState.VALIDATING)
        for field in self.config.mandatory_fields():
            external = self._mapping[field]
            if not _value(record, external):
                raise MissingFieldError(external)

        raw_status = _value(record, self.status_field) or ""
        status = Status.parse(raw_status)
        if status is None:
            raise InvalidStatusError(raw_status)

        self._trace(UpsertState.MATCHING)
        match_value = _value(record, self.matching_field) or ""
        entity = self.lookup.find(self._match_ref, match_value)

        if status == Status.DELETED:
            if entity is None:
                return UpsertAction.NOOP, None
            self._trace(UpsertState.DELETING, f"id={entity.id}")
            try:
                self.directory.soft_delete(entity)
            except DirectoryError as exc:
                raise PersistenceFailedError(str(exc), operation="delete") from exc
            return UpsertAction.DELETE, entity.id

        entity_id = entity.id if entity is not None else None
        password = _value(record, self.password_field) if self.password_field else None
        update_password = password is not None

        email = _value(record, self.email_field) or ""
        self._validate_email(email)
        if not self.site_policy.allow_duplicate_emails and self.uniqueness.is_email_taken(email, entity_id):
            raise EmailTakenError(email)

        username = _value(record, self.username_field) or ""
        if self.uniqueness.is_username_taken(username, entity_id):
            raise UsernameTakenError(username)

        auth = self._resolve_auth(record, entity)
        if not self.auth_registry.is_recognized(auth):
            raise InvalidAuthError(auth)

        if entity is None:
            self._trace(UpsertState.CREATING, f"username={username}")
            action = UpsertAction.CREATE
            entity = DirectoryEntity(username=username, auth=auth, password="")
            try:
                entity.id = self.directory.insert(entity)
            except DirectoryError as exc:
                raise PersistenceFailedError(str(exc), operation="create") from exc
            # insert() пишет пустой пароль без проверки политики; пароль из записи идёт через update().
            entity.password = None
        elif status == Status.SUSPENDED:
            self._trace(UpsertState.SUSPENDING, f"id={entity.id}")
            action = UpsertAction.SUSPEND
        else:
            self._trace(UpsertState.UPDATING, f"id={entity.id}")
            action = UpsertAction.UPDATE

        entity.suspended = status == Status.SUSPENDED
        entity.auth = auth
        if update_password:
            entity.password = password

        attributes = self._apply_fields(entity, record)

        errors = self.directory.attribute_validate(entity, attributes)
        if errors:
            raise FieldValidationFailedError(tuple(errors))

        try:
            if attributes:
                self.directory.attribute_save(entity.id, attributes)
            self.directory.update(entity, include_credential=update_password)
        except DirectoryError as exc:
            raise PersistenceFailedError(str(exc)) from exc

        return action, entity.id

    def _validate_email(self, email: str) -> None:
        if not self.email_policy.is_syntactically_valid(email):
            raise InvalidEmailError(email)
        reason = self.email_policy.is_allowed_by_policy(email)
        if reason:
            raise EmailNotAllowedError(email, reason)

    def _resolve_auth(self, record: IncomingRecord, entity: DirectoryEntity | None) -> str:
        if self.auth_field:
            explicit = _value(record, self.auth_field)
            if explicit:
                return explicit
        if entity is not None and entity.auth:
            return entity.auth
        return self.config.default_auth_method()

    def _apply_fields(self, entity: DirectoryEntity, record: IncomingRecord) -> dict[str, str]:
        """
        Назначение:
            Перенести на сущность все замапленные поля, присутствующие в записи.
        Контракт:
            - поля, отсутствующие в записи, не трогаются (частичное обновление);
            - незагруженный description остаётся незагруженным;
            - возвращает присвоенные пользовательские атрибуты (shortname -> value).
        """
        attributes: dict[str, str] = {}
        for internal, external in self._mapping.items():
            if internal in _NON_ENTITY_FIELDS:
                continue
            value = _value(record, external)
            if value is None:
                continue
            ref = parse_field_ref(internal)
            if isinstance(ref, CustomField):
                entity.profile[ref.shortname] = value
                attributes[ref.shortname] = value
            elif ref.name == "description":
                entity.description = Lazy.of(value)
            elif ref.name in ENTITY_CORE_FIELDS:
                setattr(entity, ref.name, value)
            else:
                self.logger.debug("skip unsupported internal field %s", internal)
        return attributes

    def _trace(self, state: UpsertState, message: str = "") -> None:
        text = f"state={state.value}" if not message else f"state={state.value} {message}"
        logEvent(self.logger, logging.DEBUG, self.run_id, "upsert", text)


def _value(record: IncomingRecord, external: str) -> Any:
    value = record.get(external)
    if value is None:
        return None
    return str(value)
