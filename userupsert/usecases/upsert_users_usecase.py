from __future__ import annotations

import logging
from typing import Any, Callable, Collection, Mapping, Sequence

from userupsert.common.sanitize import maskSecretsInObject, secretFieldNames
from userupsert.domain.exceptions import InvalidRequestError, PermissionDeniedError
from userupsert.domain.mapping.config import FieldMappingConfig
from userupsert.domain.models import Failure, IncomingRecord, Outcome
from userupsert.domain.ports.directory import DirectoryRepositoryProtocol
from userupsert.domain.ports.events import UPSERT_FAILED, UPSERT_SUCCEEDED, EventSinkProtocol, UpsertEvent
from userupsert.domain.ports.policies import AuthRegistryProtocol, EmailPolicyProtocol, SitePolicy
from userupsert.domain.upsert.engine import UpsertEngine
from userupsert.infra.logging.setup import logEvent
from userupsert.usecases.batch_processor import BatchProcessor

UPSERT_CAPABILITY = "userupsert:upsert"


class UpsertUsersUseCase:
    """
    Назначение/ответственность:
        Внешняя операция "upsert users": права, схема запроса, пакет, события.

    Контракт:
        - нет права userupsert:upsert -> PermissionDeniedError (до любой обработки);
        - ключ вне текущих описаний полей или нескалярное значение -> InvalidRequestError;
        - конфигурация не готова -> NotConfiguredError;
        - на каждую запись одно событие upsert_succeeded / upsert_failed;
        - результат: [{"itemid": matchValue, "error": message или ""}] в порядке входа.
    """

    def __init__(
        self,
        config: FieldMappingConfig,
        directory: DirectoryRepositoryProtocol,
        auth_registry: AuthRegistryProtocol,
        email_policy: EmailPolicyProtocol,
        site_policy: SitePolicy | None = None,
        events: EventSinkProtocol | None = None,
        logger: logging.Logger | None = None,
        run_id: str = "-",
        on_outcome: Callable[[IncomingRecord, Outcome], None] | None = None,
    ) -> None:
        self.config = config
        self.directory = directory
        self.auth_registry = auth_registry
        self.email_policy = email_policy
        self.site_policy = site_policy or SitePolicy()
        self.events = events
        self.logger = logger or logging.getLogger(__name__)
        self.run_id = run_id
        self.on_outcome = on_outcome

    def parameters_schema(self) -> dict[str, str]:
        """
        Назначение:
            Схема записи запроса: внешнее имя поля -> описание (все поля необязательны).
        """
        return self.config.get_fields()

    def execute(self, users: Sequence[Mapping[str, Any]], capabilities: Collection[str]) -> list[dict[str, str]]:
        if UPSERT_CAPABILITY not in capabilities:
            raise PermissionDeniedError(UPSERT_CAPABILITY)

        records = self.validate_request(users)
        logEvent(self.logger, logging.INFO, self.run_id, "usecase", f"upsert requested: records={len(records)}")
        masked_request = maskSecretsInObject(records, secretFieldNames(self.config.external_name("password")))
        logEvent(self.logger, logging.DEBUG, self.run_id, "usecase", f"request={masked_request}")

        engine = UpsertEngine(
            self.config,
            self.directory,
            self.auth_registry,
            self.email_policy,
            site_policy=self.site_policy,
            logger=self.logger,
            run_id=self.run_id,
        )
        processor = BatchProcessor(engine, logger=self.logger, run_id=self.run_id, on_outcome=self._on_outcome)
        outcomes = processor.process(records)

        failed = sum(1 for outcome in outcomes if isinstance(outcome, Failure))
        logEvent(
            self.logger,
            logging.INFO,
            self.run_id,
            "usecase",
            f"upsert finished: ok={len(outcomes) - failed} failed={failed}",
        )
        return [{"itemid": outcome.match_value, "error": outcome.error_message} for outcome in outcomes]

    def validate_request(self, users: Sequence[Mapping[str, Any]]) -> list[dict[str, str]]:
        """
        Назначение:
            Проверить пакет по схеме из описаний полей и привести значения к строкам.
        Контракт:
            - None означает отсутствие поля;
            - str/int/float приводятся к str; bool, списки и объекты отклоняются.
        """
        schema = self.parameters_schema()
        records: list[dict[str, str]] = []
        for index, user in enumerate(users):
            if not isinstance(user, Mapping):
                raise InvalidRequestError(f"users => Invalid parameter value detected (item {index} is not an object)")
            unexpected = [key for key in user if key not in schema]
            if unexpected:
                raise InvalidRequestError(
                    f"Unexpected keys ({', '.join(str(key) for key in unexpected)}) detected in parameter array."
                )
            record: dict[str, str] = {}
            for key, value in user.items():
                if value is None:
                    continue
                if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                    raise InvalidRequestError(f"users => {index} => {key}: Invalid external api parameter")
                record[key] = str(value)
            records.append(record)
        return records

    def _on_outcome(self, record: IncomingRecord, outcome: Outcome) -> None:
        if self.events is not None:
            if isinstance(outcome, Failure):
                self.events.emit(UpsertEvent(UPSERT_FAILED, outcome.match_value, outcome.error_message))
            else:
                self.events.emit(UpsertEvent(UPSERT_SUCCEEDED, outcome.match_value))
        if self.on_outcome is not None:
            self.on_outcome(record, outcome)
