from __future__ import annotations

from typing import ContextManager, Mapping, Protocol

from userupsert.domain.models import DirectoryEntity, FieldRef, ProfileFieldDefinition


class DirectoryRepositoryProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт доступа к каталогу пользователей.
    Контракт:
        - find_by_field возвращает только живые (не удалённые) сущности локального realm;
        - неизвестное схеме поле -> SchemaError;
        - отказ записи (политики, сбой хранилища) -> DirectoryError.
    """

    def transaction(self) -> ContextManager[None]: ...

    def find_by_field(
        self,
        field: FieldRef,
        value: str,
        *,
        case_insensitive: bool = False,
    ) -> list[DirectoryEntity]: ...

    def get_by_id(self, entity_id: int) -> DirectoryEntity | None: ...

    def insert(self, entity: DirectoryEntity) -> int: ...

    def update(self, entity: DirectoryEntity, include_credential: bool) -> None: ...

    def soft_delete(self, entity: DirectoryEntity) -> None: ...

    def attribute_save(self, entity_id: int, attributes: Mapping[str, str]) -> None: ...

    def attribute_validate(
        self,
        entity: DirectoryEntity,
        attributes: Mapping[str, str],
    ) -> list[tuple[str, str]]: ...

    def list_profile_fields(self) -> list[ProfileFieldDefinition]: ...
