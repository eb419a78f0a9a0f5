from __future__ import annotations

from typing import Iterable

from userupsert.domain.models import (
    PROFILE_FIELD_PREFIX,
    CustomField,
    FieldRef,
    FixedField,
    ProfileFieldDefinition,
)

# Поля таблицы пользователей, по которым допустимо сопоставление.
MATCH_FIELDS_FROM_USER_TABLE: tuple[str, ...] = (
    "username",
    "idnumber",
    "email",
)

MATCH_FIELD_LABELS: dict[str, str] = {
    "username": "Username",
    "idnumber": "ID number",
    "email": "Email address",
}

# Типы пользовательских атрибутов, пригодные для сопоставления.
SUPPORTED_TYPES_OF_PROFILE_FIELDS: tuple[str, ...] = ("text",)


def prefix_custom_profile_field(shortname: str) -> str:
    return PROFILE_FIELD_PREFIX + shortname


def is_custom_profile_field(identifier: str) -> bool:
    return identifier.startswith(PROFILE_FIELD_PREFIX)


def get_field_short_name(identifier: str) -> str:
    """
    Назначение:
        Снять префикс пользовательского атрибута (если он есть).
    """
    if is_custom_profile_field(identifier):
        return identifier[len(PROFILE_FIELD_PREFIX):]
    return identifier


def parse_field_ref(identifier: str) -> FieldRef:
    """
    Назначение:
        Единственная точка перевода строкового идентификатора поля
        во FieldRef (FixedField | CustomField).
    """
    if is_custom_profile_field(identifier):
        return CustomField(shortname=get_field_short_name(identifier))
    return FixedField(name=identifier)


def is_supported_match_profile_field(definition: ProfileFieldDefinition) -> bool:
    return definition.datatype in SUPPORTED_TYPES_OF_PROFILE_FIELDS and definition.force_unique


def get_supported_match_fields(profile_fields: Iterable[ProfileFieldDefinition] = ()) -> dict[str, str]:
    """
    Назначение:
        Список полей, по которым можно искать пользователя: идентификатор -> подпись.
    Контракт:
        - три поля таблицы пользователей присутствуют всегда;
        - плюс уникальные атрибуты поддерживаемого типа с префиксом profile_field_.
    """
    fields = {name: MATCH_FIELD_LABELS[name] for name in MATCH_FIELDS_FROM_USER_TABLE}
    for definition in profile_fields:
        if is_supported_match_profile_field(definition):
            fields[prefix_custom_profile_field(definition.shortname)] = definition.name
    return fields
