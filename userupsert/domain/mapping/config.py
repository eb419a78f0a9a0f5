from __future__ import annotations

from typing import Any, Iterable, Mapping

from userupsert.domain.mapping.profile_fields import get_supported_match_fields, parse_field_ref
from userupsert.domain.models import FieldDescriptor, FieldRef, ProfileFieldDefinition

# Ключи источника конфигурации.
DESCRIPTORS_KEY = "webservicefields"
MATCH_FIELD_KEY = "usermatchfield"
DEFAULT_AUTH_KEY = "defaultauth"
DATA_MAP_PREFIX = "data_map_"

DEFAULT_MATCH_FIELD = "username"
DEFAULT_AUTH_METHOD = "manual"

MANDATORY_FIELDS: tuple[str, ...] = ("username", "lastname", "firstname", "email", "status")

# Установочные значения: описания внешних полей и маппинг 1:1.
DEFAULT_DESCRIPTORS_TEXT = """username| Username policy is defined in the directory security config
firstname | The first name(s) of the user
lastname | The family name of the user
email | A valid and unique email address
auth | Auth methods include manual, ldap, etc. Default is "manual"
password | Plain text password consisting of any characters
status | User status. Either active, deleted or suspended"""


def parse_descriptors(raw_text: str | None) -> dict[str, str]:
    """
    Назначение:
        Разбор многострочного текста 'name | description' в словарь name -> description.

    Алгоритм:
        - CRLF -> LF, разбиение по строкам;
        - строка берётся, только если даёт ровно 2 сегмента по '|';
        - оба сегмента тримятся; отбрасываются пустое имя, имя с пробелом, пустое описание;
        - повтор имени перезаписывает предыдущее значение.
    """
    fields: dict[str, str] = {}
    if not raw_text:
        return fields

    for line in raw_text.replace("\r\n", "\n").split("\n"):
        parts = line.split("|")
        if len(parts) != 2:
            continue
        name = parts[0].strip()
        description = parts[1].strip()
        if _is_valid_descriptor(name, description):
            fields[name] = description
    return fields


def _is_valid_descriptor(name: str, description: str) -> bool:
    return bool(name) and " " not in name and bool(description)


def parse_mapping_assignments(raw_assignments: Mapping[str, Any] | None) -> dict[str, str]:
    """
    Назначение:
        Извлечь маппинг internal field -> external field из присваиваний data_map_<field>.
    Контракт:
        - учитываются только ключи с префиксом data_map_;
        - префикс снимается один раз (левое вхождение);
        - пустые значения отбрасываются.
    """
    mapping: dict[str, str] = {}
    if not raw_assignments:
        return mapping

    for key, value in raw_assignments.items():
        if not isinstance(key, str) or not key.startswith(DATA_MAP_PREFIX):
            continue
        if value is None:
            continue
        external = str(value).strip()
        if external == "":
            continue
        internal = key.replace(DATA_MAP_PREFIX, "", 1)
        if internal == "":
            continue
        mapping[internal] = external
    return mapping


class FieldMappingConfig:
    """
    Назначение/ответственность:
        Проверенная конфигурация маппинга внешних полей на поля каталога.
    Инварианты/гарантии:
        - строится один раз на запуск и далее не меняется;
        - построение никогда не падает: некорректные строки/присваивания
          отбрасываются, а неполнота отражается в is_ready().
    """

    def __init__(
        self,
        fields: Mapping[str, str],
        data_mapping: Mapping[str, str],
        user_match_field: str = DEFAULT_MATCH_FIELD,
        default_auth: str = DEFAULT_AUTH_METHOD,
    ) -> None:
        self._fields = dict(fields)
        self._data_mapping = dict(data_mapping)
        self._user_match_field = user_match_field or DEFAULT_MATCH_FIELD
        self._default_auth = default_auth or DEFAULT_AUTH_METHOD

    @classmethod
    def parse(
        cls,
        raw_descriptor_text: str | None,
        raw_mapping_assignments: Mapping[str, Any] | None,
        raw_match_field: str | None = None,
        raw_default_auth: str | None = None,
    ) -> "FieldMappingConfig":
        return cls(
            fields=parse_descriptors(raw_descriptor_text),
            data_mapping=parse_mapping_assignments(raw_mapping_assignments),
            user_match_field=_clean(raw_match_field) or DEFAULT_MATCH_FIELD,
            default_auth=_clean(raw_default_auth) or DEFAULT_AUTH_METHOD,
        )

    @classmethod
    def from_source(cls, source: Mapping[str, Any] | None) -> "FieldMappingConfig":
        """
        Назначение:
            Построить конфигурацию из плоского key-value источника
            (webservicefields, usermatchfield, defaultauth, data_map_*).
        """
        source = source or {}
        raw_text = source.get(DESCRIPTORS_KEY)
        return cls.parse(
            raw_descriptor_text=raw_text if isinstance(raw_text, str) else None,
            raw_mapping_assignments=source,
            raw_match_field=source.get(MATCH_FIELD_KEY),
            raw_default_auth=source.get(DEFAULT_AUTH_KEY),
        )

    def get_fields(self) -> dict[str, str]:
        return dict(self._fields)

    def descriptors(self) -> list[FieldDescriptor]:
        return [FieldDescriptor(name=name, description=description) for name, description in self._fields.items()]

    def mapping(self) -> dict[str, str]:
        return dict(self._data_mapping)

    def external_name(self, internal_field: str) -> str | None:
        return self._data_mapping.get(internal_field) or None

    def user_match_field(self) -> str:
        return self._user_match_field

    def match_field_ref(self) -> FieldRef:
        return parse_field_ref(self._user_match_field)

    def default_auth_method(self) -> str:
        return self._default_auth

    def mandatory_fields(self) -> list[str]:
        fields = list(MANDATORY_FIELDS)
        if self._user_match_field not in fields:
            fields.append(self._user_match_field)
        return fields

    def readiness_problems(self) -> list[str]:
        """
        Назначение:
            Перечень причин неготовности (пустой список: конфигурация готова).
        """
        problems: list[str] = []
        if not self._fields:
            problems.append("no web service fields configured")
        if self._user_match_field not in self._data_mapping:
            problems.append(f"user match field '{self._user_match_field}' is not mapped")
        for field in self.mandatory_fields():
            if field == self._user_match_field:
                continue
            if field not in self._data_mapping:
                problems.append(f"mandatory field '{field}' is not mapped")
        for internal, external in self._data_mapping.items():
            if external not in self._fields:
                problems.append(f"field '{internal}' is mapped to unknown web service field '{external}'")
        return problems

    def is_ready(self) -> bool:
        return not self.readiness_problems()

    def supported_match_fields(self, profile_fields: Iterable[ProfileFieldDefinition] = ()) -> dict[str, str]:
        return get_supported_match_fields(profile_fields)

    def __repr__(self) -> str:
        return (
            f"FieldMappingConfig(fields={sorted(self._fields)}, mapping={self._data_mapping}, "
            f"match_field={self._user_match_field!r}, default_auth={self._default_auth!r})"
        )


def default_source() -> dict[str, str]:
    """
    Назначение:
        Источник конфигурации с установочными значениями по умолчанию.
    """
    source: dict[str, str] = {DESCRIPTORS_KEY: DEFAULT_DESCRIPTORS_TEXT}
    for name in ("username", "firstname", "lastname", "email", "auth", "password", "status"):
        source[f"{DATA_MAP_PREFIX}{name}"] = name
    return source


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
