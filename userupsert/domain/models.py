from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Mapping, TypeVar, Union

T = TypeVar("T")

# Префикс идентификаторов пользовательских атрибутов в конфигурации.
PROFILE_FIELD_PREFIX = "profile_field_"

# Запись пакета: внешнее имя поля -> строковое значение.
IncomingRecord = Mapping[str, str]


class Status(str, Enum):
    """
    Назначение:
        Статус пользователя во входной записи.
    """

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"

    @classmethod
    def parse(cls, value: str) -> "Status | None":
        for item in cls:
            if item.value == value:
                return item
        return None


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Назначение:
        Описание внешнего поля (имя | описание) из конфигурации.
    Инварианты:
        - name непустое и без пробелов;
        - description непустое.
    """

    name: str
    description: str


@dataclass(frozen=True)
class FixedField:
    """
    Назначение:
        Ссылка на фиксированное поле таблицы пользователей (username, email, ...).
    """

    name: str

    @property
    def identifier(self) -> str:
        return self.name


@dataclass(frozen=True)
class CustomField:
    """
    Назначение:
        Ссылка на пользовательский атрибут профиля по shortname.
    """

    shortname: str

    @property
    def identifier(self) -> str:
        return PROFILE_FIELD_PREFIX + self.shortname


FieldRef = Union[FixedField, CustomField]


@dataclass(frozen=True)
class ProfileFieldDefinition:
    """
    Назначение:
        Определение пользовательского атрибута каталога.
    """

    shortname: str
    name: str
    datatype: str = "text"
    force_unique: bool = False
    id: int | None = None


@dataclass(frozen=True)
class Lazy(Generic[T]):
    """
    Назначение:
        Значение атрибута, которое может быть не загружено из каталога.
    Контракт:
        - Lazy.unloaded(): значение не читалось, записывать его обратно нельзя;
        - Lazy.of(v): загруженное/присвоенное значение.
    """

    loaded: bool
    value: T | None = None

    @classmethod
    def unloaded(cls) -> "Lazy[T]":
        return cls(loaded=False)

    @classmethod
    def of(cls, value: T | None) -> "Lazy[T]":
        return cls(loaded=True, value=value)


@dataclass
class DirectoryEntity:
    """
    Назначение:
        Внутреннее представление пользователя каталога.
    Поля:
        id: None, пока сущность не сохранена.
        password: открытый пароль для записи (None: учётные данные не меняются).
        profile: пользовательские атрибуты по shortname.
    """

    username: str
    auth: str = "manual"
    id: int | None = None
    email: str = ""
    firstname: str = ""
    lastname: str = ""
    idnumber: str = ""
    suspended: bool = False
    deleted: bool = False
    description: Lazy[str] = field(default_factory=Lazy.unloaded)
    password: str | None = None
    profile: dict[str, str] = field(default_factory=dict)


# Поля таблицы пользователей, которые upsert может присваивать напрямую.
ENTITY_CORE_FIELDS: tuple[str, ...] = (
    "username",
    "email",
    "firstname",
    "lastname",
    "idnumber",
    "description",
)


@dataclass(frozen=True)
class Success:
    """
    Назначение:
        Итог обработки записи пакета: успех.
    """

    match_value: str
    action: str | None = None

    @property
    def ok(self) -> bool:
        return True

    @property
    def error_message(self) -> str:
        return ""


@dataclass(frozen=True)
class Failure:
    """
    Назначение:
        Итог обработки записи пакета: ошибка с текстом для вызывающего.
    """

    match_value: str
    error_message: str
    code: str | None = None

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success, Failure]
