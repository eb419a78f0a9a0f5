from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
from typing import Any

import yaml

from userupsert.domain.mapping.config import default_source


@dataclass(frozen=True)
class Settings:
    # Paths
    directory_db: str = "./data/directory.sqlite3"
    log_dir: str = "./logs"
    report_dir: str = "./reports"

    # Logging / reports
    log_level: str = "INFO"
    report_items_limit: int = 200

    # Site policy
    allow_duplicate_emails: bool = False
    abort_on_ambiguous_match: bool = False
    enabled_auth_methods: tuple[str, ...] = ("manual",)
    allowed_email_domains: tuple[str, ...] = ()
    denied_email_domains: tuple[str, ...] = ()

    # Password policy
    password_min_length: int = 8
    password_min_digits: int = 1
    password_min_lower: int = 1
    password_min_upper: int = 1
    password_min_special: int = 1


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


# Поле Settings -> переменная окружения.
ENV_VARS: dict[str, str] = {
    "directory_db": "USERUPSERT_DIRECTORY_DB",
    "log_dir": "USERUPSERT_LOG_DIR",
    "report_dir": "USERUPSERT_REPORT_DIR",
    "log_level": "USERUPSERT_LOG_LEVEL",
    "report_items_limit": "USERUPSERT_REPORT_ITEMS_LIMIT",
    "allow_duplicate_emails": "USERUPSERT_ALLOW_DUPLICATE_EMAILS",
    "abort_on_ambiguous_match": "USERUPSERT_ABORT_ON_AMBIGUOUS_MATCH",
    "enabled_auth_methods": "USERUPSERT_ENABLED_AUTH_METHODS",
    "allowed_email_domains": "USERUPSERT_ALLOWED_EMAIL_DOMAINS",
    "denied_email_domains": "USERUPSERT_DENIED_EMAIL_DOMAINS",
    "password_min_length": "USERUPSERT_PASSWORD_MIN_LENGTH",
    "password_min_digits": "USERUPSERT_PASSWORD_MIN_DIGITS",
    "password_min_lower": "USERUPSERT_PASSWORD_MIN_LOWER",
    "password_min_upper": "USERUPSERT_PASSWORD_MIN_UPPER",
    "password_min_special": "USERUPSERT_PASSWORD_MIN_SPECIAL",
}

_INT_FIELDS = {
    "report_items_limit",
    "password_min_length",
    "password_min_digits",
    "password_min_lower",
    "password_min_upper",
    "password_min_special",
}
_BOOL_FIELDS = {"allow_duplicate_emails", "abort_on_ambiguous_match"}
_LIST_FIELDS = {"enabled_auth_methods", "allowed_email_domains", "denied_email_domains"}

# Секция маппинга внутри YAML-конфига.
MAPPING_SECTION = "mapping"


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def parse_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    vv = str(v).strip().lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean value: {v}")


def parse_list(v: Any) -> tuple[str, ...]:
    if v is None:
        return ()
    if isinstance(v, str):
        items = v.replace(";", ",").split(",")
    else:
        items = [str(item) for item in v]
    return tuple(item.strip() for item in items if item and item.strip())


def _coerce(name: str, value: Any) -> Any:
    if name in _INT_FIELDS:
        return int(value)
    if name in _BOOL_FIELDS:
        return parse_bool(value)
    if name in _LIST_FIELDS:
        return parse_list(value)
    return str(value)


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults
    """
    sources: list[str] = []
    defaults = Settings()

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    # 2) env
    env = {name: _env_get(var) for name, var in ENV_VARS.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    # merge config -> env -> cli
    merged: dict[str, Any] = {}
    for name in ENV_VARS:
        value = cfg.get(name)
        merged[name] = getattr(defaults, name) if value is None else _coerce(name, value)

    for name, value in env.items():
        if value is not None:
            merged[name] = _coerce(name, value)

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = _coerce(k, v) if k in ENV_VARS else v

    settings = Settings(**merged)
    return LoadedSettings(settings=settings, sources_used=sources)


def load_mapping_source(mapping_path: str | None, config_path: str | None = None) -> tuple[dict[str, Any], str]:
    """
    Назначение:
        Найти key-value источник конфигурации маппинга.

    Алгоритм:
        файл --mapping -> секция 'mapping' в YAML-конфиге -> установочные значения.

    Выходные данные:
        (source, origin): origin = "mapping_file" | "config" | "defaults"
    """
    if mapping_path:
        path = Path(mapping_path)
        if not path.is_file():
            raise FileNotFoundError(f"Mapping file not found: {mapping_path}")
        return _read_yaml_config(path), "mapping_file"

    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        section = cfg.get(MAPPING_SECTION)
        if isinstance(section, dict):
            return section, "config"

    return default_source(), "defaults"
