"""
Configuration Loader (``erp_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``erp_config.schema`` dataclasses.  The single public entry point for
runtime config is ``erp_config.get_active_config()``.

Invariants enforced
-------------------
* Missing keys take the schema default; present keys are type-checked.
* Bad values raise ``ValueError`` naming the offending key.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import (
    ApiConfig,
    DatabaseConfig,
    ErpConfig,
    LoggingConfig,
    PaginationConfig,
    RbacConfig,
    SideEffectConfig,
)

_SIDE_EFFECT_MODES = frozenset({"inline", "thread"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return value


def _int(section: dict[str, Any], key: str, default: int, path: str, minimum: int = 0) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"'{path}.{key}' must be an integer >= {minimum}, got {value!r}")
    return value


def _bool(section: dict[str, Any], key: str, default: bool, path: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{path}.{key}' must be a boolean, got {value!r}")
    return value


def _str(section: dict[str, Any], key: str, default: str, path: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{path}.{key}' must be a non-empty string, got {value!r}")
    return value


def _str_tuple(
    section: dict[str, Any], key: str, default: tuple[str, ...], path: str,
) -> tuple[str, ...]:
    value = section.get(key, list(default))
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{path}.{key}' must be a list of strings, got {value!r}")
    return tuple(value)


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    d = DatabaseConfig()
    return DatabaseConfig(
        url=_str(data, "url", d.url, "database"),
        echo=_bool(data, "echo", d.echo, "database"),
        pool_size=_int(data, "pool_size", d.pool_size, "database", minimum=1),
        max_overflow=_int(data, "max_overflow", d.max_overflow, "database"),
    )


def parse_rbac(data: dict[str, Any]) -> RbacConfig:
    d = RbacConfig()
    return RbacConfig(
        super_admin_roles=_str_tuple(data, "super_admin_roles", d.super_admin_roles, "rbac"),
        department_head_roles=_str_tuple(
            data, "department_head_roles", d.department_head_roles, "rbac",
        ),
        department_head_actions=_str_tuple(
            data, "department_head_actions", d.department_head_actions, "rbac",
        ),
        admin_route_roles=_str_tuple(data, "admin_route_roles", d.admin_route_roles, "rbac"),
    )


def parse_pagination(data: dict[str, Any]) -> PaginationConfig:
    d = PaginationConfig()
    config = PaginationConfig(
        default_page_size=_int(data, "default_page_size", d.default_page_size, "pagination", 1),
        max_page_size=_int(data, "max_page_size", d.max_page_size, "pagination", 1),
    )
    if config.default_page_size > config.max_page_size:
        raise ValueError("'pagination.default_page_size' exceeds 'pagination.max_page_size'")
    return config


def parse_side_effects(data: dict[str, Any]) -> SideEffectConfig:
    d = SideEffectConfig()
    mode = _str(data, "mode", d.mode, "side_effects")
    if mode not in _SIDE_EFFECT_MODES:
        raise ValueError(
            f"'side_effects.mode' must be one of {sorted(_SIDE_EFFECT_MODES)}, got {mode!r}"
        )
    return SideEffectConfig(
        mode=mode,
        max_workers=_int(data, "max_workers", d.max_workers, "side_effects", 1),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    d = LoggingConfig()
    level = _str(data, "level", d.level, "logging").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"'logging.level' is not a logging level: {level!r}")
    return LoggingConfig(level=level)


def parse_api(data: dict[str, Any]) -> ApiConfig:
    d = ApiConfig()
    return ApiConfig(
        secret_key=_str(data, "secret_key", d.secret_key, "api"),
        slow_request_ms=_int(data, "slow_request_ms", d.slow_request_ms, "api", 1),
    )


def parse_config(data: dict[str, Any]) -> ErpConfig:
    """Parse a raw mapping into an ``ErpConfig``."""
    return ErpConfig(
        config_id=str(data.get("config_id", "default")),
        version=_int(data, "version", 1, "root", minimum=1),
        database=parse_database(_section(data, "database")),
        rbac=parse_rbac(_section(data, "rbac")),
        pagination=parse_pagination(_section(data, "pagination")),
        side_effects=parse_side_effects(_section(data, "side_effects")),
        logging=parse_logging(_section(data, "logging")),
        api=parse_api(_section(data, "api")),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> ErpConfig:
    return parse_config(load_yaml_file(path))
