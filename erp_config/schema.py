"""
ErpConfig schema.

Frozen dataclasses the YAML configuration set is parsed into.  Every field
has a default so an empty file yields a working local configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///erp.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class RbacConfig:
    """Role markers the permission evaluator recognises."""

    super_admin_roles: tuple[str, ...] = ("SYSTEM_ADMIN", "관리자")
    department_head_roles: tuple[str, ...] = ("부서장",)
    department_head_actions: tuple[str, ...] = ("read", "approve")
    admin_route_roles: tuple[str, ...] = ("SYSTEM_ADMIN", "관리자")


@dataclass(frozen=True)
class PaginationConfig:
    default_page_size: int = 20
    max_page_size: int = 100


@dataclass(frozen=True)
class SideEffectConfig:
    """``mode`` is ``inline`` or ``thread``."""

    mode: str = "thread"
    max_workers: int = 4


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class ApiConfig:
    """HTTP boundary settings.  ``secret_key`` signs the session cookie."""

    secret_key: str = "dev-only-secret-key"
    slow_request_ms: int = 500


@dataclass(frozen=True)
class ErpConfig:
    """The runtime configuration artifact."""

    config_id: str = "default"
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    rbac: RbacConfig = field(default_factory=RbacConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    side_effects: SideEffectConfig = field(default_factory=SideEffectConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    checksum: str = ""
