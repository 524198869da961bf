"""
Config -> Kernel Bridges.

Functions that convert an ``ErpConfig`` into kernel objects.  These live
in erp_config (the producer) because the kernel must NEVER import
erp_config.

Usage:
    from erp_config.bridges import build_permission_evaluator

    config = get_active_config()
    evaluator = build_permission_evaluator(config)
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from erp_config.schema import ErpConfig
from erp_kernel.db.engine import init_engine_from_url
from erp_kernel.domain.rbac import PermissionEvaluator
from erp_kernel.logging_config import configure_logging
from erp_kernel.services.side_effects import DispatchMode, SideEffectDispatcher


def build_permission_evaluator(config: ErpConfig) -> PermissionEvaluator:
    """Evaluator carrying the configured role markers."""
    return PermissionEvaluator(
        super_admin_roles=frozenset(config.rbac.super_admin_roles),
        department_head_roles=frozenset(config.rbac.department_head_roles),
        department_head_actions=frozenset(config.rbac.department_head_actions),
    )


def build_side_effect_dispatcher(config: ErpConfig) -> SideEffectDispatcher:
    return SideEffectDispatcher(
        mode=DispatchMode(config.side_effects.mode),
        max_workers=config.side_effects.max_workers,
    )


def init_database(config: ErpConfig) -> Engine:
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )


def apply_logging(config: ErpConfig) -> None:
    configure_logging(level=logging.getLevelName(config.logging.level))
