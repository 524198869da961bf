"""
erp_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``erp_kernel`` and below
    ``erp_api``.  The kernel MUST NEVER import from ``erp_config``;
    ``erp_config.bridges`` translates config into kernel objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - ``ERP_CONFIG_FILE`` selects the YAML file; ``ERP_DATABASE_URL`` and
      ``ERP_SECRET_KEY`` override ``database.url`` and ``api.secret_key``.
      Environment variables are read here and nowhere else.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- a value fails validation.

Audit relevance:
    Every successful call emits an ``erp_config_loaded`` log entry with
    the config id, version and checksum.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from erp_config.loader import load_config_file
from erp_config.schema import ErpConfig

_logger = logging.getLogger("erp_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default" / "root.yaml"

CONFIG_FILE_ENV = "ERP_CONFIG_FILE"
DATABASE_URL_ENV = "ERP_DATABASE_URL"
SECRET_KEY_ENV = "ERP_SECRET_KEY"


def get_active_config(config_path: Path | str | None = None) -> ErpConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then
    ``$ERP_CONFIG_FILE``, then the bundled default set.

    Non-goals:
        Does NOT cache; callers hold the returned config.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_FILE_ENV) or _DEFAULT_CONFIG_FILE)
    config = load_config_file(path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=database_url),
        )

    secret_key = os.environ.get(SECRET_KEY_ENV)
    if secret_key:
        config = dataclasses.replace(
            config, api=dataclasses.replace(config.api, secret_key=secret_key),
        )

    _logger.info(
        "erp_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_file": str(path),
            "database_dialect": config.database.url.split(":", 1)[0],
            "side_effect_mode": config.side_effects.mode,
        },
    )
    return config


__all__ = ["ErpConfig", "get_active_config"]
