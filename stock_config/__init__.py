"""
stock_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services, scripts and the
    scheduler obtain configuration.  It reads one YAML file (the shipped
    ``sets/default.yaml`` unless a path is given), applies the
    ``DATABASE_URL`` environment override and returns a frozen
    ``StockLedgerConfig``.

Architecture position:
    Configuration sits above ``stock_kernel`` and beside
    ``stock_services`` / ``stock_batch``.  The kernel MUST NEVER import
    from ``stock_config``; callers pass the values they need into kernel
    constructors.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ConfigurationError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_config
from stock_config.schema import (
    AggregationConfig,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
    StockLedgerConfig,
    StockPolicyConfig,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> StockLedgerConfig:
    """Load, validate and return the active configuration.

    Args:
        path: YAML file to load.  Defaults to ``stock_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If any section or value is invalid.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(config_path))

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=env_url),
        )

    logger.info(
        "config_loaded",
        extra={
            "config_path": str(config_path),
            "database_url_from_env": bool(env_url),
            "aggregation_enabled": config.aggregation.enabled,
            "out_of_stock_policy": config.stock_policy.out_of_stock_policy.value,
        },
    )
    return config


__all__ = [
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
    "AggregationConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "StockLedgerConfig",
    "StockPolicyConfig",
    "get_active_config",
]
