"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``stock_config.schema`` dataclasses.  Callers go through
``stock_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value of the wrong type  ->
  ``ConfigurationError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    AggregationConfig,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
    StockLedgerConfig,
    StockPolicyConfig,
)
from stock_kernel.domain.values import OutOfStockPolicy
from stock_kernel.exceptions import ConfigurationError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: tuple[str, ...]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(name, "must be a mapping")
    unknown = sorted(set(section) - set(allowed))
    if unknown:
        raise ConfigurationError(f"{name}.{unknown[0]}", "unknown key")
    return section


def _bool(section: dict[str, Any], key: str, default: bool, prefix: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{prefix}.{key}", "must be true or false")
    return value


def _int(section: dict[str, Any], key: str, default: int, prefix: str, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{prefix}.{key}", "must be an integer")
    if value < minimum:
        raise ConfigurationError(f"{prefix}.{key}", f"must be >= {minimum}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    section = _section(data, "database", ("url", "echo", "pool_size"))
    url = section.get("url", DatabaseConfig.url)
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url", "must be a non-empty string")
    return DatabaseConfig(
        url=url,
        echo=_bool(section, "echo", DatabaseConfig.echo, "database"),
        pool_size=_int(section, "pool_size", DatabaseConfig.pool_size, "database", 1),
    )


def parse_aggregation(data: dict[str, Any]) -> AggregationConfig:
    section = _section(data, "aggregation", ("enabled", "lookback_days"))
    return AggregationConfig(
        enabled=_bool(section, "enabled", AggregationConfig.enabled, "aggregation"),
        lookback_days=_int(
            section, "lookback_days", AggregationConfig.lookback_days, "aggregation", 1,
        ),
    )


def parse_stock_policy(data: dict[str, Any]) -> StockPolicyConfig:
    section = _section(data, "stock_policy", ("out_of_stock_policy",))
    raw = section.get("out_of_stock_policy", StockPolicyConfig.out_of_stock_policy.value)
    try:
        policy = OutOfStockPolicy(raw)
    except ValueError:
        choices = ", ".join(p.value for p in OutOfStockPolicy)
        raise ConfigurationError(
            "stock_policy.out_of_stock_policy", f"must be one of: {choices}",
        ) from None
    return StockPolicyConfig(out_of_stock_policy=policy)


def parse_scheduler(data: dict[str, Any]) -> SchedulerConfig:
    section = _section(data, "scheduler", ("interval_seconds",))
    return SchedulerConfig(
        interval_seconds=_int(
            section, "interval_seconds", SchedulerConfig.interval_seconds, "scheduler", 1,
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    section = _section(data, "logging", ("level",))
    level = str(section.get("level", LoggingConfig.level)).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError("logging.level", f"must be one of: {', '.join(_LOG_LEVELS)}")
    return LoggingConfig(level=level)


def parse_config(data: dict[str, Any]) -> StockLedgerConfig:
    """Parse a whole configuration document."""
    known = ("database", "aggregation", "stock_policy", "scheduler", "logging")
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigurationError(unknown[0], "unknown section")
    return StockLedgerConfig(
        database=parse_database(data),
        aggregation=parse_aggregation(data),
        stock_policy=parse_stock_policy(data),
        scheduler=parse_scheduler(data),
        logging=parse_logging(data),
    )
