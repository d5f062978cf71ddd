"""
StockLedgerConfig schema.

Frozen dataclasses for the runtime configuration.  YAML sections are
parsed into these types by the loader; nothing else reads the YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from stock_kernel.domain.values import OutOfStockPolicy


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 5


@dataclass(frozen=True)
class AggregationConfig:
    """Daily movement aggregation.

    ``enabled`` also controls whether reconciliation reads aggregates.
    ``lookback_days`` is how many days before today the nightly job rebuilds.
    """

    enabled: bool = True
    lookback_days: int = 1


@dataclass(frozen=True)
class StockPolicyConfig:
    out_of_stock_policy: OutOfStockPolicy = OutOfStockPolicy.AT_OR_BELOW_ZERO


@dataclass(frozen=True)
class SchedulerConfig:
    interval_seconds: int = 60


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class StockLedgerConfig:
    """Complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    stock_policy: StockPolicyConfig = field(default_factory=StockPolicyConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
