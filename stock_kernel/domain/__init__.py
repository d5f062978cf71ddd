"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from stock_kernel.domain.aggregation import MovementTotals, build_daily, fold_movements
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.closing_rules import ClosingLine, MovementSpec, derive_movements
from stock_kernel.domain.dtos import (
    AggregateDifference,
    AggregationSummary,
    DailyAggregate,
    DocumentLine,
    DocumentSnapshot,
    LedgerDrift,
    Movement,
    ProductInfo,
    StockLevel,
)
from stock_kernel.domain.reconciliation import (
    ReconciliationReport,
    ReconciliationRow,
    build_row,
)
from stock_kernel.domain.values import (
    DocumentKind,
    DocumentState,
    MovementOperation,
    MovementReason,
    OutOfStockPolicy,
    SourceKind,
    SourceRef,
)

__all__ = [
    "AggregateDifference",
    "AggregationSummary",
    "Clock",
    "ClosingLine",
    "DailyAggregate",
    "DeterministicClock",
    "DocumentKind",
    "DocumentLine",
    "DocumentSnapshot",
    "DocumentState",
    "LedgerDrift",
    "Movement",
    "MovementOperation",
    "MovementReason",
    "MovementSpec",
    "MovementTotals",
    "OutOfStockPolicy",
    "ProductInfo",
    "ReconciliationReport",
    "ReconciliationRow",
    "SourceKind",
    "SourceRef",
    "StockLevel",
    "SystemClock",
    "build_daily",
    "build_row",
    "derive_movements",
    "fold_movements",
]
