"""Database layer - engine, base classes, column types, and immutability guards."""

from stock_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from stock_kernel.db.engine import create_schema, get_session, init_engine_from_url
from stock_kernel.db.types import Money, Quantity

__all__ = [
    "init_engine_from_url",
    "get_session",
    "create_schema",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
]
