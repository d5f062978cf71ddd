"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only stock level queries over the Stock Cache.
Architecture position: Kernel > Selectors.

A product that has never moved has no InventoryItem row yet; every query
here treats it as quantity 0 instead of creating the row (selectors never
write).

Failure modes:
    - InsufficientStockError from validate_availability().
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.dtos import LedgerDrift, StockLevel
from stock_kernel.domain.values import OutOfStockPolicy
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.models.movement import InventoryItemMovement
from stock_kernel.models.product import Product
from stock_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[InventoryItem]):
    """Current stock levels, low/out-of-stock lists and ledger drift checks."""

    def __init__(self, session, policy: OutOfStockPolicy = OutOfStockPolicy.AT_OR_BELOW_ZERO):
        super().__init__(session)
        self._policy = OutOfStockPolicy(policy)

    def quantity_of(self, product_id: UUID) -> Decimal:
        """Cached quantity, 0 when the product has no stock record yet."""
        value = self.session.execute(
            select(InventoryItem.quantity).where(InventoryItem.product_id == product_id)
        ).scalar_one_or_none()
        return to_decimal(value)

    def stock_levels(
        self,
        product_ids: Sequence[UUID] | None = None,
        include_inactive: bool = False,
    ) -> tuple[StockLevel, ...]:
        stmt = (
            select(Product, InventoryItem.quantity)
            .outerjoin(InventoryItem, InventoryItem.product_id == Product.id)
            .order_by(Product.name, Product.id)
        )
        if product_ids is not None:
            stmt = stmt.where(Product.id.in_(list(product_ids)))
        if not include_inactive:
            stmt = stmt.where(Product.is_active.is_(True))

        levels = []
        for product, quantity in self.session.execute(stmt).all():
            qty = to_decimal(quantity)
            min_stock = to_decimal(product.min_stock)
            levels.append(
                StockLevel(
                    product_id=product.id,
                    name=product.name,
                    unit=product.unit,
                    quantity=qty,
                    min_stock=min_stock,
                    is_low=qty <= min_stock,
                    is_out=self._policy.is_out(qty),
                )
            )
        return tuple(levels)

    def low_stock(self) -> tuple[StockLevel, ...]:
        """Active products at or below their min-stock threshold."""
        return tuple(level for level in self.stock_levels() if level.is_low)

    def out_of_stock(self) -> tuple[StockLevel, ...]:
        return tuple(level for level in self.stock_levels() if level.is_out)

    def has_sufficient_stock(self, product_id: UUID, quantity: Decimal | int | str) -> bool:
        return self.quantity_of(product_id) >= to_decimal(quantity)

    def validate_availability(self, requested: Mapping[UUID, Decimal | int | str]) -> None:
        """
        Check that every requested quantity is on hand.

        Raises:
            InsufficientStockError: listing every short product, not just the
                first one found.
        """
        shortages: dict[str, tuple[Decimal, Decimal]] = {}
        for product_id, quantity in requested.items():
            wanted = to_decimal(quantity)
            available = self.quantity_of(product_id)
            if available < wanted:
                shortages[str(product_id)] = (wanted, available)
        if shortages:
            raise InsufficientStockError(shortages)

    def verify_ledger_consistency(
        self,
        product_ids: Sequence[UUID] | None = None,
    ) -> tuple[LedgerDrift, ...]:
        """
        Products whose cached quantity differs from the sum of their movements.

        An empty result means the ledger-sum invariant holds.
        """
        ledger = (
            select(
                InventoryItemMovement.product_id.label("product_id"),
                func.sum(InventoryItemMovement.delta).label("total"),
            )
            .group_by(InventoryItemMovement.product_id)
            .subquery()
        )
        stmt = (
            select(Product.id, InventoryItem.quantity, ledger.c.total)
            .outerjoin(InventoryItem, InventoryItem.product_id == Product.id)
            .outerjoin(ledger, ledger.c.product_id == Product.id)
            .order_by(Product.id)
        )
        if product_ids is not None:
            stmt = stmt.where(Product.id.in_(list(product_ids)))

        drifts = []
        for product_id, cached, total in self.session.execute(stmt).all():
            cached_qty = to_decimal(cached)
            ledger_qty = to_decimal(total)
            if cached_qty != ledger_qty:
                drifts.append(LedgerDrift(product_id, cached_qty, ledger_qty))
        return tuple(drifts)
