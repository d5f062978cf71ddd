"""
StockCacheService -- the per-product current-quantity counter.

Responsibility:
    Owns the InventoryItem rows: lazily creates them, answers
    ``current_quantity``, and applies deltas on behalf of the ledger write
    path.

Architecture position:
    Kernel > Services -- flush-only, never commits.

Invariants enforced:
    - quantity == sum(movement.delta) for the product.  ``_apply_delta`` is
      internal; the only caller is LedgerService.record, which writes the
      matching movement in the same transaction.
    - Cache updates are atomic SQL increments
      (``SET quantity = quantity + :delta``), so two closes touching the same
      product serialize on the row instead of losing an update.
    - Row creation is race-safe: the insert runs in a SAVEPOINT and a unique
      violation falls back to re-selecting the winner's row.

Failure modes:
    - UnknownProductError if the product does not exist.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from stock_kernel.db.types import to_decimal
from stock_kernel.exceptions import UnknownProductError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.models.product import Product
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_cache")


class StockCacheService(BaseService[InventoryItem]):

    def current_quantity(self, product_id: UUID) -> Decimal:
        """
        Current cached quantity for a product.

        Creates a zero-quantity InventoryItem on first access.

        Raises:
            UnknownProductError: If the product does not exist.
        """
        self._require_product(product_id)
        item = self._get_or_create(product_id)
        return to_decimal(item.quantity)

    def _apply_delta(self, product_id: UUID, delta: Decimal) -> None:
        """Atomically add ``delta`` to the product's cached quantity."""
        item = self._get_or_create(product_id)
        self.session.execute(
            update(InventoryItem)
            .where(InventoryItem.product_id == product_id)
            .values(quantity=InventoryItem.quantity + delta)
            .execution_options(synchronize_session=False)
        )
        # The UPDATE bypassed the identity map; reload on next access.
        self.session.expire(item, ["quantity"])

    def _get_or_create(self, product_id: UUID) -> InventoryItem:
        item = self._find(product_id)
        if item is not None:
            return item

        savepoint = self.session.begin_nested()
        try:
            item = InventoryItem(product_id=product_id, quantity=Decimal("0"))
            self.session.add(item)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            item = self._find(product_id)
            if item is None:
                raise
            return item

        logger.debug("inventory_item_created", extra={"product_id": str(product_id)})
        return item

    def _find(self, product_id: UUID) -> InventoryItem | None:
        return self.session.execute(
            select(InventoryItem).where(InventoryItem.product_id == product_id)
        ).scalar_one_or_none()

    def _require_product(self, product_id: UUID) -> None:
        if self.session.get(Product, product_id) is None:
            raise UnknownProductError(str(product_id))
