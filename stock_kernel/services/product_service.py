"""
ProductService -- minimal product catalog writes and lookups.

Responsibility:
    The stock kernel treats the product catalog as an external collaborator;
    this service is the narrow seam it reads through (``require`` /
    ``get_product``) plus the few writes a back office needs to seed and
    maintain it (create, cost change, deactivate).

Architecture position:
    Kernel > Services -- flush-only, never commits.

Failure modes:
    - UnknownProductError when an id does not exist.
    - InvalidPriceError / InvalidQuantityError on a negative cost or
      min-stock threshold.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.dtos import ProductInfo
from stock_kernel.domain.values import validate_price, validate_quantity
from stock_kernel.exceptions import UnknownProductError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.product import Product
from stock_kernel.services.base import BaseService

logger = get_logger("services.product")


class ProductService(BaseService[Product]):

    def create_product(
        self,
        name: str,
        actor_id: UUID,
        unit: str = "unit",
        cost: Decimal | int | str = Decimal("0"),
        min_stock: Decimal | int | str = Decimal("0"),
        sku: str | None = None,
    ) -> ProductInfo:
        product = Product(
            name=name,
            unit=unit,
            cost=validate_price(cost),
            min_stock=validate_quantity(min_stock),
            sku=sku,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(product)
        self.session.flush()

        logger.info(
            "product_created",
            extra={"product_id": str(product.id), "product_name": name, "unit": unit},
        )
        return product.to_dto()

    def update_cost(self, product_id: UUID, cost: Decimal | int | str, actor_id: UUID) -> ProductInfo:
        """Change the unit cost.  Existing movements keep the cost they captured."""
        product = self.require(product_id)
        old_cost = product.cost
        product.cost = validate_price(cost)
        product.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "product_cost_updated",
            extra={
                "product_id": str(product_id),
                "old_cost": str(old_cost),
                "new_cost": str(product.cost),
            },
        )
        return product.to_dto()

    def deactivate(self, product_id: UUID, actor_id: UUID) -> ProductInfo:
        product = self.require(product_id)
        product.is_active = False
        product.updated_by_id = actor_id
        self.session.flush()
        return product.to_dto()

    def get_product(self, product_id: UUID) -> ProductInfo:
        return self.require(product_id).to_dto()

    def require(self, product_id: UUID) -> Product:
        """Return the Product row or raise UnknownProductError."""
        product = self.session.get(Product, product_id)
        if product is None:
            raise UnknownProductError(str(product_id))
        return product
