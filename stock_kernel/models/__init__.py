"""ORM models for the stock kernel."""

from stock_kernel.models.documents import (
    DOCUMENT_MODELS,
    DocumentModels,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    ReturnPurchaseInvoice,
    ReturnPurchaseInvoiceItem,
    StockDocument,
    StockDocumentItem,
    Stocktaking,
    StocktakingItem,
    Waste,
    WastedItem,
    models_for,
)
from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.models.movement import InventoryItemMovement
from stock_kernel.models.movement_daily import InventoryItemMovementDaily
from stock_kernel.models.product import Product


def import_all_models() -> None:
    """Import every kernel ORM module so Base.metadata sees its tables.

    Outer packages register their own tables on import (stock_batch.models).
    """
    import stock_kernel.models.documents  # noqa: F401
    import stock_kernel.models.inventory_item  # noqa: F401
    import stock_kernel.models.movement  # noqa: F401
    import stock_kernel.models.movement_daily  # noqa: F401
    import stock_kernel.models.product  # noqa: F401


__all__ = [
    "DOCUMENT_MODELS",
    "DocumentModels",
    "InventoryItem",
    "InventoryItemMovement",
    "InventoryItemMovementDaily",
    "Product",
    "PurchaseInvoice",
    "PurchaseInvoiceItem",
    "ReturnPurchaseInvoice",
    "ReturnPurchaseInvoiceItem",
    "StockDocument",
    "StockDocumentItem",
    "Stocktaking",
    "StocktakingItem",
    "Waste",
    "WastedItem",
    "import_all_models",
    "models_for",
]
