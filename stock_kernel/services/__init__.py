"""Services for the stock kernel (write side)."""

from stock_kernel.services.aggregation_service import AggregationService
from stock_kernel.services.closing_service import ClosedDocument, ClosingService
from stock_kernel.services.document_service import DocumentService
from stock_kernel.services.ledger_service import LedgerService
from stock_kernel.services.product_service import ProductService
from stock_kernel.services.stock_cache_service import StockCacheService

__all__ = [
    "AggregationService",
    "ClosedDocument",
    "ClosingService",
    "DocumentService",
    "LedgerService",
    "ProductService",
    "StockCacheService",
]
