"""Read-only query selectors.  Selectors never write and never lock."""

from stock_kernel.selectors.daily_selector import DailySelector
from stock_kernel.selectors.document_selector import DocumentSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "DailySelector",
    "DocumentSelector",
    "MovementSelector",
    "StockSelector",
]
