"""Transaction-owning orchestration over the stock kernel."""

from stock_services._close_types import CloseResult, CloseStatus
from stock_services.close_orchestrator import CloseOrchestrator
from stock_services.reconciliation_service import ReconciliationService
from stock_services.sales_integration import SalesIntegrationService

__all__ = [
    "CloseOrchestrator",
    "CloseResult",
    "CloseStatus",
    "ReconciliationService",
    "SalesIntegrationService",
]
