"""
stock_services._close_types -- Result types for the document close.

Responsibility:
    The status enum and frozen result returned by CloseOrchestrator.close,
    so callers branch on a status instead of catching kernel exceptions.

Architecture position:
    Services -- transaction-owning orchestration over the kernel.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from stock_kernel.domain.dtos import DocumentSnapshot


class CloseStatus(str, Enum):
    """Outcome of a close attempt."""

    CLOSED = "closed"
    NOT_FOUND = "not_found"
    ALREADY_CLOSED = "already_closed"
    INVALID_QUANTITY = "invalid_quantity"
    UNKNOWN_PRODUCT = "unknown_product"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


@dataclass(frozen=True)
class CloseResult:
    """Result of a close.  On failure nothing was written."""

    status: CloseStatus
    document_id: UUID
    snapshot: DocumentSnapshot | None = None
    movement_ids: tuple[UUID, ...] = ()
    error_code: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == CloseStatus.CLOSED
