"""
stock_services.close_orchestrator -- The document close unit of work.

Responsibility:
    Owns the transaction around ClosingService.close: commits when the
    close succeeds, rolls back otherwise, and reports the outcome as a
    CloseResult with a specific status per failure.

Architecture position:
    Services -- the only layer that commits.  Composes ClosingService
    (kernel, flush-only).

Status mapping:
    DocumentNotFoundError      -> NOT_FOUND
    AlreadyClosedError         -> ALREADY_CLOSED
    InvalidQuantityError       -> INVALID_QUANTITY
    UnknownProductError        -> UNKNOWN_PRODUCT
    ConcurrencyConflictError   -> CONCURRENCY_CONFLICT
    anything else              -> rollback, re-raise

Invariants enforced:
    - All-or-nothing: the close runs in a SAVEPOINT, so on any failure the
      document stays OPEN and ledger and cache are untouched, also when
      ``auto_commit`` is off and the caller owns the outer transaction.
    - No internal retry.  A conflict is reported; the caller decides.
"""

from __future__ import annotations

import time
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import DocumentKind
from stock_kernel.exceptions import (
    AlreadyClosedError,
    ConcurrencyConflictError,
    DocumentNotFoundError,
    InvalidQuantityError,
    StockLedgerError,
    UnknownProductError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.closing_service import ClosingService
from stock_services._close_types import CloseResult, CloseStatus

logger = get_logger("services.close_orchestrator")

_STATUS_BY_ERROR: tuple[tuple[type[StockLedgerError], CloseStatus], ...] = (
    (DocumentNotFoundError, CloseStatus.NOT_FOUND),
    (AlreadyClosedError, CloseStatus.ALREADY_CLOSED),
    (InvalidQuantityError, CloseStatus.INVALID_QUANTITY),
    (UnknownProductError, CloseStatus.UNKNOWN_PRODUCT),
    (ConcurrencyConflictError, CloseStatus.CONCURRENCY_CONFLICT),
)


def status_for(error: StockLedgerError) -> CloseStatus | None:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return None


class CloseOrchestrator:
    """
    Closes stock-affecting documents as single transactions.

    Contract:
        ``close`` returns a CloseResult for every expected failure and
        re-raises anything else after rolling back.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._closing = ClosingService(session, clock=self._clock)

    def close(self, kind: DocumentKind, document_id: UUID, actor_id: UUID) -> CloseResult:
        kind = DocumentKind(kind)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            document_id=str(document_id),
            document_kind=kind.value,
        ):
            logger.info("document_close_started")
            t0 = time.monotonic()

            try:
                with self._session.begin_nested():
                    closed = self._closing.close(kind, document_id, actor_id)
            except StockLedgerError as exc:
                status = status_for(exc)
                self._rollback()
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if status is None:
                    logger.error(
                        "close_failed",
                        extra={"duration_ms": duration_ms, "exc_code": exc.code},
                        exc_info=True,
                    )
                    raise
                logger.warning(
                    "close_failed",
                    extra={
                        "status": status.value,
                        "exc_code": exc.code,
                        "duration_ms": duration_ms,
                    },
                )
                return CloseResult(
                    status=status,
                    document_id=document_id,
                    error_code=exc.code,
                    message=str(exc),
                )
            except Exception:
                self._rollback()
                logger.error(
                    "close_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            if self._auto_commit:
                self._session.commit()

            logger.info(
                "document_closed",
                extra={
                    "status": CloseStatus.CLOSED.value,
                    "movement_count": len(closed.movement_ids),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return CloseResult(
                status=CloseStatus.CLOSED,
                document_id=document_id,
                snapshot=closed.snapshot,
                movement_ids=closed.movement_ids,
            )

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()
