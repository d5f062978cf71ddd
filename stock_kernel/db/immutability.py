"""
ORM-Level Immutability Enforcement for the Stock Ledger.

===============================================================================
WHAT IS PROTECTED
===============================================================================

1. InventoryItemMovement (the ledger)
   - Never updated, never deleted.  A wrong movement is corrected by
     recording a new, opposite-signed movement.

2. Closed stock-affecting documents (PurchaseInvoice, ReturnPurchaseInvoice,
   Waste, Stocktaking)
   - Once state is CLOSED no header field may change and the document may
     not be deleted.  Only audit metadata (updated_at, updated_by_id) is
     exempt.
   - Line items of a closed document may not be inserted, updated or
     deleted.

DocumentService already refuses these operations with DocumentClosedError;
the listeners here are the second line that catches code paths which touch
the ORM objects directly.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events (before_update, before_delete, before_insert)
just before it emits the SQL for a flushed object.  Each listener inspects
the target and raises ImmutabilityViolationError, which aborts the flush and
leaves the transaction to be rolled back by its owner.

For document headers the listener asks "was this document already closed
before this flush?" using attribute history on ``state``:

    state changing FROM closed        -> block (reopen attempt)
    state unchanged AND closed        -> block (edit of a closed document)
    state changing open -> closed     -> allow (this IS the close)

The close itself normally flips state with a Core compare-and-set UPDATE,
which bypasses mapper events; the history rule keeps an ORM-level close
working as well.

Usage:
    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_CLOSED = "closed"


def _block(entity_type: str, entity_id: object, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# Ledger movements
# =============================================================================


def _check_movement_update(mapper, connection, target):
    """Ledger movements are append-only."""
    _block(
        "InventoryItemMovement",
        target.id,
        "UPDATE",
        "Ledger movements cannot be modified; record a correcting movement instead",
    )


def _check_movement_delete(mapper, connection, target):
    """Ledger movements are append-only."""
    _block(
        "InventoryItemMovement",
        target.id,
        "DELETE",
        "Ledger movements cannot be deleted; record a correcting movement instead",
    )


# =============================================================================
# Documents
# =============================================================================


def _was_closed_before(target) -> bool:
    history = get_history(target, "state")
    if history.deleted:
        return history.deleted[0] == _CLOSED
    if not history.added:
        return target.state == _CLOSED
    return False


def _check_document_update(mapper, connection, target):
    """Block edits to a document that was closed before this flush."""
    if not _was_closed_before(target):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            _block(
                type(target).__name__,
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on closed document",
                field=attr.key,
            )


def _check_document_delete(mapper, connection, target):
    if target.state == _CLOSED:
        _block(
            type(target).__name__,
            target.id,
            "DELETE",
            "Closed documents cannot be deleted",
        )


def _check_document_item_change(mapper, connection, target):
    """Block line inserts/updates/deletes under a closed document."""
    document = target.document
    if document is not None and document.state == _CLOSED and _was_closed_before(document):
        _block(
            type(target).__name__,
            target.id,
            "WRITE",
            f"Lines of closed document {document.id} cannot change",
            document_id=str(document.id),
        )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from stock_kernel.models.documents import DOCUMENT_MODELS
    from stock_kernel.models.movement import InventoryItemMovement

    table = [
        (InventoryItemMovement, "before_update", _check_movement_update),
        (InventoryItemMovement, "before_delete", _check_movement_delete),
    ]
    for models in DOCUMENT_MODELS.values():
        table.append((models.header, "before_update", _check_document_update))
        table.append((models.header, "before_delete", _check_document_delete))
        for event_name in ("before_insert", "before_update", "before_delete"):
            table.append((models.item, event_name, _check_document_item_change))
    return table


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    Intended for tests that need to prove the second line of defense is
    what rejected an operation.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
