"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A failed Close gates stock correctness, so the caller must learn exactly why
it failed. Generic exceptions like ValueError force callers to parse message
strings. Every error here therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA (product_id, document_id, ... as attributes)

Example:
    try:
        documents.add_item(kind, doc_id, product_id, quantity, actor_id)
    except DocumentClosedError as e:
        api_response(code=e.code, document=e.document_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- ProductError
    |   +-- UnknownProductError
    |
    +-- MovementError
    |   +-- InvalidMovementError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- DocumentItemNotFoundError
    |   +-- DocumentClosedError
    |   +-- AlreadyClosedError
    |   +-- OpenStocktakingExistsError
    |   +-- DuplicateDocumentLineError
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidPriceError
    |   +-- InvalidDateRangeError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- BatchError
    |   +-- BatchJobNotFoundError
    |   +-- BatchAlreadyRunningError
    |   +-- BatchIdempotencyError
    |   +-- TaskNotRegisteredError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Product         | UNKNOWN_PRODUCT             | Movement/report names a missing product
Movement        | INVALID_MOVEMENT            | Zero delta, sign/operation mismatch
Document        | DOCUMENT_NOT_FOUND          | Document id does not exist
                | DOCUMENT_ITEM_NOT_FOUND     | Line id not on that document
                | DOCUMENT_CLOSED             | Mutation of a closed document
                | ALREADY_CLOSED              | Close called on a closed document
                | OPEN_STOCKTAKING_EXISTS     | Second open stocktaking requested
                | DUPLICATE_DOCUMENT_LINE     | Product counted twice on a stocktaking
Validation      | INVALID_QUANTITY            | Negative or non-numeric quantity
                | INVALID_PRICE               | Negative or non-numeric price
                | INVALID_DATE_RANGE          | start date after end date
Stock           | INSUFFICIENT_STOCK          | Availability check failed
Concurrency     | CONCURRENCY_CONFLICT        | Lost a race on close or cache update
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a ledger movement
Batch           | BATCH_JOB_NOT_FOUND         | Job id does not exist
                | BATCH_ALREADY_RUNNING       | Job not in PENDING state
                | BATCH_IDEMPOTENCY_CONFLICT  | idempotency_key already used
                | TASK_NOT_REGISTERED         | Unknown task_type
Config          | CONFIGURATION_ERROR         | Invalid configuration value
"""

from decimal import Decimal


class StockLedgerError(Exception):
    """Base exception for all stock kernel errors."""

    code: str = "STOCK_LEDGER_ERROR"


# Product-related exceptions


class ProductError(StockLedgerError):
    """Base exception for product catalog errors."""

    code: str = "PRODUCT_ERROR"


class UnknownProductError(ProductError):
    """A movement, document line or report references a missing product."""

    code: str = "UNKNOWN_PRODUCT"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Unknown product: {product_id}")


# Movement-related exceptions


class MovementError(StockLedgerError):
    """Base exception for ledger movement errors."""

    code: str = "MOVEMENT_ERROR"


class InvalidMovementError(MovementError):
    """Movement delta, operation and reason do not agree."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Invalid movement for product {product_id}: {reason}")


# Document-related exceptions


class DocumentError(StockLedgerError):
    """Base exception for stock-affecting document errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Document id does not exist."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_kind: str, document_id: str):
        self.document_kind = document_kind
        self.document_id = document_id
        super().__init__(f"{document_kind} {document_id} not found")


class DocumentItemNotFoundError(DocumentError):
    """Line item id does not belong to the document."""

    code: str = "DOCUMENT_ITEM_NOT_FOUND"

    def __init__(self, document_kind: str, document_id: str, item_id: str):
        self.document_kind = document_kind
        self.document_id = document_id
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} not found on {document_kind} {document_id}"
        )


class DocumentClosedError(DocumentError):
    """
    Mutation attempted on a closed document.

    Closed documents are frozen: header edits, line changes and deletion
    are all rejected so the ledger derived from them stays explainable.
    """

    code: str = "DOCUMENT_CLOSED"

    def __init__(self, document_kind: str, document_id: str, operation: str):
        self.document_kind = document_kind
        self.document_id = document_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {document_kind} {document_id}: document is closed"
        )


class AlreadyClosedError(DocumentError):
    """Close called on a document that is already closed."""

    code: str = "ALREADY_CLOSED"

    def __init__(self, document_kind: str, document_id: str):
        self.document_kind = document_kind
        self.document_id = document_id
        super().__init__(f"{document_kind} {document_id} is already closed")


class OpenStocktakingExistsError(DocumentError):
    """Only one stocktaking may be open at a time."""

    code: str = "OPEN_STOCKTAKING_EXISTS"

    def __init__(self, existing_id: str):
        self.existing_id = existing_id
        super().__init__(
            f"Stocktaking {existing_id} is still open; close it before starting another"
        )


class DuplicateDocumentLineError(DocumentError):
    """A product may be counted only once per stocktaking."""

    code: str = "DUPLICATE_DOCUMENT_LINE"

    def __init__(self, document_kind: str, document_id: str, product_id: str):
        self.document_kind = document_kind
        self.document_id = document_id
        self.product_id = product_id
        super().__init__(
            f"Product {product_id} already has a line on {document_kind} {document_id}"
        )


# Validation exceptions


class ValidationError(StockLedgerError):
    """Base exception for input validation errors."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity is negative or not a number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, value: object, reason: str = "must be a non-negative number"):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid quantity {value!r}: {reason}")


class InvalidPriceError(ValidationError):
    """Price is negative or not a number."""

    code: str = "INVALID_PRICE"

    def __init__(self, value: object, reason: str = "must be a non-negative number"):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid price {value!r}: {reason}")


class InvalidDateRangeError(ValidationError):
    """Report or aggregation range is inverted."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(f"Invalid date range: {start} is after {end}")


# Stock-level exceptions


class StockError(StockLedgerError):
    """Base exception for stock level errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """One or more products do not have the requested quantity on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, shortages: dict[str, tuple[Decimal, Decimal]]):
        # product_id -> (requested, available)
        self.shortages = {
            pid: {"requested": str(req), "available": str(avail)}
            for pid, (req, avail) in shortages.items()
        }
        super().__init__(
            f"Insufficient stock for {len(shortages)} product(s): "
            + ", ".join(sorted(shortages))
        )


# Concurrency exceptions


class ConcurrencyError(StockLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """
    Lost a race against another transaction.

    Raised when a close's compare-and-set on the document state matches no
    row. The caller must retry; the kernel never retries internally.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(StockLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Batch exceptions


class BatchError(StockLedgerError):
    """Base exception for batch processing errors."""

    code: str = "BATCH_ERROR"


class BatchJobNotFoundError(BatchError):
    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job {job_id} not found")


class BatchAlreadyRunningError(BatchError):
    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_name: str, job_id: str):
        self.job_name = job_name
        self.job_id = job_id
        super().__init__(f"Batch job '{job_name}' ({job_id}) is not pending")


class BatchIdempotencyError(BatchError):
    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Idempotency key '{idempotency_key}' already used by job {existing_job_id}"
        )


class TaskNotRegisteredError(BatchError):
    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...] = ()):
        self.task_type = task_type
        self.available = list(available)
        super().__init__(
            f"No batch task registered for '{task_type}'. Available: {list(available)}"
        )


# Configuration exceptions


class ConfigurationError(StockLedgerError):
    """Configuration file or value is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
