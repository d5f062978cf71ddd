"""
Values -- Immutable, self-validating domain value objects and tags.

Responsibility:
    Provides the enums and value types shared by the ledger, the document
    lifecycle and the reconciliation engine: movement operation and reason
    tags, document kinds and states, and the tagged-union reference to the
    document that produced a movement.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by models, services and selectors. No outward dependencies
    except stock_kernel.exceptions and stock_kernel.db.types.

Invariants enforced:
    - A movement reason with a fixed direction (purchase, waste, ...) can
      only be recorded with that direction.
    - A SourceRef always names one of the known source kinds.
    - Line quantities and prices are finite, non-negative Decimals.

Failure modes:
    - InvalidQuantityError / InvalidPriceError from validate_quantity() and
      validate_price().
    - ValueError from SourceRef.parse() on malformed input.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from stock_kernel.db.types import to_decimal
from stock_kernel.exceptions import InvalidPriceError, InvalidQuantityError


class MovementOperation(str, Enum):
    """Direction of a ledger movement."""

    INCREMENT = "increment"
    DECREMENT = "decrement"

    @classmethod
    def for_delta(cls, delta: Decimal) -> MovementOperation:
        return cls.INCREMENT if delta > 0 else cls.DECREMENT


class MovementReason(str, Enum):
    """Why stock moved."""

    PURCHASE = "purchase"
    PURCHASE_RETURN = "purchase_return"
    WASTE = "waste"
    STOCKTAKING_ADJUSTMENT = "stocktaking_adjustment"
    SALE_CONSUMPTION = "sale_consumption"
    SALE_RETURN = "sale_return"

    @property
    def fixed_operation(self) -> MovementOperation | None:
        """The only direction this reason may take, or None if either is valid."""
        return _REASON_DIRECTION.get(self)


_REASON_DIRECTION: dict[MovementReason, MovementOperation] = {
    MovementReason.PURCHASE: MovementOperation.INCREMENT,
    MovementReason.SALE_RETURN: MovementOperation.INCREMENT,
    MovementReason.PURCHASE_RETURN: MovementOperation.DECREMENT,
    MovementReason.WASTE: MovementOperation.DECREMENT,
    MovementReason.SALE_CONSUMPTION: MovementOperation.DECREMENT,
}


class DocumentKind(str, Enum):
    """Stock-affecting document types."""

    PURCHASE_INVOICE = "purchase_invoice"
    RETURN_PURCHASE_INVOICE = "return_purchase_invoice"
    WASTE = "waste"
    STOCKTAKING = "stocktaking"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class DocumentState(str, Enum):
    """
    Document lifecycle state.

    OPEN -> CLOSED is the only transition; CLOSED is terminal.
    """

    OPEN = "open"
    CLOSED = "closed"

    @property
    def is_mutable(self) -> bool:
        match self:
            case DocumentState.OPEN:
                return True
            case DocumentState.CLOSED:
                return False


class SourceKind(str, Enum):
    """Known producers of ledger movements."""

    PURCHASE = "purchase"
    PURCHASE_RETURN = "purchase_return"
    WASTE = "waste"
    STOCKTAKING = "stocktaking"
    ORDER = "order"
    ORDER_RETURN = "order_return"


_DOCUMENT_SOURCE: dict[DocumentKind, SourceKind] = {
    DocumentKind.PURCHASE_INVOICE: SourceKind.PURCHASE,
    DocumentKind.RETURN_PURCHASE_INVOICE: SourceKind.PURCHASE_RETURN,
    DocumentKind.WASTE: SourceKind.WASTE,
    DocumentKind.STOCKTAKING: SourceKind.STOCKTAKING,
}


@dataclass(frozen=True, slots=True)
class SourceRef:
    """
    Immutable reference to the document or order that produced a movement.

    Self-describing pointer (kind + id) over a closed set of source kinds,
    stored as two columns instead of a polymorphic foreign key.
    """

    kind: SourceKind
    source_id: UUID

    def __post_init__(self) -> None:
        if not isinstance(self.kind, SourceKind):
            raise ValueError(f"kind must be SourceKind, got {type(self.kind)}")

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.source_id}"

    @classmethod
    def parse(cls, ref_string: str) -> SourceRef:
        """Parse ``"kind:uuid"`` back into a SourceRef."""
        try:
            kind_str, id_str = ref_string.split(":", 1)
            return cls(kind=SourceKind(kind_str), source_id=UUID(id_str))
        except ValueError as e:
            raise ValueError(f"Invalid source ref string: {ref_string}") from e

    @classmethod
    def for_document(cls, kind: DocumentKind, document_id: UUID) -> SourceRef:
        return cls(_DOCUMENT_SOURCE[kind], document_id)

    @classmethod
    def order(cls, order_id: UUID) -> SourceRef:
        return cls(SourceKind.ORDER, order_id)

    @classmethod
    def order_return(cls, return_id: UUID) -> SourceRef:
        return cls(SourceKind.ORDER_RETURN, return_id)


def _coerce_number(value: object) -> Decimal:
    """Shared numeric check; raises ValueError with a reason."""
    if isinstance(value, bool) or value is None:
        raise ValueError("must be a number")
    try:
        number = to_decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError("must be a number") from None
    if not number.is_finite():
        raise ValueError("must be finite")
    return number


def _coerce_non_negative(value: object) -> Decimal:
    number = _coerce_number(value)
    if number < 0:
        raise ValueError("must not be negative")
    return number


def validate_quantity(value: object, *, allow_zero: bool = True) -> Decimal:
    """Return ``value`` as a Decimal line quantity or raise InvalidQuantityError.

    Counted stocktaking quantities may be zero (the shelf is empty); moved
    quantities on purchase, return and waste lines must be positive.
    """
    try:
        number = _coerce_non_negative(value)
    except ValueError as e:
        raise InvalidQuantityError(value, str(e)) from None
    if not allow_zero and number == 0:
        raise InvalidQuantityError(value, "must be greater than zero")
    return number


def validate_stock_quantity(value: object) -> Decimal:
    """Return a captured Stock Cache quantity as a Decimal.

    The cache is a signed counter (sales may oversell), so only the number
    itself is checked, not its sign.
    """
    try:
        return _coerce_number(value)
    except ValueError as e:
        raise InvalidQuantityError(value, str(e)) from None


def validate_price(value: object) -> Decimal:
    """Return ``value`` as a Decimal unit price or raise InvalidPriceError."""
    try:
        return _coerce_non_negative(value)
    except ValueError as e:
        raise InvalidPriceError(value, str(e)) from None


class OutOfStockPolicy(str, Enum):
    """When a product counts as out of stock."""

    AT_OR_BELOW_ZERO = "at_or_below_zero"
    BELOW_ZERO = "below_zero"

    def is_out(self, quantity: Decimal) -> bool:
        match self:
            case OutOfStockPolicy.AT_OR_BELOW_ZERO:
                return quantity <= 0
            case OutOfStockPolicy.BELOW_ZERO:
                return quantity < 0
