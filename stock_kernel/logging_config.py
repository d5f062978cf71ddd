"""
JSON-lines logging for the stock ledger.

Every record is written as one JSON object:

    {"ts": "...", "level": "INFO", "logger": "stock_kernel.services.ledger",
     "message": "movement_recorded", "product_id": "...", "delta": "5"}

Fields passed with ``extra=`` are merged into the object.  Fields bound in
the current LogContext (which document is being closed, which batch job is
running, who asked for it) are attached to every record emitted while they
are bound.  Errors from stock_kernel.exceptions contribute their ``code``
and their structured attributes as ``exc_*`` keys.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

ROOT_LOGGER = "stock_kernel"

_CONTEXT_FIELDS = frozenset({
    "correlation_id",
    "actor_id",
    "document_id",
    "document_kind",
    "producer",
    "job_id",
})

_bound: ContextVar[dict[str, str]] = ContextVar("stock_log_context", default={})


class LogContext:
    """Fields attached to every record logged in the current thread or task."""

    @staticmethod
    def _checked(fields: dict[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - _CONTEXT_FIELDS
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
        return {k: v for k, v in fields.items() if v is not None}

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Add fields to the context; ``None`` values leave a field untouched."""
        _bound.set({**_bound.get(), **cls._checked(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_bound.get())

    @classmethod
    def clear(cls) -> None:
        _bound.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block, then restore."""
        token = _bound.set({**_bound.get(), **cls._checked(fields)})
        try:
            yield cls
        finally:
            _bound.reset(token)


# Attributes every LogRecord carries; anything else came from ``extra=``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_bound.get(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in entry
        )

        error = record.exc_info[1] if record.exc_info else None
        if error is not None:
            entry["exc_type"] = type(error).__name__
            entry["exc_message"] = str(error)
            code = getattr(error, "code", None)
            if code is not None:
                entry["exc_code"] = code
            for key, value in vars(error).items():
                if key != "code" and not key.startswith("_"):
                    entry[f"exc_{key}"] = value
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``stock_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``stock_kernel`` logger.

    Only the first call has an effect; the CLIs and the test suite may both
    call it.  Records do not propagate to the root logger.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        logger = logging.getLogger(ROOT_LOGGER)
        logger.setLevel(level)
        logger.propagate = False
        logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging (tests only)."""
    global _configured
    with _setup_lock:
        _configured = False
        logger = logging.getLogger(ROOT_LOGGER)
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
