"""
Structured logging for the inbound kernel.

Every record under the ``inbound_kernel`` logger is written as one JSON
object::

    {"ts": "...", "level": "INFO", "logger": "inbound_kernel.services.receiving",
     "event": "receiving_operation_completed",
     "receipt_id": "rcpt-...", "receipt_code": "GRN-2026-0001",
     "receipt_state": "RECEIVING", "actor_role": "STORES",
     "operation": "advance_to_receiving", "status": "success"}

The log message is the snake_case event name; details travel in ``extra``.
Receipt and actor fields come from ``log_context`` blocks, so kernel code
deep inside an operation never has to pass them along.
"""

from __future__ import annotations

__all__ = [
    "CONTEXT_FIELDS",
    "ReceivingLogFormatter",
    "configure_logging",
    "current_context",
    "get_logger",
    "log_context",
    "reset_logging",
]

import dataclasses
import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from inbound_kernel.domain.models import Receipt, Unit
    from inbound_kernel.domain.values import Actor

LOGGER_NAMESPACE = "inbound_kernel"

# Emitted in this order, ahead of any ``extra`` fields.
CONTEXT_FIELDS = (
    "receipt_id",
    "receipt_code",
    "receipt_state",
    "unit_id",
    "actor_role",
    "operation",
)

_EMPTY: Mapping[str, Any] = MappingProxyType({})
_context: ContextVar[Mapping[str, Any]] = ContextVar("inbound_log_context", default=_EMPTY)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


def current_context() -> Mapping[str, Any]:
    """Fields bound by the enclosing ``log_context`` blocks."""
    return _context.get()


@contextmanager
def log_context(
    *,
    receipt: Receipt | None = None,
    unit: Unit | None = None,
    actor: Actor | None = None,
    **fields: Any,
) -> Iterator[Mapping[str, Any]]:
    """
    Bind receiving fields for every record logged inside the block.

    ``receipt`` expands to id, code and state; ``unit`` to its id;
    ``actor`` to its role.  Explicit keyword fields must be one of
    ``CONTEXT_FIELDS``.  None values leave an outer binding in place.
    Nested blocks layer on top of each other and the outer fields come
    back on exit.
    """
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")

    bound = dict(fields)
    if receipt is not None:
        bound.update(
            receipt_id=receipt.id,
            receipt_code=receipt.code,
            receipt_state=receipt.state,
        )
    if unit is not None:
        bound["unit_id"] = unit.id
    if actor is not None:
        bound["actor_role"] = actor.role

    merged = {**_context.get(), **{k: v for k, v in bound.items() if v is not None}}
    token = _context.set(MappingProxyType(merged))
    try:
        yield _context.get()
    finally:
        _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(_jsonable(v) for v in value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if getattr(value, f.name) is not None
        }
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _error_payload(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        # Kernel errors keep their context as public attributes.
        error["code"] = code
        for key, value in vars(exc).items():
            if not key.startswith("_"):
                error[key] = _jsonable(value)
    return error


class ReceivingLogFormatter(logging.Formatter):
    """One JSON object per record: envelope, bound context, extras, error."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        context = current_context()
        for name in CONTEXT_FIELDS:
            if name in context:
                payload[name] = _jsonable(context[name])

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = _jsonable(value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_payload(record.exc_info[1])
            if getattr(record.exc_info[1], "code", None) is None:
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``inbound_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_installed: logging.Handler | None = None
_install_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the JSON handler on the ``inbound_kernel`` logger.

    Only the first call installs anything; later calls return the handler
    already in place.
    """
    global _installed
    with _install_lock:
        if _installed is not None:
            return _installed
        installed = handler or logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(ReceivingLogFormatter())
        root = logging.getLogger(LOGGER_NAMESPACE)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(installed)
        _installed = installed
        return installed


def reset_logging() -> None:
    """Remove the installed handler so tests can configure again."""
    global _installed
    with _install_lock:
        root = logging.getLogger(LOGGER_NAMESPACE)
        if _installed is not None:
            root.removeHandler(_installed)
            _installed = None
        root.setLevel(logging.WARNING)
