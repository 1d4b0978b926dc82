"""
Key-value backends for receipt and outbound persistence.

A backend stores whole JSON documents (as text) under fixed namespace keys.
Each ``set`` is atomic on its own; serializing read-modify-write cycles is
the caller's job.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from inbound_kernel.db.engine import get_session_factory, session_scope
from inbound_kernel.logging_config import get_logger
from inbound_kernel.models.kv_entry import KeyValueEntry

logger = get_logger("services.kv")


class KeyValueBackend(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None:
        """Stored text for ``key``, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Replace the text stored for ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""


class DictKeyValueBackend(KeyValueBackend):
    """Process-local backend."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SqlKeyValueBackend(KeyValueBackend):
    """
    Backend over the ``kv_entries`` table.

    Each call runs in its own ``session_scope`` (commit on success,
    rollback and re-raise on failure).  Uses the module-level engine unless
    a session factory is passed in.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._factory = session_factory or get_session_factory()

    def get(self, key: str) -> str | None:
        with session_scope(self._factory) as session:
            return session.scalar(select(KeyValueEntry.value).where(KeyValueEntry.key == key))

    def set(self, key: str, value: str) -> None:
        with session_scope(self._factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
        logger.debug("kv_entry_written", extra={"key": key, "size": len(value)})

    def delete(self, key: str) -> None:
        with session_scope(self._factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is not None:
                session.delete(entry)
