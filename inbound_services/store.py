"""
Receipt store -- the persisted receipt list and the active-receipt pointer.

The kernel never touches storage; ``ReceivingService`` reads a receipt
here, applies one operation, and writes the whole receipt back.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod

from inbound_kernel.domain.models import Receipt
from inbound_kernel.logging_config import get_logger
from inbound_services.codec import receipt_from_dict, receipt_to_dict
from inbound_services.kv import KeyValueBackend

logger = get_logger("services.store")


class ReceiptStore(ABC):
    """
    Contract:
        ``upsert`` replaces a receipt with the same id in place or appends a
        new one; the first upsert while no receipt is active makes it active.
        ``list`` returns receipts in insertion order.
    """

    @abstractmethod
    def get(self, receipt_id: str) -> Receipt | None: ...

    @abstractmethod
    def list(self) -> list[Receipt]: ...

    @abstractmethod
    def upsert(self, receipt: Receipt) -> Receipt: ...

    @abstractmethod
    def set_active(self, receipt_id: str | None) -> None: ...

    @abstractmethod
    def get_active_id(self) -> str | None: ...

    def get_active(self) -> Receipt | None:
        active_id = self.get_active_id()
        return self.get(active_id) if active_id else None


class InMemoryReceiptStore(ReceiptStore):
    def __init__(self, receipts: tuple[Receipt, ...] = ()) -> None:
        self._receipts: dict[str, Receipt] = {}
        self._active_id: str | None = None
        self._lock = threading.Lock()
        for receipt in receipts:
            self.upsert(receipt)

    def get(self, receipt_id: str) -> Receipt | None:
        with self._lock:
            return self._receipts.get(receipt_id)

    def list(self) -> list[Receipt]:
        with self._lock:
            return list(self._receipts.values())

    def upsert(self, receipt: Receipt) -> Receipt:
        with self._lock:
            self._receipts[receipt.id] = receipt
            if self._active_id is None:
                self._active_id = receipt.id
        return receipt

    def set_active(self, receipt_id: str | None) -> None:
        with self._lock:
            self._active_id = receipt_id

    def get_active_id(self) -> str | None:
        with self._lock:
            return self._active_id


class KeyValueReceiptStore(ReceiptStore):
    """
    Store kept as one JSON document under ``namespace``:
    ``{"receipts": [...], "activeReceiptId": ...}``.

    Every write rewrites the whole document.
    """

    def __init__(self, backend: KeyValueBackend, namespace: str) -> None:
        self._backend = backend
        self._namespace = namespace
        self._lock = threading.Lock()

    def _load(self) -> tuple[list[dict], str | None]:
        raw = self._backend.get(self._namespace)
        if raw is None:
            return [], None
        document = json.loads(raw)
        return list(document.get("receipts") or ()), document.get("activeReceiptId")

    def _save(self, receipts: list[dict], active_id: str | None) -> None:
        document: dict = {"receipts": receipts}
        if active_id is not None:
            document["activeReceiptId"] = active_id
        self._backend.set(self._namespace, json.dumps(document))

    def get(self, receipt_id: str) -> Receipt | None:
        with self._lock:
            receipts, _ = self._load()
        for data in receipts:
            if data.get("id") == receipt_id:
                return receipt_from_dict(data)
        return None

    def list(self) -> list[Receipt]:
        with self._lock:
            receipts, _ = self._load()
        return [receipt_from_dict(data) for data in receipts]

    def upsert(self, receipt: Receipt) -> Receipt:
        encoded = receipt_to_dict(receipt)
        with self._lock:
            receipts, active_id = self._load()
            for index, data in enumerate(receipts):
                if data.get("id") == receipt.id:
                    receipts[index] = encoded
                    break
            else:
                receipts.append(encoded)
            if active_id is None:
                active_id = receipt.id
            self._save(receipts, active_id)
        logger.debug(
            "receipt_persisted",
            extra={"receipt_id": receipt.id, "state": receipt.state, "namespace": self._namespace},
        )
        return receipt

    def set_active(self, receipt_id: str | None) -> None:
        with self._lock:
            receipts, _ = self._load()
            self._save(receipts, receipt_id)

    def get_active_id(self) -> str | None:
        with self._lock:
            _, active_id = self._load()
        return active_id
