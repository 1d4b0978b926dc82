"""
Outbound Contract Emitter (``inbound_services.outbound``).

Responsibility
--------------
Projects a CLOSED receipt into the flat payload the downstream production
planning stage consumes, and keeps the emitted contracts in a list under a
fixed storage namespace.

Invariants enforced
-------------------
* Only CLOSED receipts are projected.
* Units are partitioned by final state (ACCEPTED, QC_HOLD, REJECTED);
  ``total_units`` counts every unit on every line.
* Re-emitting for a receipt id replaces the earlier entry; the log holds
  at most one contract per receipt id.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from inbound_kernel.domain.models import Receipt, Unit
from inbound_kernel.domain.values import ItemCategory, PutawayLocation, UnitState
from inbound_kernel.logging_config import get_logger
from inbound_services.kv import KeyValueBackend

logger = get_logger("services.outbound")

OUTBOUND_SOURCE = "S3"


@dataclass(frozen=True)
class OutboundUnit:
    unit_id: str
    enterprise_serial: str
    sku_id: str | None
    category: ItemCategory
    putaway: PutawayLocation


@dataclass(frozen=True)
class OutboundContract:
    receipt_id: str
    receipt_code: str
    plant_id: str
    accepted_units: tuple[OutboundUnit, ...]
    qc_hold_units: tuple[OutboundUnit, ...]
    rejected_units: tuple[OutboundUnit, ...]
    total_units: int
    closed_at: datetime
    source: str = OUTBOUND_SOURCE


def _project(unit: Unit, receipt: Receipt, lines: dict) -> OutboundUnit:
    line = lines.get(unit.line_id)
    if line is None:
        logger.warning(
            "outbound_unit_without_line",
            extra={"receipt_id": receipt.id, "unit_id": unit.id, "line_id": unit.line_id},
        )
    return OutboundUnit(
        unit_id=unit.id,
        enterprise_serial=unit.enterprise_serial,
        sku_id=line.sku_id if line else None,
        category=line.category if line else ItemCategory.MISC,
        putaway=unit.putaway or PutawayLocation(),
    )


def build_outbound_contract(
    receipt: Receipt,
    plant_id: str,
    closed_at: datetime,
) -> OutboundContract:
    """
    Project ``receipt`` into an outbound contract.

    Raises:
        ValueError: the receipt is not CLOSED.
    """
    if not receipt.is_closed:
        raise ValueError(
            f"Receipt {receipt.id} is {receipt.state.value}; only CLOSED receipts are emitted"
        )

    lines = receipt.line_by_id()
    units = list(receipt.all_units())

    def by_state(state: UnitState) -> tuple[OutboundUnit, ...]:
        return tuple(_project(u, receipt, lines) for u in units if u.state is state)

    return OutboundContract(
        receipt_id=receipt.id,
        receipt_code=receipt.code,
        plant_id=plant_id,
        accepted_units=by_state(UnitState.ACCEPTED),
        qc_hold_units=by_state(UnitState.QC_HOLD),
        rejected_units=by_state(UnitState.REJECTED),
        total_units=len(units),
        closed_at=closed_at,
    )


# ---------------------------------------------------------------------------
# Wire form
# ---------------------------------------------------------------------------


def _unit_to_dict(unit: OutboundUnit) -> dict[str, Any]:
    putaway = {
        k: v
        for k, v in (
            ("warehouse", unit.putaway.warehouse),
            ("zone", unit.putaway.zone),
            ("bin", unit.putaway.bin),
        )
        if v is not None
    }
    data: dict[str, Any] = {
        "unitId": unit.unit_id,
        "enterpriseSerial": unit.enterprise_serial,
        "category": unit.category.value,
        "putaway": putaway,
    }
    if unit.sku_id is not None:
        data["skuId"] = unit.sku_id
    return data


def _unit_from_dict(data: dict[str, Any]) -> OutboundUnit:
    return OutboundUnit(
        unit_id=data["unitId"],
        enterprise_serial=data["enterpriseSerial"],
        sku_id=data.get("skuId"),
        category=ItemCategory(data["category"]),
        putaway=PutawayLocation(**(data.get("putaway") or {})),
    )


def contract_to_dict(contract: OutboundContract) -> dict[str, Any]:
    return {
        "receiptId": contract.receipt_id,
        "receiptCode": contract.receipt_code,
        "plantId": contract.plant_id,
        "acceptedUnits": [_unit_to_dict(u) for u in contract.accepted_units],
        "qcHoldUnits": [_unit_to_dict(u) for u in contract.qc_hold_units],
        "rejectedUnits": [_unit_to_dict(u) for u in contract.rejected_units],
        "totalUnits": contract.total_units,
        "source": contract.source,
        "closedAt": contract.closed_at.isoformat(),
    }


def contract_from_dict(data: dict[str, Any]) -> OutboundContract:
    return OutboundContract(
        receipt_id=data["receiptId"],
        receipt_code=data["receiptCode"],
        plant_id=data["plantId"],
        accepted_units=tuple(_unit_from_dict(u) for u in data.get("acceptedUnits", ())),
        qc_hold_units=tuple(_unit_from_dict(u) for u in data.get("qcHoldUnits", ())),
        rejected_units=tuple(_unit_from_dict(u) for u in data.get("rejectedUnits", ())),
        total_units=data["totalUnits"],
        closed_at=datetime.fromisoformat(data["closedAt"]),
        source=data.get("source", OUTBOUND_SOURCE),
    )


# ---------------------------------------------------------------------------
# Log
# ---------------------------------------------------------------------------


class OutboundContractLog:
    """Emitted contracts, one per receipt id, in emission order."""

    def __init__(self, backend: KeyValueBackend, namespace: str) -> None:
        self._backend = backend
        self._namespace = namespace
        self._lock = threading.Lock()

    def _load(self) -> list[dict[str, Any]]:
        raw = self._backend.get(self._namespace)
        return json.loads(raw) if raw else []

    def save(self, contract: OutboundContract) -> OutboundContract:
        """Store ``contract``, replacing any earlier one for the same receipt."""
        with self._lock:
            existing = self._load()
            entries = [e for e in existing if e.get("receiptId") != contract.receipt_id]
            replaced = len(entries) < len(existing)
            entries.append(contract_to_dict(contract))
            self._backend.set(self._namespace, json.dumps(entries))
        logger.info(
            "outbound_contract_emitted",
            extra={
                "receipt_id": contract.receipt_id,
                "receipt_code": contract.receipt_code,
                "plant_id": contract.plant_id,
                "total_units": contract.total_units,
                "accepted": len(contract.accepted_units),
                "qc_hold": len(contract.qc_hold_units),
                "rejected": len(contract.rejected_units),
                "replaced": replaced,
            },
        )
        return contract

    def emit(self, receipt: Receipt, plant_id: str, closed_at: datetime) -> OutboundContract:
        return self.save(build_outbound_contract(receipt, plant_id, closed_at))

    def list(self) -> list[OutboundContract]:
        with self._lock:
            entries = self._load()
        return [contract_from_dict(e) for e in entries]

    def get(self, receipt_id: str) -> OutboundContract | None:
        for contract in self.list():
            if contract.receipt_id == receipt_id:
                return contract
        return None
