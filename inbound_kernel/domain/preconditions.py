"""
Close-readiness preconditions.

Five independent gates shown on the "ready to close" panel.  All five must
be MET before PUTAWAY_COMPLETE -> CLOSED, in addition to
``validate_closure``.  Pure: reads a receipt, returns values.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from inbound_kernel.domain.models import Receipt
from inbound_kernel.domain.values import DISPOSITION_STATES, VERIFIED_OR_LATER_STATES, UnitState


class PreconditionStatus(str, Enum):
    MET = "MET"
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"


class PreconditionKey(str, Enum):
    AUTHORIZATION = "AUTHORIZATION"
    COMMERCIAL_EVIDENCE = "COMMERCIAL_EVIDENCE"
    SERIALIZATION = "SERIALIZATION"
    QC_COMPLETION = "QC_COMPLETION"
    STORAGE_ASSIGNMENT = "STORAGE_ASSIGNMENT"


@dataclass(frozen=True)
class Precondition:
    key: PreconditionKey
    label: str
    status: PreconditionStatus
    description: str

    @property
    def is_met(self) -> bool:
        return self.status is PreconditionStatus.MET


def _authorization(receipt: Receipt) -> Precondition:
    if receipt.po_id:
        description = f"Linked to purchase order {receipt.po_id}."
    else:
        description = "Manual receipt, trusted on creation."
    return Precondition(
        PreconditionKey.AUTHORIZATION, "Authorization", PreconditionStatus.MET, description
    )


def _commercial_evidence(receipt: Receipt) -> Precondition:
    if receipt.invoice_no and receipt.invoice_no.strip():
        status, description = PreconditionStatus.MET, f"Invoice {receipt.invoice_no} recorded."
    else:
        status, description = PreconditionStatus.PENDING, "Invoice number not recorded."
    return Precondition(
        PreconditionKey.COMMERCIAL_EVIDENCE, "Commercial evidence", status, description
    )


def _serialization(receipt: Receipt) -> Precondition:
    trackable = [line for line in receipt.lines if line.is_trackable]
    target = sum(max(line.qty_received, 0) for line in trackable)
    units = [u for line in trackable for u in line.units]
    generated = len(units)
    verified = sum(1 for u in units if u.state in VERIFIED_OR_LATER_STATES)

    if target == 0:
        status, description = PreconditionStatus.MET, "No trackable quantity to serialize."
    elif generated < target:
        status = PreconditionStatus.BLOCKED
        description = f"{generated} of {target} units serialized."
    elif verified < generated:
        status = PreconditionStatus.PENDING
        description = f"{verified} of {generated} units verified."
    else:
        status = PreconditionStatus.MET
        description = f"All {generated} units serialized and verified."
    return Precondition(PreconditionKey.SERIALIZATION, "Serialization", status, description)


def _qc_completion(receipt: Receipt) -> Precondition:
    pending = sum(1 for u in receipt.trackable_units() if u.state is UnitState.VERIFIED)
    if pending:
        status = PreconditionStatus.PENDING
        description = f"{pending} verified unit(s) awaiting QC decision."
    else:
        status, description = PreconditionStatus.MET, "Every verified unit has a disposition."
    return Precondition(PreconditionKey.QC_COMPLETION, "QC completion", status, description)


def _storage_assignment(receipt: Receipt) -> Precondition:
    unassigned = sum(
        1 for u in receipt.all_units() if u.state in DISPOSITION_STATES and not u.has_bin
    )
    if unassigned:
        status = PreconditionStatus.PENDING
        description = f"{unassigned} dispositioned unit(s) without a bin."
    else:
        status, description = PreconditionStatus.MET, "Every dispositioned unit has a bin."
    return Precondition(
        PreconditionKey.STORAGE_ASSIGNMENT, "Storage assignment", status, description
    )


def evaluate_preconditions(receipt: Receipt) -> tuple[Precondition, ...]:
    """The five gates, always in the same order."""
    return (
        _authorization(receipt),
        _commercial_evidence(receipt),
        _serialization(receipt),
        _qc_completion(receipt),
        _storage_assignment(receipt),
    )


def all_met(preconditions: Iterable[Precondition]) -> bool:
    return all(p.is_met for p in preconditions)
