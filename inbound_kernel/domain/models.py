"""
Inbound Domain Models.

The nouns of inbound receiving: receipts, lines, serialized units, and the
QC disposition a unit carries.

Ownership: a Receipt owns its Lines, a Line owns its Units.  Units and lines
never point back at their container; audit events reference them by id.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import ClassVar

from inbound_kernel.domain.audit import AuditEvent
from inbound_kernel.domain.values import (
    DISPOSITION_STATES,
    AttachmentType,
    ItemCategory,
    ItemTrackability,
    LabelStatus,
    PutawayLocation,
    QcDecision,
    ReceiptState,
    UnitState,
)
from inbound_kernel.exceptions import LineNotFoundError, UnitNotFoundError
from inbound_kernel.logging_config import get_logger

logger = get_logger("domain.models")


# -----------------------------------------------------------------------------
# QC disposition (sum type)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Undecided:
    """No QC decision yet."""
    decision: ClassVar[QcDecision | None] = None
    reason: ClassVar[str | None] = None


@dataclass(frozen=True)
class Accepted:
    decision: ClassVar[QcDecision] = QcDecision.ACCEPT
    reason: str | None = None


@dataclass(frozen=True)
class OnHold:
    decision: ClassVar[QcDecision] = QcDecision.HOLD
    reason: str

    def __post_init__(self):
        if not self.reason or not self.reason.strip():
            raise ValueError("QC hold requires a reason")


@dataclass(frozen=True)
class Rejected:
    decision: ClassVar[QcDecision] = QcDecision.REJECT
    reason: str

    def __post_init__(self):
        if not self.reason or not self.reason.strip():
            raise ValueError("QC rejection requires a reason")


Disposition = Undecided | Accepted | OnHold | Rejected

UNDECIDED = Undecided()

_DISPOSITION_FOR_STATE: dict[UnitState, type] = {
    UnitState.ACCEPTED: Accepted,
    UnitState.QC_HOLD: OnHold,
    UnitState.REJECTED: Rejected,
}


def disposition_for(state: UnitState, reason: str | None = None) -> Disposition:
    """Build the disposition matching a unit state (Undecided outside QC states)."""
    cls = _DISPOSITION_FOR_STATE.get(state)
    if cls is None:
        return UNDECIDED
    return cls(reason=reason)


# -----------------------------------------------------------------------------
# Entities
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Attachment:
    """Metadata for a document attached to a receipt (file handling is external)."""
    id: str
    type: AttachmentType
    filename: str
    uploaded_at: datetime
    uploaded_by: str
    notes: str | None = None


@dataclass(frozen=True)
class Unit:
    """One serialized, individually tracked item."""
    id: str
    enterprise_serial: str
    line_id: str
    state: UnitState = UnitState.CREATED
    label_status: LabelStatus = LabelStatus.NOT_PRINTED
    printed_count: int = 0
    last_printed_at: datetime | None = None
    verified_at: datetime | None = None
    disposition: Disposition = UNDECIDED
    supplier_serial_ref: str | None = None
    putaway: PutawayLocation | None = None

    def __post_init__(self):
        expected = _DISPOSITION_FOR_STATE.get(self.state, Undecided)
        if not isinstance(self.disposition, expected):
            logger.warning(
                "unit_disposition_state_mismatch",
                extra={
                    "unit_id": self.id,
                    "state": self.state.value,
                    "disposition": type(self.disposition).__name__,
                },
            )
            raise ValueError(
                f"Unit {self.id} in state {self.state.value} cannot carry "
                f"disposition {type(self.disposition).__name__}"
            )
        if self.printed_count < 0:
            raise ValueError(f"printed_count cannot be negative ({self.printed_count})")

    @property
    def qc_decision(self) -> QcDecision | None:
        return self.disposition.decision

    @property
    def qc_reason(self) -> str | None:
        return self.disposition.reason

    @property
    def has_bin(self) -> bool:
        return self.putaway is not None and self.putaway.has_bin

    @property
    def is_dispositioned(self) -> bool:
        return self.state in DISPOSITION_STATES


@dataclass(frozen=True)
class Line:
    """One ordered item within a receipt."""
    id: str
    receipt_id: str
    item_name: str
    category: ItemCategory
    trackability: ItemTrackability | None
    qty_received: int = 0
    qty_expected: int | None = None
    sku_id: str | None = None
    lot_ref: str | None = None
    mfg_date: date | None = None
    exp_date: date | None = None
    units: tuple[Unit, ...] = field(default_factory=tuple)

    @property
    def is_trackable(self) -> bool:
        """The per-line flag is authoritative; category defaults are advisory."""
        return self.trackability is ItemTrackability.TRACKABLE


@dataclass(frozen=True)
class Receipt:
    """
    One inbound shipment, the root aggregate.

    ``audit`` is newest-first.  ``state`` changes only through
    ``receipt_workflow.transition``.
    """
    id: str
    code: str
    state: ReceiptState
    created_at: datetime
    created_by_role: str
    supplier_id: str | None = None
    po_id: str | None = None
    invoice_no: str | None = None
    invoice_date: date | None = None
    packing_list_ref: str | None = None
    transport_doc_ref: str | None = None
    notes: str | None = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)
    lines: tuple[Line, ...] = field(default_factory=tuple)
    audit: tuple[AuditEvent, ...] = field(default_factory=tuple)

    @property
    def is_closed(self) -> bool:
        return self.state is ReceiptState.CLOSED

    def all_units(self) -> Iterator[Unit]:
        for line in self.lines:
            yield from line.units

    def trackable_units(self) -> Iterator[Unit]:
        for line in self.lines:
            if line.is_trackable:
                yield from line.units

    def find_line(self, line_id: str) -> Line:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise LineNotFoundError(self.id, line_id)

    def find_unit(self, unit_id: str) -> Unit:
        for unit in self.all_units():
            if unit.id == unit_id:
                return unit
        raise UnitNotFoundError(self.id, unit_id)

    def line_by_id(self) -> dict[str, Line]:
        return {line.id: line for line in self.lines}

    def with_audit(self, *events: AuditEvent) -> Receipt:
        """Return a copy with ``events`` (oldest first) prepended newest-first."""
        return replace(self, audit=tuple(reversed(events)) + self.audit)

    def with_line(self, line: Line) -> Receipt:
        """Return a copy with the line of the same id replaced."""
        self.find_line(line.id)
        return replace(
            self,
            lines=tuple(line if existing.id == line.id else existing for existing in self.lines),
        )

    def with_unit(self, unit: Unit) -> Receipt:
        """Return a copy with the unit of the same id replaced in its owning line."""
        line = self.find_line(unit.line_id)
        if not any(existing.id == unit.id for existing in line.units):
            raise UnitNotFoundError(self.id, unit.id)
        units = tuple(unit if existing.id == unit.id else existing for existing in line.units)
        return self.with_line(replace(line, units=units))
