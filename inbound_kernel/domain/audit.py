"""
Audit events -- immutable, append-only records of every mutation.

Responsibility:
    Defines ``AuditEvent`` and the closed set of event details.  Each detail
    type carries exactly the fields that event needs; ``AuditEvent.event_type``
    is derived from the detail, so an event can never claim a type its
    payload does not match.

Architecture position:
    Kernel > Domain -- pure value objects.  Events reference lines and units
    by id only; the receipt owns the log.

Invariants enforced:
    * Events are frozen once created; the receipt log is newest-first and
      only ever grows by prepending.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar
from uuid import uuid4

from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.values import (
    Actor,
    AttachmentType,
    ReceiptState,
    RefType,
    SerialMode,
    UnitState,
)

# -----------------------------------------------------------------------------
# Event details (one per event type)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptCreated:
    event_type: ClassVar[str] = "RECEIPT_CREATED"
    source: str  # "MANUAL" or "PO"
    po_id: str | None = None


@dataclass(frozen=True)
class ReceiptEdited:
    event_type: ClassVar[str] = "RECEIPT_EDITED"
    fields: tuple[str, ...]


@dataclass(frozen=True)
class LineAdded:
    event_type: ClassVar[str] = "LINE_ADDED"
    line_id: str
    item_name: str


@dataclass(frozen=True)
class LineUpdated:
    event_type: ClassVar[str] = "LINE_UPDATED"
    line_id: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class AttachmentAdded:
    event_type: ClassVar[str] = "ATTACHMENT_ADDED"
    attachment_id: str
    attachment_type: AttachmentType
    filename: str


@dataclass(frozen=True)
class ReceiptStateChanged:
    event_type: ClassVar[str] = "STATE_CHANGE"
    from_state: ReceiptState
    to_state: ReceiptState
    note: str | None = None


@dataclass(frozen=True)
class UnitStateChanged:
    event_type: ClassVar[str] = "UNIT_STATE_CHANGED"
    from_state: UnitState
    to_state: UnitState
    reason: str | None = None


@dataclass(frozen=True)
class SerialsGenerated:
    event_type: ClassVar[str] = "SERIALS_GENERATED"
    line_id: str
    count: int
    mode: SerialMode
    first_serial: str
    last_serial: str


@dataclass(frozen=True)
class SupplierSerialRecorded:
    event_type: ClassVar[str] = "SUPPLIER_SERIAL_RECORDED"
    supplier_serial_ref: str


@dataclass(frozen=True)
class LabelPrinted:
    event_type: ClassVar[str] = "LABEL_PRINTED"
    printed_count: int
    reprint: bool = False


@dataclass(frozen=True)
class LabelVoided:
    event_type: ClassVar[str] = "LABEL_VOIDED"
    printed_count: int


@dataclass(frozen=True)
class PutawayAssigned:
    event_type: ClassVar[str] = "PUTAWAY_ASSIGNED"
    warehouse: str | None = None
    zone: str | None = None
    bin: str | None = None


@dataclass(frozen=True)
class ValidationRun:
    event_type: ClassVar[str] = "VALIDATION_RUN"
    ok: bool
    error_codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class OutboundEmitted:
    event_type: ClassVar[str] = "OUTBOUND_EMITTED"
    plant_id: str
    total_units: int


AuditDetail = (
    ReceiptCreated
    | ReceiptEdited
    | LineAdded
    | LineUpdated
    | AttachmentAdded
    | ReceiptStateChanged
    | UnitStateChanged
    | SerialsGenerated
    | SupplierSerialRecorded
    | LabelPrinted
    | LabelVoided
    | PutawayAssigned
    | ValidationRun
    | OutboundEmitted
)

AUDIT_DETAIL_TYPES: dict[str, type] = {
    cls.event_type: cls
    for cls in (
        ReceiptCreated,
        ReceiptEdited,
        LineAdded,
        LineUpdated,
        AttachmentAdded,
        ReceiptStateChanged,
        UnitStateChanged,
        SerialsGenerated,
        SupplierSerialRecorded,
        LabelPrinted,
        LabelVoided,
        PutawayAssigned,
        ValidationRun,
        OutboundEmitted,
    )
}


# -----------------------------------------------------------------------------
# Event
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditEvent:
    """
    One immutable audit record.

    Contract:
        Created by every mutating operation; never edited or deleted.
        ``ref_type``/``ref_id`` point at the receipt, a line, or a unit.
    """
    id: str
    ts: datetime
    actor_role: str
    actor_label: str
    ref_type: RefType
    ref_id: str
    message: str
    detail: AuditDetail

    @property
    def event_type(self) -> str:
        return self.detail.event_type


def new_audit_event(
    actor: Actor,
    ref_type: RefType,
    ref_id: str,
    message: str,
    detail: AuditDetail,
    clock: Clock = SYSTEM_CLOCK,
) -> AuditEvent:
    """Stamp a new event with a fresh id and the clock's current time."""
    return AuditEvent(
        id=f"audit-{uuid4().hex}",
        ts=clock.now(),
        actor_role=actor.role,
        actor_label=actor.label,
        ref_type=ref_type,
        ref_id=ref_id,
        message=message,
        detail=detail,
    )
