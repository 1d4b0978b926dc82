"""
Unit State Machine and label lifecycle.

Responsibility:
    Per-unit lifecycle (CREATED -> LABELED -> SCANNED -> VERIFIED -> QC
    disposition), the label side-lifecycle (NOT_PRINTED -> PRINTED ->
    VOIDED), supplier barcode capture, and putaway assignment.

Architecture position:
    Kernel > Domain -- pure.  Every operation returns the updated unit and
    exactly one audit event; persisting both is the caller's job.

Invariants enforced:
    * ``qc_decision`` is set iff the unit is ACCEPTED, QC_HOLD or REJECTED
      (carried by the ``Unit`` disposition type).
    * HOLD and REJECT dispositions always carry a reason.
    * A VOIDED label admits no further print, reprint or void.

Failure modes:
    * ``InvalidTransitionError`` for edges outside the unit table.
    * ``MissingReasonError`` for HOLD/REJECT without a reason.
    * ``InvalidLabelOperationError`` for out-of-order label actions.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from inbound_kernel.domain.audit import (
    AuditEvent,
    LabelPrinted,
    LabelVoided,
    PutawayAssigned,
    SupplierSerialRecorded,
    UnitStateChanged,
    new_audit_event,
)
from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.models import Unit, disposition_for
from inbound_kernel.domain.values import (
    Actor,
    LabelStatus,
    PutawayLocation,
    RefType,
    UnitState,
)
from inbound_kernel.domain.workflow import Transition, Workflow
from inbound_kernel.exceptions import (
    InvalidLabelOperationError,
    InvalidTransitionError,
    MissingReasonError,
)
from inbound_kernel.logging_config import get_logger, log_context

logger = get_logger("domain.unit_workflow")

U = UnitState

UNIT_WORKFLOW = Workflow(
    name="serialized_unit",
    description="Serialized unit lifecycle from label to QC disposition",
    initial_state=U.CREATED,
    states=tuple(UnitState),
    transitions=(
        Transition(U.CREATED, U.LABELED, action="label"),
        Transition(U.LABELED, U.SCANNED, action="scan"),
        Transition(U.SCANNED, U.VERIFIED, action="verify"),
        Transition(U.VERIFIED, U.ACCEPTED, action="accept"),
        Transition(U.VERIFIED, U.QC_HOLD, action="hold"),
        Transition(U.VERIFIED, U.REJECTED, action="reject"),
        Transition(U.QC_HOLD, U.ACCEPTED, action="release"),
        Transition(U.QC_HOLD, U.REJECTED, action="reject"),
    ),
    terminal_states=(U.ACCEPTED, U.REJECTED),
)

ALLOWED_UNIT_TRANSITIONS = UNIT_WORKFLOW.allowed_targets()

_REASON_REQUIRED = frozenset({U.QC_HOLD, U.REJECTED})

_LINEAR_NEXT: dict[UnitState, UnitState] = {
    U.CREATED: U.LABELED,
    U.LABELED: U.SCANNED,
    U.SCANNED: U.VERIFIED,
}


@dataclass(frozen=True)
class UnitChange:
    """An updated unit plus the one audit event describing the change."""
    unit: Unit
    audit_event: AuditEvent


def can_transition_unit(from_state: UnitState, to_state: UnitState) -> bool:
    return to_state in ALLOWED_UNIT_TRANSITIONS.get(from_state, ())


def next_unit_state(current: UnitState) -> UnitState | None:
    """Next state on the linear CREATED -> VERIFIED path, None past it."""
    return _LINEAR_NEXT.get(current)


def transition_unit(
    unit: Unit,
    to: UnitState,
    actor: Actor,
    reason: str | None = None,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> UnitChange:
    """
    Move ``unit`` to ``to``.

    VERIFIED stamps ``verified_at``.  ACCEPTED, QC_HOLD and REJECTED record
    the matching disposition with ``reason`` (optional for ACCEPTED).
    """
    with log_context(unit=unit):
        return _transition_unit(unit, to, actor, reason, clock)


def _transition_unit(
    unit: Unit,
    to: UnitState,
    actor: Actor,
    reason: str | None,
    clock: Clock,
) -> UnitChange:
    if not can_transition_unit(unit.state, to):
        logger.warning("unit_transition_rejected", extra={"from_state": unit.state, "to_state": to})
        raise InvalidTransitionError(RefType.UNIT.value, unit.id, unit.state.value, to.value)

    reason = reason.strip() if reason else None
    if to in _REASON_REQUIRED and not reason:
        raise MissingReasonError(unit.id, to.value)

    now = clock.now()
    updated = replace(
        unit,
        state=to,
        disposition=disposition_for(to, reason),
        verified_at=now if to is U.VERIFIED else unit.verified_at,
    )

    message = f"Unit {unit.enterprise_serial} transitioned to {to.value}"
    if reason:
        message = f"{message} (Reason: {reason})"
    event = new_audit_event(
        actor,
        RefType.UNIT,
        unit.id,
        message,
        UnitStateChanged(from_state=unit.state, to_state=to, reason=reason),
        clock,
    )
    logger.info(
        "unit_transitioned",
        extra={
            "enterprise_serial": unit.enterprise_serial,
            "from_state": unit.state,
            "to_state": to,
            "qc_decision": updated.qc_decision,
        },
    )
    return UnitChange(updated, event)


# -----------------------------------------------------------------------------
# Label lifecycle
# -----------------------------------------------------------------------------


def _printed(unit: Unit, actor: Actor, clock: Clock, *, reprint: bool) -> UnitChange:
    now = clock.now()
    count = unit.printed_count + 1
    updated = replace(
        unit,
        label_status=LabelStatus.PRINTED,
        printed_count=count,
        last_printed_at=now,
    )
    verb = "Reprinted" if reprint else "Printed"
    event = new_audit_event(
        actor,
        RefType.UNIT,
        unit.id,
        f"{verb} label for {unit.enterprise_serial} (copy {count})",
        LabelPrinted(printed_count=count, reprint=reprint),
        clock,
    )
    logger.debug(
        "unit_label_printed",
        extra={"unit_id": unit.id, "printed_count": count, "reprint": reprint},
    )
    return UnitChange(updated, event)


def print_label(unit: Unit, actor: Actor, *, clock: Clock = SYSTEM_CLOCK) -> UnitChange:
    """First print: NOT_PRINTED -> PRINTED."""
    if unit.label_status is not LabelStatus.NOT_PRINTED:
        raise InvalidLabelOperationError(unit.id, "print", unit.label_status.value)
    return _printed(unit, actor, clock, reprint=False)


def reprint_label(unit: Unit, actor: Actor, *, clock: Clock = SYSTEM_CLOCK) -> UnitChange:
    """Another copy of an already printed label."""
    if unit.label_status is not LabelStatus.PRINTED:
        raise InvalidLabelOperationError(unit.id, "reprint", unit.label_status.value)
    return _printed(unit, actor, clock, reprint=True)


def void_label(unit: Unit, actor: Actor, *, clock: Clock = SYSTEM_CLOCK) -> UnitChange:
    """PRINTED -> VOIDED.  The unit state is untouched."""
    if unit.label_status is not LabelStatus.PRINTED:
        raise InvalidLabelOperationError(unit.id, "void", unit.label_status.value)
    updated = replace(unit, label_status=LabelStatus.VOIDED)
    event = new_audit_event(
        actor,
        RefType.UNIT,
        unit.id,
        f"Voided label for {unit.enterprise_serial}",
        LabelVoided(printed_count=unit.printed_count),
        clock,
    )
    logger.info("unit_label_voided", extra={"unit_id": unit.id})
    return UnitChange(updated, event)


# -----------------------------------------------------------------------------
# Supplier barcode and putaway
# -----------------------------------------------------------------------------


def record_supplier_serial(
    unit: Unit,
    supplier_serial_ref: str,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> UnitChange:
    """Attach the vendor barcode.  Receipt-wide uniqueness is a validation check."""
    ref = supplier_serial_ref.strip()
    if not ref:
        raise ValueError("supplier_serial_ref must not be blank")
    updated = replace(unit, supplier_serial_ref=ref)
    event = new_audit_event(
        actor,
        RefType.UNIT,
        unit.id,
        f"Recorded supplier serial {ref} for {unit.enterprise_serial}",
        SupplierSerialRecorded(supplier_serial_ref=ref),
        clock,
    )
    return UnitChange(updated, event)


def assign_putaway(
    unit: Unit,
    location: PutawayLocation,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> UnitChange:
    """Record where the unit is stored."""
    updated = replace(unit, putaway=location)
    where = "/".join(part for part in (location.warehouse, location.zone, location.bin) if part)
    event = new_audit_event(
        actor,
        RefType.UNIT,
        unit.id,
        f"Putaway {unit.enterprise_serial} to {where or 'unspecified location'}",
        PutawayAssigned(warehouse=location.warehouse, zone=location.zone, bin=location.bin),
        clock,
    )
    logger.debug(
        "unit_putaway_assigned",
        extra={"unit_id": unit.id, "location": location},
    )
    return UnitChange(updated, event)
