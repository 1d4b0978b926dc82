"""
Receipt State Machine.

Responsibility:
    Owns the receipt lifecycle graph and the only function that changes
    ``Receipt.state``.  Also hosts the QC outcome rule that picks the branch
    out of QC_PENDING, so the fan-out decision is testable on its own.

Architecture position:
    Kernel > Domain -- pure.  Returns new values, never mutates its input,
    never persists.

Invariants enforced:
    * ``transition`` succeeds iff the target is in the allowed set for the
      current state.
    * Every successful transition prepends exactly one STATE_CHANGE event.
    * CLOSED is terminal.

Failure modes:
    * ``InvalidTransitionError`` for any edge not in the table.
"""

from __future__ import annotations

from dataclasses import replace

from inbound_kernel.domain.audit import ReceiptStateChanged, new_audit_event
from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.models import Receipt
from inbound_kernel.domain.values import Actor, ReceiptState, RefType, UnitState
from inbound_kernel.domain.workflow import Guard, Transition, Workflow
from inbound_kernel.exceptions import InvalidTransitionError
from inbound_kernel.logging_config import get_logger, log_context

logger = get_logger("domain.receipt_workflow")

S = ReceiptState

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

CLOSURE_READY = Guard(
    name="closure_ready",
    description="Closure validation passes and all five preconditions are met",
)

# -----------------------------------------------------------------------------
# Receipt Workflow
# -----------------------------------------------------------------------------

RECEIPT_WORKFLOW = Workflow(
    name="inbound_receipt",
    description="Inbound receipt lifecycle from intake to close",
    initial_state=S.DRAFT,
    states=tuple(ReceiptState),
    transitions=(
        Transition(S.DRAFT, S.RECEIVING, action="start_receiving"),
        Transition(S.RECEIVING, S.SERIALIZATION_IN_PROGRESS, action="begin_serialization"),
        Transition(S.SERIALIZATION_IN_PROGRESS, S.QC_PENDING, action="submit_for_qc"),
        Transition(S.QC_PENDING, S.ACCEPTED, action="accept"),
        Transition(S.QC_PENDING, S.PARTIAL_ACCEPTED, action="partial_accept"),
        Transition(S.QC_PENDING, S.REJECTED, action="reject"),
        Transition(S.ACCEPTED, S.PUTAWAY_IN_PROGRESS, action="start_putaway"),
        Transition(S.PARTIAL_ACCEPTED, S.PUTAWAY_IN_PROGRESS, action="start_putaway"),
        Transition(S.REJECTED, S.CLOSED, action="close_and_return"),
        Transition(S.PUTAWAY_IN_PROGRESS, S.PUTAWAY_COMPLETE, action="complete_putaway"),
        Transition(S.PUTAWAY_COMPLETE, S.CLOSED, action="close", guard=CLOSURE_READY),
    ),
    terminal_states=(S.CLOSED,),
)

ALLOWED_RECEIPT_TRANSITIONS = RECEIPT_WORKFLOW.allowed_targets()

# Happy-path progression, used for progress display.
RECEIPT_STATE_ORDER: tuple[ReceiptState, ...] = (
    S.DRAFT,
    S.RECEIVING,
    S.SERIALIZATION_IN_PROGRESS,
    S.QC_PENDING,
    S.ACCEPTED,
    S.PUTAWAY_IN_PROGRESS,
    S.PUTAWAY_COMPLETE,
    S.CLOSED,
)

_NEXT_ACTION_LABELS: dict[ReceiptState, str] = {
    S.DRAFT: "Start Receiving",
    S.RECEIVING: "Begin Serialization",
    S.SERIALIZATION_IN_PROGRESS: "Submit for QC",
    S.QC_PENDING: "Record Decision",
    S.ACCEPTED: "Start Putaway",
    S.PARTIAL_ACCEPTED: "Start Putaway",
    S.REJECTED: "Close & Return",
    S.PUTAWAY_IN_PROGRESS: "Complete Putaway",
    S.PUTAWAY_COMPLETE: "Close Receipt",
    S.CLOSED: "Archived",
}

logger.info(
    "receipt_workflow_registered",
    extra={
        "workflow_name": RECEIPT_WORKFLOW.name,
        "state_count": len(RECEIPT_WORKFLOW.states),
        "transition_count": len(RECEIPT_WORKFLOW.transitions),
        "initial_state": RECEIPT_WORKFLOW.initial_state,
    },
)


def can_transition_receipt(from_state: ReceiptState, to_state: ReceiptState) -> bool:
    return to_state in ALLOWED_RECEIPT_TRANSITIONS.get(from_state, ())


def next_action_label(state: ReceiptState) -> str:
    """Short label for the primary action available in ``state``."""
    return _NEXT_ACTION_LABELS.get(state, "")


def transition(
    receipt: Receipt,
    to: ReceiptState,
    actor: Actor,
    *,
    note: str | None = None,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    """
    Move ``receipt`` to ``to``.

    Returns a new receipt with the new state and one STATE_CHANGE event
    prepended.  The input is left untouched.

    Raises:
        InvalidTransitionError: ``to`` is not allowed from ``receipt.state``.
    """
    from_state = receipt.state
    if not can_transition_receipt(from_state, to):
        with log_context(receipt=receipt, actor=actor):
            logger.warning("receipt_transition_rejected", extra={"to_state": to})
        raise InvalidTransitionError(RefType.RECEIPT.value, receipt.id, from_state.value, to.value)

    message = f"Transitioned from {from_state.value} to {to.value}"
    if note:
        message = f"{message}: {note}"
    event = new_audit_event(
        actor,
        RefType.RECEIPT,
        receipt.id,
        message,
        ReceiptStateChanged(from_state=from_state, to_state=to, note=note),
        clock,
    )

    with log_context(receipt=receipt, actor=actor):
        logger.info("receipt_transitioned", extra={"from_state": from_state, "to_state": to})
    return replace(receipt, state=to).with_audit(event)


def compute_qc_outcome(receipt: Receipt) -> ReceiptState:
    """
    Pick the branch out of QC_PENDING from unit outcomes.

    T counts units on TRACKABLE lines, A those ACCEPTED, R those REJECTED:
    T = 0 -> ACCEPTED; R = T -> REJECTED; A = T -> ACCEPTED; otherwise
    PARTIAL_ACCEPTED.
    """
    units = list(receipt.trackable_units())
    total = len(units)
    if total == 0:
        return S.ACCEPTED
    accepted = sum(1 for u in units if u.state is UnitState.ACCEPTED)
    rejected = sum(1 for u in units if u.state is UnitState.REJECTED)
    if rejected == total:
        return S.REJECTED
    if accepted == total:
        return S.ACCEPTED
    return S.PARTIAL_ACCEPTED
