"""
Receiving Service (``inbound_services.receiving_service``).

Responsibility
--------------
The calling layer around the pure kernel.  Every public operation takes
the receipt's lock, reads the receipt from the store, authorizes the caller
for the operation's action, applies exactly one logical operation through
kernel functions, and writes the whole receipt back.

Architecture position
---------------------
**Services layer**.  The only place that holds a store, a lock, or the
outbound log.  Kernel functions stay pure and never see any of them.

Invariants enforced
-------------------
* One logical operation in flight per receipt id; different receipts never
  wait on each other.
* Serial generation checks duplicates against the receipt read under the
  lock, never a stale copy.
* Nothing is written unless the operation succeeded (or, for
  ``run_validation``, recorded its run).
* Closing from PUTAWAY_COMPLETE requires structural validation, closure
  validation and all five preconditions.
* The outbound contract is published only after the CLOSED receipt is
  stored.
* Leaving QC_PENDING always lands on the branch the unit outcomes select.

Failure modes
-------------
* Unknown receipt id  -> ``ReceivingStatus.NOT_FOUND``.
* Role not allowed  -> ``ReceivingStatus.NOT_PERMITTED``.
* Business failures  -> ``VALIDATION_FAILED`` / ``PRECONDITIONS_NOT_MET``
  with the errors or preconditions attached.
* Protocol errors (``InvalidTransitionError``, ``MissingReasonError``,
  ``DuplicateSerialError``, ...)  -> propagate; the store is untouched.

Usage::

    config = get_active_config()
    backend = DictKeyValueBackend()
    service = ReceivingService(
        KeyValueReceiptStore(backend, config.inbound_namespace),
        OutboundContractLog(backend, config.outbound_namespace),
        config,
    )
    result = service.create_receipt_from_order(Actor("STORES"), "PO-2026-8821")
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from inbound_config.schema import InboundConfig
from inbound_kernel.domain.audit import OutboundEmitted, new_audit_event
from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.models import Receipt
from inbound_kernel.domain.preconditions import (
    Precondition,
    PreconditionKey,
    all_met,
    evaluate_preconditions,
)
from inbound_kernel.domain.rbac import InboundAction, authorize
from inbound_kernel.domain.receipt_ops import (
    add_attachment,
    add_line,
    apply_unit_change,
    new_line,
    record_validation_run,
    update_line,
    update_receipt_fields,
)
from inbound_kernel.domain.receipt_workflow import compute_qc_outcome, transition
from inbound_kernel.domain.serials import append_generated_units, next_free_sequence
from inbound_kernel.domain.unit_workflow import (
    assign_putaway,
    print_label,
    record_supplier_serial,
    reprint_label,
    transition_unit,
    void_label,
)
from inbound_kernel.domain.validation import (
    ValidationError,
    validate_closure,
    validate_receipt,
)
from inbound_kernel.domain.values import (
    Actor,
    AttachmentType,
    ItemCategory,
    ItemTrackability,
    LabelStatus,
    PutawayLocation,
    QcDecision,
    ReceiptState,
    RefType,
    SerialMode,
    UnitState,
)
from inbound_kernel.exceptions import InvalidGenerationRequestError, ReceiptNotFoundError
from inbound_kernel.logging_config import get_logger, log_context
from inbound_services.intake import (
    OpenOrder,
    StaticSupplyDirectory,
    Supplier,
    SupplyDirectory,
    new_manual_receipt,
    new_receipt_from_order,
    next_receipt_code,
)
from inbound_services.outbound import OutboundContract, OutboundContractLog, build_outbound_contract
from inbound_services.store import ReceiptStore

logger = get_logger("services.receiving")

S = ReceiptState


class ReceivingStatus(str, Enum):
    """Status of a receiving operation."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    NOT_PERMITTED = "not_permitted"
    VALIDATION_FAILED = "validation_failed"
    PRECONDITIONS_NOT_MET = "preconditions_not_met"


@dataclass(frozen=True)
class ReceivingResult:
    """Result of a receiving operation."""

    status: ReceivingStatus
    receipt: Receipt | None = None
    errors: tuple[ValidationError, ...] = ()
    preconditions: tuple[Precondition, ...] = ()
    contract: OutboundContract | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status is ReceivingStatus.SUCCESS


# Action checked for a manual advance, keyed by target state.
ADVANCE_ACTIONS: dict[ReceiptState, InboundAction] = {
    S.RECEIVING: InboundAction.EDIT_RECEIPT,
    S.SERIALIZATION_IN_PROGRESS: InboundAction.ASSIGN_SERIALS,
    S.QC_PENDING: InboundAction.ASSIGN_SERIALS,
    S.ACCEPTED: InboundAction.QC_DECIDE,
    S.PARTIAL_ACCEPTED: InboundAction.QC_DECIDE,
    S.REJECTED: InboundAction.QC_DECIDE,
    S.PUTAWAY_IN_PROGRESS: InboundAction.PUTAWAY,
    S.PUTAWAY_COMPLETE: InboundAction.PUTAWAY,
    S.CLOSED: InboundAction.CLOSE_RECEIPT,
}

QC_OUTCOME_STATES = frozenset({S.ACCEPTED, S.PARTIAL_ACCEPTED, S.REJECTED})

_DECISION_STATES: dict[QcDecision, UnitState] = {
    QcDecision.ACCEPT: UnitState.ACCEPTED,
    QcDecision.HOLD: UnitState.QC_HOLD,
    QcDecision.REJECT: UnitState.REJECTED,
}

# An operation gets the just-read receipt and returns its result.  The
# result's receipt is written back iff it is a new object.
Operation = Callable[[Receipt], ReceivingResult]


def _ok(receipt: Receipt, **kwargs: Any) -> ReceivingResult:
    return ReceivingResult(ReceivingStatus.SUCCESS, receipt, **kwargs)


class ReceivingService:
    """
    Serializes operations per receipt and drives the kernel.

    Contract
    --------
    * Every mutating method returns ``ReceivingResult``.
    * Read-only helpers (``get``, ``list``, ``preconditions``) never write.

    Guarantees
    ----------
    * Clock is injectable for deterministic testing.
    * On success the stored receipt equals ``result.receipt``.
    """

    def __init__(
        self,
        store: ReceiptStore,
        outbound_log: OutboundContractLog,
        config: InboundConfig | None = None,
        *,
        directory: SupplyDirectory | None = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self._store = store
        self._outbound = outbound_log
        self._config = config or InboundConfig()
        self._directory = directory or StaticSupplyDirectory.from_config(self._config)
        self._clock = clock
        # Entries vanish once no operation holds the lock.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()
        self._create_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _receipt_lock(self, receipt_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(receipt_id, threading.Lock())
        with lock:
            yield

    def _authorized(
        self,
        actor: Actor,
        action: InboundAction,
        state: ReceiptState | None,
    ) -> bool:
        return authorize(actor.role, action, state, aliases=self._config.role_aliases)

    def _not_permitted(
        self,
        actor: Actor,
        action: InboundAction,
        receipt: Receipt | None,
    ) -> ReceivingResult:
        logger.info("receiving_not_permitted", extra={"action": action})
        return ReceivingResult(
            ReceivingStatus.NOT_PERMITTED,
            receipt,
            message=f"{actor.role} may not {action.value}",
        )

    def _run(
        self,
        operation_name: str,
        receipt_id: str,
        actor: Actor,
        action: InboundAction,
        operation: Operation,
    ) -> ReceivingResult:
        with self._receipt_lock(receipt_id), log_context(
            receipt_id=receipt_id, actor=actor, operation=operation_name
        ):
            receipt = self._store.get(receipt_id)
            if receipt is None:
                logger.info("receipt_not_found")
                return ReceivingResult(
                    ReceivingStatus.NOT_FOUND, message=f"Receipt {receipt_id} not found"
                )
            with log_context(receipt=receipt):
                if not self._authorized(actor, action, receipt.state):
                    return self._not_permitted(actor, action, receipt)

                logger.debug("receiving_operation_started")
                result = operation(receipt)
                if result.receipt is not None and result.receipt is not receipt:
                    self._store.upsert(result.receipt)
                if result.contract is not None:
                    self._outbound.save(result.contract)
                logger.info(
                    "receiving_operation_completed",
                    extra={
                        "status": result.status,
                        "new_state": result.receipt.state if result.receipt else None,
                    },
                )
                return result

    def _validation_failed(self, receipt: Receipt, errors) -> ReceivingResult:
        return ReceivingResult(
            ReceivingStatus.VALIDATION_FAILED,
            receipt,
            errors=tuple(errors),
            message="; ".join(e.message for e in errors),
        )

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    def get(self, receipt_id: str) -> Receipt | None:
        return self._store.get(receipt_id)

    def list(self) -> list[Receipt]:
        return self._store.list()

    def get_active(self) -> Receipt | None:
        return self._store.get_active()

    def set_active(self, receipt_id: str | None) -> None:
        """Point the active receipt at ``receipt_id`` (None clears it)."""
        if receipt_id is not None and self._store.get(receipt_id) is None:
            raise ReceiptNotFoundError(receipt_id)
        self._store.set_active(receipt_id)

    def list_open_orders(self) -> list[OpenOrder]:
        return self._directory.list_open_orders()

    def list_suppliers(self) -> list[Supplier]:
        return self._directory.list_suppliers()

    def preconditions(self, receipt_id: str) -> ReceivingResult:
        receipt = self._store.get(receipt_id)
        if receipt is None:
            return ReceivingResult(ReceivingStatus.NOT_FOUND, message=f"Receipt {receipt_id} not found")
        preconditions = evaluate_preconditions(receipt)
        status = (
            ReceivingStatus.SUCCESS if all_met(preconditions)
            else ReceivingStatus.PRECONDITIONS_NOT_MET
        )
        return ReceivingResult(status, receipt, preconditions=preconditions)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def _create(self, actor: Actor, build: Callable[[str], Receipt]) -> ReceivingResult:
        with log_context(actor=actor, operation="create_receipt"):
            if not self._authorized(actor, InboundAction.CREATE_RECEIPT, None):
                return self._not_permitted(actor, InboundAction.CREATE_RECEIPT, None)
            with self._create_lock:
                code = next_receipt_code(
                    (r.code for r in self._store.list()),
                    self._clock.now().year,
                    self._config.receipt_code_prefix,
                )
                receipt = build(code)
                self._store.upsert(receipt)
            logger.info("receipt_stored", extra={"receipt_code": receipt.code})
        return _ok(receipt)

    def create_manual_receipt(
        self,
        actor: Actor,
        *,
        supplier_id: str | None = None,
        invoice_no: str | None = None,
        invoice_date: date | None = None,
        notes: str | None = None,
    ) -> ReceivingResult:
        return self._create(
            actor,
            lambda code: new_manual_receipt(
                code,
                actor,
                supplier_id=supplier_id,
                invoice_no=invoice_no,
                invoice_date=invoice_date,
                notes=notes,
                clock=self._clock,
            ),
        )

    def create_receipt_from_order(self, actor: Actor, po_id: str) -> ReceivingResult:
        order = self._directory.find_order(po_id)
        if order is None:
            return ReceivingResult(
                ReceivingStatus.NOT_FOUND, message=f"Open order {po_id} not found"
            )
        return self._create(
            actor,
            lambda code: new_receipt_from_order(order, code, actor, clock=self._clock),
        )

    # ------------------------------------------------------------------
    # Receipt edits
    # ------------------------------------------------------------------

    def edit_receipt(self, receipt_id: str, actor: Actor, **changes: Any) -> ReceivingResult:
        return self._run(
            "edit_receipt",
            receipt_id,
            actor,
            InboundAction.EDIT_RECEIPT,
            lambda r: _ok(update_receipt_fields(r, actor, clock=self._clock, **changes)),
        )

    def add_line(
        self,
        receipt_id: str,
        actor: Actor,
        item_name: str,
        category: ItemCategory,
        *,
        trackability: ItemTrackability | None = None,
        qty_expected: int | None = None,
        qty_received: int = 0,
        sku_id: str | None = None,
        lot_ref: str | None = None,
        mfg_date: date | None = None,
        exp_date: date | None = None,
    ) -> ReceivingResult:
        def operation(receipt: Receipt) -> ReceivingResult:
            line = new_line(
                receipt.id,
                item_name,
                category,
                trackability=trackability,
                qty_expected=qty_expected,
                qty_received=qty_received,
                sku_id=sku_id,
                lot_ref=lot_ref,
                mfg_date=mfg_date,
                exp_date=exp_date,
            )
            return _ok(add_line(receipt, line, actor, clock=self._clock))

        return self._run("add_line", receipt_id, actor, InboundAction.EDIT_RECEIPT, operation)

    def update_line(
        self,
        receipt_id: str,
        line_id: str,
        actor: Actor,
        **changes: Any,
    ) -> ReceivingResult:
        return self._run(
            "update_line",
            receipt_id,
            actor,
            InboundAction.EDIT_RECEIPT,
            lambda r: _ok(update_line(r, line_id, actor, clock=self._clock, **changes)),
        )

    def add_attachment(
        self,
        receipt_id: str,
        actor: Actor,
        attachment_type: AttachmentType,
        filename: str,
        *,
        notes: str | None = None,
    ) -> ReceivingResult:
        return self._run(
            "add_attachment",
            receipt_id,
            actor,
            InboundAction.EDIT_RECEIPT,
            lambda r: _ok(
                add_attachment(r, attachment_type, filename, actor, notes=notes, clock=self._clock)
            ),
        )

    def run_validation(self, receipt_id: str, actor: Actor) -> ReceivingResult:
        """Validate and record a VALIDATION_RUN event, pass or fail."""

        def operation(receipt: Receipt) -> ReceivingResult:
            result = validate_receipt(receipt, actor.role, aliases=self._config.role_aliases)
            updated = record_validation_run(receipt, result, actor, clock=self._clock)
            if result.ok:
                return _ok(updated)
            return self._validation_failed(updated, result.errors)

        return self._run(
            "run_validation", receipt_id, actor, InboundAction.EDIT_RECEIPT, operation
        )

    # ------------------------------------------------------------------
    # Serialization and labels
    # ------------------------------------------------------------------

    def generate_serials(
        self,
        receipt_id: str,
        line_id: str,
        actor: Actor,
        count: int,
        *,
        start_sequence: int | None = None,
        mode: SerialMode = SerialMode.RANGE,
    ) -> ReceivingResult:
        """
        Append ``count`` units to a trackable line.

        Without ``start_sequence`` numbering continues after the highest
        sequence already on the receipt for the line's serial type.
        """

        def operation(receipt: Receipt) -> ReceivingResult:
            line = receipt.find_line(line_id)
            if not line.is_trackable:
                raise InvalidGenerationRequestError(line_id, "line is not trackable")
            seed = start_sequence
            if seed is None:
                seed = next_free_sequence(receipt, line.category, self._config.serial_prefix)
            updated = append_generated_units(
                receipt,
                line_id,
                count,
                seed,
                mode,
                actor,
                prefix=self._config.serial_prefix,
                pool_offset=self._config.pool_offset,
                clock=self._clock,
            )
            return _ok(updated)

        return self._run(
            "generate_serials", receipt_id, actor, InboundAction.ASSIGN_SERIALS, operation
        )

    def print_labels(
        self,
        receipt_id: str,
        actor: Actor,
        unit_ids: tuple[str, ...] | None = None,
        *,
        reprint: bool = False,
    ) -> ReceivingResult:
        """
        Print (or reprint) labels and move CREATED units to LABELED.

        Without ``unit_ids`` every unit whose label is due is printed:
        NOT_PRINTED ones for a first print, PRINTED ones for a reprint.
        """

        def operation(receipt: Receipt) -> ReceivingResult:
            if unit_ids is None:
                due = LabelStatus.PRINTED if reprint else LabelStatus.NOT_PRINTED
                targets = [u.id for u in receipt.trackable_units() if u.label_status is due]
            else:
                targets = list(unit_ids)

            updated = receipt
            for unit_id in targets:
                unit = updated.find_unit(unit_id)
                printer = reprint_label if reprint else print_label
                change = printer(unit, actor, clock=self._clock)
                updated = apply_unit_change(updated, change)
                if change.unit.state is UnitState.CREATED:
                    updated = apply_unit_change(
                        updated,
                        transition_unit(change.unit, UnitState.LABELED, actor, clock=self._clock),
                    )
            return _ok(updated, message=f"{len(targets)} label(s) printed")

        return self._run("print_labels", receipt_id, actor, InboundAction.PRINT_LABELS, operation)

    def void_label(self, receipt_id: str, unit_id: str, actor: Actor) -> ReceivingResult:
        return self._run(
            "void_label",
            receipt_id,
            actor,
            InboundAction.PRINT_LABELS,
            lambda r: _ok(
                apply_unit_change(r, void_label(r.find_unit(unit_id), actor, clock=self._clock))
            ),
        )

    def scan_unit(
        self,
        receipt_id: str,
        unit_id: str,
        actor: Actor,
        supplier_serial_ref: str | None = None,
    ) -> ReceivingResult:
        """LABELED -> SCANNED, recording the vendor barcode when one was read."""

        def operation(receipt: Receipt) -> ReceivingResult:
            change = transition_unit(
                receipt.find_unit(unit_id), UnitState.SCANNED, actor, clock=self._clock
            )
            updated = apply_unit_change(receipt, change)
            if supplier_serial_ref and supplier_serial_ref.strip():
                updated = apply_unit_change(
                    updated,
                    record_supplier_serial(
                        change.unit, supplier_serial_ref, actor, clock=self._clock
                    ),
                )
            return _ok(updated)

        return self._run("scan_unit", receipt_id, actor, InboundAction.ASSIGN_SERIALS, operation)

    def verify_unit(self, receipt_id: str, unit_id: str, actor: Actor) -> ReceivingResult:
        return self._run(
            "verify_unit",
            receipt_id,
            actor,
            InboundAction.ASSIGN_SERIALS,
            lambda r: _ok(
                apply_unit_change(
                    r,
                    transition_unit(
                        r.find_unit(unit_id), UnitState.VERIFIED, actor, clock=self._clock
                    ),
                )
            ),
        )

    # ------------------------------------------------------------------
    # QC
    # ------------------------------------------------------------------

    def decide_unit(
        self,
        receipt_id: str,
        unit_id: str,
        actor: Actor,
        decision: QcDecision,
        reason: str | None = None,
    ) -> ReceivingResult:
        to = _DECISION_STATES[decision]
        return self._run(
            "decide_unit",
            receipt_id,
            actor,
            InboundAction.QC_DECIDE,
            lambda r: _ok(
                apply_unit_change(
                    r,
                    transition_unit(r.find_unit(unit_id), to, actor, reason, clock=self._clock),
                )
            ),
        )

    def record_qc_outcome(
        self,
        receipt_id: str,
        actor: Actor,
        note: str | None = None,
    ) -> ReceivingResult:
        """
        Leave QC_PENDING for the branch the unit outcomes select.

        Refused while a verified unit still waits for a decision.
        """

        def operation(receipt: Receipt) -> ReceivingResult:
            validation = validate_receipt(receipt, actor.role, aliases=self._config.role_aliases)
            if not validation.ok:
                return self._validation_failed(receipt, validation.errors)
            return self._leave_qc(receipt, actor, note)

        return self._run(
            "record_qc_outcome", receipt_id, actor, InboundAction.QC_DECIDE, operation
        )

    def _leave_qc(
        self,
        receipt: Receipt,
        actor: Actor,
        note: str | None,
        requested: ReceiptState | None = None,
    ) -> ReceivingResult:
        preconditions = evaluate_preconditions(receipt)
        qc = next(p for p in preconditions if p.key is PreconditionKey.QC_COMPLETION)
        if not qc.is_met:
            return ReceivingResult(
                ReceivingStatus.PRECONDITIONS_NOT_MET,
                receipt,
                preconditions=(qc,),
                message=qc.description,
            )
        outcome = compute_qc_outcome(receipt)
        if requested is not None and requested is not outcome:
            logger.info(
                "qc_outcome_mismatch",
                extra={"requested": requested, "outcome": outcome},
            )
            return ReceivingResult(
                ReceivingStatus.PRECONDITIONS_NOT_MET,
                receipt,
                preconditions=(qc,),
                message=f"Unit decisions select {outcome.value}, not {requested.value}",
            )
        return _ok(transition(receipt, outcome, actor, note=note, clock=self._clock))

    # ------------------------------------------------------------------
    # Putaway
    # ------------------------------------------------------------------

    def assign_putaway(
        self,
        receipt_id: str,
        unit_id: str,
        actor: Actor,
        *,
        warehouse: str | None = None,
        zone: str | None = None,
        bin: str | None = None,
    ) -> ReceivingResult:
        location = PutawayLocation(warehouse=warehouse, zone=zone, bin=bin)
        return self._run(
            "assign_putaway",
            receipt_id,
            actor,
            InboundAction.PUTAWAY,
            lambda r: _ok(
                apply_unit_change(
                    r, assign_putaway(r.find_unit(unit_id), location, actor, clock=self._clock)
                )
            ),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def advance(
        self,
        receipt_id: str,
        actor: Actor,
        to: ReceiptState,
        note: str | None = None,
    ) -> ReceivingResult:
        """
        Move the receipt to ``to`` after structural validation.

        Raises:
            InvalidTransitionError: ``to`` is not reachable from the
                current state.
        """
        action = ADVANCE_ACTIONS.get(to)
        if action is None:
            raise ValueError(f"{to.value} cannot be the target of an advance")

        def operation(receipt: Receipt) -> ReceivingResult:
            validation = validate_receipt(receipt, actor.role, aliases=self._config.role_aliases)
            if not validation.ok:
                return self._validation_failed(receipt, validation.errors)
            if to is S.CLOSED:
                return self._close(receipt, actor, note)
            if receipt.state is S.QC_PENDING and to in QC_OUTCOME_STATES:
                return self._leave_qc(receipt, actor, note, requested=to)
            return _ok(transition(receipt, to, actor, note=note, clock=self._clock))

        return self._run(f"advance_to_{to.value.lower()}", receipt_id, actor, action, operation)

    def close_receipt(
        self,
        receipt_id: str,
        actor: Actor,
        note: str | None = None,
    ) -> ReceivingResult:
        return self.advance(receipt_id, actor, S.CLOSED, note)

    def _close(self, receipt: Receipt, actor: Actor, note: str | None) -> ReceivingResult:
        if receipt.state is S.PUTAWAY_COMPLETE:
            closure = validate_closure(receipt)
            if not closure.ok:
                return self._validation_failed(receipt, closure.errors)
            preconditions = evaluate_preconditions(receipt)
            if not all_met(preconditions):
                pending = [p for p in preconditions if not p.is_met]
                return ReceivingResult(
                    ReceivingStatus.PRECONDITIONS_NOT_MET,
                    receipt,
                    preconditions=preconditions,
                    message="; ".join(f"{p.label}: {p.description}" for p in pending),
                )

        closed = transition(receipt, S.CLOSED, actor, note=note, clock=self._clock)
        contract = build_outbound_contract(closed, self._config.plant_id, self._clock.now())
        emitted = new_audit_event(
            actor,
            RefType.RECEIPT,
            closed.id,
            f"Outbound contract emitted for {closed.code} ({contract.total_units} units)",
            OutboundEmitted(plant_id=contract.plant_id, total_units=contract.total_units),
            self._clock,
        )
        closed = closed.with_audit(emitted)
        return _ok(closed, contract=contract)
