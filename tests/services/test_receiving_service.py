"""
ReceivingService: per-receipt read/authorize/apply/write cycle, result
statuses, the close gate, and outbound emission.
"""

import gc
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from inbound_kernel.domain.preconditions import PreconditionKey
from inbound_kernel.domain.validation import ValidationCode
from inbound_kernel.domain.values import (
    AttachmentType,
    ItemCategory,
    LabelStatus,
    QcDecision,
    ReceiptState,
    SerialMode,
    UnitState,
)
from inbound_kernel.exceptions import (
    DuplicateSerialError,
    InvalidGenerationRequestError,
    InvalidTransitionError,
    MissingReasonError,
    ReceiptClosedError,
    ReceiptNotFoundError,
)
from inbound_services.receiving_service import ReceivingStatus

S = ReceiptState


def _ok(result):
    assert result.status is ReceivingStatus.SUCCESS, result.message
    return result.receipt


@pytest.fixture
def draft(service, operator):
    """A manual DRAFT receipt with one CELL line of three received units."""
    receipt = _ok(service.create_manual_receipt(operator, supplier_id="sup-001", invoice_no="INV-77"))
    receipt = _ok(
        service.add_line(
            receipt.id,
            operator,
            "LFP Cell 21700-50Ah",
            ItemCategory.CELL,
            qty_expected=3,
            qty_received=3,
            sku_id="SKU-CELL-01",
            lot_ref="LOT-A1",
        )
    )
    return receipt


@pytest.fixture
def verified(service, operator, draft):
    """The draft, serialized, labelled, scanned and verified; in QC_PENDING."""
    rid = draft.id
    line_id = draft.lines[0].id
    _ok(service.advance(rid, operator, S.RECEIVING))
    _ok(service.advance(rid, operator, S.SERIALIZATION_IN_PROGRESS))
    receipt = _ok(service.generate_serials(rid, line_id, operator, 3))
    _ok(service.print_labels(rid, operator))
    for n, unit in enumerate(receipt.find_line(line_id).units, start=1):
        _ok(service.scan_unit(rid, unit.id, operator, supplier_serial_ref=f"SUP-{n}"))
        _ok(service.verify_unit(rid, unit.id, operator))
    return _ok(service.advance(rid, operator, S.QC_PENDING))


@pytest.fixture
def putaway_complete(service, operator, quality, verified):
    rid = verified.id
    units = list(verified.all_units())
    _ok(service.decide_unit(rid, units[0].id, quality, QcDecision.ACCEPT))
    _ok(service.decide_unit(rid, units[1].id, quality, QcDecision.ACCEPT))
    _ok(service.decide_unit(rid, units[2].id, quality, QcDecision.REJECT, "Dented can"))
    _ok(service.record_qc_outcome(rid, quality))
    _ok(service.advance(rid, operator, S.PUTAWAY_IN_PROGRESS))
    for unit in units:
        _ok(service.assign_putaway(rid, unit.id, operator, warehouse="WH-1", zone="Z1", bin="A-02"))
    return _ok(service.advance(rid, operator, S.PUTAWAY_COMPLETE))


# =============================================================================
# Intake
# =============================================================================


class TestIntake:
    def test_manual_receipt_codes_increment(self, service, operator, store):
        first = _ok(service.create_manual_receipt(operator))
        second = _ok(service.create_manual_receipt(operator))
        assert first.code == "GRN-2026-0001"
        assert second.code == "GRN-2026-0002"
        assert store.get_active_id() == first.id
        assert [r.id for r in service.list()] == [first.id, second.id]

    def test_receipt_from_order(self, service, operator):
        receipt = _ok(service.create_receipt_from_order(operator, "PO-2026-8821"))
        assert receipt.po_id == "PO-2026-8821"
        assert receipt.supplier_id == "sup-001"
        assert receipt.state is S.DRAFT
        cells, pads = receipt.lines
        assert cells.qty_expected == 5000
        assert cells.qty_received == 0
        assert cells.sku_id == "SKU-CELL-01"
        assert cells.is_trackable
        assert not pads.is_trackable
        assert receipt.audit[0].detail.source == "PO"

    def test_unknown_order(self, service, operator):
        result = service.create_receipt_from_order(operator, "PO-0000")
        assert result.status is ReceivingStatus.NOT_FOUND
        assert service.list() == []

    def test_viewer_cannot_create(self, service, viewer):
        result = service.create_manual_receipt(viewer)
        assert result.status is ReceivingStatus.NOT_PERMITTED
        assert service.list() == []

    def test_directory_listings(self, service):
        assert [o.po_id for o in service.list_open_orders()] == [
            "PO-2026-8821",
            "PO-2026-8825",
            "PO-2026-8830",
        ]
        assert len(service.list_suppliers()) == 5


# =============================================================================
# Guarding: not found, not permitted, protocol errors
# =============================================================================


class TestGuards:
    def test_unknown_receipt(self, service, operator):
        result = service.edit_receipt("rcpt-missing", operator, notes="x")
        assert result.status is ReceivingStatus.NOT_FOUND
        assert result.receipt is None
        assert not result.is_success

    def test_viewer_cannot_edit(self, service, viewer, draft, store):
        result = service.edit_receipt(draft.id, viewer, notes="hi")
        assert result.status is ReceivingStatus.NOT_PERMITTED
        assert store.get(draft.id) == draft

    def test_operator_cannot_decide(self, service, operator, verified, store):
        unit = next(verified.all_units())
        result = service.decide_unit(verified.id, unit.id, operator, QcDecision.ACCEPT)
        assert result.status is ReceivingStatus.NOT_PERMITTED
        assert store.get(verified.id).find_unit(unit.id).state is UnitState.VERIFIED

    def test_quality_cannot_generate(self, service, quality, draft):
        result = service.generate_serials(draft.id, draft.lines[0].id, quality, 1)
        assert result.status is ReceivingStatus.NOT_PERMITTED

    def test_invalid_transition_leaves_store(self, service, operator, draft, store):
        with pytest.raises(InvalidTransitionError):
            service.advance(draft.id, operator, S.QC_PENDING)
        assert store.get(draft.id) == draft

    def test_draft_is_not_an_advance_target(self, service, operator, draft):
        with pytest.raises(ValueError):
            service.advance(draft.id, operator, S.DRAFT)

    def test_missing_reason_propagates(self, service, quality, verified, store):
        unit = next(verified.all_units())
        with pytest.raises(MissingReasonError):
            service.decide_unit(verified.id, unit.id, quality, QcDecision.HOLD, "  ")
        assert store.get(verified.id) == verified

    def test_operations_logged_with_context(self, service, operator, draft, captured_logs):
        service.edit_receipt(draft.id, operator, notes="Pallet 2 of 3")
        completed = [r for r in captured_logs() if r["event"] == "receiving_operation_completed"]
        assert completed
        assert completed[-1]["receipt_id"] == draft.id
        assert completed[-1]["actor_role"] == "STORES"
        assert completed[-1]["status"] == "success"


# =============================================================================
# Edits and validation
# =============================================================================


class TestEdits:
    def test_edit_and_attach(self, service, operator, draft, store):
        edited = _ok(service.edit_receipt(draft.id, operator, packing_list_ref="PL-9"))
        attached = _ok(service.add_attachment(draft.id, operator, AttachmentType.PACKING_LIST, "pl.pdf"))
        assert attached.packing_list_ref == "PL-9"
        assert attached.attachments[0].filename == "pl.pdf"
        assert store.get(draft.id) == attached
        assert edited.audit[0].event_type == "RECEIPT_EDITED"

    def test_noop_edit_writes_nothing(self, service, operator, draft, store):
        result = service.edit_receipt(draft.id, operator, supplier_id="sup-001")
        assert result.receipt is draft
        assert store.get(draft.id) is draft

    def test_update_line(self, service, operator, draft):
        line_id = draft.lines[0].id
        updated = _ok(service.update_line(draft.id, line_id, operator, qty_received=2))
        assert updated.find_line(line_id).qty_received == 2

    def test_run_validation_records_failure(self, service, operator, store):
        receipt = _ok(service.create_manual_receipt(operator))
        result = service.run_validation(receipt.id, operator)
        assert result.status is ReceivingStatus.VALIDATION_FAILED
        assert [e.code for e in result.errors] == [ValidationCode.MISSING_SUPPLIER]
        stored = store.get(receipt.id)
        assert stored.audit[0].event_type == "VALIDATION_RUN"
        assert stored.audit[0].detail.ok is False

    def test_run_validation_records_pass(self, service, operator, draft, store):
        _ok(service.run_validation(draft.id, operator))
        assert store.get(draft.id).audit[0].detail.ok is True

    def test_over_receipt_blocks_operator_advance(self, service, operator, admin, draft, store):
        line_id = draft.lines[0].id
        _ok(service.update_line(draft.id, line_id, operator, qty_received=4))

        blocked = service.advance(draft.id, operator, S.RECEIVING)
        assert blocked.status is ReceivingStatus.VALIDATION_FAILED
        assert blocked.errors[0].code is ValidationCode.OVER_RECEIPT
        assert store.get(draft.id).state is S.DRAFT

        assert _ok(service.advance(draft.id, admin, S.RECEIVING)).state is S.RECEIVING


# =============================================================================
# Serialization and labels
# =============================================================================


class TestSerialization:
    def test_generation_continues_numbering(self, service, operator, draft):
        line_id = draft.lines[0].id
        _ok(service.generate_serials(draft.id, line_id, operator, 2))
        receipt = _ok(service.generate_serials(draft.id, line_id, operator, 1))
        assert [u.enterprise_serial for u in receipt.all_units()] == [
            "BP-CEL-0000001",
            "BP-CEL-0000002",
            "BP-CEL-0000003",
        ]

    def test_pool_mode_uses_config_offset(self, service, operator, draft):
        receipt = _ok(
            service.generate_serials(
                draft.id, draft.lines[0].id, operator, 1, start_sequence=1000, mode=SerialMode.POOL
            )
        )
        assert next(receipt.all_units()).enterprise_serial == "BP-CEL-0006000"

    def test_collision_writes_nothing(self, service, operator, draft, store):
        line_id = draft.lines[0].id
        before = _ok(service.generate_serials(draft.id, line_id, operator, 3, start_sequence=10))
        with pytest.raises(DuplicateSerialError):
            service.generate_serials(draft.id, line_id, operator, 3, start_sequence=12)
        assert store.get(draft.id) == before

    def test_non_trackable_line_refused(self, service, operator, draft):
        receipt = _ok(service.add_line(draft.id, operator, "Thermal Pad", ItemCategory.MISC, qty_received=5))
        pad_line = receipt.lines[-1]
        with pytest.raises(InvalidGenerationRequestError):
            service.generate_serials(draft.id, pad_line.id, operator, 5)

    def test_concurrent_generation_never_duplicates(self, service, operator, draft):
        line_id = draft.lines[0].id
        with ThreadPoolExecutor(max_workers=5) as pool:
            results = list(
                pool.map(lambda _: service.generate_serials(draft.id, line_id, operator, 2), range(5))
            )
        assert all(r.is_success for r in results)
        serials = [u.enterprise_serial for u in service.get(draft.id).all_units()]
        assert len(serials) == 10
        assert len(set(serials)) == 10

    def test_receipt_locks_are_released(self, service, operator, draft):
        _ok(service.generate_serials(draft.id, draft.lines[0].id, operator, 1))
        gc.collect()
        assert draft.id not in service._locks

    def test_print_moves_created_to_labeled(self, service, operator, draft):
        _ok(service.generate_serials(draft.id, draft.lines[0].id, operator, 2))
        result = service.print_labels(draft.id, operator)
        receipt = _ok(result)
        assert result.message == "2 label(s) printed"
        for unit in receipt.all_units():
            assert unit.state is UnitState.LABELED
            assert unit.label_status is LabelStatus.PRINTED
            assert unit.printed_count == 1
        kinds = [e.event_type for e in receipt.audit[:4]]
        assert kinds.count("LABEL_PRINTED") == 2
        assert kinds.count("UNIT_STATE_CHANGED") == 2

    def test_reprint_and_void(self, service, operator, draft):
        _ok(service.generate_serials(draft.id, draft.lines[0].id, operator, 1))
        unit_id = next(_ok(service.print_labels(draft.id, operator)).all_units()).id

        reprinted = _ok(service.print_labels(draft.id, operator, (unit_id,), reprint=True))
        assert reprinted.find_unit(unit_id).printed_count == 2
        assert reprinted.find_unit(unit_id).state is UnitState.LABELED

        voided = _ok(service.void_label(draft.id, unit_id, operator))
        assert voided.find_unit(unit_id).label_status is LabelStatus.VOIDED

    def test_scan_records_supplier_serial(self, service, operator, verified):
        unit = next(verified.all_units())
        assert unit.supplier_serial_ref == "SUP-1"
        assert unit.state is UnitState.VERIFIED
        assert unit.verified_at is not None


# =============================================================================
# QC, putaway and close
# =============================================================================


class TestQcOutcome:
    def test_outcome_waits_for_all_decisions(self, service, quality, verified, store):
        unit = next(verified.all_units())
        _ok(service.decide_unit(verified.id, unit.id, quality, QcDecision.ACCEPT))
        result = service.record_qc_outcome(verified.id, quality)
        assert result.status is ReceivingStatus.PRECONDITIONS_NOT_MET
        assert result.preconditions[0].key is PreconditionKey.QC_COMPLETION
        assert store.get(verified.id).state is S.QC_PENDING

    def test_all_rejected_goes_to_rejected(self, service, quality, verified):
        for unit in verified.all_units():
            _ok(service.decide_unit(verified.id, unit.id, quality, QcDecision.REJECT, "Damaged"))
        assert _ok(service.record_qc_outcome(verified.id, quality)).state is S.REJECTED

    def test_hold_then_release(self, service, quality, verified):
        unit = next(verified.all_units())
        held = _ok(service.decide_unit(verified.id, unit.id, quality, QcDecision.HOLD, "Await COA"))
        assert held.find_unit(unit.id).qc_reason == "Await COA"
        released = _ok(service.decide_unit(verified.id, unit.id, quality, QcDecision.ACCEPT))
        assert released.find_unit(unit.id).qc_decision is QcDecision.ACCEPT

    def test_advance_follows_unit_outcomes(self, service, quality, verified, store):
        for unit in verified.all_units():
            _ok(service.decide_unit(verified.id, unit.id, quality, QcDecision.REJECT, "Swollen"))

        result = service.advance(verified.id, quality, S.ACCEPTED)
        assert result.status is ReceivingStatus.PRECONDITIONS_NOT_MET
        assert "REJECTED" in result.message
        assert store.get(verified.id).state is S.QC_PENDING

        assert _ok(service.advance(verified.id, quality, S.REJECTED)).state is S.REJECTED

    def test_advance_waits_for_decisions(self, service, quality, verified, store):
        result = service.advance(verified.id, quality, S.PARTIAL_ACCEPTED)
        assert result.status is ReceivingStatus.PRECONDITIONS_NOT_MET
        assert result.preconditions[0].key is PreconditionKey.QC_COMPLETION
        assert store.get(verified.id) == verified


class TestClose:
    def test_full_lifecycle(self, service, operator, putaway_complete, outbound_log, store):
        result = service.close_receipt(putaway_complete.id, operator, note="All good")
        closed = _ok(result)

        assert closed.state is S.CLOSED
        assert closed.audit[0].event_type == "OUTBOUND_EMITTED"
        assert closed.audit[1].detail.to_state is S.CLOSED
        assert store.get(closed.id) == closed

        contract = result.contract
        assert contract is not None
        assert len(contract.accepted_units) == 2
        assert len(contract.rejected_units) == 1
        assert contract.total_units == 3
        assert contract.plant_id == "FAC-WB-01"
        assert outbound_log.get(closed.id) == contract

    def test_closed_receipt_frozen_for_operator(self, service, operator, admin, putaway_complete):
        _ok(service.close_receipt(putaway_complete.id, operator))
        assert service.edit_receipt(putaway_complete.id, operator, notes="late").status is (
            ReceivingStatus.NOT_PERMITTED
        )
        with pytest.raises(ReceiptClosedError):
            service.edit_receipt(putaway_complete.id, admin, notes="late")

    def test_ready_receipt_closes(self, service, operator, put_receipt, ready_to_close, outbound_log):
        put_receipt(ready_to_close)
        result = service.close_receipt(ready_to_close.id, operator)
        assert _ok(result).state is S.CLOSED
        assert result.contract.total_units == 5
        assert len(result.contract.qc_hold_units) == 1
        assert [c.receipt_id for c in outbound_log.list()] == [ready_to_close.id]

    def test_closure_gap_blocks(self, service, operator, put_receipt, ready_to_close, store, outbound_log):
        line = ready_to_close.lines[0]
        unit = replace(line.units[0], putaway=None)
        put_receipt(ready_to_close.with_unit(unit))

        result = service.close_receipt(ready_to_close.id, operator)
        assert result.status is ReceivingStatus.VALIDATION_FAILED
        assert [e.code for e in result.errors] == [ValidationCode.NO_PUTAWAY]
        assert store.get(ready_to_close.id).state is S.PUTAWAY_COMPLETE
        assert outbound_log.list() == []

    def test_missing_invoice_blocks(self, service, operator, put_receipt, ready_to_close):
        put_receipt(replace(ready_to_close, invoice_no=None, invoice_date=None))
        result = service.close_receipt(ready_to_close.id, operator)
        assert result.status is ReceivingStatus.PRECONDITIONS_NOT_MET
        pending = [p.key for p in result.preconditions if not p.is_met]
        assert pending == [PreconditionKey.COMMERCIAL_EVIDENCE]
        assert "Commercial evidence" in result.message

    def test_rejected_receipt_closes_without_putaway(
        self, service, operator, put_receipt, receipt_factory, line_factory, unit_factory
    ):
        units = (unit_factory("line-1", UnitState.REJECTED),)
        receipt = receipt_factory(
            state=S.REJECTED, invoice_no=None, lines=(line_factory(line_id="line-1", units=units),)
        )
        put_receipt(receipt)
        result = service.close_receipt(receipt.id, operator, note="Return to vendor")
        assert _ok(result).state is S.CLOSED
        assert len(result.contract.rejected_units) == 1

    def test_failed_store_write_emits_nothing(
        self, service, operator, putaway_complete, store, outbound_log, monkeypatch
    ):
        def refuse(receipt):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(store, "upsert", refuse)
        with pytest.raises(RuntimeError):
            service.close_receipt(putaway_complete.id, operator)

        assert store.get(putaway_complete.id).state is S.PUTAWAY_COMPLETE
        assert outbound_log.get(putaway_complete.id) is None
        assert outbound_log.list() == []

    def test_preconditions_read_only(self, service, putaway_complete, store):
        result = service.preconditions(putaway_complete.id)
        assert result.is_success
        assert len(result.preconditions) == 5
        assert store.get(putaway_complete.id) == putaway_complete

    def test_preconditions_unknown(self, service):
        assert service.preconditions("rcpt-x").status is ReceivingStatus.NOT_FOUND


class TestActiveReceipt:
    def test_switch_and_clear(self, service, operator):
        first = _ok(service.create_manual_receipt(operator))
        second = _ok(service.create_manual_receipt(operator))
        assert service.get_active().id == first.id
        service.set_active(second.id)
        assert service.get_active().id == second.id
        service.set_active(None)
        assert service.get_active() is None

    def test_unknown_id_refused(self, service, operator):
        first = _ok(service.create_manual_receipt(operator))
        with pytest.raises(ReceiptNotFoundError) as exc_info:
            service.set_active("rcpt-ghost")
        assert exc_info.value.receipt_id == "rcpt-ghost"
        assert service.get_active().id == first.id
