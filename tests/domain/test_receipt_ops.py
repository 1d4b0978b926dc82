"""Receipt intake, header and line edits, attachments, and unit change application."""

from datetime import date

import pytest

from inbound_kernel.domain.audit import LineUpdated, ReceiptCreated, ReceiptEdited
from inbound_kernel.domain.receipt_ops import (
    add_attachment,
    add_line,
    apply_unit_change,
    new_line,
    new_receipt,
    record_validation_run,
    update_line,
    update_receipt_fields,
)
from inbound_kernel.domain.unit_workflow import transition_unit
from inbound_kernel.domain.validation import validate_receipt
from inbound_kernel.domain.values import (
    AttachmentType,
    ItemCategory,
    ItemTrackability,
    ReceiptState,
    UnitState,
)
from inbound_kernel.exceptions import LineNotFoundError, ReceiptClosedError


class TestNewReceipt:
    def test_manual_receipt(self, operator, clock):
        receipt = new_receipt("GRN-2026-0001", operator, supplier_id="sup-002", clock=clock)
        assert receipt.state is ReceiptState.DRAFT
        assert receipt.id.startswith("rcpt-")
        assert receipt.created_at == clock.now()
        assert receipt.created_by_role == "STORES"
        assert len(receipt.audit) == 1
        assert receipt.audit[0].detail == ReceiptCreated(source="MANUAL")

    def test_po_receipt_records_source(self, operator, clock):
        receipt = new_receipt("GRN-2026-0002", operator, po_id="PO-2026-8821", clock=clock)
        assert receipt.audit[0].detail == ReceiptCreated(source="PO", po_id="PO-2026-8821")

    def test_logs_creation(self, operator, clock, captured_logs):
        new_receipt("GRN-2026-0003", operator, clock=clock)
        assert any(r["event"] == "receipt_created" for r in captured_logs())


class TestNewLine:
    def test_trackability_from_category(self):
        assert new_line("rcpt-1", "Cells", ItemCategory.CELL).trackability is ItemTrackability.TRACKABLE
        assert new_line("rcpt-1", "Pads", ItemCategory.MISC).trackability is ItemTrackability.NON_TRACKABLE

    def test_explicit_trackability_wins(self):
        line = new_line(
            "rcpt-1", "Pads", ItemCategory.MISC, trackability=ItemTrackability.TRACKABLE
        )
        assert line.is_trackable


class TestHeaderEdits:
    def test_edit_records_changed_fields(self, receipt_factory, operator, clock):
        receipt = receipt_factory()
        edited = update_receipt_fields(
            receipt,
            operator,
            clock=clock,
            invoice_no="INV-9",
            notes="Dented crate",
            supplier_id="sup-001",
        )
        assert edited.invoice_no == "INV-9"
        assert edited.notes == "Dented crate"
        assert len(edited.audit) == 1
        assert edited.audit[0].detail == ReceiptEdited(fields=("invoice_no", "notes"))

    def test_noop_edit_returns_same_receipt(self, receipt_factory, operator, clock):
        receipt = receipt_factory()
        assert update_receipt_fields(receipt, operator, clock=clock, supplier_id="sup-001") is receipt

    def test_state_not_editable(self, receipt_factory, operator, clock):
        with pytest.raises(ValueError, match="state"):
            update_receipt_fields(
                receipt_factory(), operator, clock=clock, state=ReceiptState.CLOSED
            )

    def test_closed_receipt_refused(self, receipt_factory, operator, clock):
        with pytest.raises(ReceiptClosedError) as exc_info:
            update_receipt_fields(
                receipt_factory(state=ReceiptState.CLOSED), operator, clock=clock, notes="x"
            )
        assert exc_info.value.receipt_id == "rcpt-1"


class TestLineEdits:
    def test_add_line(self, receipt_factory, operator, clock):
        receipt = receipt_factory()
        line = new_line(receipt.id, "BMS Board", ItemCategory.BMS, qty_expected=10)
        updated = add_line(receipt, line, operator, clock=clock)
        assert updated.lines == (line,)
        assert updated.audit[0].event_type == "LINE_ADDED"

    def test_add_line_for_other_receipt(self, receipt_factory, operator, clock):
        line = new_line("rcpt-other", "BMS Board", ItemCategory.BMS)
        with pytest.raises(ValueError):
            add_line(receipt_factory(), line, operator, clock=clock)

    def test_add_duplicate_line(self, receipt_factory, line_factory, operator, clock):
        line = line_factory(line_id="line-1")
        with pytest.raises(ValueError):
            add_line(receipt_factory(lines=(line,)), line, operator, clock=clock)

    def test_update_line_keeps_units(self, receipt_factory, line_factory, unit_factory, operator, clock):
        units = (unit_factory("line-1"),)
        receipt = receipt_factory(lines=(line_factory(line_id="line-1", units=units),))
        updated = update_line(
            receipt, "line-1", operator, clock=clock, qty_received=4, mfg_date=date(2025, 12, 1)
        )
        line = updated.find_line("line-1")
        assert line.qty_received == 4
        assert line.units == units
        assert updated.audit[0].detail == LineUpdated("line-1", ("mfg_date", "qty_received"))
        assert updated.audit[0].ref_id == "line-1"

    def test_update_missing_line(self, receipt_factory, operator, clock):
        with pytest.raises(LineNotFoundError):
            update_line(receipt_factory(), "line-nope", operator, clock=clock, qty_received=1)

    def test_units_not_editable_through_line(self, receipt_factory, line_factory, operator, clock):
        receipt = receipt_factory(lines=(line_factory(line_id="line-1"),))
        with pytest.raises(ValueError):
            update_line(receipt, "line-1", operator, clock=clock, units=())


class TestAttachmentsAndUnits:
    def test_add_attachment(self, receipt_factory, operator, clock):
        updated = add_attachment(
            receipt_factory(), AttachmentType.COA, "coa.pdf", operator, notes="Lot A1", clock=clock
        )
        attachment = updated.attachments[0]
        assert attachment.id.startswith("att-")
        assert attachment.uploaded_by == "Stores Operator"
        assert attachment.uploaded_at == clock.now()
        assert updated.audit[0].event_type == "ATTACHMENT_ADDED"

    def test_apply_unit_change(self, receipt_factory, line_factory, unit_factory, operator, clock):
        unit = unit_factory("line-1")
        receipt = receipt_factory(lines=(line_factory(line_id="line-1", units=(unit,)),))
        change = transition_unit(unit, UnitState.LABELED, operator, clock=clock)

        updated = apply_unit_change(receipt, change)
        assert updated.find_unit(unit.id).state is UnitState.LABELED
        assert updated.audit == (change.audit_event,)

    def test_record_validation_run(self, receipt_factory, operator, clock):
        receipt = receipt_factory(supplier_id=None)
        result = validate_receipt(receipt, operator.role)
        updated = record_validation_run(receipt, result, operator, clock=clock)
        event = updated.audit[0]
        assert event.detail.ok is False
        assert event.detail.error_codes == ("MISSING_SUPPLIER",)
        assert event.message == "Validation failed: MISSING_SUPPLIER"
        assert updated.state is receipt.state
