"""
Receipt intake and edit operations.

Pure functions that build a DRAFT receipt and apply field edits, line
edits, attachment metadata and unit changes.  Each mutating function
returns a new receipt with exactly one audit event prepended; none of them
touch ``Receipt.state``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any
from uuid import uuid4

from inbound_kernel.domain.audit import (
    AttachmentAdded,
    LineAdded,
    LineUpdated,
    ReceiptCreated,
    ReceiptEdited,
    ValidationRun,
    new_audit_event,
)
from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.models import Attachment, Line, Receipt
from inbound_kernel.domain.serials import default_trackability
from inbound_kernel.domain.unit_workflow import UnitChange
from inbound_kernel.domain.validation import ValidationResult
from inbound_kernel.domain.values import (
    Actor,
    AttachmentType,
    ItemCategory,
    ItemTrackability,
    ReceiptState,
    RefType,
)
from inbound_kernel.exceptions import ReceiptClosedError
from inbound_kernel.logging_config import get_logger

logger = get_logger("domain.receipt_ops")

EDITABLE_RECEIPT_FIELDS = frozenset({
    "supplier_id",
    "invoice_no",
    "invoice_date",
    "packing_list_ref",
    "transport_doc_ref",
    "notes",
})

EDITABLE_LINE_FIELDS = frozenset({
    "item_name",
    "sku_id",
    "category",
    "trackability",
    "lot_ref",
    "mfg_date",
    "exp_date",
    "qty_expected",
    "qty_received",
})


def ensure_open(receipt: Receipt) -> None:
    if receipt.is_closed:
        raise ReceiptClosedError(receipt.id)


def _reject_unknown(changes: dict[str, Any], allowed: frozenset[str], what: str) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValueError(f"Not editable on a {what}: {', '.join(unknown)}")


def new_receipt(
    code: str,
    actor: Actor,
    *,
    supplier_id: str | None = None,
    po_id: str | None = None,
    invoice_no: str | None = None,
    invoice_date: date | None = None,
    notes: str | None = None,
    lines: tuple[Line, ...] = (),
    receipt_id: str | None = None,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    """
    Create a DRAFT receipt with one RECEIPT_CREATED event.

    ``lines`` must already carry ``receipt_id`` when one is passed in.
    """
    receipt_id = receipt_id or f"rcpt-{uuid4().hex}"
    source = "PO" if po_id else "MANUAL"
    event = new_audit_event(
        actor,
        RefType.RECEIPT,
        receipt_id,
        f"Receipt {code} created ({source.lower()})",
        ReceiptCreated(source=source, po_id=po_id),
        clock,
    )
    logger.info(
        "receipt_created",
        extra={"receipt_id": receipt_id, "code": code, "source": source, "line_count": len(lines)},
    )
    return Receipt(
        id=receipt_id,
        code=code,
        state=ReceiptState.DRAFT,
        created_at=event.ts,
        created_by_role=actor.role,
        supplier_id=supplier_id,
        po_id=po_id,
        invoice_no=invoice_no,
        invoice_date=invoice_date,
        notes=notes,
        lines=tuple(lines),
        audit=(event,),
    )


def new_line(
    receipt_id: str,
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
) -> Line:
    """Build a line; trackability defaults from the category table."""
    return Line(
        id=f"line-{uuid4().hex}",
        receipt_id=receipt_id,
        item_name=item_name,
        category=category,
        trackability=trackability or default_trackability(category),
        qty_received=qty_received,
        qty_expected=qty_expected,
        sku_id=sku_id,
        lot_ref=lot_ref,
        mfg_date=mfg_date,
        exp_date=exp_date,
    )


def update_receipt_fields(
    receipt: Receipt,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
    **changes: Any,
) -> Receipt:
    """Apply header edits; a no-op edit returns the receipt unchanged."""
    ensure_open(receipt)
    _reject_unknown(changes, EDITABLE_RECEIPT_FIELDS, "receipt")
    changed = {k: v for k, v in changes.items() if getattr(receipt, k) != v}
    if not changed:
        return receipt
    fields = tuple(sorted(changed))
    event = new_audit_event(
        actor,
        RefType.RECEIPT,
        receipt.id,
        f"Edited {', '.join(fields)}",
        ReceiptEdited(fields=fields),
        clock,
    )
    return replace(receipt, **changed).with_audit(event)


def add_line(
    receipt: Receipt,
    line: Line,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    ensure_open(receipt)
    if line.receipt_id != receipt.id:
        raise ValueError(f"Line {line.id} belongs to receipt {line.receipt_id}, not {receipt.id}")
    if any(existing.id == line.id for existing in receipt.lines):
        raise ValueError(f"Line {line.id} already exists on receipt {receipt.id}")
    event = new_audit_event(
        actor,
        RefType.LINE,
        line.id,
        f"Added line {line.item_name}",
        LineAdded(line_id=line.id, item_name=line.item_name),
        clock,
    )
    return replace(receipt, lines=receipt.lines + (line,)).with_audit(event)


def update_line(
    receipt: Receipt,
    line_id: str,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
    **changes: Any,
) -> Receipt:
    """Apply line edits; units on the line are never touched."""
    ensure_open(receipt)
    _reject_unknown(changes, EDITABLE_LINE_FIELDS, "line")
    line = receipt.find_line(line_id)
    changed = {k: v for k, v in changes.items() if getattr(line, k) != v}
    if not changed:
        return receipt
    fields = tuple(sorted(changed))
    event = new_audit_event(
        actor,
        RefType.LINE,
        line_id,
        f"Updated {', '.join(fields)} on {line.item_name}",
        LineUpdated(line_id=line_id, fields=fields),
        clock,
    )
    return receipt.with_line(replace(line, **changed)).with_audit(event)


def add_attachment(
    receipt: Receipt,
    attachment_type: AttachmentType,
    filename: str,
    actor: Actor,
    *,
    notes: str | None = None,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    ensure_open(receipt)
    attachment = Attachment(
        id=f"att-{uuid4().hex}",
        type=attachment_type,
        filename=filename,
        uploaded_at=clock.now(),
        uploaded_by=actor.label,
        notes=notes,
    )
    event = new_audit_event(
        actor,
        RefType.RECEIPT,
        receipt.id,
        f"Attached {attachment_type.value} {filename}",
        AttachmentAdded(
            attachment_id=attachment.id,
            attachment_type=attachment_type,
            filename=filename,
        ),
        clock,
    )
    return replace(receipt, attachments=receipt.attachments + (attachment,)).with_audit(event)


def apply_unit_change(receipt: Receipt, change: UnitChange) -> Receipt:
    """Put a unit change (unit + its event) back into the receipt."""
    ensure_open(receipt)
    return receipt.with_unit(change.unit).with_audit(change.audit_event)


def record_validation_run(
    receipt: Receipt,
    result: ValidationResult,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    """Validation is read-only; this records that it ran."""
    codes = tuple(code.value for code in result.codes())
    message = "Validation passed" if result.ok else f"Validation failed: {', '.join(codes)}"
    event = new_audit_event(
        actor,
        RefType.RECEIPT,
        receipt.id,
        message,
        ValidationRun(ok=result.ok, error_codes=codes),
        clock,
    )
    return receipt.with_audit(event)
