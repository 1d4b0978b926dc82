"""
Wire codec for receipts.

Maps the frozen domain model to and from the camelCase JSON documents kept
in the inbound store.  Enumerations travel as their exact values; an
unknown value raises ``ValueError`` rather than being coerced.  Optional
fields that are unset are omitted on write and read back as None.
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime
from enum import Enum
from typing import Any, get_origin, get_type_hints

from inbound_kernel.domain.audit import AUDIT_DETAIL_TYPES, AuditEvent
from inbound_kernel.domain.models import Attachment, Line, Receipt, Unit, disposition_for
from inbound_kernel.domain.values import (
    AttachmentType,
    ItemCategory,
    ItemTrackability,
    LabelStatus,
    PutawayLocation,
    QcDecision,
    ReceiptState,
    RefType,
    UnitState,
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


def _meta_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_meta_value(v) for v in value]
    return value


def audit_event_to_dict(event: AuditEvent) -> dict[str, Any]:
    meta = {
        _camel(f.name): _meta_value(getattr(event.detail, f.name))
        for f in dataclasses.fields(event.detail)
    }
    return {
        "id": event.id,
        "ts": event.ts.isoformat(),
        "actorRole": event.actor_role,
        "actorLabel": event.actor_label,
        "eventType": event.event_type,
        "refType": event.ref_type.value,
        "refId": event.ref_id,
        "message": event.message,
        "meta": _compact(meta),
    }


def _detail_from_meta(event_type: str, meta: dict[str, Any]):
    try:
        cls = AUDIT_DETAIL_TYPES[event_type]
    except KeyError:
        raise ValueError(f"Unknown audit event type {event_type!r}") from None

    hints = get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = _camel(f.name)
        if key not in meta:
            continue
        value = meta[key]
        hint = hints[f.name]
        if isinstance(hint, type) and issubclass(hint, Enum) and value is not None:
            value = hint(value)
        elif get_origin(hint) is tuple:
            value = tuple(value)
        kwargs[f.name] = value
    return cls(**kwargs)


def audit_event_from_dict(data: dict[str, Any]) -> AuditEvent:
    return AuditEvent(
        id=data["id"],
        ts=datetime.fromisoformat(data["ts"]),
        actor_role=data["actorRole"],
        actor_label=data["actorLabel"],
        ref_type=RefType(data["refType"]),
        ref_id=data["refId"],
        message=data["message"],
        detail=_detail_from_meta(data["eventType"], data.get("meta") or {}),
    )


# ---------------------------------------------------------------------------
# Units and lines
# ---------------------------------------------------------------------------


def unit_to_dict(unit: Unit) -> dict[str, Any]:
    putaway = None
    if unit.putaway is not None:
        putaway = _compact(dataclasses.asdict(unit.putaway))
    return _compact({
        "id": unit.id,
        "enterpriseSerial": unit.enterprise_serial,
        "supplierSerialRef": unit.supplier_serial_ref,
        "lineId": unit.line_id,
        "state": unit.state.value,
        "labelStatus": unit.label_status.value,
        "printedCount": unit.printed_count,
        "lastPrintedAt": _iso(unit.last_printed_at),
        "verifiedAt": _iso(unit.verified_at),
        "qcDecision": unit.qc_decision.value if unit.qc_decision else None,
        "qcReason": unit.qc_reason,
        "putaway": putaway,
    })


def unit_from_dict(data: dict[str, Any]) -> Unit:
    state = UnitState(data["state"])
    disposition = disposition_for(state, data.get("qcReason"))
    decision = data.get("qcDecision")
    if (QcDecision(decision) if decision else None) is not disposition.decision:
        raise ValueError(
            f"Unit {data['id']}: qcDecision {decision!r} does not match state {state.value}"
        )
    putaway = data.get("putaway")
    return Unit(
        id=data["id"],
        enterprise_serial=data["enterpriseSerial"],
        line_id=data["lineId"],
        state=state,
        label_status=LabelStatus(data.get("labelStatus", LabelStatus.NOT_PRINTED.value)),
        printed_count=data.get("printedCount", 0),
        last_printed_at=_dt(data.get("lastPrintedAt")),
        verified_at=_dt(data.get("verifiedAt")),
        disposition=disposition,
        supplier_serial_ref=data.get("supplierSerialRef"),
        putaway=PutawayLocation(**putaway) if putaway is not None else None,
    )


def line_to_dict(line: Line) -> dict[str, Any]:
    return _compact({
        "id": line.id,
        "receiptId": line.receipt_id,
        "skuId": line.sku_id,
        "itemName": line.item_name,
        "category": line.category.value,
        "trackability": line.trackability.value if line.trackability else None,
        "lotRef": line.lot_ref,
        "mfgDate": _iso(line.mfg_date),
        "expDate": _iso(line.exp_date),
        "qtyExpected": line.qty_expected,
        "qtyReceived": line.qty_received,
        "units": [unit_to_dict(u) for u in line.units],
    })


def line_from_dict(data: dict[str, Any]) -> Line:
    trackability = data.get("trackability")
    return Line(
        id=data["id"],
        receipt_id=data["receiptId"],
        item_name=data.get("itemName", ""),
        category=ItemCategory(data["category"]),
        trackability=ItemTrackability(trackability) if trackability else None,
        qty_received=data.get("qtyReceived", 0),
        qty_expected=data.get("qtyExpected"),
        sku_id=data.get("skuId"),
        lot_ref=data.get("lotRef"),
        mfg_date=_date(data.get("mfgDate")),
        exp_date=_date(data.get("expDate")),
        units=tuple(unit_from_dict(u) for u in data.get("units") or ()),
    )


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------


def _attachment_to_dict(attachment: Attachment) -> dict[str, Any]:
    return _compact({
        "id": attachment.id,
        "type": attachment.type.value,
        "filename": attachment.filename,
        "notes": attachment.notes,
        "uploadedAt": attachment.uploaded_at.isoformat(),
        "uploadedBy": attachment.uploaded_by,
    })


def _attachment_from_dict(data: dict[str, Any]) -> Attachment:
    return Attachment(
        id=data["id"],
        type=AttachmentType(data["type"]),
        filename=data["filename"],
        uploaded_at=datetime.fromisoformat(data["uploadedAt"]),
        uploaded_by=data["uploadedBy"],
        notes=data.get("notes"),
    )


def receipt_to_dict(receipt: Receipt) -> dict[str, Any]:
    return _compact({
        "id": receipt.id,
        "code": receipt.code,
        "supplierId": receipt.supplier_id,
        "poId": receipt.po_id,
        "invoiceNo": receipt.invoice_no,
        "invoiceDate": _iso(receipt.invoice_date),
        "packingListRef": receipt.packing_list_ref,
        "transportDocRef": receipt.transport_doc_ref,
        "attachments": [_attachment_to_dict(a) for a in receipt.attachments],
        "createdAt": receipt.created_at.isoformat(),
        "createdByRole": receipt.created_by_role,
        "state": receipt.state.value,
        "notes": receipt.notes,
        "lines": [line_to_dict(line) for line in receipt.lines],
        "audit": [audit_event_to_dict(e) for e in receipt.audit],
    })


def receipt_from_dict(data: dict[str, Any]) -> Receipt:
    """
    Decode a stored receipt document.

    Raises:
        ValueError: unknown enumeration value or audit event type, or a
            unit whose qcDecision contradicts its state.
        KeyError: a required key is missing.
    """
    return Receipt(
        id=data["id"],
        code=data["code"],
        state=ReceiptState(data["state"]),
        created_at=datetime.fromisoformat(data["createdAt"]),
        created_by_role=data["createdByRole"],
        supplier_id=data.get("supplierId"),
        po_id=data.get("poId"),
        invoice_no=data.get("invoiceNo"),
        invoice_date=_date(data.get("invoiceDate")),
        packing_list_ref=data.get("packingListRef"),
        transport_doc_ref=data.get("transportDocRef"),
        notes=data.get("notes"),
        attachments=tuple(_attachment_from_dict(a) for a in data.get("attachments") or ()),
        lines=tuple(line_from_dict(line) for line in data.get("lines") or ()),
        audit=tuple(audit_event_from_dict(e) for e in data.get("audit") or ()),
    )
