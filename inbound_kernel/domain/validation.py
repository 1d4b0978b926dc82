"""
Validation Engine -- structural and closure checks.

Responsibility:
    ``validate_receipt`` runs the structural checks that gate every workflow
    step; ``validate_closure`` runs the stricter set used only before the
    terminal CLOSE transition.

Architecture position:
    Kernel > Domain -- pure, read-only.  Failures are values, never
    exceptions.  Recording a VALIDATION_RUN audit event is the caller's job.

Invariants enforced:
    * ``ok`` is True iff ``errors`` is empty.
    * Re-running either check on an unchanged receipt returns an equal
      result (errors in stable order).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from inbound_kernel.domain.models import Line, Receipt
from inbound_kernel.domain.rbac import DEFAULT_ROLE_ALIASES, InboundRole, is_admin
from inbound_kernel.domain.values import ItemCategory, LabelStatus


class ValidationLevel(str, Enum):
    RECEIPT = "RECEIPT"
    LINE = "LINE"


class ValidationCode(str, Enum):
    # Structural
    MISSING_SUPPLIER = "MISSING_SUPPLIER"
    EMPTY_PO_RECEIPT = "EMPTY_PO_RECEIPT"
    MISSING_NAME = "MISSING_NAME"
    NEGATIVE_QTY = "NEGATIVE_QTY"
    OVER_RECEIPT = "OVER_RECEIPT"
    MISSING_LOT = "MISSING_LOT"
    MISSING_TRACKABILITY = "MISSING_TRACKABILITY"
    DUPLICATE_ENT_SERIAL = "DUPLICATE_ENT_SERIAL"
    DUPLICATE_SUP_SERIAL = "DUPLICATE_SUP_SERIAL"
    # Closure
    LABEL_PENDING = "LABEL_PENDING"
    QC_PENDING = "QC_PENDING"
    NO_PUTAWAY = "NO_PUTAWAY"


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Contract:
        Carries a level, a machine-readable code and a human-readable
        message.  LINE-level errors carry the line id in ``ref_id``; closure
        errors also carry the affected unit ``count`` and the ``line_name``.

    Non-goals:
        - Does NOT raise exceptions -- it IS the error representation.
    """

    level: ValidationLevel
    code: ValidationCode
    message: str
    ref_id: str | None = None
    count: int | None = None
    line_name: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.ok
    """

    ok: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(ok=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(ok=False, errors=tuple(errors))

    @classmethod
    def from_errors(cls, errors: Iterable[ValidationError]) -> ValidationResult:
        errors = tuple(errors)
        return cls(ok=not errors, errors=errors)

    def codes(self) -> tuple[ValidationCode, ...]:
        return tuple(e.code for e in self.errors)

    def __bool__(self) -> bool:
        return self.ok


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


# -----------------------------------------------------------------------------
# Structural validation
# -----------------------------------------------------------------------------


def _line_errors(line: Line, admin: bool) -> list[ValidationError]:
    errors: list[ValidationError] = []

    def add(code: ValidationCode, message: str) -> None:
        errors.append(ValidationError(ValidationLevel.LINE, code, message, ref_id=line.id))

    if _blank(line.item_name):
        add(ValidationCode.MISSING_NAME, "Item name is required.")

    if line.qty_received < 0:
        add(ValidationCode.NEGATIVE_QTY, "Received quantity cannot be negative.")

    # A zero or missing expected quantity means "not ordered against".
    if line.qty_expected and line.qty_received > line.qty_expected and not admin:
        add(
            ValidationCode.OVER_RECEIPT,
            f"Over-receipt ({line.qty_received}/{line.qty_expected}) requires "
            f"{InboundRole.SYSTEM_ADMIN.value}.",
        )

    if line.category is ItemCategory.CELL and _blank(line.lot_ref):
        add(ValidationCode.MISSING_LOT, "Lot/Batch Reference is required for CELL category.")

    if line.trackability is None:
        add(ValidationCode.MISSING_TRACKABILITY, "Trackability setting is missing.")

    return errors


def _duplicates(values: Iterable[str]) -> list[str]:
    """Values seen more than once, in first-seen order."""
    values = list(values)
    counts = Counter(values)
    seen: set[str] = set()
    dupes: list[str] = []
    for value in values:
        if counts[value] > 1 and value not in seen:
            seen.add(value)
            dupes.append(value)
    return dupes


def validate_receipt(
    receipt: Receipt,
    role: str,
    *,
    aliases: Mapping[str, InboundRole] = DEFAULT_ROLE_ALIASES,
) -> ValidationResult:
    """Structural validation of the whole receipt for a caller ``role``."""
    errors: list[ValidationError] = []

    if _blank(receipt.supplier_id):
        errors.append(ValidationError(
            ValidationLevel.RECEIPT,
            ValidationCode.MISSING_SUPPLIER,
            "Supplier is required.",
        ))

    if receipt.po_id and not receipt.lines:
        errors.append(ValidationError(
            ValidationLevel.RECEIPT,
            ValidationCode.EMPTY_PO_RECEIPT,
            "PO-linked receipt must have at least one line item.",
        ))

    admin = is_admin(role, aliases)
    for line in receipt.lines:
        errors.extend(_line_errors(line, admin))

    for serial in _duplicates(u.enterprise_serial for u in receipt.all_units()):
        errors.append(ValidationError(
            ValidationLevel.RECEIPT,
            ValidationCode.DUPLICATE_ENT_SERIAL,
            f"Enterprise serial {serial} is assigned to more than one unit.",
        ))

    supplier_refs = (
        u.supplier_serial_ref.strip()
        for u in receipt.all_units()
        if not _blank(u.supplier_serial_ref)
    )
    for ref in _duplicates(supplier_refs):
        errors.append(ValidationError(
            ValidationLevel.RECEIPT,
            ValidationCode.DUPLICATE_SUP_SERIAL,
            f"Supplier serial {ref} is scanned on more than one unit.",
        ))

    return ValidationResult.from_errors(errors)


# -----------------------------------------------------------------------------
# Closure validation
# -----------------------------------------------------------------------------


def validate_closure(receipt: Receipt) -> ValidationResult:
    """Per trackable line: labels printed, QC decided, putaway recorded."""
    errors: list[ValidationError] = []

    for line in receipt.lines:
        if not line.is_trackable:
            continue

        unprinted = sum(1 for u in line.units if u.label_status is LabelStatus.NOT_PRINTED)
        undecided = sum(1 for u in line.units if u.qc_decision is None)
        unplaced = sum(1 for u in line.units if u.putaway is None or not u.putaway.is_recorded)

        checks = (
            (ValidationCode.LABEL_PENDING, unprinted, "still need labels printed"),
            (ValidationCode.QC_PENDING, undecided, "have no QC decision"),
            (ValidationCode.NO_PUTAWAY, unplaced, "have no warehouse or bin recorded"),
        )
        for code, count, text in checks:
            if count:
                errors.append(ValidationError(
                    ValidationLevel.LINE,
                    code,
                    f"{count} unit(s) on {line.item_name} {text}.",
                    ref_id=line.id,
                    count=count,
                    line_name=line.item_name,
                ))

    return ValidationResult.from_errors(errors)
