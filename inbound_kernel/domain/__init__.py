"""
Domain layer -- pure logic with no I/O.

Everything here takes values and returns values: receipts, state machines,
serial allocation, authorization, validation and close preconditions.
Persistence and locking belong to the calling layer.
"""

from inbound_kernel.domain.audit import (
    AUDIT_DETAIL_TYPES,
    AuditDetail,
    AuditEvent,
    new_audit_event,
)
from inbound_kernel.domain.clock import (
    SYSTEM_CLOCK,
    Clock,
    DeterministicClock,
    SystemClock,
)
from inbound_kernel.domain.models import (
    UNDECIDED,
    Accepted,
    Attachment,
    Disposition,
    Line,
    OnHold,
    Receipt,
    Rejected,
    Undecided,
    Unit,
    disposition_for,
)
from inbound_kernel.domain.preconditions import (
    Precondition,
    PreconditionKey,
    PreconditionStatus,
    all_met,
    evaluate_preconditions,
)
from inbound_kernel.domain.rbac import (
    InboundAction,
    InboundRole,
    authorize,
    is_admin,
    resolve_role,
)
from inbound_kernel.domain.receipt_workflow import (
    ALLOWED_RECEIPT_TRANSITIONS,
    RECEIPT_WORKFLOW,
    compute_qc_outcome,
    transition,
)
from inbound_kernel.domain.serials import append_generated_units, generate_units
from inbound_kernel.domain.unit_workflow import (
    ALLOWED_UNIT_TRANSITIONS,
    UNIT_WORKFLOW,
    UnitChange,
    transition_unit,
)
from inbound_kernel.domain.validation import (
    ValidationCode,
    ValidationError,
    ValidationLevel,
    ValidationResult,
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

__all__ = [
    # Audit
    "AUDIT_DETAIL_TYPES",
    "AuditDetail",
    "AuditEvent",
    "new_audit_event",
    # Clock
    "SYSTEM_CLOCK",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Models
    "UNDECIDED",
    "Accepted",
    "Attachment",
    "Disposition",
    "Line",
    "OnHold",
    "Receipt",
    "Rejected",
    "Undecided",
    "Unit",
    "disposition_for",
    # Preconditions
    "Precondition",
    "PreconditionKey",
    "PreconditionStatus",
    "all_met",
    "evaluate_preconditions",
    # RBAC
    "InboundAction",
    "InboundRole",
    "authorize",
    "is_admin",
    "resolve_role",
    # Workflows
    "ALLOWED_RECEIPT_TRANSITIONS",
    "RECEIPT_WORKFLOW",
    "compute_qc_outcome",
    "transition",
    "ALLOWED_UNIT_TRANSITIONS",
    "UNIT_WORKFLOW",
    "UnitChange",
    "transition_unit",
    # Serials
    "append_generated_units",
    "generate_units",
    # Validation
    "ValidationCode",
    "ValidationError",
    "ValidationLevel",
    "ValidationResult",
    "validate_closure",
    "validate_receipt",
    # Values
    "Actor",
    "AttachmentType",
    "ItemCategory",
    "ItemTrackability",
    "LabelStatus",
    "PutawayLocation",
    "QcDecision",
    "ReceiptState",
    "RefType",
    "SerialMode",
    "UnitState",
]
