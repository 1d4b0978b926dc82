"""
Typed Exception Hierarchy for the Inbound Kernel.

===============================================================================
WHAT IS AN EXCEPTION HERE
===============================================================================

The kernel separates two failure families:

  1. Protocol errors -- a caller asked for something the workflow can never
     allow (an edge missing from a state machine, a serial block that
     collides with existing serials, a label action out of order).  These
     are raised, and the caller must not apply any partial state change.

  2. Business failures -- structural validation, closure validation,
     preconditions, authorization.  These are NEVER raised by the kernel.
     They come back as values (ValidationResult, Precondition tuples, bool).

Only family (1) lives in this module.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InboundKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |
    +-- UnitError
    |   +-- MissingReasonError
    |   +-- InvalidLabelOperationError
    |
    +-- SerialError
    |   +-- DuplicateSerialError
    |   +-- InvalidGenerationRequestError
    |
    +-- ReceiptError
        +-- ReceiptNotFoundError
        +-- LineNotFoundError
        +-- UnitNotFoundError
        +-- ReceiptClosedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category  | Code                         | When Raised
----------|------------------------------|-----------------------------------------
Workflow  | INVALID_TRANSITION           | Edge not in the receipt/unit table
----------|------------------------------|-----------------------------------------
Unit      | MISSING_QC_REASON            | HOLD/REJECT without a reason
          | INVALID_LABEL_OPERATION      | Print/void out of order, or label voided
----------|------------------------------|-----------------------------------------
Serial    | DUPLICATE_SERIAL             | Generated serial already on the receipt
          | INVALID_GENERATION_REQUEST   | Bad count / seed / sequence overflow
----------|------------------------------|-----------------------------------------
Receipt   | RECEIPT_NOT_FOUND            | Store has no receipt with that id
          | LINE_NOT_FOUND               | Receipt has no line with that id
          | UNIT_NOT_FOUND               | Receipt has no unit with that id
          | RECEIPT_CLOSED               | Edit attempted on a CLOSED receipt

===============================================================================
HANDLING PATTERN
===============================================================================

    try:
        receipt = transition(receipt, ReceiptState.CLOSED, actor)
    except InvalidTransitionError as e:
        return {"error": e.code, "from": e.from_state, "to": e.to_state}

Codes are class attributes so that ``InvalidTransitionError.code`` is usable
without instantiation, and every piece of context is an attribute so it
survives structured logging (see ``logging_config.ReceivingLogFormatter``).
"""


class InboundKernelError(Exception):
    """
    Base exception for all inbound kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INBOUND_KERNEL_ERROR"


# Workflow exceptions


class WorkflowError(InboundKernelError):
    """Base exception for state machine errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Requested edge is not in the allowed transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, ref_type: str, ref_id: str, from_state: str, to_state: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid {ref_type.lower()} transition from {from_state} to {to_state}"
            f" ({ref_id})"
        )


# Unit exceptions


class UnitError(InboundKernelError):
    """Base exception for serialized unit errors."""

    code: str = "UNIT_ERROR"


class MissingReasonError(UnitError):
    """A HOLD or REJECT disposition was requested without a reason."""

    code: str = "MISSING_QC_REASON"

    def __init__(self, unit_id: str, to_state: str):
        self.unit_id = unit_id
        self.to_state = to_state
        super().__init__(f"A reason is required to move unit {unit_id} to {to_state}")


class InvalidLabelOperationError(UnitError):
    """Label print/reprint/void is not allowed from the current label status."""

    code: str = "INVALID_LABEL_OPERATION"

    def __init__(self, unit_id: str, operation: str, label_status: str):
        self.unit_id = unit_id
        self.operation = operation
        self.label_status = label_status
        super().__init__(
            f"Cannot {operation} label of unit {unit_id} while label is {label_status}"
        )


# Serial exceptions


class SerialError(InboundKernelError):
    """Base exception for serial generation errors."""

    code: str = "SERIAL_ERROR"


class DuplicateSerialError(SerialError):
    """
    Generated serials collide with serials already on the receipt.

    Generation is all-or-nothing; nothing was appended.  Re-invoke with a
    different seed.
    """

    code: str = "DUPLICATE_SERIAL"

    def __init__(self, line_id: str, serials: tuple[str, ...]):
        self.line_id = line_id
        self.serials = serials
        preview = ", ".join(serials[:3])
        more = f" (+{len(serials) - 3} more)" if len(serials) > 3 else ""
        super().__init__(
            f"Serial generation for line {line_id} collides with existing serials: "
            f"{preview}{more}"
        )


class InvalidGenerationRequestError(SerialError):
    """Serial generation parameters are out of range."""

    code: str = "INVALID_GENERATION_REQUEST"

    def __init__(self, line_id: str, reason: str):
        self.line_id = line_id
        self.reason = reason
        super().__init__(f"Invalid serial generation request for line {line_id}: {reason}")


# Receipt lookup / lifecycle exceptions


class ReceiptError(InboundKernelError):
    """Base exception for receipt lookup and lifecycle errors."""

    code: str = "RECEIPT_ERROR"


class ReceiptNotFoundError(ReceiptError):
    """Receipt with given ID was not found."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt not found: {receipt_id}")


class LineNotFoundError(ReceiptError):
    """Line with given ID is not part of the receipt."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, receipt_id: str, line_id: str):
        self.receipt_id = receipt_id
        self.line_id = line_id
        super().__init__(f"Line {line_id} not found on receipt {receipt_id}")


class UnitNotFoundError(ReceiptError):
    """Unit with given ID is not part of the receipt."""

    code: str = "UNIT_NOT_FOUND"

    def __init__(self, receipt_id: str, unit_id: str):
        self.receipt_id = receipt_id
        self.unit_id = unit_id
        super().__init__(f"Unit {unit_id} not found on receipt {receipt_id}")


class ReceiptClosedError(ReceiptError):
    """A CLOSED receipt is immutable."""

    code: str = "RECEIPT_CLOSED"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} is closed and cannot be modified")
