"""
Wire vocabulary and small value objects.

Every enumeration here is a wire-level vocabulary: its values are stored,
exchanged with the downstream planning system, and must round-trip exactly.
Values always equal member names.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReceiptState(str, Enum):
    """Receipt lifecycle states."""
    DRAFT = "DRAFT"
    RECEIVING = "RECEIVING"
    SERIALIZATION_IN_PROGRESS = "SERIALIZATION_IN_PROGRESS"
    QC_PENDING = "QC_PENDING"
    ACCEPTED = "ACCEPTED"
    PARTIAL_ACCEPTED = "PARTIAL_ACCEPTED"
    REJECTED = "REJECTED"
    PUTAWAY_IN_PROGRESS = "PUTAWAY_IN_PROGRESS"
    PUTAWAY_COMPLETE = "PUTAWAY_COMPLETE"
    CLOSED = "CLOSED"  # terminal


class UnitState(str, Enum):
    """Serialized unit lifecycle states."""
    CREATED = "CREATED"
    LABELED = "LABELED"
    SCANNED = "SCANNED"
    VERIFIED = "VERIFIED"
    QC_HOLD = "QC_HOLD"
    ACCEPTED = "ACCEPTED"  # terminal
    REJECTED = "REJECTED"  # terminal


class ItemCategory(str, Enum):
    CELL = "CELL"
    BMS = "BMS"
    IOT = "IOT"
    MODULE = "MODULE"
    PACK = "PACK"
    MISC = "MISC"


class ItemTrackability(str, Enum):
    TRACKABLE = "TRACKABLE"
    NON_TRACKABLE = "NON_TRACKABLE"


class AttachmentType(str, Enum):
    INVOICE = "INVOICE"
    PACKING_LIST = "PACKING_LIST"
    COA = "COA"
    TEST_REPORT = "TEST_REPORT"
    PHOTO = "PHOTO"
    OTHER = "OTHER"


class LabelStatus(str, Enum):
    """Label side-lifecycle, independent of UnitState."""
    NOT_PRINTED = "NOT_PRINTED"
    PRINTED = "PRINTED"
    VOIDED = "VOIDED"


class QcDecision(str, Enum):
    ACCEPT = "ACCEPT"
    HOLD = "HOLD"
    REJECT = "REJECT"


class RefType(str, Enum):
    """What an audit event points at."""
    RECEIPT = "RECEIPT"
    LINE = "LINE"
    UNIT = "UNIT"


class SerialMode(str, Enum):
    """RANGE draws from the seed; POOL from a disjoint pre-reserved block."""
    RANGE = "RANGE"
    POOL = "POOL"


# Units in these states carry a QC disposition.
DISPOSITION_STATES: frozenset[UnitState] = frozenset({
    UnitState.ACCEPTED,
    UnitState.QC_HOLD,
    UnitState.REJECTED,
})

# VERIFIED or anything after it.
VERIFIED_OR_LATER_STATES: frozenset[UnitState] = DISPOSITION_STATES | {UnitState.VERIFIED}


@dataclass(frozen=True)
class PutawayLocation:
    """Physical storage location assigned to a unit."""
    warehouse: str | None = None
    zone: str | None = None
    bin: str | None = None

    @property
    def has_bin(self) -> bool:
        return bool(self.bin and self.bin.strip())

    @property
    def is_recorded(self) -> bool:
        """True when a warehouse or a bin has been recorded."""
        return bool((self.warehouse and self.warehouse.strip()) or self.has_bin)


@dataclass(frozen=True)
class Actor:
    """
    Caller identity as seen by the kernel.

    ``role`` is an opaque, already-verified token; the kernel never
    authenticates it.
    """
    role: str
    label: str = "User"
