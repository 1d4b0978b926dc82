"""
Enterprise serial allocation.

Serials look like ``BP-<TYPE>-<7-digit sequence>``; TYPE comes from the line
category.  RANGE mode numbers from the caller's seed; POOL mode numbers from
``seed + pool_offset``, a disjoint pre-reserved block, so RANGE and POOL
allocations for the same seed never collide.

Generation is all-or-nothing.  It never removes or renumbers existing units,
and the duplicate check is only as good as the receipt it is given: callers
must pass the full, just-read receipt.
"""

from __future__ import annotations

import re
from dataclasses import replace
from uuid import uuid4

from inbound_kernel.domain.audit import SerialsGenerated, new_audit_event
from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.models import Receipt, Unit
from inbound_kernel.domain.values import (
    Actor,
    ItemCategory,
    ItemTrackability,
    RefType,
    SerialMode,
)
from inbound_kernel.exceptions import DuplicateSerialError, InvalidGenerationRequestError
from inbound_kernel.logging_config import get_logger

logger = get_logger("domain.serials")

DEFAULT_SERIAL_PREFIX = "BP"
DEFAULT_POOL_OFFSET = 5000
MAX_SEQUENCE = 9_999_999

SERIAL_TYPE_CODES: dict[ItemCategory, str] = {
    ItemCategory.CELL: "CEL",
    ItemCategory.BMS: "BMS",
    ItemCategory.IOT: "IOT",
    ItemCategory.MODULE: "MOD",
    ItemCategory.PACK: "PCK",
}
FALLBACK_TYPE_CODE = "MAT"

# Advisory defaults only; Line.trackability is authoritative.
_TRACKABLE_CATEGORIES = frozenset({
    ItemCategory.CELL,
    ItemCategory.BMS,
    ItemCategory.IOT,
    ItemCategory.MODULE,
    ItemCategory.PACK,
})


def serial_type_code(category: ItemCategory) -> str:
    return SERIAL_TYPE_CODES.get(category, FALLBACK_TYPE_CODE)


def default_trackability(category: ItemCategory) -> ItemTrackability:
    """Category default used at intake."""
    if category in _TRACKABLE_CATEGORIES:
        return ItemTrackability.TRACKABLE
    return ItemTrackability.NON_TRACKABLE


def make_enterprise_serial(prefix: str, type_code: str, sequence: int) -> str:
    return f"{prefix}-{type_code}-{sequence:07d}"


def make_receipt_code(sequence: int, year: int, prefix: str = "GRN") -> str:
    return f"{prefix}-{year}-{sequence:04d}"


def generate_units(
    line_id: str,
    category: ItemCategory,
    count: int,
    start_sequence: int,
    mode: SerialMode = SerialMode.RANGE,
    *,
    existing_serials: frozenset[str] | set[str] | tuple[str, ...] = (),
    prefix: str = DEFAULT_SERIAL_PREFIX,
    pool_offset: int = DEFAULT_POOL_OFFSET,
) -> tuple[Unit, ...]:
    """
    Produce ``count`` new CREATED / NOT_PRINTED units for ``line_id``.

    Raises:
        InvalidGenerationRequestError: non-positive count, negative seed, or
            a last sequence beyond seven digits.
        DuplicateSerialError: any generated serial is in ``existing_serials``.
    """
    if count <= 0:
        raise InvalidGenerationRequestError(line_id, f"count must be positive, got {count}")
    if start_sequence < 0:
        raise InvalidGenerationRequestError(
            line_id, f"start sequence must not be negative, got {start_sequence}"
        )

    first = start_sequence + (pool_offset if mode is SerialMode.POOL else 0)
    last = first + count - 1
    if last > MAX_SEQUENCE:
        raise InvalidGenerationRequestError(
            line_id, f"sequence {last} exceeds {MAX_SEQUENCE}"
        )

    type_code = serial_type_code(category)
    serials = [make_enterprise_serial(prefix, type_code, seq) for seq in range(first, last + 1)]

    existing = set(existing_serials)
    clashes = tuple(s for s in serials if s in existing)
    if clashes:
        logger.warning(
            "serial_generation_collision",
            extra={
                "line_id": line_id,
                "mode": mode,
                "start_sequence": start_sequence,
                "collisions": len(clashes),
            },
        )
        raise DuplicateSerialError(line_id, clashes)

    return tuple(
        Unit(id=f"unit-{uuid4().hex}", enterprise_serial=serial, line_id=line_id)
        for serial in serials
    )


def append_generated_units(
    receipt: Receipt,
    line_id: str,
    count: int,
    start_sequence: int,
    mode: SerialMode,
    actor: Actor,
    *,
    prefix: str = DEFAULT_SERIAL_PREFIX,
    pool_offset: int = DEFAULT_POOL_OFFSET,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    """Generate against every serial on ``receipt`` and append to the line."""
    line = receipt.find_line(line_id)
    existing = frozenset(u.enterprise_serial for u in receipt.all_units())
    units = generate_units(
        line_id,
        line.category,
        count,
        start_sequence,
        mode,
        existing_serials=existing,
        prefix=prefix,
        pool_offset=pool_offset,
    )

    first_serial = units[0].enterprise_serial
    last_serial = units[-1].enterprise_serial
    event = new_audit_event(
        actor,
        RefType.LINE,
        line_id,
        f"Generated {count} serials ({mode.value}) {first_serial} .. {last_serial}",
        SerialsGenerated(
            line_id=line_id,
            count=count,
            mode=mode,
            first_serial=first_serial,
            last_serial=last_serial,
        ),
        clock,
    )
    logger.info(
        "serials_generated",
        extra={
            "receipt_id": receipt.id,
            "line_id": line_id,
            "count": count,
            "mode": mode,
            "first_serial": first_serial,
            "last_serial": last_serial,
        },
    )
    updated_line = replace(line, units=line.units + units)
    return receipt.with_line(updated_line).with_audit(event)


def next_free_sequence(
    receipt: Receipt,
    category: ItemCategory,
    prefix: str = DEFAULT_SERIAL_PREFIX,
) -> int:
    """One past the highest sequence already used on the receipt for this type."""
    pattern = re.compile(
        rf"^{re.escape(prefix)}-{re.escape(serial_type_code(category))}-(\d{{7}})$"
    )
    highest = 0
    for unit in receipt.all_units():
        match = pattern.match(unit.enterprise_serial)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1
