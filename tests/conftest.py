"""
Pytest fixtures for the inbound receiving test suite.

Provides:
- Structured logging setup and log capture
- A deterministic clock and standard actors
- Builders for receipts, lines and units in any state
- A ReceivingService wired to in-memory storage
"""

import json
import logging
from datetime import date
from io import StringIO
from itertools import count

import pytest

from inbound_config import get_active_config
from inbound_kernel.domain.clock import DeterministicClock
from inbound_kernel.domain.models import Line, Receipt, Unit, disposition_for
from inbound_kernel.domain.values import (
    Actor,
    ItemCategory,
    ItemTrackability,
    LabelStatus,
    PutawayLocation,
    ReceiptState,
    UnitState,
)
from inbound_kernel.logging_config import (
    ReceivingLogFormatter,
    configure_logging,
    reset_logging,
)
from inbound_services.kv import DictKeyValueBackend
from inbound_services.outbound import OutboundContractLog
from inbound_services.receiving_service import ReceivingService
from inbound_services.store import InMemoryReceiptStore


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture
def captured_logs():
    """
    Capture inbound_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.advance(...)
            logs = captured_logs()
            assert any(r["event"] == "receipt_transitioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ReceivingLogFormatter())
    root = logging.getLogger("inbound_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and actors
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def operator():
    return Actor("STORES", "Stores Operator")


@pytest.fixture
def quality():
    return Actor("QA_ENGINEER", "QA Engineer")


@pytest.fixture
def admin():
    return Actor("SYSTEM_ADMIN", "Admin")


@pytest.fixture
def viewer():
    return Actor("GUEST", "Guest")


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def unit_factory():
    """
    Build a unit directly in any state.

    Units in ACCEPTED, QC_HOLD or REJECTED get the matching disposition
    with ``reason`` (defaulted for HOLD/REJECT).
    """
    seq = count(1)

    def _make(
        line_id: str,
        state: UnitState = UnitState.CREATED,
        *,
        label_status: LabelStatus = LabelStatus.NOT_PRINTED,
        reason: str | None = None,
        putaway: PutawayLocation | None = None,
        supplier_serial_ref: str | None = None,
        serial: str | None = None,
    ) -> Unit:
        n = next(seq)
        if reason is None and state in (UnitState.QC_HOLD, UnitState.REJECTED):
            reason = "test reason"
        return Unit(
            id=f"unit-{n}",
            enterprise_serial=serial or f"BP-CEL-{n:07d}",
            line_id=line_id,
            state=state,
            label_status=label_status,
            printed_count=1 if label_status is not LabelStatus.NOT_PRINTED else 0,
            disposition=disposition_for(state, reason),
            supplier_serial_ref=supplier_serial_ref,
            putaway=putaway,
        )

    return _make


@pytest.fixture
def line_factory():
    seq = count(1)

    def _make(
        receipt_id: str = "rcpt-1",
        *,
        item_name: str = "LFP Cell 21700-50Ah",
        category: ItemCategory = ItemCategory.CELL,
        trackability: ItemTrackability | None = ItemTrackability.TRACKABLE,
        qty_received: int = 0,
        qty_expected: int | None = None,
        lot_ref: str | None = "LOT-A1",
        sku_id: str | None = "SKU-CELL-01",
        units: tuple[Unit, ...] = (),
        line_id: str | None = None,
    ) -> Line:
        return Line(
            id=line_id or f"line-{next(seq)}",
            receipt_id=receipt_id,
            item_name=item_name,
            category=category,
            trackability=trackability,
            qty_received=qty_received,
            qty_expected=qty_expected,
            sku_id=sku_id,
            lot_ref=lot_ref,
            units=units,
        )

    return _make


@pytest.fixture
def receipt_factory(clock):
    def _make(
        *,
        state: ReceiptState = ReceiptState.DRAFT,
        lines: tuple[Line, ...] = (),
        supplier_id: str | None = "sup-001",
        po_id: str | None = None,
        invoice_no: str | None = "INV-2026-001",
        receipt_id: str = "rcpt-1",
        code: str = "GRN-2026-0001",
    ) -> Receipt:
        return Receipt(
            id=receipt_id,
            code=code,
            state=state,
            created_at=clock.now(),
            created_by_role="STORES",
            supplier_id=supplier_id,
            po_id=po_id,
            invoice_no=invoice_no,
            invoice_date=date(2026, 1, 1) if invoice_no else None,
            lines=lines,
        )

    return _make


@pytest.fixture
def ready_to_close(receipt_factory, line_factory, unit_factory):
    """
    A PUTAWAY_COMPLETE receipt that passes every closure check:
    3 accepted, 1 held, 1 rejected, all printed and binned.
    """
    bin_a = PutawayLocation(warehouse="WH-1", zone="Z1", bin="A-01")
    states = (
        UnitState.ACCEPTED,
        UnitState.ACCEPTED,
        UnitState.ACCEPTED,
        UnitState.QC_HOLD,
        UnitState.REJECTED,
    )
    units = tuple(
        unit_factory("line-cells", s, label_status=LabelStatus.PRINTED, putaway=bin_a)
        for s in states
    )
    line = line_factory(line_id="line-cells", qty_received=5, units=units)
    return receipt_factory(state=ReceiptState.PUTAWAY_COMPLETE, lines=(line,))


# =============================================================================
# Services
# =============================================================================


@pytest.fixture(scope="session")
def inbound_config():
    return get_active_config()


@pytest.fixture
def outbound_log():
    return OutboundContractLog(DictKeyValueBackend(), "bpmos_s3_outbound_v1")


@pytest.fixture
def store():
    return InMemoryReceiptStore()


@pytest.fixture
def service(store, outbound_log, inbound_config, clock):
    return ReceivingService(store, outbound_log, inbound_config, clock=clock)


@pytest.fixture
def put_receipt(store):
    """Seed the store with a prebuilt receipt and return it."""

    def _put(receipt: Receipt) -> Receipt:
        return store.upsert(receipt)

    return _put


