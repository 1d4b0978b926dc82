"""
Intake -- purchase orders and suppliers in, DRAFT receipts out.

The supply directory only populates intake choices; nothing read from it is
validated here.  Structural checks run later through ``validate_receipt``.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from uuid import uuid4

from inbound_config.schema import InboundConfig
from inbound_kernel.domain.clock import SYSTEM_CLOCK, Clock
from inbound_kernel.domain.models import Line, Receipt
from inbound_kernel.domain.receipt_ops import new_line, new_receipt
from inbound_kernel.domain.serials import make_receipt_code
from inbound_kernel.domain.values import Actor, ItemCategory
from inbound_kernel.logging_config import get_logger

logger = get_logger("services.intake")


@dataclass(frozen=True)
class Supplier:
    id: str
    name: str


@dataclass(frozen=True)
class OpenOrderItem:
    item_id: str
    sku_id: str
    item_name: str
    category: ItemCategory
    qty_ordered: int


@dataclass(frozen=True)
class OpenOrder:
    """An approved and issued purchase order ready for receiving."""
    po_id: str
    po_code: str
    supplier_id: str
    supplier_name: str
    plant_id: str
    items: tuple[OpenOrderItem, ...] = ()


class SupplyDirectory(ABC):
    @abstractmethod
    def list_open_orders(self) -> list[OpenOrder]: ...

    @abstractmethod
    def list_suppliers(self) -> list[Supplier]: ...

    def find_order(self, po_id: str) -> OpenOrder | None:
        for order in self.list_open_orders():
            if order.po_id == po_id:
                return order
        return None


class StaticSupplyDirectory(SupplyDirectory):
    """Fixed directory, typically loaded from configuration."""

    def __init__(
        self,
        open_orders: Iterable[OpenOrder] = (),
        suppliers: Iterable[Supplier] = (),
    ) -> None:
        self._orders = tuple(open_orders)
        self._suppliers = tuple(suppliers)

    @classmethod
    def from_config(cls, config: InboundConfig) -> StaticSupplyDirectory:
        orders = (
            OpenOrder(
                po_id=o.po_id,
                po_code=o.po_code,
                supplier_id=o.supplier_id,
                supplier_name=o.supplier_name,
                plant_id=o.plant_id,
                items=tuple(
                    OpenOrderItem(
                        item_id=i.item_id,
                        sku_id=i.sku_id,
                        item_name=i.item_name,
                        category=i.category,
                        qty_ordered=i.qty_ordered,
                    )
                    for i in o.items
                ),
            )
            for o in config.open_orders
        )
        suppliers = (Supplier(id=s.id, name=s.name) for s in config.suppliers)
        return cls(orders, suppliers)

    def list_open_orders(self) -> list[OpenOrder]:
        return list(self._orders)

    def list_suppliers(self) -> list[Supplier]:
        return list(self._suppliers)


# ---------------------------------------------------------------------------
# Receipt codes
# ---------------------------------------------------------------------------


def next_receipt_code(existing_codes: Iterable[str], year: int, prefix: str = "GRN") -> str:
    """One past the highest ``<prefix>-<year>-NNNN`` code already issued."""
    pattern = re.compile(rf"^{re.escape(prefix)}-{year}-(\d+)$")
    highest = 0
    for code in existing_codes:
        match = pattern.match(code)
        if match:
            highest = max(highest, int(match.group(1)))
    return make_receipt_code(highest + 1, year, prefix)


# ---------------------------------------------------------------------------
# Receipt creation
# ---------------------------------------------------------------------------


def new_manual_receipt(
    code: str,
    actor: Actor,
    *,
    supplier_id: str | None = None,
    invoice_no: str | None = None,
    invoice_date: date | None = None,
    notes: str | None = None,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    """Empty DRAFT receipt not linked to any purchase order."""
    return new_receipt(
        code,
        actor,
        supplier_id=supplier_id,
        invoice_no=invoice_no,
        invoice_date=invoice_date,
        notes=notes,
        clock=clock,
    )


def new_receipt_from_order(
    order: OpenOrder,
    code: str,
    actor: Actor,
    *,
    clock: Clock = SYSTEM_CLOCK,
) -> Receipt:
    """
    DRAFT receipt with one line per order item.

    Lines expect the ordered quantity, have received nothing yet, and take
    their trackability from the category default.
    """
    receipt_id = f"rcpt-{uuid4().hex}"
    lines: tuple[Line, ...] = tuple(
        new_line(
            receipt_id,
            item.item_name,
            item.category,
            qty_expected=item.qty_ordered,
            qty_received=0,
            sku_id=item.sku_id,
        )
        for item in order.items
    )
    logger.info(
        "receipt_intake_from_order",
        extra={"po_id": order.po_id, "supplier_id": order.supplier_id, "items": len(order.items)},
    )
    return new_receipt(
        code,
        actor,
        supplier_id=order.supplier_id,
        po_id=order.po_id,
        lines=lines,
        receipt_id=receipt_id,
        clock=clock,
    )
