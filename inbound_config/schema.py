"""
InboundConfig schema.

Frozen dataclasses the loader parses YAML into.  The kernel never imports
this package; services read the values they need and pass them down as
plain arguments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from inbound_kernel.domain.rbac import DEFAULT_ROLE_ALIASES, InboundRole
from inbound_kernel.domain.serials import DEFAULT_POOL_OFFSET, DEFAULT_SERIAL_PREFIX
from inbound_kernel.domain.values import ItemCategory

DEFAULT_PLANT_ID = "FAC-WB-01"
DEFAULT_RECEIPT_CODE_PREFIX = "GRN"
DEFAULT_INBOUND_NAMESPACE = "bpmos.s3.inbound.v1"
DEFAULT_OUTBOUND_NAMESPACE = "bpmos_s3_outbound_v1"


# ---------------------------------------------------------------------------
# Supply directory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SupplierDef:
    id: str
    name: str


@dataclass(frozen=True)
class OpenOrderItemDef:
    item_id: str
    sku_id: str
    item_name: str
    category: ItemCategory
    qty_ordered: int


@dataclass(frozen=True)
class OpenOrderDef:
    po_id: str
    po_code: str
    supplier_id: str
    supplier_name: str
    plant_id: str
    items: tuple[OpenOrderItemDef, ...] = ()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InboundConfig:
    """
    Runtime configuration for inbound receiving.

    ``checksum`` identifies the exact source document the values came from.
    """

    plant_id: str = DEFAULT_PLANT_ID
    serial_prefix: str = DEFAULT_SERIAL_PREFIX
    pool_offset: int = DEFAULT_POOL_OFFSET
    receipt_code_prefix: str = DEFAULT_RECEIPT_CODE_PREFIX
    inbound_namespace: str = DEFAULT_INBOUND_NAMESPACE
    outbound_namespace: str = DEFAULT_OUTBOUND_NAMESPACE
    role_aliases: Mapping[str, InboundRole] = field(
        default_factory=lambda: DEFAULT_ROLE_ALIASES
    )
    suppliers: tuple[SupplierDef, ...] = ()
    open_orders: tuple[OpenOrderDef, ...] = ()
    checksum: str = ""

    def __post_init__(self):
        if not self.plant_id.strip():
            raise ValueError("plant_id must not be blank")
        if not self.serial_prefix.strip():
            raise ValueError("serial_prefix must not be blank")
        if self.pool_offset <= 0:
            raise ValueError(f"pool_offset must be positive, got {self.pool_offset}")
        if not isinstance(self.role_aliases, MappingProxyType):
            object.__setattr__(self, "role_aliases", MappingProxyType(dict(self.role_aliases)))

    def supplier_name(self, supplier_id: str) -> str | None:
        for supplier in self.suppliers:
            if supplier.id == supplier_id:
                return supplier.name
        return None
