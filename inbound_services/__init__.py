"""
inbound_services -- Package init and public API.

Responsibility:
    The stateful calling layer around ``inbound_kernel``: receipt storage,
    the wire codec, intake from purchase orders, the outbound contract log,
    and the ``ReceivingService`` facade that serializes operations per
    receipt.

Architecture position:
    Services -- may import ``inbound_kernel`` and ``inbound_config``.
    Neither of those may import from this package.
"""

from inbound_kernel.logging_config import get_logger

logger = get_logger("services")

from inbound_services.codec import receipt_from_dict, receipt_to_dict
from inbound_services.intake import (
    OpenOrder,
    OpenOrderItem,
    StaticSupplyDirectory,
    Supplier,
    SupplyDirectory,
    new_manual_receipt,
    new_receipt_from_order,
)
from inbound_services.kv import DictKeyValueBackend, KeyValueBackend, SqlKeyValueBackend
from inbound_services.outbound import (
    OutboundContract,
    OutboundContractLog,
    OutboundUnit,
    build_outbound_contract,
)
from inbound_services.receiving_service import (
    ReceivingResult,
    ReceivingService,
    ReceivingStatus,
)
from inbound_services.store import InMemoryReceiptStore, KeyValueReceiptStore, ReceiptStore

__all__ = [
    "DictKeyValueBackend",
    "InMemoryReceiptStore",
    "KeyValueBackend",
    "KeyValueReceiptStore",
    "OpenOrder",
    "OpenOrderItem",
    "OutboundContract",
    "OutboundContractLog",
    "OutboundUnit",
    "ReceiptStore",
    "ReceivingResult",
    "ReceivingService",
    "ReceivingStatus",
    "SqlKeyValueBackend",
    "StaticSupplyDirectory",
    "Supplier",
    "SupplyDirectory",
    "build_outbound_contract",
    "new_manual_receipt",
    "new_receipt_from_order",
    "receipt_from_dict",
    "receipt_to_dict",
]
