"""
Configuration Loader (``inbound_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``inbound_config.schema`` dataclasses.  Build/test tooling only: runtime
callers go through ``inbound_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Absent sections fall back to schema defaults; present but malformed
  values raise ``ValueError``.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown category or role  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from inbound_config.schema import (
    InboundConfig,
    OpenOrderDef,
    OpenOrderItemDef,
    SupplierDef,
)
from inbound_kernel.domain.rbac import InboundRole, normalize_role
from inbound_kernel.domain.values import ItemCategory


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"{where}: missing required key {key!r}") from None


def _positive_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{where}: expected a positive integer, got {value!r}")
    return value


def parse_supplier(data: dict[str, Any]) -> SupplierDef:
    return SupplierDef(
        id=str(_require(data, "id", "supplier")),
        name=str(_require(data, "name", "supplier")),
    )


def parse_order_item(data: dict[str, Any]) -> OpenOrderItemDef:
    where = f"order item {data.get('item_id', '?')}"
    return OpenOrderItemDef(
        item_id=str(_require(data, "item_id", where)),
        sku_id=str(_require(data, "sku_id", where)),
        item_name=str(_require(data, "item_name", where)),
        category=ItemCategory(_require(data, "category", where)),
        qty_ordered=_positive_int(_require(data, "qty_ordered", where), where),
    )


def parse_open_order(data: dict[str, Any], default_plant: str) -> OpenOrderDef:
    where = f"open order {data.get('po_id', '?')}"
    po_id = str(_require(data, "po_id", where))
    return OpenOrderDef(
        po_id=po_id,
        po_code=str(data.get("po_code", po_id)),
        supplier_id=str(_require(data, "supplier_id", where)),
        supplier_name=str(_require(data, "supplier_name", where)),
        plant_id=str(data.get("plant_id", default_plant)),
        items=tuple(parse_order_item(item) for item in data.get("items", ())),
    )


def parse_role_aliases(data: dict[str, Any]) -> dict[str, InboundRole]:
    return {normalize_role(token): InboundRole(role) for token, role in data.items()}


def parse_config(data: dict[str, Any]) -> InboundConfig:
    """
    Parse an ``InboundConfig`` from a dict.

    Postconditions:
        - Returns a frozen ``InboundConfig`` carrying ``compute_checksum(data)``.
    """
    defaults = InboundConfig()
    serials = data.get("serials", {})
    storage = data.get("storage", {})
    plant_id = str(data.get("plant_id", defaults.plant_id))

    kwargs: dict[str, Any] = {
        "plant_id": plant_id,
        "serial_prefix": str(serials.get("prefix", defaults.serial_prefix)),
        "pool_offset": _positive_int(
            serials.get("pool_offset", defaults.pool_offset), "serials.pool_offset"
        ),
        "receipt_code_prefix": str(
            data.get("receipt_code_prefix", defaults.receipt_code_prefix)
        ),
        "inbound_namespace": str(
            storage.get("inbound_namespace", defaults.inbound_namespace)
        ),
        "outbound_namespace": str(
            storage.get("outbound_namespace", defaults.outbound_namespace)
        ),
        "suppliers": tuple(parse_supplier(s) for s in data.get("suppliers", ())),
        "open_orders": tuple(
            parse_open_order(o, plant_id) for o in data.get("open_orders", ())
        ),
        "checksum": compute_checksum(data),
    }
    if "role_aliases" in data:
        kwargs["role_aliases"] = parse_role_aliases(data["role_aliases"] or {})

    return InboundConfig(**kwargs)


def load_config(path: Path) -> InboundConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
