"""
inbound_config -- single public entrypoint for receiving configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.  YAML loading is internal tooling.

Architecture position:
    Configuration -- sits above ``inbound_kernel`` and below
    ``inbound_services``.  The kernel MUST NEVER import from this package.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` -- malformed values (unknown category or role,
      non-positive offsets, blank identifiers).
"""

from __future__ import annotations

from pathlib import Path

from inbound_config.loader import load_config
from inbound_config.schema import (
    InboundConfig,
    OpenOrderDef,
    OpenOrderItemDef,
    SupplierDef,
)
from inbound_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> InboundConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned config is frozen and has passed schema checks.
        - An ``INBOUND_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Args:
        config_path: Override path to a YAML file.  Defaults to the
            packaged ``sets/default.yaml``.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "INBOUND_CONFIG_TRACE",
        extra={
            "trace_type": "INBOUND_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "plant_id": config.plant_id,
            "supplier_count": len(config.suppliers),
            "open_order_count": len(config.open_orders),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "InboundConfig",
    "OpenOrderDef",
    "OpenOrderItemDef",
    "SupplierDef",
    "get_active_config",
]
