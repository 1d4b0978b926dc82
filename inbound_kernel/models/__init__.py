"""ORM models."""

from inbound_kernel.models.kv_entry import KeyValueEntry

__all__ = ["KeyValueEntry"]
