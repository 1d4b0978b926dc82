"""
KeyValueEntry -- one JSON document per storage namespace key.

The receipt list, the active-receipt pointer and the outbound contract log
are each stored whole under their own key.  A write replaces the row.
"""

from datetime import UTC, datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from inbound_kernel.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry {self.key} ({len(self.value)} chars)>"
