"""
Module: inbound_kernel.db.base
Responsibility: Declarative base for the SQLAlchemy tables that back the
    key-value persistence of receipts and outbound contracts.
Architecture position: Kernel > DB.  Lowest-level import target for ORM
    models.  MUST NOT import from domain/ or outer layers.

Invariants enforced:
    - datetime columns are always timezone-aware.
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - datetime maps to DateTime(timezone=True).
        - str maps to Text unless a column says otherwise.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        str: Text,
    }
