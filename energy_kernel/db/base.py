"""
Module: energy_kernel.db.base
Responsibility: Declarative base shared by the allocation, banking, lapse and
    production-site tables.
Architecture position: Kernel > DB.  Imported by every model module; imports
    nothing else from the kernel.

Invariants enforced:
    - Every table has a uuid4 surrogate key.  Business identity (company,
      production site, consumption site, month) is a unique constraint
      declared on each model.
    - Energy units map to Numeric(38, 9).  Floats never reach a ledger column.
    - TrackedBase rows carry created_at / updated_at.  Ledger services fill
      both from their Clock; the server default covers manual inserts.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

UNIT_TYPE = Numeric(38, 9)


class Base(DeclarativeBase):
    """Root of the ORM model tree."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: UNIT_TYPE,
        datetime: DateTime(timezone=True),
        UUID: Uuid(),
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Abstract base for rows that record when they were written."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now())
