"""
Module: energy_kernel.models.allocation
Responsibility: ORM persistence for allocation records -- the units assigned
    from one production site to one consumption site in one month.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain only.

Invariants enforced:
    - One row per (company, production site, consumption site, month)
      (uq_allocation_key).
    - charge is 0 or 1 (ck_allocation_charge).  "At most one charge=1 per
      company and month" is enforced by ChargeInvariantGuard, not the schema.
    - version increments on every write; the mapper version_id_col turns
      a stale UPDATE or DELETE into StaleDataError.
"""

from sqlalchemy import CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from energy_kernel.db.base import TrackedBase
from energy_kernel.models._period_columns import PeriodColumns


class AllocationRecord(PeriodColumns, TrackedBase):
    """
    Allocation ledger row.

    Guarantees:
        - c1..c5 hold units delivered per consumption period.
        - transaction_id is the id of the last transaction that wrote it.
    """

    __tablename__ = "allocation_records"

    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "production_site_id",
            "consumption_site_id",
            "month",
            name="uq_allocation_key",
        ),
        CheckConstraint("charge IN (0, 1)", name="ck_allocation_charge"),
        Index("idx_allocation_company_month", "company_id", "month"),
        Index("idx_allocation_production_site", "company_id", "production_site_id"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    production_site_id: Mapped[str] = mapped_column(String(64), nullable=False)
    consumption_site_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[str] = mapped_column(String(6), nullable=False)

    charge: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<AllocationRecord {self.company_id}_{self.production_site_id}_"
            f"{self.consumption_site_id}#{self.month} v{self.version}>"
        )
