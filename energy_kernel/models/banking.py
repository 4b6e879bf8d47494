"""
Module: energy_kernel.models.banking
Responsibility: ORM persistence for banked (carried-forward) units per
    production site and month.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (company, production site, month) (uq_banking_key).
    - total_banking == c1 + c2 + c3 + c4 + c5 after every service write.
    - Values are NOT constrained non-negative: incremental reconciliation
      may drive a period below zero.
"""

from decimal import Decimal

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from energy_kernel.db.base import UNIT_TYPE, TrackedBase
from energy_kernel.models._period_columns import PeriodColumns


class BankingRecord(PeriodColumns, TrackedBase):
    """Banking ledger row keyed by ``companyId_productionSiteId`` and month."""

    __tablename__ = "banking_records"

    __table_args__ = (
        UniqueConstraint("company_id", "production_site_id", "month", name="uq_banking_key"),
        Index("idx_banking_month", "month"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    production_site_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[str] = mapped_column(String(6), nullable=False)
    site_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    total_banking: Mapped[Decimal] = mapped_column(
        UNIT_TYPE, nullable=False, default=Decimal("0")
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BankingRecord {self.company_id}_{self.production_site_id}#{self.month} v{self.version}>"
