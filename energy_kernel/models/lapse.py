"""
Module: energy_kernel.models.lapse
Responsibility: ORM persistence for lapsed (written-off) units per production
    site and month.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (company, production site, month) (uq_lapse_key).
"""

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from energy_kernel.db.base import TrackedBase
from energy_kernel.models._period_columns import PeriodColumns


class LapseRecord(PeriodColumns, TrackedBase):
    """Lapse ledger row; c1..c5 hold the lapsed amount per period."""

    __tablename__ = "lapse_records"

    __table_args__ = (
        UniqueConstraint("company_id", "production_site_id", "month", name="uq_lapse_key"),
        Index("idx_lapse_month", "month"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    production_site_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[str] = mapped_column(String(6), nullable=False)
    site_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<LapseRecord {self.company_id}_{self.production_site_id}#{self.month} v{self.version}>"
