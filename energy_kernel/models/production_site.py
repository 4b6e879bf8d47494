"""
Module: energy_kernel.models.production_site
Responsibility: Minimal production-site registry -- the fields the
    allocation engine needs (technology and banking flag).
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (company, production site) (uq_production_site).
    - banking is 0 or 1 (ck_production_site_banking).
"""

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from energy_kernel.db.base import TrackedBase


class ProductionSite(TrackedBase):
    """Production site registry row."""

    __tablename__ = "production_sites"

    __table_args__ = (
        UniqueConstraint("company_id", "production_site_id", name="uq_production_site"),
        CheckConstraint("banking IN (0, 1)", name="ck_production_site_banking"),
    )

    company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    production_site_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    site_type: Mapped[str] = mapped_column(String(16), nullable=False)
    banking: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ProductionSite {self.company_id}_{self.production_site_id} {self.site_type}>"
