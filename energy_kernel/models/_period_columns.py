"""Shared c1..c5 column set for the three ledgers."""

from decimal import Decimal

from sqlalchemy.orm import Mapped, mapped_column

from energy_kernel.db.base import UNIT_TYPE
from energy_kernel.domain.periods import PeriodValues


class PeriodColumns:
    """
    Mixin adding one Numeric column per period.

    Contract:
        Columns are NOT NULL and default to zero, so a freshly created
        ledger row is zero-initialized across all five periods.
    """

    c1: Mapped[Decimal] = mapped_column(UNIT_TYPE, nullable=False, default=Decimal("0"))
    c2: Mapped[Decimal] = mapped_column(UNIT_TYPE, nullable=False, default=Decimal("0"))
    c3: Mapped[Decimal] = mapped_column(UNIT_TYPE, nullable=False, default=Decimal("0"))
    c4: Mapped[Decimal] = mapped_column(UNIT_TYPE, nullable=False, default=Decimal("0"))
    c5: Mapped[Decimal] = mapped_column(UNIT_TYPE, nullable=False, default=Decimal("0"))

    def period_values(self) -> PeriodValues:
        return PeriodValues(
            c1=self.c1 or 0,
            c2=self.c2 or 0,
            c3=self.c3 or 0,
            c4=self.c4 or 0,
            c5=self.c5 or 0,
        )

    def assign_periods(self, values: PeriodValues) -> None:
        for period, value in values.items():
            setattr(self, period.value, value)
