"""
Module: energy_engines.allocation_summary
Responsibility:
    Aggregate a set of per-period records (allocations, banking or lapse
    rows) into month totals split into peak and non-peak units.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from energy_engines.tracer import traced_engine
from energy_kernel.domain.periods import PeriodValues


@dataclass(frozen=True)
class AllocationSummary:
    """Totals over a set of records."""

    totals: PeriodValues
    count: int

    @property
    def total(self) -> Decimal:
        return self.totals.total

    @property
    def peak(self) -> Decimal:
        return self.totals.peak_total

    @property
    def non_peak(self) -> Decimal:
        return self.totals.non_peak_total

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "peak": self.peak,
            "non_peak": self.non_peak,
            "count": self.count,
            "periods": self.totals.to_dict(),
        }


@traced_engine("allocation_summary", "1.0")
def summarize(values: Iterable[PeriodValues]) -> AllocationSummary:
    """Sum ``values``; records with no units still count."""
    totals = PeriodValues()
    count = 0
    for v in values:
        totals = totals + v
        count += 1
    return AllocationSummary(totals=totals, count=count)


EMPTY_SUMMARY = AllocationSummary(totals=PeriodValues(), count=0)

__all__ = ["AllocationSummary", "EMPTY_SUMMARY", "summarize"]
