"""
Module: energy_engines.disposition
Responsibility:
    Decide what happens to production that was not allocated: bank it
    (carry it forward) or lapse it (write it off).  One ``DispositionPolicy``
    serves both call patterns so the month run and single-record edits
    cannot drift apart:

      - ``compute_from_scratch`` -- the month run emits the whole month's
        banked or lapsed values for a source.
      - ``apply_delta`` -- an edit to one allocation record moves the
        banking or lapse ledger by the per-period change.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only a WIND source with banking enabled that is not itself a
      carried-over bank may bank.  Everything else lapses.
    - Banking deltas are applied as-is in both directions and may drive a
      period negative.
    - Lapse deltas: increases are always applied.  Decreases are ignored
      unless ``release_lapse_on_decrease`` is set, in which case they are
      applied and the period is clamped at zero.

Usage:
    policy = DispositionPolicy()
    delta = policy.compute_from_scratch(source, unused)
    adjustment = policy.apply_delta(True, old, new, current_banked)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from energy_kernel.domain.dtos import BankingDelta, LapseDelta, ProductionSource, SourceType
from energy_kernel.domain.periods import ZERO, Period, PeriodValues
from energy_kernel.logging_config import get_logger

logger = get_logger("engines.disposition")


class DispositionKind(str, Enum):
    """Where unallocated production goes."""

    BANK = "bank"
    LAPSE = "lapse"


@dataclass(frozen=True)
class LedgerAdjustment:
    """
    Result of applying an allocation edit to the banking or lapse ledger.

    ``applied`` is the per-period change actually made (after the lapse
    asymmetry and clamping), ``resulting`` the ledger values afterwards.
    """

    kind: DispositionKind
    applied: PeriodValues
    resulting: PeriodValues

    @property
    def is_noop(self) -> bool:
        return self.applied.is_zero


class DispositionPolicy:
    """
    Bank-or-lapse policy shared by the month run and the edit path.

    Contract:
        Pure.  Never reads a clock or a database; the caller supplies the
        current ledger values and the freshly looked-up banking flag.
    """

    def __init__(self, release_lapse_on_decrease: bool = False):
        self.release_lapse_on_decrease = release_lapse_on_decrease

    def resolve(self, source: ProductionSource) -> DispositionKind:
        if (
            source.source_type == SourceType.WIND
            and source.banking_enabled
            and not source.is_carried_over_bank
        ):
            return DispositionKind.BANK
        return DispositionKind.LAPSE

    def compute_from_scratch(
        self, source: ProductionSource, unused: PeriodValues
    ) -> BankingDelta | LapseDelta | None:
        """
        Whole-month disposition of ``unused`` for one source.

        Returns None when nothing is left over.
        """
        if unused.total <= ZERO:
            return None

        match self.resolve(source):
            case DispositionKind.BANK:
                return BankingDelta(
                    company_id=source.company_id,
                    production_site_id=source.source_id,
                    month=source.month,
                    banked=unused,
                    site_name=source.site_name,
                )
            case DispositionKind.LAPSE:
                return LapseDelta(
                    company_id=source.company_id,
                    production_site_id=source.source_id,
                    month=source.month,
                    lapsed=unused,
                    from_bank=source.is_carried_over_bank,
                    site_name=source.site_name,
                )

    def apply_delta(
        self,
        banking_enabled: bool,
        old: PeriodValues,
        new: PeriodValues,
        current: PeriodValues,
    ) -> LedgerAdjustment:
        """
        Propagate an allocation edit ``old -> new`` into the ledger values ``current``.

        ``current`` is the banking row when ``banking_enabled`` and the lapse
        row otherwise.
        """
        delta = new - old

        if banking_enabled:
            return LedgerAdjustment(
                kind=DispositionKind.BANK,
                applied=delta,
                resulting=current + delta,
            )

        applied: dict[Period, Decimal] = {}
        for period, change in delta.items():
            if change > ZERO:
                applied[period] = change
            elif change < ZERO and self.release_lapse_on_decrease:
                applied[period] = max(change, -max(current[period], ZERO))
        applied_values = PeriodValues.from_periods(applied)
        return LedgerAdjustment(
            kind=DispositionKind.LAPSE,
            applied=applied_values,
            resulting=current + applied_values,
        )
