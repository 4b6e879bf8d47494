"""
Module: energy_engines.batch_allocator
Responsibility:
    Match one month's production sources to consumption demands under the
    period rule, then route every source's leftover to banking or lapse.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports the kernel domain (periods, DTOs) and the disposition policy.

Algorithm:
    1. Sources are processed in four fixed categories: SOLAR,
       WIND non-banking, WIND banking, then carried-over banked units.
       Within a category the caller's order is kept.
    2. Consumers are sorted by (year, month), then site name.
    3. For each source, consumer, target period (c1, c4, c5, c2, c3) with
       demand left, and source period with units left that may serve it:
       move ``min(available, remaining)``.
    4. A final pass over the non-carried-over sources retries every
       (consumer, target period, source, source period) combination and
       merges into the existing (source, consumer) entry.
    5. Each source's leftover goes through ``DispositionPolicy``.

Invariants enforced:
    - Conservation: for every source and source period,
      allocated + banked + lapsed == available.
    - Matching rule: a non-peak source period only ever feeds the same
      target period.
    - Determinism: identical inputs produce identical results.
    - Sources or consumers whose month is not the run month are skipped
      and reported, never allocated.

Failure modes:
    - InvalidMonthKeyError if ``month`` is malformed.
    - Unbalanced months are NOT errors; see AllocationResult.remaining_*.

Usage:
    from energy_engines.batch_allocator import BatchAllocator

    result = BatchAllocator().allocate(
        month="012024",
        production=[solar_source, wind_source],
        consumption=[demand_a, demand_b],
        banked=[carried_over],
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from energy_engines.disposition import DispositionPolicy
from energy_engines.tracer import traced_engine
from energy_kernel.domain.dtos import (
    AllocationDelta,
    AllocationResult,
    BankingDelta,
    ConsumptionDemand,
    LapseDelta,
    PeriodTransfer,
    ProductionSource,
    SourceCategory,
)
from energy_kernel.domain.month import MonthKey
from energy_kernel.domain.periods import (
    ALLOCATION_ORDER,
    ZERO,
    Period,
    PeriodValues,
    is_allocation_allowed,
)
from energy_kernel.logging_config import get_logger

logger = get_logger("engines.batch_allocator")

CATEGORY_ORDER: tuple[SourceCategory, ...] = tuple(SourceCategory)


@dataclass
class _SourceState:
    source: ProductionSource
    remaining: dict[Period, Decimal]

    @property
    def total_remaining(self) -> Decimal:
        return sum(self.remaining.values(), ZERO)


@dataclass
class _ConsumerState:
    demand: ConsumptionDemand
    remaining: dict[Period, Decimal]

    @property
    def total_remaining(self) -> Decimal:
        return sum(self.remaining.values(), ZERO)


@dataclass
class _Entry:
    """Mutable accumulator for one (company, production site, consumer) triple."""

    source: ProductionSource
    consumer: ConsumptionDemand
    allocated: dict[Period, Decimal] = field(default_factory=dict)
    transfers: list[PeriodTransfer] = field(default_factory=list)

    def add(self, source_period: Period, target_period: Period, amount: Decimal,
            from_bank: bool) -> None:
        self.allocated[target_period] = self.allocated.get(target_period, ZERO) + amount
        self.transfers.append(PeriodTransfer(source_period, target_period, amount, from_bank))

    def to_delta(self) -> AllocationDelta:
        return AllocationDelta(
            company_id=self.source.company_id,
            production_site_id=self.source.source_id,
            consumption_site_id=self.consumer.site_id,
            month=self.source.month,
            allocated=PeriodValues.from_periods(self.allocated),
            transfers=tuple(self.transfers),
            source_type=self.source.source_type,
            site_name=self.source.site_name,
            consumption_site_name=self.consumer.site_name,
        )


class _Run:
    """Working state of a single month run."""

    def __init__(self):
        self.entries: dict[tuple[str, str, str], _Entry] = {}

    def entry(self, source: ProductionSource, consumer: ConsumptionDemand) -> _Entry:
        key = (source.company_id, source.source_id, consumer.site_id)
        found = self.entries.get(key)
        if found is None:
            found = _Entry(source=source, consumer=consumer)
            self.entries[key] = found
        return found

    def move(
        self,
        state: _SourceState,
        consumer: _ConsumerState,
        source_period: Period,
        target_period: Period,
    ) -> Decimal:
        amount = min(state.remaining[source_period], consumer.remaining[target_period])
        if amount <= ZERO:
            return ZERO
        state.remaining[source_period] -= amount
        consumer.remaining[target_period] -= amount
        self.entry(state.source, consumer.demand).add(
            source_period, target_period, amount, state.source.is_carried_over_bank
        )
        return amount

    def allocate_source(self, state: _SourceState, consumers: Sequence[_ConsumerState]) -> bool:
        has_allocation = False
        for consumer in consumers:
            for target_period in ALLOCATION_ORDER:
                if consumer.remaining[target_period] <= ZERO:
                    continue
                for source_period in ALLOCATION_ORDER:
                    if state.remaining[source_period] <= ZERO:
                        continue
                    if not is_allocation_allowed(source_period, target_period):
                        continue
                    if self.move(state, consumer, source_period, target_period) > ZERO:
                        has_allocation = True
        return has_allocation

    def final_pass(
        self, states: Sequence[_SourceState], consumers: Sequence[_ConsumerState]
    ) -> Decimal:
        remaining_consumption = sum((c.total_remaining for c in consumers), ZERO)
        remaining_production = sum((s.total_remaining for s in states), ZERO)
        logger.debug(
            "final_pass_started",
            extra={
                "remaining_consumption": remaining_consumption,
                "remaining_production": remaining_production,
            },
        )
        moved = ZERO
        if remaining_consumption <= ZERO or remaining_production <= ZERO:
            return moved

        for consumer in consumers:
            for target_period in ALLOCATION_ORDER:
                if consumer.remaining[target_period] <= ZERO:
                    continue
                for state in states:
                    for source_period in ALLOCATION_ORDER:
                        if state.remaining[source_period] <= ZERO:
                            continue
                        if not is_allocation_allowed(source_period, target_period):
                            continue
                        moved += self.move(state, consumer, source_period, target_period)
        return moved


class BatchAllocator:
    """
    Greedy month allocator.

    Contract:
        Pure function of its inputs.  Input DTOs are never mutated; all
        decrementing happens on private working copies.

    Guarantees:
        - Conservation and matching rule hold for every result.
        - Running again on fully consumed inputs yields an empty result.

    Non-goals:
        - Does NOT persist anything; ``AllocationService.run_month`` does.
        - Does NOT look up banking flags; sources carry them.
    """

    def __init__(self, policy: DispositionPolicy | None = None):
        self.policy = policy or DispositionPolicy()

    @traced_engine(
        "batch_allocator",
        "1.0",
        fingerprint_fields=("month", "production", "consumption", "banked"),
    )
    def allocate(
        self,
        month: str,
        production: Iterable[ProductionSource],
        consumption: Iterable[ConsumptionDemand],
        banked: Iterable[ProductionSource] = (),
    ) -> AllocationResult:
        """
        Allocate one month.

        Args:
            month: MMYYYY run month.
            production: This month's production sources.
            consumption: This month's consumption demands.
            banked: Previously banked units offered this month.  They are
                treated as carried-over sources whatever their flag says.

        Returns:
            AllocationResult with allocations, banking and lapse deltas and
            the remaining consumption/production totals.
        """
        month = MonthKey.parse(month).value
        sources = list(production)
        carried = [
            s if s.is_carried_over_bank else _as_carried_over(s) for s in banked
        ]
        demands = list(consumption)

        skipped_sources = tuple(
            s.source_id for s in (*sources, *carried) if s.month != month
        )
        skipped_consumers = tuple(d.site_id for d in demands if d.month != month)
        for source_id in skipped_sources:
            logger.warning(
                "source_month_mismatch_skipped",
                extra={"production_site_id": source_id, "month": month},
            )
        for site_id in skipped_consumers:
            logger.warning(
                "consumer_month_mismatch_skipped",
                extra={"consumption_site_id": site_id, "month": month},
            )

        states = [
            _SourceState(s, s.available.to_working())
            for s in (*sources, *carried)
            if s.month == month
        ]
        consumers = sorted(
            (
                _ConsumerState(d, d.remaining.to_working())
                for d in demands
                if d.month == month
            ),
            key=lambda c: c.demand.sort_key,
        )

        logger.info(
            "allocation_run_started",
            extra={
                "month": month,
                "source_count": len(states),
                "consumer_count": len(consumers),
            },
        )

        by_category = {
            category: [st for st in states if st.source.category == category]
            for category in CATEGORY_ORDER
        }

        run = _Run()
        for category in CATEGORY_ORDER:
            for state in by_category[category]:
                if not run.allocate_source(state, consumers):
                    logger.debug(
                        "source_unallocated",
                        extra={
                            "production_site_id": state.source.source_id,
                            "category": category.value,
                        },
                    )

        fresh = [
            st for category in CATEGORY_ORDER
            if category != SourceCategory.CARRIED_OVER_BANK
            for st in by_category[category]
        ]
        run.final_pass(fresh, consumers)

        banking_deltas: list[BankingDelta] = []
        lapse_deltas: list[LapseDelta] = []
        for category in CATEGORY_ORDER:
            for state in by_category[category]:
                unused = PeriodValues.from_periods(state.remaining)
                disposition = self.policy.compute_from_scratch(state.source, unused)
                if isinstance(disposition, BankingDelta):
                    banking_deltas.append(disposition)
                elif isinstance(disposition, LapseDelta):
                    lapse_deltas.append(disposition)

        allocations = tuple(
            e.to_delta() for e in run.entries.values() if any(
                v > ZERO for v in e.allocated.values()
            )
        )
        result = AllocationResult(
            month=month,
            allocations=allocations,
            banking_deltas=tuple(banking_deltas),
            lapse_deltas=tuple(lapse_deltas),
            remaining_consumption=sum((c.total_remaining for c in consumers), ZERO),
            remaining_production=sum((s.total_remaining for s in fresh), ZERO),
            skipped_sources=skipped_sources,
            skipped_consumers=skipped_consumers,
        )

        logger.info(
            "allocation_run_completed",
            extra={
                "month": month,
                "allocation_count": len(result.allocations),
                "banking_count": len(result.banking_deltas),
                "lapse_count": len(result.lapse_deltas),
                "remaining_consumption": result.remaining_consumption,
                "remaining_production": result.remaining_production,
            },
        )
        if not result.is_balanced:
            logger.info(
                "allocation_month_unbalanced",
                extra={
                    "month": month,
                    "under_supplied": result.is_under_supplied,
                    "over_supplied": result.is_over_supplied,
                },
            )
        return result


def _as_carried_over(source: ProductionSource) -> ProductionSource:
    return ProductionSource(
        source_id=source.source_id,
        company_id=source.company_id,
        source_type=source.source_type,
        month=source.month,
        available=source.available,
        banking_enabled=source.banking_enabled,
        is_carried_over_bank=True,
        site_name=source.site_name,
    )
