"""
Property-based tests for the batch allocator.

Generated months of solar, wind and carried-over banked sources against
random demand.  Checked for every run:

- Conservation: allocated + banked + lapsed == available, per source and period.
- Matching rule: no unit from a non-peak period lands in another period.
- Demand bound: no consumer receives more than it asked for in any period.
- Zero input: a month with nothing left to move produces nothing.
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from energy_engines.batch_allocator import BatchAllocator
from energy_kernel.domain.dtos import ConsumptionDemand, ProductionSource
from energy_kernel.domain.periods import PERIOD_KEYS, Period, PeriodValues, is_allocation_allowed

MONTH = "012024"

quantities = st.integers(min_value=0, max_value=500)
period_values = st.builds(
    PeriodValues, c1=quantities, c2=quantities, c3=quantities, c4=quantities, c5=quantities
)


@st.composite
def months(draw):
    kinds = draw(st.lists(st.sampled_from(["SOLAR", "WIND", "WIND_BANKING"]), max_size=5))
    production = [
        ProductionSource(
            f"P{i}",
            "C1",
            "SOLAR" if kind == "SOLAR" else "WIND",
            MONTH,
            draw(period_values),
            banking_enabled=kind == "WIND_BANKING",
        )
        for i, kind in enumerate(kinds)
    ]
    banked = [
        ProductionSource(f"B{i}", "C1", "WIND", MONTH, draw(period_values), is_carried_over_bank=True)
        for i in range(draw(st.integers(min_value=0, max_value=2)))
    ]
    consumption = [
        ConsumptionDemand(f"S{i}", MONTH, draw(period_values))
        for i in range(draw(st.integers(min_value=0, max_value=5)))
    ]
    return production, consumption, banked


def _run(month_inputs):
    production, consumption, banked = month_inputs
    result = BatchAllocator().allocate(
        month=MONTH, production=production, consumption=consumption, banked=banked
    )
    return production, consumption, banked, result


_SETTINGS = settings(max_examples=150, deadline=None, suppress_health_check=[HealthCheck.too_slow])


@_SETTINGS
@given(months())
def test_every_source_unit_is_accounted_for(month_inputs):
    production, _, banked, result = _run(month_inputs)

    moved: dict[tuple[str, Period], Decimal] = {}
    for delta in result.allocations:
        for t in delta.transfers:
            slot = (delta.production_site_id, t.source_period)
            moved[slot] = moved.get(slot, Decimal(0)) + t.amount

    left: dict[str, PeriodValues] = {}
    for b in result.banking_deltas:
        left[b.production_site_id] = left.get(b.production_site_id, PeriodValues()) + b.banked
    for lp in result.lapse_deltas:
        left[lp.production_site_id] = left.get(lp.production_site_id, PeriodValues()) + lp.lapsed

    for source in (*production, *banked):
        leftover = left.get(source.source_id, PeriodValues())
        for period in Period:
            total = moved.get((source.source_id, period), Decimal(0)) + leftover[period]
            assert total == source.available[period], (source.source_id, period.value)


@_SETTINGS
@given(months())
def test_non_peak_units_stay_in_their_period(month_inputs):
    *_, result = _run(month_inputs)

    for delta in result.allocations:
        per_target: dict[Period, Decimal] = {}
        for t in delta.transfers:
            assert is_allocation_allowed(t.source_period, t.target_period)
            per_target[t.target_period] = per_target.get(t.target_period, Decimal(0)) + t.amount
        assert PeriodValues.from_periods(per_target) == delta.allocated


@_SETTINGS
@given(months())
def test_no_consumer_is_over_served(month_inputs):
    _, consumption, _, result = _run(month_inputs)

    received: dict[str, PeriodValues] = {}
    for delta in result.allocations:
        site = delta.consumption_site_id
        received[site] = received.get(site, PeriodValues()) + delta.allocated

    for demand in consumption:
        got = received.get(demand.site_id, PeriodValues())
        for key in PERIOD_KEYS:
            assert got[key] <= demand.remaining[key]


@_SETTINGS
@given(months())
def test_only_wind_banking_sources_bank(month_inputs):
    production, _, banked, result = _run(month_inputs)
    may_bank = {s.source_id for s in production if s.banking_enabled}

    assert {b.production_site_id for b in result.banking_deltas} <= may_bank
    carried = {s.source_id for s in banked}
    for lp in result.lapse_deltas:
        assert lp.from_bank == (lp.production_site_id in carried)


@settings(max_examples=50, deadline=None)
@given(
    st.integers(min_value=0, max_value=4),
    st.integers(min_value=0, max_value=4),
    st.integers(min_value=0, max_value=2),
)
def test_zeroed_month_produces_nothing(n_sources, n_consumers, n_banked):
    production = [
        ProductionSource(f"P{i}", "C1", "WIND", MONTH, PeriodValues(), banking_enabled=True)
        for i in range(n_sources)
    ]
    banked = [
        ProductionSource(f"B{i}", "C1", "WIND", MONTH, PeriodValues(), is_carried_over_bank=True)
        for i in range(n_banked)
    ]
    consumption = [ConsumptionDemand(f"S{i}", MONTH, PeriodValues()) for i in range(n_consumers)]

    result = BatchAllocator().allocate(
        month=MONTH, production=production, consumption=consumption, banked=banked
    )

    assert result.is_empty
    assert result.is_balanced
