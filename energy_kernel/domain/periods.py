"""
Periods -- the five monthly allocation buckets and their matching rule.

Responsibility:
    Defines ``Period`` (c1..c5), its Peak/NonPeak classification, the
    matching rule ``is_allocation_allowed`` and ``PeriodValues``, the
    fixed five-field record used for every per-period quantity in the
    system (available, remaining, allocated, banked, lapsed).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Peak = {c2, c3}; NonPeak = {c1, c4, c5}.
    - A Peak source unit may satisfy any target period; a NonPeak source
      unit may only satisfy the same period.  The relation is neither
      symmetric nor transitive across NonPeak periods.
    - ``PeriodValues`` always carries exactly five Decimal fields.  Wire
      mappings with missing or unknown keys are rejected at construction
      time (``from_mapping``), never silently defaulted.

Failure modes:
    - InvalidPeriodKeysError: mapping keys are not exactly c1..c5.
    - NegativePeriodValueError: ``require_non_negative`` found a value < 0.
    - ValueError / TypeError: value is not a finite number.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from energy_kernel.exceptions import InvalidPeriodKeysError, NegativePeriodValueError

ZERO = Decimal("0")


class Period(str, Enum):
    """Sub-monthly allocation bucket."""

    C1 = "c1"
    C2 = "c2"
    C3 = "c3"
    C4 = "c4"
    C5 = "c5"

    @property
    def is_peak(self) -> bool:
        return self in PEAK_PERIODS


PEAK_PERIODS: frozenset[Period] = frozenset({Period.C2, Period.C3})
NON_PEAK_PERIODS: frozenset[Period] = frozenset({Period.C1, Period.C4, Period.C5})

# Matching order: non-peak buckets first so same-period units are used
# before flexible peak units.
ALLOCATION_ORDER: tuple[Period, ...] = (
    Period.C1,
    Period.C4,
    Period.C5,
    Period.C2,
    Period.C3,
)

PERIOD_KEYS: tuple[str, ...] = tuple(p.value for p in Period)


def is_allocation_allowed(source_period: Period, target_period: Period) -> bool:
    """Return True if a unit produced in ``source_period`` may serve ``target_period``."""
    if source_period in PEAK_PERIODS:
        return True
    return source_period == target_period


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise TypeError(f"{name} must be a number, got bool")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Invalid quantity for {name}: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Quantity for {name} must be finite, got {value!r}")
    return result


@dataclass(frozen=True, slots=True)
class PeriodValues:
    """
    Per-period quantity record with exactly the fields c1..c5.

    Contract:
        Immutable.  Every field is a finite Decimal.  Sign is NOT
        restricted here because the banking ledger may legitimately go
        negative under incremental reconciliation; input boundaries call
        ``require_non_negative``.
    """

    c1: Decimal = ZERO
    c2: Decimal = ZERO
    c3: Decimal = ZERO
    c4: Decimal = ZERO
    c5: Decimal = ZERO

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _to_decimal(getattr(self, f.name), f.name))

    # -- construction -------------------------------------------------------

    @classmethod
    def zero(cls) -> PeriodValues:
        return cls()

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Any],
        field_name: str = "periods",
    ) -> PeriodValues:
        """
        Build from a wire mapping that must carry exactly the keys c1..c5.

        Raises:
            InvalidPeriodKeysError: on missing or unexpected keys.
        """
        keys = {str(k) for k in mapping}
        missing = tuple(k for k in PERIOD_KEYS if k not in keys)
        unexpected = tuple(sorted(keys - set(PERIOD_KEYS)))
        if missing or unexpected:
            raise InvalidPeriodKeysError(field_name, missing, unexpected)
        return cls(**{k: mapping[k] for k in PERIOD_KEYS})

    @classmethod
    def from_periods(cls, values: Mapping[Period, Decimal]) -> PeriodValues:
        """Build from a (possibly partial) Period-keyed working dict."""
        return cls(**{p.value: values.get(p, ZERO) for p in Period})

    # -- access -------------------------------------------------------------

    def __getitem__(self, period: Period | str) -> Decimal:
        return getattr(self, Period(period).value)

    def items(self) -> Iterator[tuple[Period, Decimal]]:
        for p in Period:
            yield p, getattr(self, p.value)

    def to_dict(self) -> dict[str, Decimal]:
        return {p.value: getattr(self, p.value) for p in Period}

    def to_working(self) -> dict[Period, Decimal]:
        """Mutable Period-keyed copy for algorithms that decrement in place."""
        return {p: getattr(self, p.value) for p in Period}

    def replace(self, period: Period | str, value: Any) -> PeriodValues:
        data = self.to_dict()
        data[Period(period).value] = value
        return PeriodValues(**data)

    # -- aggregates ---------------------------------------------------------

    @property
    def total(self) -> Decimal:
        return sum((getattr(self, p.value) for p in Period), ZERO)

    @property
    def peak_total(self) -> Decimal:
        return sum((getattr(self, p.value) for p in PEAK_PERIODS), ZERO)

    @property
    def non_peak_total(self) -> Decimal:
        return sum((getattr(self, p.value) for p in NON_PEAK_PERIODS), ZERO)

    @property
    def is_zero(self) -> bool:
        return all(getattr(self, p.value) == ZERO for p in Period)

    def require_non_negative(self, field_name: str) -> PeriodValues:
        """Return self, or raise NegativePeriodValueError naming the first bad period."""
        for p, value in self.items():
            if value < ZERO:
                raise NegativePeriodValueError(field_name, p.value, value)
        return self

    # -- arithmetic ---------------------------------------------------------

    def __add__(self, other: PeriodValues) -> PeriodValues:
        if not isinstance(other, PeriodValues):
            return NotImplemented
        return PeriodValues(**{p.value: self[p] + other[p] for p in Period})

    def __sub__(self, other: PeriodValues) -> PeriodValues:
        if not isinstance(other, PeriodValues):
            return NotImplemented
        return PeriodValues(**{p.value: self[p] - other[p] for p in Period})
