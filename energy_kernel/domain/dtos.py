"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through the allocation
    pipeline: ProductionSource / ConsumptionDemand (engine input),
    AllocationDelta / BankingDelta / LapseDelta (engine output),
    AllocationResult (month run output) and the *Info read-side DTOs
    returned by ledger services and selectors.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ``from_model()`` class methods are boundary
    converters invoked only from the service and selector layers.

Invariants enforced:
    - Every per-period quantity is a ``PeriodValues`` (never a dict).
    - Every month field is validated through ``MonthKey``.
    - Engine inputs (``available`` / ``remaining``) are non-negative.
    - ``ProductionSource.banking_enabled`` is resolved at construction:
      ``type == WIND and banking_flag == 1`` when not supplied.

Failure modes:
    - InvalidMonthKeyError, InvalidPeriodKeysError, NegativePeriodValueError,
      InvalidSourceTypeError, InvalidAllocationKeyError on bad input.

Data flow:
    ProductionSource + ConsumptionDemand -> AllocationResult
    AllocationResult -> AllocationRecordInfo / BankingRecordInfo / LapseRecordInfo
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from energy_kernel.domain.month import MonthKey
from energy_kernel.domain.periods import ZERO, Period, PeriodValues
from energy_kernel.exceptions import InvalidAllocationKeyError, InvalidSourceTypeError

if TYPE_CHECKING:
    from energy_kernel.models.allocation import AllocationRecord as AllocationModel
    from energy_kernel.models.banking import BankingRecord as BankingModel
    from energy_kernel.models.lapse import LapseRecord as LapseModel
    from energy_kernel.models.production_site import ProductionSite as SiteModel


def _as_period_values(value: Any, field_name: str) -> PeriodValues:
    if isinstance(value, PeriodValues):
        return value
    if isinstance(value, Mapping):
        return PeriodValues.from_mapping(value, field_name)
    raise TypeError(f"{field_name} must be PeriodValues or a c1..c5 mapping")


def ledger_pk(company_id: str, production_site_id: str) -> str:
    """Banking/lapse partition key ``companyId_productionSiteId``."""
    return f"{company_id}_{production_site_id}"


class SourceType(str, Enum):
    """Production technology of a site."""

    SOLAR = "SOLAR"
    WIND = "WIND"

    @classmethod
    def parse(cls, raw: Any) -> SourceType:
        if isinstance(raw, SourceType):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            raise InvalidSourceTypeError(raw) from None


class SourceCategory(str, Enum):
    """
    Processing category of a production source in a month run.

    Contract:
        Declaration order is the fixed processing order of the Batch
        Allocator: SOLAR, WIND_NON_BANKING, WIND_BANKING, CARRIED_OVER_BANK.
    """

    SOLAR = "solar"
    WIND_NON_BANKING = "wind_non_banking"
    WIND_BANKING = "wind_banking"
    CARRIED_OVER_BANK = "carried_over_bank"


# ---------------------------------------------------------------------------
# Engine input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductionSource:
    """
    One production site's output for one month (or a carried-over bank).

    Contract:
        ``available`` is non-negative in every period.  A source with
        ``is_carried_over_bank=True`` never banks again.

    Guarantees:
        - ``banking_enabled`` is a bool after construction.
        - ``banking_enabled`` is False for SOLAR regardless of the flag.
    """

    source_id: str
    company_id: str
    source_type: SourceType
    month: str
    available: PeriodValues
    banking_enabled: bool | None = None
    banking_flag: int = 0
    is_carried_over_bank: bool = False
    site_name: str = ""

    def __post_init__(self) -> None:
        source_type = SourceType.parse(self.source_type)
        object.__setattr__(self, "source_type", source_type)
        object.__setattr__(self, "month", MonthKey.parse(self.month).value)
        available = _as_period_values(self.available, "available")
        object.__setattr__(
            self, "available", available.require_non_negative("available")
        )
        if self.banking_enabled is None:
            enabled = source_type == SourceType.WIND and int(self.banking_flag) == 1
        else:
            enabled = bool(self.banking_enabled) and source_type == SourceType.WIND
        object.__setattr__(self, "banking_enabled", enabled)
        object.__setattr__(self, "site_name", self.site_name or f"Production-{self.source_id}")

    @property
    def category(self) -> SourceCategory:
        if self.is_carried_over_bank:
            return SourceCategory.CARRIED_OVER_BANK
        if self.source_type == SourceType.SOLAR:
            return SourceCategory.SOLAR
        if self.banking_enabled:
            return SourceCategory.WIND_BANKING
        return SourceCategory.WIND_NON_BANKING

    @property
    def ledger_pk(self) -> str:
        return ledger_pk(self.company_id, self.source_id)


@dataclass(frozen=True)
class ConsumptionDemand:
    """One consumption site's unmet demand for one month."""

    site_id: str
    month: str
    remaining: PeriodValues
    site_name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "month", MonthKey.parse(self.month).value)
        remaining = _as_period_values(self.remaining, "remaining")
        object.__setattr__(
            self, "remaining", remaining.require_non_negative("remaining")
        )

    @property
    def sort_key(self) -> tuple[tuple[int, int], str]:
        """Deterministic consumer order: (year, month), then site name."""
        return (MonthKey(self.month).sort_key, self.site_name or self.site_id)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationKey:
    """Identity of an allocation record: company, production, consumption, month."""

    company_id: str
    production_site_id: str
    consumption_site_id: str
    month: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "month", MonthKey.parse(self.month).value)

    @classmethod
    def from_pk(cls, pk: str, month: str) -> AllocationKey:
        """Parse the wire pk ``companyId_productionSiteId_consumptionSiteId``."""
        parts = str(pk).split("_") if pk else []
        if len(parts) != 3 or not all(parts):
            raise InvalidAllocationKeyError(pk)
        return cls(parts[0], parts[1], parts[2], month)

    @property
    def pk(self) -> str:
        return f"{self.company_id}_{self.production_site_id}_{self.consumption_site_id}"

    @property
    def ledger_pk(self) -> str:
        return ledger_pk(self.company_id, self.production_site_id)

    def __str__(self) -> str:
        return f"{self.pk}#{self.month}"


# ---------------------------------------------------------------------------
# Engine output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PeriodTransfer:
    """A quantity moved from a source period into a target period."""

    source_period: Period
    target_period: Period
    amount: Decimal
    from_bank: bool = False


@dataclass(frozen=True)
class AllocationDelta:
    """
    Units assigned from one production site to one consumption site.

    ``allocated`` is keyed by target (consumption) period.  ``transfers``
    records every individual move so the source-period side stays
    auditable.
    """

    company_id: str
    production_site_id: str
    consumption_site_id: str
    month: str
    allocated: PeriodValues
    transfers: tuple[PeriodTransfer, ...] = ()
    source_type: SourceType = SourceType.SOLAR
    site_name: str = ""
    consumption_site_name: str = ""

    @property
    def key(self) -> AllocationKey:
        return AllocationKey(
            self.company_id,
            self.production_site_id,
            self.consumption_site_id,
            self.month,
        )

    @property
    def from_bank(self) -> PeriodValues:
        """Portion of ``allocated`` served by carried-over banked units."""
        totals: dict[Period, Decimal] = {}
        for t in self.transfers:
            if t.from_bank:
                totals[t.target_period] = totals.get(t.target_period, ZERO) + t.amount
        return PeriodValues.from_periods(totals)


@dataclass(frozen=True)
class BankingDelta:
    """Month-total banked units for a source (replaces prior month value)."""

    company_id: str
    production_site_id: str
    month: str
    banked: PeriodValues
    site_name: str = ""

    @property
    def ledger_pk(self) -> str:
        return ledger_pk(self.company_id, self.production_site_id)


@dataclass(frozen=True)
class LapseDelta:
    """Month-total lapsed units for a source."""

    company_id: str
    production_site_id: str
    month: str
    lapsed: PeriodValues
    from_bank: bool = False
    site_name: str = ""

    @property
    def ledger_pk(self) -> str:
        return ledger_pk(self.company_id, self.production_site_id)


@dataclass(frozen=True)
class AllocationResult:
    """
    Output of one Batch Allocator run.

    Contract:
        Non-zero ``remaining_consumption`` / ``remaining_production`` mark an
        unbalanced month.  That is data for the caller, not an error.
    """

    month: str
    allocations: tuple[AllocationDelta, ...] = ()
    banking_deltas: tuple[BankingDelta, ...] = ()
    lapse_deltas: tuple[LapseDelta, ...] = ()
    remaining_consumption: Decimal = ZERO
    remaining_production: Decimal = ZERO
    skipped_sources: tuple[str, ...] = ()
    skipped_consumers: tuple[str, ...] = ()

    @property
    def is_under_supplied(self) -> bool:
        return self.remaining_consumption > ZERO

    @property
    def is_over_supplied(self) -> bool:
        return self.remaining_production > ZERO

    @property
    def is_balanced(self) -> bool:
        return not self.is_under_supplied and not self.is_over_supplied

    @property
    def is_empty(self) -> bool:
        return not (self.allocations or self.banking_deltas or self.lapse_deltas)


# ---------------------------------------------------------------------------
# Ledger read-side DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AllocationRecordInfo:
    """
    Allocation ledger row.

    Contract:
        ``version`` is the version that was read.  Passing an info with
        version 0 to ``AllocationLedger.put`` inserts; any other version is
        a conditional update on that version.
    """

    key: AllocationKey
    allocated: PeriodValues = field(default_factory=PeriodValues)
    charge: int = 0
    version: int = 0
    transaction_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "charge", 1 if self.charge else 0)

    @property
    def total(self) -> Decimal:
        return self.allocated.total

    @classmethod
    def from_model(cls, model: AllocationModel) -> AllocationRecordInfo:
        return cls(
            key=AllocationKey(
                model.company_id,
                model.production_site_id,
                model.consumption_site_id,
                model.month,
            ),
            allocated=model.period_values(),
            charge=model.charge,
            version=model.version,
            transaction_id=model.transaction_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class BankingRecordInfo:
    """Banking ledger row keyed by ``(companyId_productionSiteId, month)``."""

    company_id: str
    production_site_id: str
    month: str
    banked: PeriodValues = field(default_factory=PeriodValues)
    version: int = 0
    transaction_id: str | None = None
    site_name: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def pk(self) -> str:
        return ledger_pk(self.company_id, self.production_site_id)

    @property
    def total_banking(self) -> Decimal:
        return self.banked.total

    @classmethod
    def from_model(cls, model: BankingModel) -> BankingRecordInfo:
        return cls(
            company_id=model.company_id,
            production_site_id=model.production_site_id,
            month=model.month,
            banked=model.period_values(),
            version=model.version,
            transaction_id=model.transaction_id,
            site_name=model.site_name or "",
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class LapseRecordInfo:
    """Lapse ledger row; ``allocated`` holds the written-off units."""

    company_id: str
    production_site_id: str
    month: str
    allocated: PeriodValues = field(default_factory=PeriodValues)
    version: int = 0
    transaction_id: str | None = None
    site_name: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def pk(self) -> str:
        return ledger_pk(self.company_id, self.production_site_id)

    @property
    def total_lapse(self) -> Decimal:
        return self.allocated.total

    @classmethod
    def from_model(cls, model: LapseModel) -> LapseRecordInfo:
        return cls(
            company_id=model.company_id,
            production_site_id=model.production_site_id,
            month=model.month,
            allocated=model.period_values(),
            version=model.version,
            transaction_id=model.transaction_id,
            site_name=model.site_name or "",
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class ProductionSiteInfo:
    """Registry view of a production site."""

    company_id: str
    production_site_id: str
    name: str
    site_type: SourceType
    banking: int = 0
    version: int = 0

    @property
    def banking_enabled(self) -> bool:
        return self.site_type == SourceType.WIND and self.banking == 1

    @classmethod
    def from_model(cls, model: SiteModel) -> ProductionSiteInfo:
        return cls(
            company_id=model.company_id,
            production_site_id=model.production_site_id,
            name=model.name,
            site_type=SourceType.parse(model.site_type),
            banking=model.banking,
            version=model.version,
        )
