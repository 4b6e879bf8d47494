"""
Pure domain layer.

This module contains the period model, month keys, allocation DTOs and
payload validation with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from energy_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from energy_kernel.domain.dtos import (
    AllocationDelta,
    AllocationKey,
    AllocationRecordInfo,
    AllocationResult,
    BankingDelta,
    BankingRecordInfo,
    ConsumptionDemand,
    LapseDelta,
    LapseRecordInfo,
    PeriodTransfer,
    ProductionSiteInfo,
    ProductionSource,
    SourceCategory,
    SourceType,
    ledger_pk,
)
from energy_kernel.domain.month import MonthKey
from energy_kernel.domain.periods import (
    ALLOCATION_ORDER,
    NON_PEAK_PERIODS,
    PEAK_PERIODS,
    ZERO,
    Period,
    PeriodValues,
    is_allocation_allowed,
)
from energy_kernel.domain.validation import (
    AllocationRequest,
    coerce_charge,
    parse_allocation_payload,
    validate_batch_charges,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Period model
    "ALLOCATION_ORDER",
    "NON_PEAK_PERIODS",
    "PEAK_PERIODS",
    "ZERO",
    "Period",
    "PeriodValues",
    "is_allocation_allowed",
    "MonthKey",
    # DTOs
    "AllocationDelta",
    "AllocationKey",
    "AllocationRecordInfo",
    "AllocationResult",
    "BankingDelta",
    "BankingRecordInfo",
    "ConsumptionDemand",
    "LapseDelta",
    "LapseRecordInfo",
    "PeriodTransfer",
    "ProductionSiteInfo",
    "ProductionSource",
    "SourceCategory",
    "SourceType",
    "ledger_pk",
    # Validation
    "AllocationRequest",
    "coerce_charge",
    "parse_allocation_payload",
    "validate_batch_charges",
]
