"""
Allocation payload validation.

Pure checks with no I/O.  Turns the wire shape
``{pk, sk, c1..c5, charge}`` into an ``AllocationRequest`` and rejects
batches in which two different records claim the charge flag for the same
company and month.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from energy_kernel.domain.dtos import AllocationKey
from energy_kernel.domain.month import MonthKey
from energy_kernel.domain.periods import PERIOD_KEYS, PeriodValues
from energy_kernel.exceptions import (
    ChargeConflictError,
    ChargeOnZeroTotalError,
    MissingFieldError,
)

_REQUIRED_FIELDS = ("pk", "sk", *PERIOD_KEYS)


@dataclass(frozen=True)
class AllocationRequest:
    """A validated single-record allocation write."""

    key: AllocationKey
    allocated: PeriodValues
    charge: int = 0

    @property
    def total(self):
        return self.allocated.total


def coerce_charge(raw: Any) -> int:
    """``True`` or integer ``1`` mean chargeable; everything else is 0."""
    if raw is True:
        return 1
    if isinstance(raw, int) and not isinstance(raw, bool) and raw == 1:
        return 1
    return 0


def parse_allocation_payload(payload: Mapping[str, Any]) -> AllocationRequest:
    """
    Validate one wire payload.

    Raises:
        MissingFieldError: pk, sk or any of c1..c5 absent, None or "".
        InvalidMonthKeyError: sk is not MMYYYY.
        InvalidAllocationKeyError: pk does not have three parts.
        NegativePeriodValueError: a period is below zero.
        ChargeOnZeroTotalError: charge=1 on a record with no units.
    """
    missing = [
        name for name in _REQUIRED_FIELDS
        if payload.get(name) is None or payload.get(name) == ""
    ]
    if missing:
        raise MissingFieldError(missing)

    month = MonthKey.parse(str(payload["sk"])).value
    key = AllocationKey.from_pk(str(payload["pk"]), month)
    allocated = PeriodValues.from_mapping(
        {p: payload[p] for p in PERIOD_KEYS}, "allocated"
    ).require_non_negative("allocated")
    charge = coerce_charge(payload.get("charge", 0))

    if charge == 1 and allocated.total == 0:
        raise ChargeOnZeroTotalError(key.pk)

    return AllocationRequest(key=key, allocated=allocated, charge=charge)


def validate_batch_charges(requests: Iterable[AllocationRequest]) -> None:
    """
    Reject a batch where two different keys claim charge=1 for one company/month.

    Re-asserting the charge on the same key twice is allowed.
    """
    claimed: dict[tuple[str, str], str] = {}
    for request in requests:
        if request.charge != 1:
            continue
        scope = (request.key.company_id, request.key.month)
        existing = claimed.setdefault(scope, request.key.pk)
        if existing != request.key.pk:
            raise ChargeConflictError(
                request.key.company_id, request.key.month, existing, request.key.pk
            )
