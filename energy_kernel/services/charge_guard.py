"""
ChargeInvariantGuard -- at most one chargeable allocation per company and month.

Responsibility:
    Validates a proposed ``charge=1`` against the allocation ledger and,
    when the chargeable record is deleted or cleared, moves the flag to the
    record with the greatest allocated total.

Architecture position:
    Kernel > Services.  Reads and writes through AllocationLedger so every
    reassignment is versioned and journaled like any other write.

Invariants enforced:
    - For every (company, month) at most one record has charge=1.
    - The chargeable record has a total greater than zero.
    - Reassignment is deterministic: greatest total, then smallest
      consumption-site id, then smallest production-site id (the two
      site ids swap places with tie_break="production_site_id").

Failure modes:
    - ChargeOnZeroTotalError: the candidate has no units.
    - ChargeConflictError: another key already holds the flag.
    - OptimisticConcurrencyError: the replacement row changed under us.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from energy_kernel.domain.dtos import AllocationKey, AllocationRecordInfo
from energy_kernel.domain.periods import ZERO, PeriodValues
from energy_kernel.exceptions import ChargeConflictError, ChargeOnZeroTotalError
from energy_kernel.logging_config import get_logger
from energy_kernel.services.ledger_service import AllocationLedger

logger = get_logger("services.charge_guard")


TIE_BREAKS = ("consumption_site_id", "production_site_id")


def select_replacement(
    records: Iterable[AllocationRecordInfo],
    tie_break: str = "consumption_site_id",
) -> AllocationRecordInfo | None:
    """
    Pick the record that should inherit the charge flag, or None.

    Equal totals are ordered by the ``tie_break`` site id first, then the
    other one.
    """
    if tie_break not in TIE_BREAKS:
        raise ValueError(f"Unsupported charge tie-break: {tie_break!r}")
    eligible = [r for r in records if r.total > ZERO]
    if not eligible:
        return None
    other = TIE_BREAKS[1] if tie_break == TIE_BREAKS[0] else TIE_BREAKS[0]
    return min(
        eligible,
        key=lambda r: (-r.total, getattr(r.key, tie_break), getattr(r.key, other)),
    )


class ChargeInvariantGuard:
    """
    Enforces the single-chargeable-record invariant.

    Contract:
        ``validate_charge_assignment`` is read-only.
        ``reassign_on_removal_or_clear`` writes at most one row.

    Non-goals:
        - Does NOT decide whether a record *should* be charged; callers
          request that explicitly.
    """

    def __init__(self, allocations: AllocationLedger, tie_break: str = "consumption_site_id"):
        self._allocations = allocations
        self._tie_break = tie_break

    def validate_charge_assignment(
        self,
        month: str,
        key: AllocationKey,
        proposed_charge: int,
        allocated: PeriodValues | None = None,
    ) -> None:
        """
        Raise if ``key`` may not hold charge=1 in ``month``.

        ``allocated`` is the candidate's values after the pending write; when
        omitted the stored row is used.  Re-asserting the flag on the record
        that already holds it is allowed.
        """
        if proposed_charge != 1:
            return

        if allocated is None:
            current = self._allocations.get(key)
            allocated = current.allocated if current is not None else PeriodValues()
        if allocated.total <= ZERO:
            raise ChargeOnZeroTotalError(key.pk)

        for record in self._allocations.list_for_company_month(key.company_id, month):
            if record.charge == 1 and record.key != key:
                logger.warning(
                    "charge_conflict",
                    extra={
                        "company_id": key.company_id,
                        "month": month,
                        "existing_key": record.key.pk,
                        "requested_key": key.pk,
                    },
                )
                raise ChargeConflictError(key.company_id, month, record.key.pk, key.pk)

    def reassign_on_removal_or_clear(
        self,
        month: str,
        removed_key: AllocationKey,
        transaction_id: str | None = None,
    ) -> AllocationRecordInfo | None:
        """
        Move the charge flag off ``removed_key``.

        Returns:
            The record now holding charge=1, or None when no other record
            with units exists.
        """
        others = [
            r
            for r in self._allocations.list_for_company_month(removed_key.company_id, month)
            if r.key != removed_key
        ]

        holder = next((r for r in others if r.charge == 1), None)
        if holder is not None:
            return holder

        replacement = select_replacement(others, self._tie_break)
        if replacement is None:
            logger.info(
                "charge_not_reassigned",
                extra={"company_id": removed_key.company_id, "month": month,
                       "removed_key": removed_key.pk},
            )
            return None

        updated = self._allocations.put(replace(replacement, charge=1), transaction_id)
        logger.info(
            "charge_reassigned",
            extra={
                "company_id": removed_key.company_id,
                "month": month,
                "removed_key": removed_key.pk,
                "new_key": updated.key.pk,
                "total": updated.total,
            },
        )
        return updated
