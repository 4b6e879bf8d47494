"""
energy_services.delta_reconciler -- Propagate single-record edits to banking/lapse.

Responsibility:
    When one allocation record changes from ``old`` to ``new`` values, the
    production that moved in or out of that record has to land in the
    site's banking row (banking-enabled WIND) or lapse row (everything
    else).  This module reads the current ledger rows, asks
    ``DispositionPolicy.apply_delta`` what to write, and writes it.  It also
    runs the charge guard around every allocation write.

Architecture position:
    Services -- composes kernel ledgers, the site selector, the charge
    guard and the pure disposition policy.  Works inside the caller's
    session; never commits.

Invariants enforced:
    - The banking flag is looked up fresh from the site registry unless
      the caller passes it explicitly.
    - Banking and lapse rows are created lazily on the first non-zero
      change.  A no-op adjustment writes nothing.
    - Clearing or deleting the chargeable record hands the flag to the
      record with the greatest total.

Failure modes:
    - ProductionSiteNotFoundError when the flag lookup finds no site.
    - ChargeConflictError / ChargeOnZeroTotalError from the charge guard.
    - AllocationNotFoundError on update or delete of a missing record.
    - OptimisticConcurrencyError from any ledger write.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from sqlalchemy.orm import Session

from energy_engines.disposition import DispositionKind, DispositionPolicy, LedgerAdjustment
from energy_kernel.domain.clock import Clock
from energy_kernel.domain.dtos import (
    AllocationKey,
    AllocationRecordInfo,
    BankingRecordInfo,
    LapseRecordInfo,
)
from energy_kernel.domain.periods import PeriodValues
from energy_kernel.domain.validation import AllocationRequest
from energy_kernel.exceptions import AllocationNotFoundError
from energy_kernel.logging_config import get_logger
from energy_kernel.selectors.site_selector import SiteSelector
from energy_kernel.services.charge_guard import ChargeInvariantGuard
from energy_kernel.services.ledger_service import (
    AllocationLedger,
    BankingLedger,
    LapseLedger,
    LedgerJournal,
)

logger = get_logger("services.delta_reconciler")


@dataclass(frozen=True)
class ReconcileOutcome:
    """What one reconciled edit changed."""

    key: AllocationKey
    previous: AllocationRecordInfo | None
    allocation: AllocationRecordInfo | None
    adjustment: LedgerAdjustment | None = None
    banking: BankingRecordInfo | None = None
    lapse: LapseRecordInfo | None = None
    charge_holder: AllocationRecordInfo | None = None

    @property
    def unchanged(self) -> bool:
        return self.previous is not None and self.previous == self.allocation


class DeltaReconciler:
    """
    Edit-path counterpart of the month allocator.

    Contract:
        All writes go through the kernel ledgers with the given journal, so
        the transaction coordinator can compensate them.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        journal: LedgerJournal | None = None,
        policy: DispositionPolicy | None = None,
        charge_tie_break: str = "consumption_site_id",
    ):
        self.allocations = AllocationLedger(session, clock, journal)
        self.banking = BankingLedger(session, clock, journal)
        self.lapse = LapseLedger(session, clock, journal)
        self.sites = SiteSelector(session)
        self.guard = ChargeInvariantGuard(self.allocations, charge_tie_break)
        self.policy = policy or DispositionPolicy()

    # -- ledger propagation -------------------------------------------------

    def apply_allocation_edit(
        self,
        key: AllocationKey,
        old: PeriodValues,
        new: PeriodValues,
        site_banking_enabled: bool | None = None,
        transaction_id: str | None = None,
    ) -> tuple[LedgerAdjustment, BankingRecordInfo | LapseRecordInfo | None]:
        """
        Move the banking or lapse row of ``key``'s production site by ``new - old``.

        Returns:
            The adjustment and the written row (None when nothing was written).
        """
        if site_banking_enabled is None:
            site_banking_enabled = self.sites.banking_enabled(
                key.company_id, key.production_site_id
            )

        if site_banking_enabled:
            row = self.banking.get(key.company_id, key.production_site_id, key.month)
            current = row.banked if row is not None else PeriodValues.zero()
        else:
            row = self.lapse.get(key.company_id, key.production_site_id, key.month)
            current = row.allocated if row is not None else PeriodValues.zero()

        adjustment = self.policy.apply_delta(site_banking_enabled, old, new, current)
        if adjustment.is_noop:
            return adjustment, None

        match adjustment.kind:
            case DispositionKind.BANK:
                info = row if row is not None else BankingRecordInfo(
                    key.company_id, key.production_site_id, key.month
                )
                written = self.banking.put(replace(info, banked=adjustment.resulting), transaction_id)
            case DispositionKind.LAPSE:
                info = row if row is not None else LapseRecordInfo(
                    key.company_id, key.production_site_id, key.month
                )
                written = self.lapse.put(replace(info, allocated=adjustment.resulting), transaction_id)

        logger.info(
            "ledger_delta_applied",
            extra={
                "allocation_key": str(key),
                "disposition": adjustment.kind.value,
                "applied_total": adjustment.applied.total,
                "resulting_total": adjustment.resulting.total,
            },
        )
        return adjustment, written

    # -- allocation edits -----------------------------------------------------

    def reconcile_edit(
        self,
        request: AllocationRequest,
        transaction_id: str | None = None,
        require_existing: bool = False,
    ) -> ReconcileOutcome:
        """
        Write one allocation record and propagate the change.

        Steps: read the stored row, check the charge flag, write the row,
        move banking/lapse by the difference, and reassign the charge if
        this record gave it up.
        """
        key = request.key
        existing = self.allocations.get(key)
        if existing is None and require_existing:
            raise AllocationNotFoundError(str(key))

        if request.charge == 1:
            self.guard.validate_charge_assignment(key.month, key, 1, request.allocated)

        if (
            existing is not None
            and existing.allocated == request.allocated
            and existing.charge == request.charge
        ):
            logger.debug("allocation_unchanged", extra={"allocation_key": str(key)})
            return ReconcileOutcome(key=key, previous=existing, allocation=existing)

        banking_enabled = self.sites.banking_enabled(key.company_id, key.production_site_id)
        old = existing.allocated if existing is not None else PeriodValues.zero()
        info = (
            replace(existing, allocated=request.allocated, charge=request.charge)
            if existing is not None
            else AllocationRecordInfo(key=key, allocated=request.allocated, charge=request.charge)
        )
        written = self.allocations.put(info, transaction_id)

        adjustment, ledger_row = self.apply_allocation_edit(
            key, old, request.allocated, banking_enabled, transaction_id
        )

        holder = written if written.charge == 1 else None
        if existing is not None and existing.charge == 1 and request.charge == 0:
            holder = self.guard.reassign_on_removal_or_clear(key.month, key, transaction_id)

        return ReconcileOutcome(
            key=key,
            previous=existing,
            allocation=written,
            adjustment=adjustment,
            banking=ledger_row if isinstance(ledger_row, BankingRecordInfo) else None,
            lapse=ledger_row if isinstance(ledger_row, LapseRecordInfo) else None,
            charge_holder=holder,
        )

    def remove(self, key: AllocationKey, transaction_id: str | None = None) -> ReconcileOutcome:
        """Delete one allocation record; its units return to banking or lapse."""
        existing = self.allocations.get(key)
        if existing is None:
            raise AllocationNotFoundError(str(key))

        banking_enabled = self.sites.banking_enabled(key.company_id, key.production_site_id)
        self.allocations.delete(existing, transaction_id)
        adjustment, ledger_row = self.apply_allocation_edit(
            key, existing.allocated, PeriodValues.zero(), banking_enabled, transaction_id
        )

        holder = None
        if existing.charge == 1:
            holder = self.guard.reassign_on_removal_or_clear(key.month, key, transaction_id)

        logger.info(
            "allocation_removed",
            extra={"allocation_key": str(key), "had_charge": existing.charge == 1},
        )
        return ReconcileOutcome(
            key=key,
            previous=existing,
            allocation=None,
            adjustment=adjustment,
            banking=ledger_row if isinstance(ledger_row, BankingRecordInfo) else None,
            lapse=ledger_row if isinstance(ledger_row, LapseRecordInfo) else None,
            charge_holder=holder,
        )
