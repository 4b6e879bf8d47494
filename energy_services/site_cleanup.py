"""
energy_services.site_cleanup -- Remove a production site and its ledger rows.

Deletes every allocation, banking and lapse row of the site, then the
registry row, inside one unit of work under the site's lock.  Rows are
deleted through the versioned ledgers so a concurrent edit surfaces as
OptimisticConcurrencyError instead of being silently lost.  When one of
the deleted allocation rows held the charge flag, the flag is reassigned
within the same unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass

from energy_kernel.domain.clock import Clock
from energy_kernel.logging_config import LogContext, get_logger
from energy_kernel.services.charge_guard import ChargeInvariantGuard
from energy_kernel.services.ledger_service import AllocationLedger, BankingLedger, LapseLedger
from energy_kernel.services.site_service import SiteRegistry
from energy_services.lock_manager import LockManager
from energy_services.transaction_coordinator import TransactionCoordinator

logger = get_logger("services.site_cleanup")


@dataclass(frozen=True)
class CleanupResult:
    deleted_allocations: int = 0
    deleted_banking: int = 0
    deleted_lapse: int = 0
    site_removed: bool = False
    charges_reassigned: int = 0


class SiteCleanupService:
    def __init__(
        self,
        coordinator: TransactionCoordinator,
        lock_manager: LockManager,
        clock: Clock | None = None,
        charge_tie_break: str = "consumption_site_id",
    ):
        self._coordinator = coordinator
        self._locks = lock_manager
        self._clock = clock
        self._charge_tie_break = charge_tie_break

    def cleanup_production_site(self, company_id: str, production_site_id: str) -> CleanupResult:
        transaction_id = self._coordinator.begin()
        with LogContext.bind(
            transaction_id=transaction_id,
            company_id=company_id,
            production_site_id=production_site_id,
        ):
            try:
                with self._locks.hold(production_site_id, transaction_id):
                    with self._coordinator.unit_of_work(transaction_id) as uow:
                        ledgers = (
                            AllocationLedger(uow.session, self._clock, uow.journal),
                            BankingLedger(uow.session, self._clock, uow.journal),
                            LapseLedger(uow.session, self._clock, uow.journal),
                        )
                        allocation_rows = ledgers[0].list_for_production_site(
                            company_id, production_site_id
                        )
                        banking_rows = ledgers[1].list_for_site(company_id, production_site_id)
                        lapse_rows = ledgers[2].list_for_site(company_id, production_site_id)

                        for ledger, rows in zip(
                            ledgers, (allocation_rows, banking_rows, lapse_rows)
                        ):
                            for row in rows:
                                ledger.delete(row, transaction_id)

                        # the site's rows are gone, so the flag moves to another site
                        guard = ChargeInvariantGuard(ledgers[0], self._charge_tie_break)
                        reassigned = 0
                        for row in allocation_rows:
                            if row.charge == 1:
                                holder = guard.reassign_on_removal_or_clear(
                                    row.key.month, row.key, transaction_id
                                )
                                reassigned += holder is not None

                        removed = SiteRegistry(uow.session, self._clock).delete_site(
                            company_id, production_site_id
                        )
            finally:
                self._coordinator.end(transaction_id)

            result = CleanupResult(
                deleted_allocations=len(allocation_rows),
                deleted_banking=len(banking_rows),
                deleted_lapse=len(lapse_rows),
                site_removed=removed,
                charges_reassigned=reassigned,
            )
            logger.info(
                "production_site_cleaned_up",
                extra={
                    "deleted_allocations": result.deleted_allocations,
                    "deleted_banking": result.deleted_banking,
                    "deleted_lapse": result.deleted_lapse,
                    "site_removed": removed,
                    "charges_reassigned": reassigned,
                },
            )
        return result
