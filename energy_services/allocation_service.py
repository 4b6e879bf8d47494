"""
energy_services.allocation_service -- Public write and read surface of the engine.

Responsibility:
    Wires the lock manager, the transaction coordinator, the delta
    reconciler and the batch allocator together:

      - ``create_allocation`` / ``update_allocation`` / ``delete_allocation``
        edit one allocation record under the production site's lock.
      - ``create_batch_allocation`` validates a whole batch up front, then
        writes one unit of work per production site and compensates the
        committed units if a later one fails.
      - ``run_month`` runs the batch allocator and persists its result.
      - ``month_view`` reads a month back with totals.

Architecture position:
    Services -- top of the stack.  The only place that combines
    configuration, locks, sessions and engines.  All wiring is visible in
    ``__init__``.

Invariants enforced:
    - Every multi-ledger write sequence for a production site runs while
      holding that site's lock (resource id = production site id).
    - Batches are validated completely before the first write.
    - A failed batch is either fully compensated or reported as
      PartialWriteError naming the steps that could not be undone.

Failure modes:
    - ValidationError subclasses for bad payloads.
    - ResourceLockedError when another transaction holds a site.
    - ChargeConflictError, OptimisticConcurrencyError, NotFoundError
      subclasses from the reconciler.
    - PartialWriteError when compensation is incomplete.

Usage:
    service = AllocationService(get_session_factory(), clock=clock)
    outcome = service.create_allocation(
        {"pk": "C1_P1_S1", "sk": "012024", "c1": 80, "c2": 0, "c3": 0,
         "c4": 0, "c5": 0, "charge": 1}
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from contextlib import ExitStack
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from energy_config import EngineConfig, get_active_config
from energy_engines.allocation_summary import AllocationSummary, summarize
from energy_engines.batch_allocator import BatchAllocator
from energy_engines.disposition import DispositionKind, DispositionPolicy
from energy_kernel.db.engine import session_scope
from energy_kernel.domain.clock import Clock, SystemClock
from energy_kernel.domain.dtos import (
    AllocationKey,
    AllocationRecordInfo,
    AllocationResult,
    BankingRecordInfo,
    ConsumptionDemand,
    LapseRecordInfo,
    ProductionSource,
)
from energy_kernel.domain.month import MonthKey
from energy_kernel.domain.periods import PeriodValues
from energy_kernel.domain.validation import (
    AllocationRequest,
    parse_allocation_payload,
    validate_batch_charges,
)
from energy_kernel.exceptions import PartialWriteError
from energy_kernel.logging_config import LogContext, get_logger
from energy_kernel.selectors.allocation_selector import AllocationSelector, MonthLedgerView
from energy_kernel.services.charge_guard import ChargeInvariantGuard
from energy_kernel.services.ledger_service import (
    AllocationLedger,
    BankingLedger,
    LapseLedger,
)
from energy_services.delta_reconciler import DeltaReconciler, ReconcileOutcome
from energy_services.lock_manager import LockManager
from energy_services.site_cleanup import SiteCleanupService
from energy_services.transaction_coordinator import TransactionCoordinator, UnitOfWork

logger = get_logger("services.allocation")

AllocationInput = AllocationRequest | Mapping[str, Any]


@dataclass(frozen=True)
class BatchAllocationResult:
    transaction_id: str
    outcomes: tuple[ReconcileOutcome, ...]


@dataclass(frozen=True)
class MonthRunResult:
    """Allocator result plus the rows it persisted."""

    transaction_id: str
    result: AllocationResult
    allocations: tuple[AllocationRecordInfo, ...]
    banking: tuple[BankingRecordInfo, ...]
    lapse: tuple[LapseRecordInfo, ...]
    removed_allocations: tuple[AllocationKey, ...] = ()


@dataclass(frozen=True)
class MonthView:
    ledger: MonthLedgerView
    allocation_summary: AllocationSummary
    banking_summary: AllocationSummary
    lapse_summary: AllocationSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.ledger.month,
            "allocations": self.allocation_summary.to_dict(),
            "banking": self.banking_summary.to_dict(),
            "lapse": self.lapse_summary.to_dict(),
        }


def _as_request(item: AllocationInput) -> AllocationRequest:
    if isinstance(item, AllocationRequest):
        return item
    return parse_allocation_payload(item)


class AllocationService:
    """
    Composition root for allocation writes.

    Contract:
        Owns no session; opens one per unit of work from
        ``session_factory``.  Configuration comes from ``config`` or, when
        omitted, ``get_active_config()``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lock_manager: LockManager | None = None,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        policy: DispositionPolicy | None = None,
    ):
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._session_factory = session_factory
        self._policy = policy or DispositionPolicy(
            release_lapse_on_decrease=self._config.disposition.release_lapse_on_decrease
        )
        self._locks = lock_manager or LockManager(
            self._clock, self._config.locking.timeout_ms
        )
        self._coordinator = TransactionCoordinator(session_factory, self._clock)
        self._allocator = BatchAllocator(self._policy)
        self.site_cleanup = SiteCleanupService(
            self._coordinator,
            self._locks,
            self._clock,
            charge_tie_break=self._config.charge.tie_break,
        )

    @property
    def lock_manager(self) -> LockManager:
        return self._locks

    @property
    def coordinator(self) -> TransactionCoordinator:
        return self._coordinator

    def _reconciler(self, uow: UnitOfWork) -> DeltaReconciler:
        return DeltaReconciler(
            uow.session,
            self._clock,
            uow.journal,
            self._policy,
            charge_tie_break=self._config.charge.tie_break,
        )

    # -- single-record edits ------------------------------------------------

    def _edit_one(self, key: AllocationKey, operation: str, apply) -> ReconcileOutcome:
        transaction_id = self._coordinator.begin()
        with LogContext.bind(
            transaction_id=transaction_id,
            company_id=key.company_id,
            production_site_id=key.production_site_id,
            month=key.month,
        ):
            try:
                with self._locks.hold(key.production_site_id, transaction_id):
                    with self._coordinator.unit_of_work(transaction_id) as uow:
                        outcome = apply(self._reconciler(uow), transaction_id)
            finally:
                self._coordinator.end(transaction_id)

            logger.info(
                "allocation_edit_committed",
                extra={"operation": operation, "allocation_key": str(key)},
            )
        return outcome

    def create_allocation(self, item: AllocationInput) -> ReconcileOutcome:
        """Create or overwrite one allocation record."""
        request = _as_request(item)
        return self._edit_one(
            request.key,
            "create",
            lambda reconciler, tx: reconciler.reconcile_edit(request, tx),
        )

    def update_allocation(self, item: AllocationInput) -> ReconcileOutcome:
        """Overwrite an existing allocation record; AllocationNotFoundError if absent."""
        request = _as_request(item)
        return self._edit_one(
            request.key,
            "update",
            lambda reconciler, tx: reconciler.reconcile_edit(request, tx, require_existing=True),
        )

    def delete_allocation(self, key: AllocationKey) -> ReconcileOutcome:
        return self._edit_one(
            key,
            "delete",
            lambda reconciler, tx: reconciler.remove(key, tx),
        )

    # -- batch edits --------------------------------------------------------

    def create_batch_allocation(self, items: Iterable[AllocationInput]) -> BatchAllocationResult:
        """
        Write many allocation records.

        Records of the same production site are written in one unit of work
        under that site's lock; sites are processed in first-seen order.
        """
        requests = [_as_request(item) for item in items]
        validate_batch_charges(requests)

        groups: dict[str, list[AllocationRequest]] = {}
        for request in requests:
            groups.setdefault(request.key.production_site_id, []).append(request)

        transaction_id = self._coordinator.begin()
        outcomes: list[ReconcileOutcome] = []
        with LogContext.bind(transaction_id=transaction_id):
            logger.info(
                "batch_allocation_started",
                extra={"record_count": len(requests), "site_count": len(groups)},
            )
            try:
                for site_id, group in groups.items():
                    with self._locks.hold(site_id, transaction_id):
                        with self._coordinator.unit_of_work(transaction_id) as uow:
                            reconciler = self._reconciler(uow)
                            outcomes.extend(
                                reconciler.reconcile_edit(r, transaction_id) for r in group
                            )
            except Exception as exc:
                logger.warning(
                    "batch_allocation_failed",
                    extra={"committed_records": len(outcomes), "error_type": type(exc).__name__},
                )
                report = self._coordinator.rollback_transaction(transaction_id)
                if not report.is_complete:
                    raise PartialWriteError(transaction_id, report.failed_steps) from exc
                raise

            self._coordinator.end(transaction_id)
            logger.info("batch_allocation_committed", extra={"record_count": len(outcomes)})
        return BatchAllocationResult(transaction_id, tuple(outcomes))

    # -- month run ----------------------------------------------------------

    def run_month(
        self,
        month: str,
        production: Iterable[ProductionSource],
        consumption: Iterable[ConsumptionDemand],
        banked: Iterable[ProductionSource] = (),
    ) -> MonthRunResult:
        """
        Allocate a month and persist the result in one unit of work.

        Allocation rows are upserted with the computed values; an existing
        row keeps its charge flag.  Rows of the run's sources that the new
        result no longer contains are deleted, and a charge flag they held
        is reassigned.  Banking and lapse rows of every source in
        the run are replaced with the freshly computed month values.
        """
        production = list(production)
        banked = list(banked)
        result = self._allocator.allocate(
            month=month, production=production, consumption=consumption, banked=banked
        )
        month = result.month

        transaction_id = self._coordinator.begin()
        site_ids = sorted({s.source_id for s in (*production, *banked)})
        with LogContext.bind(transaction_id=transaction_id, month=month):
            try:
                with ExitStack() as stack:
                    for site_id in site_ids:
                        stack.enter_context(self._locks.hold(site_id, transaction_id))
                    with self._coordinator.unit_of_work(transaction_id) as uow:
                        persisted = self._persist_month(
                            uow, result, (*production, *banked)
                        )
            finally:
                self._coordinator.end(transaction_id)

            logger.info(
                "month_run_persisted",
                extra={
                    "allocation_count": len(persisted[0]),
                    "banking_count": len(persisted[1]),
                    "lapse_count": len(persisted[2]),
                    "removed_allocation_count": len(persisted[3]),
                },
            )
        return MonthRunResult(transaction_id, result, *persisted)

    def _persist_month(
        self,
        uow: UnitOfWork,
        result: AllocationResult,
        sources: tuple[ProductionSource, ...],
    ) -> tuple[
        tuple[AllocationRecordInfo, ...],
        tuple[BankingRecordInfo, ...],
        tuple[LapseRecordInfo, ...],
        tuple[AllocationKey, ...],
    ]:
        tx = uow.transaction_id
        allocations = AllocationLedger(uow.session, self._clock, uow.journal)
        banking = BankingLedger(uow.session, self._clock, uow.journal)
        lapse = LapseLedger(uow.session, self._clock, uow.journal)

        merged: dict[AllocationKey, PeriodValues] = {}
        for delta in result.allocations:
            merged[delta.key] = merged.get(delta.key, PeriodValues.zero()) + delta.allocated

        # rows an earlier run wrote for these sources but this run no longer produces
        stale = [
            row
            for company_id, site_id in sorted(
                {(s.company_id, s.source_id) for s in sources if s.month == result.month}
            )
            for row in allocations.list_for_production_site(company_id, site_id)
            if row.key.month == result.month and row.key not in merged
        ]
        for row in stale:
            allocations.delete(row, tx)

        written: dict[AllocationKey, AllocationRecordInfo] = {}
        for key, values in merged.items():
            existing = allocations.get(key)
            info = (
                replace(existing, allocated=values)
                if existing is not None
                else AllocationRecordInfo(key=key, allocated=values)
            )
            written[key] = allocations.put(info, tx)

        guard = ChargeInvariantGuard(allocations, self._config.charge.tie_break)
        for row in stale:
            if row.charge == 1:
                holder = guard.reassign_on_removal_or_clear(row.key.month, row.key, tx)
                if holder is not None and holder.key in written:
                    written[holder.key] = holder
        written_allocations = list(written.values())

        banked_by_site: dict[tuple[str, str], PeriodValues] = {}
        lapsed_by_site: dict[tuple[str, str], PeriodValues] = {}
        names: dict[tuple[str, str], str] = {}
        for bd in result.banking_deltas:
            site = (bd.company_id, bd.production_site_id)
            banked_by_site[site] = banked_by_site.get(site, PeriodValues.zero()) + bd.banked
            names[site] = bd.site_name
        for ld in result.lapse_deltas:
            site = (ld.company_id, ld.production_site_id)
            lapsed_by_site[site] = lapsed_by_site.get(site, PeriodValues.zero()) + ld.lapsed
            names[site] = ld.site_name

        run_sites: dict[tuple[str, str], DispositionKind] = {}
        for source in sources:
            if source.month != result.month:
                continue
            site = (source.company_id, source.source_id)
            names.setdefault(site, source.site_name)
            if self._policy.resolve(source) == DispositionKind.BANK:
                run_sites[site] = DispositionKind.BANK
            else:
                run_sites.setdefault(site, DispositionKind.LAPSE)

        written_banking = []
        written_lapse = []
        for (company_id, site_id), kind in run_sites.items():
            site = (company_id, site_id)
            if kind == DispositionKind.BANK:
                row = banking.get(company_id, site_id, result.month)
                values = banked_by_site.get(site, PeriodValues.zero())
                if row is not None or not values.is_zero:
                    info = row or BankingRecordInfo(company_id, site_id, result.month)
                    written_banking.append(
                        banking.put(replace(info, banked=values, site_name=names[site]), tx)
                    )
            row = lapse.get(company_id, site_id, result.month)
            values = lapsed_by_site.get(site, PeriodValues.zero())
            if row is not None or not values.is_zero:
                info = row or LapseRecordInfo(company_id, site_id, result.month)
                written_lapse.append(
                    lapse.put(replace(info, allocated=values, site_name=names[site]), tx)
                )

        return (
            tuple(written_allocations),
            tuple(written_banking),
            tuple(written_lapse),
            tuple(row.key for row in stale),
        )

    # -- reads --------------------------------------------------------------

    def month_view(self, month: str, company_id: str | None = None) -> MonthView:
        month = MonthKey.parse(month).value
        with session_scope(self._session_factory) as session:
            ledger = AllocationSelector(session).month_view(month, company_id)
        return MonthView(
            ledger=ledger,
            allocation_summary=summarize(values=[r.allocated for r in ledger.allocations]),
            banking_summary=summarize(values=[r.banked for r in ledger.banking]),
            lapse_summary=summarize(values=[r.allocated for r in ledger.lapse]),
        )
