"""
energy_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure engines
    (energy_engines/) with database sessions, locks and the clock.  This is
    the only layer that opens and commits sessions or reads configuration
    through ``get_active_config``.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        energy_services/ -> energy_engines/  (allowed)
        energy_services/ -> energy_kernel/   (allowed)
        energy_services/ -> energy_config/   (allowed)
        energy_engines/  -> energy_services/ (FORBIDDEN)
        energy_kernel/   -> energy_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: energy_kernel and energy_engines never import from
      this package.
    - DI transparency: AllocationService wires every collaborator in its
      ``__init__``.
"""

from energy_kernel.logging_config import get_logger

logger = get_logger("services")

from energy_services.allocation_service import (  # noqa: E402
    AllocationService,
    BatchAllocationResult,
    MonthRunResult,
    MonthView,
)
from energy_services.delta_reconciler import DeltaReconciler, ReconcileOutcome  # noqa: E402
from energy_services.lock_manager import LockLease, LockManager  # noqa: E402
from energy_services.site_cleanup import CleanupResult, SiteCleanupService  # noqa: E402
from energy_services.transaction_coordinator import (  # noqa: E402
    RollbackReport,
    TransactionCoordinator,
    TransactionJournal,
    UnitOfWork,
)

__all__ = [
    "AllocationService",
    "BatchAllocationResult",
    "CleanupResult",
    "DeltaReconciler",
    "LockLease",
    "LockManager",
    "MonthRunResult",
    "MonthView",
    "ReconcileOutcome",
    "RollbackReport",
    "SiteCleanupService",
    "TransactionCoordinator",
    "TransactionJournal",
    "UnitOfWork",
]
