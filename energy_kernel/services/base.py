"""
BaseService -- common shell of the kernel write services.

Responsibility:
    Holds the caller's session and clock, and turns a failed flush of a
    versioned row into OptimisticConcurrencyError so every write service
    reports lost races the same way.

Architecture position:
    Kernel > Services.

Invariants enforced:
    Services flush; they never commit or roll back.  The unit of work
    belongs to the caller (the transaction coordinator, AllocationService
    or a test).
"""

from abc import ABC
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from energy_kernel.domain.clock import Clock, SystemClock
from energy_kernel.exceptions import OptimisticConcurrencyError
from energy_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Contract:
        ``session`` is borrowed from the caller.  Every timestamp a
        service writes comes from ``clock``.

    Non-goals:
        - Read-only queries live in ``energy_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _now(self) -> datetime:
        return self._clock.now()

    def _flush_versioned(self, entity_type: str, entity_key: str, expected_version: int) -> None:
        """
        Flush pending writes of one versioned row.

        A duplicate business key (IntegrityError) or a version mismatch on
        UPDATE/DELETE (StaleDataError) means another writer got there first.
        """
        try:
            self.session.flush()
        except (IntegrityError, StaleDataError) as exc:
            logger.warning(
                "versioned_write_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_key": entity_key,
                    "expected_version": expected_version,
                },
            )
            raise OptimisticConcurrencyError(entity_type, entity_key, expected_version) from exc
