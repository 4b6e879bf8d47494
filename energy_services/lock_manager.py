"""
energy_services.lock_manager -- Advisory per-resource leases.

Responsibility:
    Serializes writers to one production site.  A lease names the holding
    transaction and the time it was taken; it stops blocking other
    transactions once ``timeout_ms`` has elapsed, so a crashed writer
    never wedges a site for good.

Architecture position:
    Services -- in-process coordination.  Time comes from the injected
    Clock so lease expiry is deterministic under test.

Invariants enforced:
    - At most one live lease per resource.
    - Re-acquiring with the same transaction refreshes the lease.
    - Only the holder can release; releasing a lease you do not hold is a
      no-op that returns False.

Failure modes:
    - ResourceLockedError when a live lease belongs to another transaction.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from energy_kernel.domain.clock import Clock, SystemClock
from energy_kernel.exceptions import ResourceLockedError
from energy_kernel.logging_config import get_logger

logger = get_logger("services.lock_manager")

DEFAULT_LOCK_TIMEOUT_MS = 30_000


@dataclass(frozen=True)
class LockLease:
    """One held lease."""

    resource_id: str
    transaction_id: str
    acquired_at: datetime
    timeout_ms: int

    @property
    def expires_at(self) -> datetime:
        return self.acquired_at + timedelta(milliseconds=self.timeout_ms)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class LockManager:
    """
    Lease table keyed by resource id.

    Contract:
        Thread-safe.  Leases live in process memory; a multi-process
        deployment needs one LockManager per shared store.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        default_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS,
    ):
        self._clock = clock or SystemClock()
        self._default_timeout_ms = default_timeout_ms
        self._leases: dict[str, LockLease] = {}
        self._mutex = threading.Lock()

    def acquire(
        self,
        resource_id: str,
        transaction_id: str,
        timeout_ms: int | None = None,
    ) -> LockLease:
        """Take or refresh the lease on ``resource_id``."""
        timeout = timeout_ms if timeout_ms is not None else self._default_timeout_ms
        with self._mutex:
            now = self._clock.now()
            current = self._leases.get(resource_id)
            if current is not None and current.transaction_id != transaction_id:
                if not current.is_expired(now):
                    logger.warning(
                        "lock_contended",
                        extra={
                            "resource_id": resource_id,
                            "holder_transaction_id": current.transaction_id,
                            "requested_by": transaction_id,
                        },
                    )
                    raise ResourceLockedError(
                        resource_id, current.transaction_id, transaction_id
                    )
                logger.info(
                    "lock_expired_taken_over",
                    extra={
                        "resource_id": resource_id,
                        "previous_transaction_id": current.transaction_id,
                        "requested_by": transaction_id,
                    },
                )

            lease = LockLease(resource_id, transaction_id, now, timeout)
            self._leases[resource_id] = lease

        logger.debug(
            "lock_acquired",
            extra={"resource_id": resource_id, "transaction_id": transaction_id},
        )
        return lease

    def release(self, resource_id: str, transaction_id: str) -> bool:
        with self._mutex:
            current = self._leases.get(resource_id)
            if current is None or current.transaction_id != transaction_id:
                return False
            del self._leases[resource_id]
        logger.debug(
            "lock_released",
            extra={"resource_id": resource_id, "transaction_id": transaction_id},
        )
        return True

    def holder(self, resource_id: str) -> str | None:
        """Transaction holding a live lease on ``resource_id``, if any."""
        with self._mutex:
            current = self._leases.get(resource_id)
            if current is None or current.is_expired(self._clock.now()):
                return None
            return current.transaction_id

    def is_locked(self, resource_id: str) -> bool:
        return self.holder(resource_id) is not None

    @contextmanager
    def hold(
        self,
        resource_id: str,
        transaction_id: str,
        timeout_ms: int | None = None,
    ) -> Iterator[LockLease]:
        """Acquire for the duration of the block; released on every exit path."""
        lease = self.acquire(resource_id, transaction_id, timeout_ms)
        try:
            yield lease
        finally:
            self.release(resource_id, transaction_id)
