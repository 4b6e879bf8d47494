"""
energy_services.transaction_coordinator -- Units of work and compensation.

Responsibility:
    Hands out transaction ids, opens one session per unit of work, and keeps
    a per-transaction journal of every ledger write (before/after image).
    When a multi-unit operation fails after some units committed,
    ``rollback_transaction`` replays the journal in reverse and restores the
    before-images.

Architecture position:
    Services -- the only place that opens and commits sessions for
    multi-ledger writes.  Ledgers flush; this module commits.

Invariants enforced:
    - A unit of work commits atomically; on error its session is rolled
      back and its journal entries are discarded (nothing to compensate).
    - Only committed writes are compensated, newest first.
    - Each compensation step runs in its own session so one failing step
      does not prevent the others.
    - A step whose row was since rewritten by another transaction is
      reported as failed, never overwritten.

Failure modes:
    - Steps that cannot be undone are returned in ``RollbackReport``;
      callers turn an incomplete report into PartialWriteError.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from energy_kernel.domain.clock import Clock, SystemClock
from energy_kernel.exceptions import EnergyKernelError
from energy_kernel.logging_config import get_logger
from energy_kernel.services.ledger_service import (
    AllocationLedger,
    BankingLedger,
    LapseLedger,
    LedgerWrite,
)

logger = get_logger("services.transaction_coordinator")

_LEDGERS = {
    AllocationLedger.ledger_name: AllocationLedger,
    BankingLedger.ledger_name: BankingLedger,
    LapseLedger.ledger_name: LapseLedger,
}


def new_transaction_id() -> str:
    return f"tr-{uuid4().hex}"


class TransactionJournal:
    """
    Write journal for one transaction.

    Ledgers append to ``pending`` while a unit of work is open; the
    coordinator promotes them to ``committed`` after the session commits.
    """

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        self.pending: list[LedgerWrite] = []
        self.committed: list[LedgerWrite] = []

    def record(self, write: LedgerWrite) -> None:
        self.pending.append(write)

    def commit(self) -> None:
        self.committed.extend(self.pending)
        self.pending.clear()

    def discard(self) -> None:
        self.pending.clear()


@dataclass(frozen=True)
class UnitOfWork:
    """Session plus journal for one atomic step of a transaction."""

    transaction_id: str
    session: Session
    journal: TransactionJournal


@dataclass(frozen=True)
class RollbackStep:
    ledger: str
    action: str
    entity_key: str
    status: str
    error: str | None = None

    @property
    def label(self) -> str:
        return f"{self.ledger}:{self.action}:{self.entity_key}"


@dataclass(frozen=True)
class RollbackReport:
    """Outcome of compensating one transaction."""

    transaction_id: str
    steps: tuple[RollbackStep, ...] = field(default_factory=tuple)

    @property
    def failed_steps(self) -> tuple[str, ...]:
        return tuple(s.label for s in self.steps if s.status == "failed")

    @property
    def undone_count(self) -> int:
        return sum(1 for s in self.steps if s.status == "undone")

    @property
    def is_complete(self) -> bool:
        return not self.failed_steps


class TransactionCoordinator:
    """
    Transaction ids, units of work and best-effort compensation.

    Contract:
        Owns no long-lived session.  Every unit of work and every
        compensation step opens a fresh session from ``session_factory``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._journals: dict[str, TransactionJournal] = {}
        self._mutex = threading.Lock()

    def begin(self) -> str:
        transaction_id = new_transaction_id()
        with self._mutex:
            self._journals[transaction_id] = TransactionJournal(transaction_id)
        logger.debug("transaction_begun", extra={"transaction_id": transaction_id})
        return transaction_id

    def journal(self, transaction_id: str) -> TransactionJournal:
        with self._mutex:
            return self._journals[transaction_id]

    def end(self, transaction_id: str) -> None:
        """Forget a finished transaction's journal."""
        with self._mutex:
            self._journals.pop(transaction_id, None)

    @contextmanager
    def unit_of_work(self, transaction_id: str) -> Iterator[UnitOfWork]:
        """
        Open a session for one atomic step.

        Commits on normal exit.  On error the session is rolled back, the
        pending journal entries are dropped and the exception propagates.
        """
        journal = self.journal(transaction_id)
        session = self._session_factory()
        try:
            yield UnitOfWork(transaction_id, session, journal)
            session.commit()
            journal.commit()
        except Exception:
            session.rollback()
            journal.discard()
            logger.warning(
                "unit_of_work_rolled_back",
                extra={"transaction_id": transaction_id},
                exc_info=True,
            )
            raise
        finally:
            session.close()

    def rollback_transaction(self, transaction_id: str) -> RollbackReport:
        """Undo every committed write of ``transaction_id``, newest first."""
        journal = self.journal(transaction_id)
        try:
            steps = [self._undo(w, transaction_id) for w in reversed(journal.committed)]
        finally:
            self.end(transaction_id)
        report = RollbackReport(transaction_id, tuple(steps))

        if report.is_complete:
            logger.info(
                "transaction_rolled_back",
                extra={"transaction_id": transaction_id, "undone_count": report.undone_count},
            )
        else:
            logger.error(
                "transaction_rollback_incomplete",
                extra={
                    "transaction_id": transaction_id,
                    "undone_count": report.undone_count,
                    "failed_steps": list(report.failed_steps),
                },
            )
        return report

    def _undo(self, write: LedgerWrite, transaction_id: str) -> RollbackStep:
        session = self._session_factory()
        ledger = _LEDGERS[write.ledger](session, self._clock)
        entity_key = ledger.entity_key_of(write.image)
        try:
            status = ledger.undo(write, transaction_id)
            session.commit()
        except (EnergyKernelError, SQLAlchemyError) as exc:
            # one failed step must not stop the remaining compensation
            session.rollback()
            logger.warning(
                "rollback_step_failed",
                extra={
                    "transaction_id": transaction_id,
                    "ledger": write.ledger,
                    "entity_key": entity_key,
                    "error_code": getattr(exc, "code", type(exc).__name__),
                },
            )
            return RollbackStep(write.ledger, write.action.value, entity_key, "failed", str(exc))
        finally:
            session.close()
        return RollbackStep(write.ledger, write.action.value, entity_key, status)
