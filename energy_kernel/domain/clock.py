"""
Clock -- the only source of "now" inside the kernel and services.

Responsibility:
    Ledger timestamps, lock leases and transaction start times all read the
    injected Clock.  Nothing else calls ``datetime.now()``.

Architecture position:
    Kernel > Domain.  SystemClock is the single place that touches the
    wall clock.

Invariants enforced:
    Returned datetimes are timezone-aware UTC.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    Time stands still until moved with ``advance``, ``advance_ms`` or
    ``set_time``, which lets lock-expiry tests land exactly on a lease
    boundary.
    """

    def __init__(self, start: datetime | None = None):
        self._at = start or EPOCH

    def now(self) -> datetime:
        return self._at

    def set_time(self, at: datetime) -> None:
        self._at = at

    def advance(self, seconds: float = 1) -> None:
        self._at += timedelta(seconds=seconds)

    def advance_ms(self, milliseconds: int) -> None:
        self.advance(milliseconds / 1000)
