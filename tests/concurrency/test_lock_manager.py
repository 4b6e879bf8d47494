"""Tests for advisory per-site leases."""

import threading

import pytest

from energy_kernel.exceptions import ResourceLockedError
from energy_services.lock_manager import LockManager


@pytest.fixture
def locks(clock):
    return LockManager(clock, default_timeout_ms=30_000)


class TestAcquireRelease:
    def test_acquire_and_release(self, locks):
        lease = locks.acquire("P1", "tr-1")

        assert lease.transaction_id == "tr-1"
        assert locks.holder("P1") == "tr-1"
        assert locks.release("P1", "tr-1") is True
        assert not locks.is_locked("P1")

    def test_other_transaction_blocked(self, locks):
        locks.acquire("P1", "tr-1")

        with pytest.raises(ResourceLockedError) as exc_info:
            locks.acquire("P1", "tr-2")
        assert exc_info.value.holder_transaction_id == "tr-1"
        assert exc_info.value.requested_by == "tr-2"
        assert exc_info.value.code == "RESOURCE_LOCKED"

    def test_same_transaction_refreshes(self, locks, clock):
        first = locks.acquire("P1", "tr-1")
        clock.advance(10)
        second = locks.acquire("P1", "tr-1")

        assert second.acquired_at > first.acquired_at

    def test_other_resources_independent(self, locks):
        locks.acquire("P1", "tr-1")
        locks.acquire("P2", "tr-2")
        assert locks.holder("P2") == "tr-2"

    def test_release_by_non_holder_is_noop(self, locks):
        locks.acquire("P1", "tr-1")
        assert locks.release("P1", "tr-2") is False
        assert locks.holder("P1") == "tr-1"

    def test_release_unknown_resource(self, locks):
        assert locks.release("nothing", "tr-1") is False


class TestExpiry:
    def test_expired_lease_taken_over(self, locks, clock, captured_logs):
        locks.acquire("P1", "tr-1")
        clock.advance_ms(30_000)

        lease = locks.acquire("P1", "tr-2")

        assert lease.transaction_id == "tr-2"
        assert any(r["message"] == "lock_expired_taken_over" for r in captured_logs())

    def test_live_just_before_timeout(self, locks, clock):
        locks.acquire("P1", "tr-1")
        clock.advance_ms(29_999)

        with pytest.raises(ResourceLockedError):
            locks.acquire("P1", "tr-2")

    def test_expired_lease_has_no_holder(self, locks, clock):
        locks.acquire("P1", "tr-1", timeout_ms=100)
        clock.advance_ms(100)
        assert locks.holder("P1") is None

    def test_per_call_timeout(self, locks, clock):
        lease = locks.acquire("P1", "tr-1", timeout_ms=5)
        assert lease.timeout_ms == 5
        assert lease.expires_at > lease.acquired_at


class TestHold:
    def test_released_on_exit(self, locks):
        with locks.hold("P1", "tr-1"):
            assert locks.holder("P1") == "tr-1"
        assert locks.holder("P1") is None

    def test_released_on_error(self, locks):
        with pytest.raises(RuntimeError):
            with locks.hold("P1", "tr-1"):
                raise RuntimeError("boom")
        assert locks.holder("P1") is None


class TestThreads:
    def test_only_one_thread_wins(self, locks):
        barrier = threading.Barrier(8)
        winners = []
        losers = []

        def _try(n):
            barrier.wait()
            try:
                locks.acquire("P1", f"tr-{n}")
                winners.append(n)
            except ResourceLockedError:
                losers.append(n)

        threads = [threading.Thread(target=_try, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 7
