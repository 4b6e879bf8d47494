"""
Tests for the versioned ledgers.

Verifies conditional insert/update/delete, journaling of before/after
images and compensation of recorded writes.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from energy_kernel.domain.dtos import (
    AllocationKey,
    AllocationRecordInfo,
    BankingRecordInfo,
    LapseRecordInfo,
)
from energy_kernel.domain.periods import PeriodValues
from energy_kernel.exceptions import OptimisticConcurrencyError
from energy_kernel.services.ledger_service import (
    AllocationLedger,
    BankingLedger,
    LapseLedger,
    WriteAction,
)

KEY = AllocationKey("C1", "P1", "S1", "012024")


class _ListJournal:
    def __init__(self):
        self.writes = []

    def record(self, write):
        self.writes.append(write)


@pytest.fixture
def journal():
    return _ListJournal()


@pytest.fixture
def allocations(session, clock, journal):
    return AllocationLedger(session, clock, journal)


class TestConditionalWrites:
    def test_insert_returns_version_one(self, allocations, clock):
        stored = allocations.put(
            AllocationRecordInfo(KEY, PeriodValues(c1=80), charge=1), "tr-1"
        )

        assert stored.version == 1
        assert stored.charge == 1
        assert stored.allocated == PeriodValues(c1=80)
        assert stored.transaction_id == "tr-1"
        assert stored.created_at == clock.now()

    def test_update_increments_version(self, allocations):
        first = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)))
        second = allocations.put(replace(first, allocated=PeriodValues(c1=60)), "tr-2")

        assert second.version == 2
        assert allocations.get(KEY).allocated == PeriodValues(c1=60)

    def test_duplicate_insert_conflicts(self, allocations):
        allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=1)))

        with pytest.raises(OptimisticConcurrencyError) as exc_info:
            allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=2)))
        assert exc_info.value.expected_version == 0
        assert exc_info.value.entity_type == "allocation"

    def test_stale_update_conflicts(self, allocations):
        first = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)))
        allocations.put(replace(first, allocated=PeriodValues(c1=70)))

        with pytest.raises(OptimisticConcurrencyError):
            allocations.put(replace(first, allocated=PeriodValues(c1=10)))

    def test_update_of_missing_row_conflicts(self, allocations):
        with pytest.raises(OptimisticConcurrencyError):
            allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=1), version=3))

    def test_stale_delete_conflicts(self, allocations):
        first = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)))
        allocations.put(replace(first, charge=1))

        with pytest.raises(OptimisticConcurrencyError):
            allocations.delete(first)

    def test_delete(self, allocations):
        stored = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)))
        allocations.delete(stored)
        assert allocations.get(KEY) is None

    def test_concurrent_writer_in_other_session(self, session_factory, clock):
        with session_factory() as s:
            stored = AllocationLedger(s, clock).put(AllocationRecordInfo(KEY, PeriodValues(c1=5)))
            s.commit()

        with session_factory() as s:
            AllocationLedger(s, clock).put(replace(stored, allocated=PeriodValues(c1=6)))
            s.commit()

        with session_factory() as s:
            with pytest.raises(OptimisticConcurrencyError):
                AllocationLedger(s, clock).put(replace(stored, allocated=PeriodValues(c1=7)))


class TestQueries:
    def test_list_for_company_month_is_key_ordered(self, allocations):
        for prod, cons in [("P2", "S1"), ("P1", "S2"), ("P1", "S1")]:
            allocations.put(
                AllocationRecordInfo(AllocationKey("C1", prod, cons, "012024"), PeriodValues(c1=1))
            )
        allocations.put(
            AllocationRecordInfo(AllocationKey("C1", "P1", "S1", "022024"), PeriodValues(c1=1))
        )
        allocations.put(
            AllocationRecordInfo(AllocationKey("C2", "P1", "S1", "012024"), PeriodValues(c1=1))
        )

        keys = [r.key.pk for r in allocations.list_for_company_month("C1", "012024")]
        assert keys == ["C1_P1_S1", "C1_P1_S2", "C1_P2_S1"]

    def test_list_for_production_site(self, allocations):
        allocations.put(AllocationRecordInfo(AllocationKey("C1", "P1", "S1", "022024"), PeriodValues()))
        allocations.put(AllocationRecordInfo(AllocationKey("C1", "P1", "S1", "012024"), PeriodValues()))
        allocations.put(AllocationRecordInfo(AllocationKey("C1", "P2", "S1", "012024"), PeriodValues()))

        months = [r.key.month for r in allocations.list_for_production_site("C1", "P1")]
        assert months == ["012024", "022024"]


class TestBankingAndLapse:
    def test_banking_total_and_site_name(self, session, clock):
        ledger = BankingLedger(session, clock)
        stored = ledger.put(
            BankingRecordInfo("C1", "W1", "012024", PeriodValues(c2=20, c3=5), site_name="Wind One")
        )

        assert stored.total_banking == Decimal("25")
        assert stored.pk == "C1_W1"
        assert ledger.get("C1", "W1", "012024").site_name == "Wind One"

    def test_banking_may_hold_negative_values(self, session, clock):
        ledger = BankingLedger(session, clock)
        stored = ledger.put(BankingRecordInfo("C1", "W1", "012024", PeriodValues(c1=-5)))
        assert stored.banked.c1 == Decimal("-5")

    def test_lapse_list_for_site(self, session, clock):
        ledger = LapseLedger(session, clock)
        ledger.put(LapseRecordInfo("C1", "S1", "022024", PeriodValues(c1=1)))
        ledger.put(LapseRecordInfo("C1", "S1", "012024", PeriodValues(c1=2)))

        rows = ledger.list_for_site("C1", "S1")
        assert [r.month for r in rows] == ["012024", "022024"]
        assert rows[0].total_lapse == Decimal("2")


class TestJournalAndUndo:
    def test_writes_are_journaled(self, allocations, journal):
        stored = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)), "tr-1")
        updated = allocations.put(replace(stored, allocated=PeriodValues(c1=50)), "tr-1")
        allocations.delete(updated, "tr-1")

        assert [w.action for w in journal.writes] == [
            WriteAction.INSERT,
            WriteAction.UPDATE,
            WriteAction.DELETE,
        ]
        assert journal.writes[0].before is None
        assert journal.writes[1].before.allocated == PeriodValues(c1=80)
        assert journal.writes[2].after is None
        assert journal.writes[2].image == updated

    def test_undo_insert_deletes_row(self, allocations, journal):
        allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)), "tr-1")

        assert allocations.undo(journal.writes[0], "tr-1") == "undone"
        assert allocations.get(KEY) is None

    def test_undo_insert_of_missing_row(self, allocations, journal):
        stored = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)), "tr-1")
        allocations.delete(stored, "tr-1")

        assert allocations.undo(journal.writes[0], "tr-1") == "already_absent"

    def test_undo_update_restores_before_image(self, allocations, journal):
        stored = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80), charge=1), "tr-0")
        allocations.put(replace(stored, allocated=PeriodValues(c1=10), charge=0), "tr-1")

        allocations.undo(journal.writes[1], "tr-1")

        restored = allocations.get(KEY)
        assert restored.allocated == PeriodValues(c1=80)
        assert restored.charge == 1
        assert restored.transaction_id == "tr-0"

    def test_undo_delete_reinserts(self, allocations, journal):
        stored = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c4=3)), "tr-0")
        allocations.delete(stored, "tr-1")

        allocations.undo(journal.writes[1], "tr-1")

        assert allocations.get(KEY).allocated == PeriodValues(c4=3)

    def test_undo_refuses_row_rewritten_by_other_transaction(self, allocations, journal):
        stored = allocations.put(AllocationRecordInfo(KEY, PeriodValues(c1=80)), "tr-1")
        allocations.put(replace(stored, allocated=PeriodValues(c1=1)), "tr-other")

        with pytest.raises(OptimisticConcurrencyError):
            allocations.undo(journal.writes[0], "tr-1")
        assert allocations.get(KEY).allocated == PeriodValues(c1=1)

    def test_entity_key_of(self, allocations):
        assert allocations.entity_key_of(AllocationRecordInfo(KEY)) == "C1/P1/S1/012024"
