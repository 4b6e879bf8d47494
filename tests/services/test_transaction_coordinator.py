"""Tests for units of work, the write journal and compensation."""

from dataclasses import replace

import pytest
from sqlalchemy.exc import OperationalError

from energy_kernel.domain.dtos import AllocationKey, AllocationRecordInfo, LapseRecordInfo
from energy_kernel.domain.periods import PeriodValues
from energy_kernel.services.ledger_service import AllocationLedger, LapseLedger
from energy_services.transaction_coordinator import TransactionCoordinator

KEY = AllocationKey("C1", "P1", "S1", "012024")


@pytest.fixture
def coordinator(session_factory, clock):
    return TransactionCoordinator(session_factory, clock)


def _read(session_factory, clock, key=KEY):
    with session_factory() as s:
        return AllocationLedger(s, clock).get(key)


class TestUnitOfWork:
    def test_transaction_ids_are_unique(self, coordinator):
        a = coordinator.begin()
        b = coordinator.begin()
        assert a != b
        assert a.startswith("tr-")

    def test_commit_promotes_journal(self, coordinator, session_factory, clock):
        tx = coordinator.begin()
        with coordinator.unit_of_work(tx) as uow:
            AllocationLedger(uow.session, clock, uow.journal).put(
                AllocationRecordInfo(KEY, PeriodValues(c1=5)), tx
            )

        journal = coordinator.journal(tx)
        assert len(journal.committed) == 1
        assert journal.pending == []
        assert _read(session_factory, clock).allocated == PeriodValues(c1=5)

    def test_error_rolls_back_and_discards(self, coordinator, session_factory, clock):
        tx = coordinator.begin()
        with pytest.raises(RuntimeError):
            with coordinator.unit_of_work(tx) as uow:
                AllocationLedger(uow.session, clock, uow.journal).put(
                    AllocationRecordInfo(KEY, PeriodValues(c1=5)), tx
                )
                raise RuntimeError("boom")

        assert coordinator.journal(tx).committed == []
        assert _read(session_factory, clock) is None

    def test_end_forgets_journal(self, coordinator):
        tx = coordinator.begin()
        coordinator.end(tx)
        with pytest.raises(KeyError):
            coordinator.journal(tx)


class TestRollbackTransaction:
    def test_undoes_committed_units_newest_first(self, coordinator, session_factory, clock):
        with session_factory() as s:
            existing = LapseLedger(s, clock).put(
                LapseRecordInfo("C1", "P1", "012024", PeriodValues(c1=7)), "tr-old"
            )
            s.commit()

        tx = coordinator.begin()
        with coordinator.unit_of_work(tx) as uow:
            AllocationLedger(uow.session, clock, uow.journal).put(
                AllocationRecordInfo(KEY, PeriodValues(c1=5)), tx
            )
        with coordinator.unit_of_work(tx) as uow:
            LapseLedger(uow.session, clock, uow.journal).put(
                replace(existing, allocated=PeriodValues(c1=12)), tx
            )

        report = coordinator.rollback_transaction(tx)

        assert report.is_complete
        assert report.undone_count == 2
        assert [s.ledger for s in report.steps] == ["lapse", "allocation"]
        assert _read(session_factory, clock) is None
        with session_factory() as s:
            lapse = LapseLedger(s, clock).get("C1", "P1", "012024")
        assert lapse.allocated == PeriodValues(c1=7)
        assert lapse.transaction_id == "tr-old"

    def test_rewritten_row_reported_as_failed(self, coordinator, session_factory, clock):
        tx = coordinator.begin()
        with coordinator.unit_of_work(tx) as uow:
            stored = AllocationLedger(uow.session, clock, uow.journal).put(
                AllocationRecordInfo(KEY, PeriodValues(c1=5)), tx
            )
        with session_factory() as s:
            AllocationLedger(s, clock).put(replace(stored, allocated=PeriodValues(c1=9)), "tr-other")
            s.commit()

        report = coordinator.rollback_transaction(tx)

        assert not report.is_complete
        assert report.failed_steps == ("allocation:insert:C1/P1/S1/012024",)
        assert _read(session_factory, clock).allocated == PeriodValues(c1=9)

    def test_nothing_to_undo(self, coordinator):
        tx = coordinator.begin()
        report = coordinator.rollback_transaction(tx)
        assert report.is_complete
        assert report.steps == ()

    def test_database_error_in_one_step_does_not_stop_the_others(
        self, coordinator, session_factory, clock, monkeypatch
    ):
        tx = coordinator.begin()
        with coordinator.unit_of_work(tx) as uow:
            AllocationLedger(uow.session, clock, uow.journal).put(
                AllocationRecordInfo(KEY, PeriodValues(c1=5)), tx
            )
        with coordinator.unit_of_work(tx) as uow:
            LapseLedger(uow.session, clock, uow.journal).put(
                LapseRecordInfo("C1", "P1", "012024", PeriodValues(c1=7)), tx
            )

        def _lost_connection(self, write, transaction_id):
            raise OperationalError("UPDATE lapse", {}, Exception("connection lost"))

        monkeypatch.setattr(LapseLedger, "undo", _lost_connection)

        report = coordinator.rollback_transaction(tx)

        assert not report.is_complete
        assert report.failed_steps == ("lapse:insert:C1/P1/012024",)
        assert report.undone_count == 1
        assert _read(session_factory, clock) is None
        with pytest.raises(KeyError):
            coordinator.journal(tx)

    def test_journal_forgotten_when_undo_raises(self, coordinator, clock, monkeypatch):
        tx = coordinator.begin()
        with coordinator.unit_of_work(tx) as uow:
            AllocationLedger(uow.session, clock, uow.journal).put(
                AllocationRecordInfo(KEY, PeriodValues(c1=5)), tx
            )

        def _broken(self, write, transaction_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(AllocationLedger, "undo", _broken)

        with pytest.raises(RuntimeError):
            coordinator.rollback_transaction(tx)
        with pytest.raises(KeyError):
            coordinator.journal(tx)
