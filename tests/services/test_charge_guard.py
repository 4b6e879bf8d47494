"""Tests for the single-chargeable-record guard."""

import pytest

from energy_kernel.domain.dtos import AllocationKey, AllocationRecordInfo
from energy_kernel.domain.periods import PeriodValues
from energy_kernel.exceptions import ChargeConflictError, ChargeOnZeroTotalError
from energy_kernel.selectors.allocation_selector import AllocationSelector
from energy_kernel.services.charge_guard import ChargeInvariantGuard, select_replacement
from energy_kernel.services.ledger_service import AllocationLedger

MONTH = "012024"


def _key(prod, cons, company="C1"):
    return AllocationKey(company, prod, cons, MONTH)


@pytest.fixture
def ledger(session, clock):
    return AllocationLedger(session, clock)


@pytest.fixture
def guard(ledger):
    return ChargeInvariantGuard(ledger)


def _put(ledger, key, charge=0, **periods):
    return ledger.put(AllocationRecordInfo(key, PeriodValues(**periods), charge=charge))


class TestSelectReplacement:
    def test_greatest_total_wins(self):
        records = [
            AllocationRecordInfo(_key("P1", "S1"), PeriodValues(c1=500)),
            AllocationRecordInfo(_key("P1", "S2"), PeriodValues(c1=800)),
        ]
        assert select_replacement(records).key == _key("P1", "S2")

    def test_tie_broken_by_consumption_then_production_site(self):
        records = [
            AllocationRecordInfo(_key("P2", "S2"), PeriodValues(c1=100)),
            AllocationRecordInfo(_key("P2", "S1"), PeriodValues(c2=100)),
            AllocationRecordInfo(_key("P1", "S1"), PeriodValues(c3=100)),
        ]
        assert select_replacement(records).key == _key("P1", "S1")

    def test_zero_total_records_never_chosen(self):
        assert select_replacement([AllocationRecordInfo(_key("P1", "S1"))]) is None

    def test_production_site_tie_break(self):
        records = [
            AllocationRecordInfo(_key("P2", "S1"), PeriodValues(c1=100)),
            AllocationRecordInfo(_key("P1", "S2"), PeriodValues(c2=100)),
        ]
        assert select_replacement(records).key == _key("P2", "S1")
        assert select_replacement(records, "production_site_id").key == _key("P1", "S2")

    def test_unknown_tie_break(self):
        with pytest.raises(ValueError):
            select_replacement([], "random")


class TestValidateChargeAssignment:
    def test_non_charge_always_allowed(self, guard, ledger):
        _put(ledger, _key("P1", "S1"), charge=1, c1=10)
        guard.validate_charge_assignment(MONTH, _key("P1", "S2"), 0)

    def test_conflict_with_other_record(self, guard, ledger):
        _put(ledger, _key("P1", "S1"), charge=1, c1=10)

        with pytest.raises(ChargeConflictError) as exc_info:
            guard.validate_charge_assignment(MONTH, _key("P1", "S2"), 1, PeriodValues(c1=5))
        assert exc_info.value.existing_key == "C1_P1_S1"
        assert exc_info.value.code == "CHARGE_CONFLICT"

    def test_reassert_on_same_record_is_idempotent(self, guard, ledger):
        _put(ledger, _key("P1", "S1"), charge=1, c1=10)
        guard.validate_charge_assignment(MONTH, _key("P1", "S1"), 1)

    def test_other_company_does_not_conflict(self, guard, ledger):
        _put(ledger, _key("P1", "S1", company="C2"), charge=1, c1=10)
        guard.validate_charge_assignment(MONTH, _key("P1", "S1"), 1, PeriodValues(c1=1))

    def test_zero_total_candidate_rejected(self, guard):
        with pytest.raises(ChargeOnZeroTotalError):
            guard.validate_charge_assignment(MONTH, _key("P1", "S1"), 1, PeriodValues())

    def test_stored_values_used_when_not_given(self, guard, ledger):
        _put(ledger, _key("P1", "S1"))
        with pytest.raises(ChargeOnZeroTotalError):
            guard.validate_charge_assignment(MONTH, _key("P1", "S1"), 1)

    def test_conflict_is_logged(self, guard, ledger, captured_logs):
        _put(ledger, _key("P1", "S1"), charge=1, c1=10)
        with pytest.raises(ChargeConflictError):
            guard.validate_charge_assignment(MONTH, _key("P2", "S1"), 1, PeriodValues(c1=1))
        assert any(r["message"] == "charge_conflict" for r in captured_logs())


class TestReassign:
    def test_clear_moves_charge_to_greatest_total(self, guard, ledger, session):
        x = _key("P1", "X")
        y = _key("P1", "Y")
        _put(ledger, x, charge=0, c1=500)
        _put(ledger, y, c1=800)

        holder = guard.reassign_on_removal_or_clear(MONTH, x, "tr-1")

        assert holder.key == y
        assert holder.charge == 1
        assert holder.transaction_id == "tr-1"
        charging = AllocationSelector(session).charging_allocations("C1", MONTH)
        assert [r.key for r in charging] == [y]

    def test_existing_other_holder_kept(self, guard, ledger):
        _put(ledger, _key("P1", "S1"), charge=1, c1=1)
        _put(ledger, _key("P1", "S2"), c1=999)

        holder = guard.reassign_on_removal_or_clear(MONTH, _key("P1", "S3"))

        assert holder.key == _key("P1", "S1")
        assert ledger.get(_key("P1", "S2")).charge == 0

    def test_no_candidates(self, guard, ledger, captured_logs):
        _put(ledger, _key("P1", "S1"))

        assert guard.reassign_on_removal_or_clear(MONTH, _key("P1", "S2")) is None
        assert any(r["message"] == "charge_not_reassigned" for r in captured_logs())
