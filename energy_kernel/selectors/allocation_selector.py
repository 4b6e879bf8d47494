"""
AllocationSelector -- month-level read view over the three ledgers.

Responsibility:
    Returns every allocation, banking and lapse row for a month (optionally
    narrowed to one company) and the chargeable record of a company/month.

Architecture position:
    Kernel > Selectors.  Read-only; returns frozen DTOs.
"""

from __future__ import annotations

from dataclasses import dataclass

from energy_kernel.domain.dtos import (
    AllocationRecordInfo,
    BankingRecordInfo,
    LapseRecordInfo,
)
from energy_kernel.domain.month import MonthKey
from energy_kernel.models.allocation import AllocationRecord
from energy_kernel.models.banking import BankingRecord
from energy_kernel.models.lapse import LapseRecord
from energy_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MonthLedgerView:
    """All ledger rows of one month."""

    month: str
    allocations: tuple[AllocationRecordInfo, ...]
    banking: tuple[BankingRecordInfo, ...]
    lapse: tuple[LapseRecordInfo, ...]


class AllocationSelector(BaseSelector):
    """Month and charge queries over allocation/banking/lapse rows."""

    def _by_month(self, model, month: str, company_id: str | None):
        return self._where(model, month=month, company_id=company_id).order_by(
            model.company_id, model.production_site_id
        )

    def allocations_for_month(
        self, month: str, company_id: str | None = None
    ) -> list[AllocationRecordInfo]:
        month = MonthKey.parse(month).value
        stmt = self._by_month(AllocationRecord, month, company_id).order_by(
            AllocationRecord.consumption_site_id
        )
        return self._infos(stmt, AllocationRecordInfo.from_model)

    def month_view(self, month: str, company_id: str | None = None) -> MonthLedgerView:
        month = MonthKey.parse(month).value
        banking = self._infos(
            self._by_month(BankingRecord, month, company_id), BankingRecordInfo.from_model
        )
        lapse = self._infos(self._by_month(LapseRecord, month, company_id), LapseRecordInfo.from_model)
        return MonthLedgerView(
            month=month,
            allocations=tuple(self.allocations_for_month(month, company_id)),
            banking=tuple(banking),
            lapse=tuple(lapse),
        )

    def charging_allocations(self, company_id: str, month: str) -> list[AllocationRecordInfo]:
        """Records with charge=1; the charge invariant keeps this to at most one."""
        month = MonthKey.parse(month).value
        return self._infos(
            self._where(AllocationRecord, company_id=company_id, month=month, charge=1),
            AllocationRecordInfo.from_model,
        )
