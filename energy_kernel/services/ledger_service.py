"""
Ledger services -- versioned reads and conditional writes for the three ledgers.

Responsibility:
    ``AllocationLedger``, ``BankingLedger`` and ``LapseLedger`` are the only
    code that writes ``allocation_records``, ``banking_records`` and
    ``lapse_records``.  They expose ``get`` / ``put`` / ``delete`` keyed on
    the business identity and return frozen *Info DTOs.

Architecture position:
    Kernel > Services.  Imports models, domain DTOs and exceptions only.

Invariants enforced:
    - Conditional writes: the DTO passed to ``put`` carries the version the
      caller read.  Version 0 means "insert".  Inserting an existing key, or
      updating/deleting a row whose version differs from the one read,
      raises OptimisticConcurrencyError.  Successful writes return the row
      at ``version + 1``.
    - Every write stamps ``transaction_id`` and ``updated_at`` (from the
      injected Clock).
    - When a journal is attached, a before/after image of every write is
      recorded so that a transaction can be compensated later.

Failure modes:
    - OptimisticConcurrencyError on version mismatch or duplicate insert.
    - A concurrent writer that slips in between the read and the flush
      surfaces as OptimisticConcurrencyError (see BaseService).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Generic, Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from energy_kernel.domain.clock import Clock
from energy_kernel.domain.dtos import (
    AllocationKey,
    AllocationRecordInfo,
    BankingRecordInfo,
    LapseRecordInfo,
)
from energy_kernel.domain.month import MonthKey
from energy_kernel.exceptions import OptimisticConcurrencyError
from energy_kernel.logging_config import get_logger
from energy_kernel.models.allocation import AllocationRecord
from energy_kernel.models.banking import BankingRecord
from energy_kernel.models.lapse import LapseRecord
from energy_kernel.services.base import BaseService

logger = get_logger("services.ledger")

InfoType = TypeVar("InfoType")
ModelType = TypeVar("ModelType", AllocationRecord, BankingRecord, LapseRecord)


class WriteAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class LedgerWrite:
    """Before/after image of one ledger write."""

    ledger: str
    action: WriteAction
    transaction_id: str | None
    before: Any | None
    after: Any | None

    @property
    def image(self) -> Any:
        return self.after if self.after is not None else self.before


class LedgerJournal(Protocol):
    """Receives every ledger write made while it is attached."""

    def record(self, write: LedgerWrite) -> None: ...


class _PeriodLedger(BaseService, Generic[ModelType, InfoType]):
    """
    Shared conditional-write machinery.

    Subclasses name the model, the identity columns and the DTO mapping.
    """

    ledger_name: ClassVar[str]
    model: ClassVar[type]
    identity_columns: ClassVar[tuple[str, ...]]

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        journal: LedgerJournal | None = None,
    ):
        super().__init__(session, clock)
        self._journal = journal

    # -- subclass hooks -----------------------------------------------------

    def _identity_of(self, info: InfoType) -> dict[str, str]:
        raise NotImplementedError

    def _apply(self, row: ModelType, info: InfoType) -> None:
        raise NotImplementedError

    def _to_info(self, row: ModelType) -> InfoType:
        raise NotImplementedError

    # -- internals ----------------------------------------------------------

    def _entity_key(self, identity: dict[str, str]) -> str:
        return "/".join(identity[c] for c in self.identity_columns)

    def _find(self, identity: dict[str, str]) -> ModelType | None:
        stmt = select(self.model)
        for column, value in identity.items():
            stmt = stmt.where(getattr(self.model, column) == value)
        return self.session.execute(stmt).scalar_one_or_none()

    def _record(
        self,
        action: WriteAction,
        transaction_id: str | None,
        before: InfoType | None,
        after: InfoType | None,
    ) -> None:
        if self._journal is not None:
            self._journal.record(
                LedgerWrite(self.ledger_name, action, transaction_id, before, after)
            )

    def _flush(self, identity: dict[str, str], expected_version: int) -> None:
        self._flush_versioned(self.ledger_name, self._entity_key(identity), expected_version)

    # -- public API ---------------------------------------------------------

    def entity_key_of(self, info: InfoType) -> str:
        """Slash-joined identity of ``info``, as used in conflict errors."""
        return self._entity_key(self._identity_of(info))

    def put(self, info: InfoType, transaction_id: str | None = None) -> InfoType:
        """
        Insert (version 0) or conditionally update (version N) a row.

        Returns:
            The stored row as a DTO carrying the new version.
        """
        identity = self._identity_of(info)
        expected = info.version
        row = self._find(identity)
        now = self._now()

        if expected == 0:
            if row is not None:
                raise OptimisticConcurrencyError(
                    self.ledger_name, self._entity_key(identity), expected
                )
            row = self.model(**identity)
            self._apply(row, info)
            row.transaction_id = transaction_id
            row.created_at = now
            row.updated_at = now
            self.session.add(row)
            self._flush(identity, expected)
            after = self._to_info(row)
            self._record(WriteAction.INSERT, transaction_id, None, after)
            logger.debug(
                "ledger_row_inserted",
                extra={"ledger": self.ledger_name, "entity_key": self._entity_key(identity)},
            )
            return after

        if row is None or row.version != expected:
            raise OptimisticConcurrencyError(
                self.ledger_name, self._entity_key(identity), expected
            )
        before = self._to_info(row)
        self._apply(row, info)
        row.transaction_id = transaction_id
        row.updated_at = now
        self._flush(identity, expected)
        after = self._to_info(row)
        self._record(WriteAction.UPDATE, transaction_id, before, after)
        logger.debug(
            "ledger_row_updated",
            extra={
                "ledger": self.ledger_name,
                "entity_key": self._entity_key(identity),
                "version": after.version,
            },
        )
        return after

    def delete(self, info: InfoType, transaction_id: str | None = None) -> None:
        """Delete the row if it is still at the version that was read."""
        identity = self._identity_of(info)
        row = self._find(identity)
        if row is None or row.version != info.version:
            raise OptimisticConcurrencyError(
                self.ledger_name, self._entity_key(identity), info.version
            )
        before = self._to_info(row)
        self.session.delete(row)
        self._flush(identity, info.version)
        self._record(WriteAction.DELETE, transaction_id, before, None)
        logger.debug(
            "ledger_row_deleted",
            extra={"ledger": self.ledger_name, "entity_key": self._entity_key(identity)},
        )

    def undo(self, write: LedgerWrite, transaction_id: str) -> str:
        """
        Compensate one recorded write of ``transaction_id``.

        Inserted rows are deleted, updated rows get their before-image back,
        deleted rows are re-inserted.  A row that no longer carries
        ``transaction_id`` was rewritten by someone else and is left alone.

        Returns:
            "undone" or "already_absent".

        Raises:
            OptimisticConcurrencyError: the row was rewritten by another
                transaction, or a deleted row has been re-created.
        """
        identity = self._identity_of(write.image)
        row = self._find(identity)
        now = self._now()

        match write.action:
            case WriteAction.INSERT:
                if row is None:
                    return "already_absent"
                if row.transaction_id != transaction_id:
                    raise OptimisticConcurrencyError(
                        self.ledger_name, self._entity_key(identity), write.after.version
                    )
                self.session.delete(row)
            case WriteAction.UPDATE:
                if row is None or row.transaction_id != transaction_id:
                    raise OptimisticConcurrencyError(
                        self.ledger_name, self._entity_key(identity), write.after.version
                    )
                self._apply(row, write.before)
                row.transaction_id = write.before.transaction_id
                row.updated_at = now
            case WriteAction.DELETE:
                if row is not None:
                    raise OptimisticConcurrencyError(
                        self.ledger_name, self._entity_key(identity), 0
                    )
                row = self.model(**identity)
                self._apply(row, write.before)
                row.transaction_id = write.before.transaction_id
                row.created_at = write.before.created_at or now
                row.updated_at = now
                self.session.add(row)

        self._flush(identity, write.image.version)
        return "undone"


# ---------------------------------------------------------------------------
# Allocation ledger
# ---------------------------------------------------------------------------


class AllocationLedger(_PeriodLedger[AllocationRecord, AllocationRecordInfo]):
    """Reads and conditional writes for ``allocation_records``."""

    ledger_name = "allocation"
    model = AllocationRecord
    identity_columns = ("company_id", "production_site_id", "consumption_site_id", "month")

    def _identity_of(self, info: AllocationRecordInfo) -> dict[str, str]:
        key = info.key
        return {
            "company_id": key.company_id,
            "production_site_id": key.production_site_id,
            "consumption_site_id": key.consumption_site_id,
            "month": key.month,
        }

    def _apply(self, row: AllocationRecord, info: AllocationRecordInfo) -> None:
        row.assign_periods(info.allocated)
        row.charge = info.charge

    def _to_info(self, row: AllocationRecord) -> AllocationRecordInfo:
        return AllocationRecordInfo.from_model(row)

    def get(self, key: AllocationKey) -> AllocationRecordInfo | None:
        row = self._find(self._identity_of(AllocationRecordInfo(key=key)))
        return self._to_info(row) if row is not None else None

    def list_for_company_month(self, company_id: str, month: str) -> list[AllocationRecordInfo]:
        """All records of one company and month, in stable key order."""
        month = MonthKey.parse(month).value
        rows = self.session.execute(
            select(AllocationRecord)
            .where(AllocationRecord.company_id == company_id)
            .where(AllocationRecord.month == month)
            .order_by(
                AllocationRecord.production_site_id,
                AllocationRecord.consumption_site_id,
            )
        ).scalars()
        return [self._to_info(r) for r in rows]

    def list_for_production_site(
        self, company_id: str, production_site_id: str
    ) -> list[AllocationRecordInfo]:
        rows = self.session.execute(
            select(AllocationRecord)
            .where(AllocationRecord.company_id == company_id)
            .where(AllocationRecord.production_site_id == production_site_id)
            .order_by(AllocationRecord.month, AllocationRecord.consumption_site_id)
        ).scalars()
        return [self._to_info(r) for r in rows]


# ---------------------------------------------------------------------------
# Banking / lapse ledgers
# ---------------------------------------------------------------------------


class _SiteMonthLedger(_PeriodLedger[ModelType, InfoType]):
    identity_columns = ("company_id", "production_site_id", "month")

    def _identity_of(self, info: Any) -> dict[str, str]:
        return {
            "company_id": info.company_id,
            "production_site_id": info.production_site_id,
            "month": MonthKey.parse(info.month).value,
        }

    def list_for_site(self, company_id: str, production_site_id: str) -> list[InfoType]:
        rows = self.session.execute(
            select(self.model)
            .where(self.model.company_id == company_id)
            .where(self.model.production_site_id == production_site_id)
            .order_by(self.model.month)
        ).scalars()
        return [self._to_info(r) for r in rows]


class BankingLedger(_SiteMonthLedger[BankingRecord, BankingRecordInfo]):
    """Reads and conditional writes for ``banking_records``."""

    ledger_name = "banking"
    model = BankingRecord

    def _apply(self, row: BankingRecord, info: BankingRecordInfo) -> None:
        row.assign_periods(info.banked)
        row.total_banking = info.banked.total
        row.site_name = info.site_name or row.site_name

    def _to_info(self, row: BankingRecord) -> BankingRecordInfo:
        return BankingRecordInfo.from_model(row)

    def get(self, company_id: str, production_site_id: str, month: str) -> BankingRecordInfo | None:
        row = self._find(
            {
                "company_id": company_id,
                "production_site_id": production_site_id,
                "month": MonthKey.parse(month).value,
            }
        )
        return self._to_info(row) if row is not None else None


class LapseLedger(_SiteMonthLedger[LapseRecord, LapseRecordInfo]):
    """Reads and conditional writes for ``lapse_records``."""

    ledger_name = "lapse"
    model = LapseRecord

    def _apply(self, row: LapseRecord, info: LapseRecordInfo) -> None:
        row.assign_periods(info.allocated)
        row.site_name = info.site_name or row.site_name

    def _to_info(self, row: LapseRecord) -> LapseRecordInfo:
        return LapseRecordInfo.from_model(row)

    def get(self, company_id: str, production_site_id: str, month: str) -> LapseRecordInfo | None:
        row = self._find(
            {
                "company_id": company_id,
                "production_site_id": production_site_id,
                "month": MonthKey.parse(month).value,
            }
        )
        return self._to_info(row) if row is not None else None
