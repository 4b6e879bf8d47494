"""Services for the energy kernel (write side)."""

from energy_kernel.services.charge_guard import ChargeInvariantGuard, select_replacement
from energy_kernel.services.ledger_service import (
    AllocationLedger,
    BankingLedger,
    LapseLedger,
    LedgerJournal,
    LedgerWrite,
    WriteAction,
)
from energy_kernel.services.site_service import SiteRegistry

__all__ = [
    "AllocationLedger",
    "BankingLedger",
    "ChargeInvariantGuard",
    "LapseLedger",
    "LedgerJournal",
    "LedgerWrite",
    "SiteRegistry",
    "WriteAction",
    "select_replacement",
]
