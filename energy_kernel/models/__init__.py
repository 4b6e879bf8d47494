"""ORM models for the energy kernel ledgers."""

from energy_kernel.models.allocation import AllocationRecord
from energy_kernel.models.banking import BankingRecord
from energy_kernel.models.lapse import LapseRecord
from energy_kernel.models.production_site import ProductionSite

__all__ = [
    "AllocationRecord",
    "BankingRecord",
    "LapseRecord",
    "ProductionSite",
]
