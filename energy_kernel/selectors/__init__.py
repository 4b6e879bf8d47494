"""Read-only selectors for the energy kernel."""

from energy_kernel.selectors.allocation_selector import AllocationSelector, MonthLedgerView
from energy_kernel.selectors.base import BaseSelector
from energy_kernel.selectors.site_selector import SiteSelector

__all__ = [
    "AllocationSelector",
    "BaseSelector",
    "MonthLedgerView",
    "SiteSelector",
]
