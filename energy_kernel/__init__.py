"""
Energy Kernel - allocation ledger core

A versioned, ledger-backed allocation core with:
- Period-aware production/consumption matching
- Banking and lapse ledgers for unmatched production
- Single chargeable allocation per company and month
- Optimistic concurrency on every ledger row
"""

__version__ = "0.1.0"
