"""
Module: energy_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines.
    This is the import surface for the service layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import energy_kernel domain objects and logging.
    MUST NOT import energy_services or energy_config.

Invariants enforced:
    - Purity: engines never read a clock or a database.
    - Decimal-only arithmetic: floats never enter a result.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from energy_engines import BatchAllocator, DispositionPolicy
"""

from energy_engines.allocation_summary import EMPTY_SUMMARY, AllocationSummary, summarize
from energy_engines.batch_allocator import CATEGORY_ORDER, BatchAllocator
from energy_engines.disposition import DispositionKind, DispositionPolicy, LedgerAdjustment
from energy_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AllocationSummary",
    "BatchAllocator",
    "CATEGORY_ORDER",
    "DispositionKind",
    "DispositionPolicy",
    "EMPTY_SUMMARY",
    "LedgerAdjustment",
    "compute_input_fingerprint",
    "summarize",
    "traced_engine",
]
