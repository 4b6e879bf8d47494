#!/usr/bin/env python3
"""
Allocate one month from a YAML snapshot and print the result as JSON.

The snapshot lists the month's production sources, consumption demands and
previously banked units:

    month: "012024"
    production:
      - source_id: S1
        company_id: C1
        type: SOLAR
        available: {c1: 100, c2: 0, c3: 0, c4: 0, c5: 0}
    consumption:
      - site_id: A
        remaining: {c1: 80, c2: 0, c3: 0, c4: 0, c5: 0}
    banked: []

Without ``--db-url`` only the allocator runs.  With it, the result is also
persisted through AllocationService.run_month.

Usage:
    python3 scripts/allocate_month.py snapshot.yaml
    python3 scripts/allocate_month.py snapshot.yaml --db-url sqlite:///energy.db
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import yaml

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from energy_config import get_active_config  # noqa: E402
from energy_engines.batch_allocator import BatchAllocator  # noqa: E402
from energy_engines.disposition import DispositionPolicy  # noqa: E402
from energy_kernel.domain.dtos import (  # noqa: E402
    AllocationResult,
    ConsumptionDemand,
    ProductionSource,
)
from energy_kernel.exceptions import EnergyKernelError  # noqa: E402
from energy_kernel.logging_config import configure_logging  # noqa: E402


def _source(raw: dict[str, Any], month: str, carried_over: bool = False) -> ProductionSource:
    return ProductionSource(
        source_id=str(raw["source_id"]),
        company_id=str(raw["company_id"]),
        source_type=raw["type"],
        month=str(raw.get("month", "")) or month,
        available=raw["available"],
        banking_enabled=raw.get("banking_enabled"),
        banking_flag=int(raw.get("banking", 0)),
        is_carried_over_bank=carried_over,
        site_name=raw.get("site_name", ""),
    )


def _demand(raw: dict[str, Any], month: str) -> ConsumptionDemand:
    return ConsumptionDemand(
        site_id=str(raw["site_id"]),
        month=str(raw.get("month", "")) or month,
        remaining=raw["remaining"],
        site_name=raw.get("site_name", ""),
    )


def load_snapshot(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict) or "month" not in data:
        raise ValueError(f"Snapshot {path} must be a mapping with a 'month' key")
    month = str(data["month"])
    return {
        "month": month,
        "production": [_source(r, month) for r in data.get("production") or []],
        "consumption": [_demand(r, month) for r in data.get("consumption") or []],
        "banked": [_source(r, month, carried_over=True) for r in data.get("banked") or []],
    }


def result_to_dict(result: AllocationResult) -> dict[str, Any]:
    return {
        "month": result.month,
        "allocations": [
            {
                "pk": d.key.pk,
                "production_site_id": d.production_site_id,
                "consumption_site_id": d.consumption_site_id,
                "allocated": d.allocated.to_dict(),
                "from_bank": d.from_bank.to_dict(),
            }
            for d in result.allocations
        ],
        "banking": [
            {"pk": b.ledger_pk, "banked": b.banked.to_dict()} for b in result.banking_deltas
        ],
        "lapse": [
            {"pk": lp.ledger_pk, "lapsed": lp.lapsed.to_dict(), "from_bank": lp.from_bank}
            for lp in result.lapse_deltas
        ],
        "remaining_consumption": result.remaining_consumption,
        "remaining_production": result.remaining_production,
        "skipped_sources": list(result.skipped_sources),
        "skipped_consumers": list(result.skipped_consumers),
        "balanced": result.is_balanced,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Allocate one month from a YAML snapshot")
    parser.add_argument("snapshot", type=Path, help="YAML snapshot file")
    parser.add_argument("--config", type=Path, default=None, help="Engine config YAML")
    parser.add_argument("--db-url", default=None, help="Persist the run to this database")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    args = parser.parse_args(argv)

    config = get_active_config(args.config)
    configure_logging(level=args.log_level or config.logging.level, stream=sys.stderr)

    try:
        snapshot = load_snapshot(args.snapshot)
        if args.db_url:
            from energy_kernel.db.engine import (
                create_tables,
                get_session_factory,
                init_engine_from_url,
            )
            from energy_services.allocation_service import AllocationService

            init_engine_from_url(
                args.db_url,
                echo=config.database.echo,
                pool_size=config.database.pool_size,
                max_overflow=config.database.max_overflow,
            )
            create_tables()
            service = AllocationService(get_session_factory(), config=config)
            result = service.run_month(**snapshot).result
        else:
            policy = DispositionPolicy(config.disposition.release_lapse_on_decrease)
            result = BatchAllocator(policy).allocate(**snapshot)
    except (EnergyKernelError, ValueError, KeyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(result_to_dict(result), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
