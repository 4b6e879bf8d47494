"""
Configuration Loader (``energy_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``energy_config.schema`` dataclasses.  Runtime callers use
``energy_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError``; required keys are
  never silently defaulted.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from ``validate_config``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from energy_config.schema import (
    SUPPORTED_LOG_LEVELS,
    SUPPORTED_TIE_BREAKS,
    ChargeConfig,
    DatabaseConfig,
    DispositionConfig,
    EngineConfig,
    LockingConfig,
    LoggingConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root in {path} must be a mapping")
    return data


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{name} must be true or false, got {value!r}")


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=_parse_bool(data.get("echo", defaults.echo), "database.echo"),
        pool_size=_parse_int(data.get("pool_size", defaults.pool_size), "database.pool_size"),
        max_overflow=_parse_int(
            data.get("max_overflow", defaults.max_overflow), "database.max_overflow"
        ),
    )


def parse_locking(data: dict[str, Any]) -> LockingConfig:
    return LockingConfig(
        timeout_ms=_parse_int(data.get("timeout_ms", LockingConfig.timeout_ms), "locking.timeout_ms"),
    )


def parse_disposition(data: dict[str, Any]) -> DispositionConfig:
    return DispositionConfig(
        release_lapse_on_decrease=_parse_bool(
            data.get("release_lapse_on_decrease", False),
            "disposition.release_lapse_on_decrease",
        ),
    )


def parse_charge(data: dict[str, Any]) -> ChargeConfig:
    return ChargeConfig(tie_break=str(data.get("tie_break", ChargeConfig.tie_break)))


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    return LoggingConfig(level=str(data.get("level", LoggingConfig.level)).upper())


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> EngineConfig:
    """Parse a raw mapping into an EngineConfig carrying its checksum."""
    return EngineConfig(
        config_id=data["config_id"],
        version=_parse_int(data.get("version", 1), "version"),
        database=parse_database(data.get("database") or {}),
        locking=parse_locking(data.get("locking") or {}),
        disposition=parse_disposition(data.get("disposition") or {}),
        charge=parse_charge(data.get("charge") or {}),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def validate_config(config: EngineConfig) -> list[str]:
    """Return every problem found; an empty list means valid."""
    errors: list[str] = []
    if config.locking.timeout_ms <= 0:
        errors.append(f"locking.timeout_ms must be positive, got {config.locking.timeout_ms}")
    if config.logging.level not in SUPPORTED_LOG_LEVELS:
        errors.append(f"logging.level {config.logging.level!r} is not one of {SUPPORTED_LOG_LEVELS}")
    if config.charge.tie_break not in SUPPORTED_TIE_BREAKS:
        errors.append(f"charge.tie_break {config.charge.tie_break!r} is not supported")
    if config.database.pool_size <= 0:
        errors.append("database.pool_size must be positive")
    if config.database.max_overflow < 0:
        errors.append("database.max_overflow cannot be negative")
    return errors
