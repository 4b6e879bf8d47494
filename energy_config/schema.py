"""
EngineConfig schema.

Frozen dataclasses parsed from the YAML configuration file by the loader.
Defaults mirror ``defaults.yaml`` so a partially specified file is still a
complete configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SUPPORTED_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
SUPPORTED_TIE_BREAKS: tuple[str, ...] = ("consumption_site_id", "production_site_id")


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the three ledgers live."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class LockingConfig:
    """Advisory per-production-site lock."""

    timeout_ms: int = 30000


@dataclass(frozen=True)
class DispositionConfig:
    """Bank-or-lapse behaviour on the edit path."""

    release_lapse_on_decrease: bool = False


@dataclass(frozen=True)
class ChargeConfig:
    """Charge-flag reassignment."""

    tie_break: str = "consumption_site_id"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class EngineConfig:
    """The complete runtime configuration."""

    config_id: str
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    locking: LockingConfig = field(default_factory=LockingConfig)
    disposition: DispositionConfig = field(default_factory=DispositionConfig)
    charge: ChargeConfig = field(default_factory=ChargeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
