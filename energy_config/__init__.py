"""
energy_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files directly.

Architecture position:
    Configuration -- sits above ``energy_kernel`` and below
    ``energy_services``.  The kernel MUST NEVER import from here.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` -- a required key (``config_id``) is missing.
    - ``ValueError`` -- validation failed.

Audit relevance:
    Every successful call emits an ``ENERGY_CONFIG_TRACE`` log record with
    the config id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from energy_config.loader import load_yaml_file, parse_config, validate_config
from energy_config.schema import (
    ChargeConfig,
    DatabaseConfig,
    DispositionConfig,
    EngineConfig,
    LockingConfig,
    LoggingConfig,
)

_logger = logging.getLogger("energy_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to ``energy_config/defaults.yaml``.

    Returns:
        A validated, frozen EngineConfig.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(config_path))

    errors = validate_config(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "ENERGY_CONFIG_TRACE",
        extra={
            "trace_type": "ENERGY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
        },
    )
    return config


__all__ = [
    "ChargeConfig",
    "DatabaseConfig",
    "DispositionConfig",
    "EngineConfig",
    "LockingConfig",
    "LoggingConfig",
    "get_active_config",
]
