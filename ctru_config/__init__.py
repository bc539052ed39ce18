"""
ctru_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or CTRU_* environment variables directly.

Architecture position:
    Configuration -- sits above ``ctru_kernel`` and below ``ctru_services``.
    The kernel MUST NEVER import from ``ctru_config``.

Invariants enforced:
    - A config without a positive fallback exchange rate never reaches the
      engine (MissingFallbackRateError at startup).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``CTRU_CONFIG_TRACE`` log entry naming the source file and the
    fallback rate in force.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from ctru_config.loader import ENV_CONFIG_FILE, load_engine_config, parse_engine_config
from ctru_config.schema import EngineConfig

_logger = logging.getLogger("ctru_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_FILE = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: explicit ``path``, then
    ``$CTRU_CONFIG_FILE``, then ``ctru_config/sets/default.yaml``.
    Environment overrides (``CTRU_DATABASE_URL``, ``CTRU_FALLBACK_RATE``)
    are applied on top.

    Raises:
        FileNotFoundError: the resolved file does not exist.
        ConfigurationError: validation failed.
    """
    environ = os.environ if env is None else env
    if path is None:
        path = environ.get(ENV_CONFIG_FILE) or DEFAULT_CONFIG_FILE
    config = load_engine_config(Path(path), environ)

    _logger.info(
        "CTRU_CONFIG_TRACE",
        extra={
            "trace_type": "CTRU_CONFIG_TRACE",
            "config_source": config.config_source,
            "local_currency": config.local_currency,
            "fallback_exchange_rate": str(config.fallback_exchange_rate),
            "auto_recalculate_on_expense": config.auto_recalculate_on_expense,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "EngineConfig",
    "get_active_config",
    "parse_engine_config",
]
