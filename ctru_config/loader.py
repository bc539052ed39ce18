"""
YAML loader for the CTRU engine configuration.

Reads a configuration set, applies environment overrides, and validates
the result into an ``EngineConfig``.

Failure modes:
    * Missing file      -> ``FileNotFoundError`` propagates.
    * Malformed YAML    -> ``yaml.YAMLError`` propagates.
    * Invalid values    -> ``ConfigurationError`` (or
      ``MissingFallbackRateError`` for the fallback exchange rate).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ctru_config.schema import EngineConfig
from ctru_kernel.domain.classification import TERMINAL_STATES, UnitState
from ctru_kernel.domain.currency import CurrencyRegistry
from ctru_kernel.exceptions import ConfigurationError, MissingFallbackRateError

ENV_CONFIG_FILE = "CTRU_CONFIG_FILE"
ENV_DATABASE_URL = "CTRU_DATABASE_URL"
ENV_FALLBACK_RATE = "CTRU_FALLBACK_RATE"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping; an empty file yields {}."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def parse_fallback_rate(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise MissingFallbackRateError(value)
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise MissingFallbackRateError(value) from exc
    if not rate.is_finite() or rate <= 0:
        raise MissingFallbackRateError(value)
    return rate


def parse_currency(setting: str, value: Any) -> str:
    code = str(value or "").upper()
    if not CurrencyRegistry.is_valid(code):
        raise ConfigurationError(setting, f"unknown currency {value!r}")
    return code


def parse_active_states(value: Any) -> frozenset[UnitState]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigurationError("active_states", "must be a non-empty list")
    states = set()
    for raw in value:
        try:
            state = UnitState(raw)
        except ValueError as exc:
            raise ConfigurationError("active_states", f"unknown state {raw!r}") from exc
        if state in TERMINAL_STATES:
            raise ConfigurationError(
                "active_states", f"terminal state {state.value!r} cannot be active"
            )
        states.add(state)
    return frozenset(states)


def parse_bool(setting: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigurationError(setting, f"must be true or false, got {value!r}")


def parse_engine_config(data: Mapping[str, Any], source: str = "<mapping>") -> EngineConfig:
    """Validate a raw mapping into an EngineConfig."""
    engine = data.get("engine", data)
    if not isinstance(engine, Mapping):
        raise ConfigurationError("engine", "must be a mapping")

    kwargs: dict[str, Any] = {
        "fallback_exchange_rate": parse_fallback_rate(
            engine.get("fallback_exchange_rate")
        ),
        "config_source": source,
    }

    if "local_currency" in engine:
        kwargs["local_currency"] = parse_currency("local_currency", engine["local_currency"])
    if "source_currency" in engine:
        kwargs["source_currency"] = parse_currency("source_currency", engine["source_currency"])

    if "freight_expense_type" in engine:
        freight_type = str(engine["freight_expense_type"] or "").strip()
        if not freight_type:
            raise ConfigurationError("freight_expense_type", "must not be empty")
        kwargs["freight_expense_type"] = freight_type

    if "active_states" in engine:
        kwargs["active_states"] = parse_active_states(engine["active_states"])

    if "auto_recalculate_on_expense" in engine:
        kwargs["auto_recalculate_on_expense"] = parse_bool(
            "auto_recalculate_on_expense", engine["auto_recalculate_on_expense"]
        )

    if "presentation_decimal_places" in engine:
        places = engine["presentation_decimal_places"]
        if isinstance(places, bool) or not isinstance(places, int) or not 0 <= places <= 9:
            raise ConfigurationError(
                "presentation_decimal_places", f"must be an integer 0-9, got {places!r}"
            )
        kwargs["presentation_decimal_places"] = places

    database = data.get("database") or {}
    if database.get("url"):
        kwargs["database_url"] = str(database["url"])

    logging_section = data.get("logging") or {}
    if "level" in logging_section:
        level = str(logging_section["level"]).upper()
        if level not in _VALID_LOG_LEVELS:
            raise ConfigurationError("logging.level", f"unknown level {level!r}")
        kwargs["log_level"] = level

    return EngineConfig(**kwargs)


def apply_env_overrides(
    data: dict[str, Any],
    env: Mapping[str, str],
) -> dict[str, Any]:
    """Return a copy of data with CTRU_* environment overrides applied."""
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    if env.get(ENV_DATABASE_URL):
        merged.setdefault("database", {})
        merged["database"]["url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_FALLBACK_RATE):
        merged.setdefault("engine", {})
        merged["engine"]["fallback_exchange_rate"] = env[ENV_FALLBACK_RATE]
    return merged


def load_engine_config(
    path: Path,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    logging.getLogger("ctru_kernel.config").debug(
        "config_loading", extra={"path": str(path)}
    )
    data = apply_env_overrides(load_yaml_file(path), env or {})
    return parse_engine_config(data, source=str(path))
