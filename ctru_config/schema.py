"""
Configuration schema for the CTRU engine.

Frozen dataclasses only; parsing and validation live in loader.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ctru_kernel.domain.classification import ACTIVE_STATES, UnitState


@dataclass(frozen=True)
class EngineConfig:
    """
    Validated engine configuration.

    Guarantees (enforced by the loader):
        - fallback_exchange_rate > 0.
        - active_states is non-empty and holds no terminal state.
        - local_currency and source_currency are known ISO 4217 codes.
    """

    fallback_exchange_rate: Decimal
    local_currency: str = "PEN"
    source_currency: str = "USD"
    freight_expense_type: str = "freight"
    active_states: frozenset[UnitState] = field(default=ACTIVE_STATES)
    auto_recalculate_on_expense: bool = True
    presentation_decimal_places: int = 2
    database_url: str | None = None
    log_level: str = "INFO"
    config_source: str = "<defaults>"
