"""
Imperative shell of the CTRU engine: orchestration, store access around the
pure calculators, and the CtruEngine facade.
"""

from ctru_services.engine import SYSTEM_ACTOR_ID, CtruEngine, ExpenseRegistration
from ctru_services.recalculation_orchestrator import (
    RecalculationOrchestrator,
    RecalculationResult,
    RecalculationState,
    RecalculationStatus,
    RecalculationTrigger,
)

__all__ = [
    "CtruEngine",
    "ExpenseRegistration",
    "RecalculationOrchestrator",
    "RecalculationResult",
    "RecalculationState",
    "RecalculationStatus",
    "RecalculationTrigger",
    "SYSTEM_ACTOR_ID",
]
