"""
RecalculationOrchestrator -- the CTRU state machine.

Responsibility:
    Reads the active units and the unconsumed prorateable expenses,
    computes impact per unit, and writes every active unit's new cost and
    every consumed flag as ONE database transaction.  After the commit it
    refreshes the per-product aggregates.

Architecture position:
    Services -- imperative shell.  The only component that commits unit
    costs and consumed flags; it owns its transaction boundary because the
    atomic batch is its contract.

    State machine::

        IDLE -> COMPUTING -> COMMITTING -> IDLE      (work committed)
        IDLE -> COMPUTING -> ABORTED    -> IDLE      (no work, or failure)

Invariants enforced:
    - Atomic batch: unit costs, consumed flags, and the RecalculationRun
      row commit together or not at all.
    - No double counting: expenses are flipped with
      ``UPDATE ... WHERE consumed = false``; a short row count means another
      run got there first and the whole batch rolls back.
    - Serialization: an in-process lock plus a locked guard row
      (``SELECT ... FOR UPDATE``) keep two runs from sharing a read set.
    - Accumulation: ``prorated_cost += impact_per_unit`` and
      ``dynamic_cost = base_landed_cost + prorated_cost``.  Terminal units
      are never read, so their cost stays frozen.
    - Monotonicity: a stamped base_landed_cost is kept as is; only units
      never stamped get a base computed here.  Active units are read
      ``FOR UPDATE`` so a unit sold mid-run cannot be overwritten.

Failure modes:
    - RecalculationInProgressError: another run holds the lock (only when
      ``wait`` is False).
    - ConsumedExpenseConflictError: candidate expenses consumed
      concurrently; nothing was written.
    - SQLAlchemyError: propagates unchanged after rollback.  Retrying is
      always safe because nothing was marked consumed.

Audit relevance:
    Logs recalculation_started / _aborted / _committed / _failed with the
    run id bound into LogContext, and persists a RecalculationRun row for
    every committed run.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_engines.currency import CurrencyResolver
from ctru_engines.proration import ExpenseProrationEngine, ProrationImpact
from ctru_kernel.domain.clock import Clock, SystemClock
from ctru_kernel.domain.dtos import UnitCostInputs
from ctru_kernel.exceptions import (
    ConsumedExpenseConflictError,
    RecalculationInProgressError,
)
from ctru_kernel.logging_config import LogContext, get_logger
from ctru_kernel.models.expense import Expense
from ctru_kernel.models.recalculation import RecalculationGuard, RecalculationRun
from ctru_kernel.models.unit import Unit
from ctru_kernel.selectors.expense_selector import ExpenseSelector
from ctru_services.aggregate_updater import ProductAggregateUpdater
from ctru_services.landed_cost_service import LandedCostService

logger = get_logger("services.recalculation")

ZERO = Decimal("0")


def _plain(value: Decimal) -> str:
    """Fixed-point text without trailing zeros: 100.000000000 -> "100"."""
    return format(value.normalize(), "f") if value else "0"


class RecalculationState(str, Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    COMMITTING = "committing"
    ABORTED = "aborted"


class RecalculationTrigger(str, Enum):
    """What started a run."""

    EXPENSE_CREATED = "expense_created"
    MANUAL = "manual"


class RecalculationStatus(str, Enum):
    COMMITTED = "committed"
    NO_WORK = "no_work"
    FAILED = "failed"


@dataclass(frozen=True)
class RecalculationResult:
    """
    Caller-facing outcome of one recalculation.

    ``describe()`` keeps the two zero-unit outcomes apart:
    "0 units updated" (no work) vs "0 units updated, error: <cause>".
    """

    status: RecalculationStatus
    units_updated: int = 0
    expenses_applied: int = 0
    impact_per_unit: Decimal = ZERO
    run_id: UUID | None = None
    error: str | None = None
    products_refreshed: tuple[str, ...] = ()
    aggregate_failures: tuple[str, ...] = field(default=())

    @classmethod
    def no_work(cls) -> RecalculationResult:
        return cls(status=RecalculationStatus.NO_WORK)

    @classmethod
    def failed(cls, error: str) -> RecalculationResult:
        return cls(status=RecalculationStatus.FAILED, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status is not RecalculationStatus.FAILED

    def as_dict(self) -> dict:
        return {
            "unitsUpdated": self.units_updated,
            "expensesApplied": self.expenses_applied,
            "impactPerUnit": _plain(self.impact_per_unit),
        }

    def describe(self) -> str:
        message = f"{self.units_updated} units updated"
        if self.error is not None:
            message += f", error: {self.error}"
        return message


class RecalculationOrchestrator:
    """
    Runs recalculations against a session factory.

    Each run opens its own session; aggregate refreshes run afterwards, one
    transaction per product.
    """

    GUARD_NAME = "ctru"

    # Shared by every orchestrator in the process
    _lock = threading.Lock()

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: EngineConfig,
        clock: Clock | None = None,
        resolver: CurrencyResolver | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._resolver = resolver or CurrencyResolver(config.fallback_exchange_rate)
        self._proration = ExpenseProrationEngine(config.freight_expense_type)
        self._state = RecalculationState.IDLE
        self._history: list[RecalculationState] = [RecalculationState.IDLE]

    @property
    def state(self) -> RecalculationState:
        return self._state

    @property
    def state_history(self) -> tuple[RecalculationState, ...]:
        """Every state entered by this orchestrator, oldest first."""
        return tuple(self._history)

    def _transition(self, new_state: RecalculationState) -> None:
        logger.debug(
            "recalculation_state_changed",
            extra={"from_state": self._state.value, "to_state": new_state.value},
        )
        self._state = new_state
        self._history.append(new_state)

    @classmethod
    def is_running(cls) -> bool:
        return cls._lock.locked()

    def recalculate(
        self,
        trigger: RecalculationTrigger = RecalculationTrigger.MANUAL,
        actor_id: UUID | None = None,
        wait: bool = False,
    ) -> RecalculationResult:
        """
        Run one recalculation.

        Args:
            trigger: What started the run (recorded in the audit trail).
            actor_id: Stamped as updated_by_id on every unit written.
            wait: Block until a concurrent run finishes instead of raising.

        Raises:
            RecalculationInProgressError: another run holds the lock.
            ConsumedExpenseConflictError: candidates consumed concurrently.
            SQLAlchemyError: store failure; nothing was written.
        """
        if not self._lock.acquire(blocking=wait):
            logger.info(
                "recalculation_rejected_in_progress",
                extra={"trigger": trigger.value},
            )
            raise RecalculationInProgressError(self.GUARD_NAME)
        try:
            run_id = uuid4()
            with LogContext.bind(
                run_id=str(run_id),
                trigger=trigger.value,
                actor_id=str(actor_id) if actor_id else None,
            ):
                return self._run(run_id, trigger, actor_id)
        finally:
            if self._state is not RecalculationState.IDLE:
                self._transition(RecalculationState.IDLE)
            self._lock.release()

    def _run(
        self,
        run_id: UUID,
        trigger: RecalculationTrigger,
        actor_id: UUID | None,
    ) -> RecalculationResult:
        t0 = time.monotonic()
        started_at = self._clock.now()
        self._transition(RecalculationState.COMPUTING)
        logger.info("recalculation_started", extra={"trigger": trigger.value})

        session = self._session_factory()
        try:
            guard = self._acquire_guard(session)

            units = self._lock_active_units(session)
            candidates = ExpenseSelector(session).pending_prorateable()
            impact = self._proration.compute_impact(
                expenses=candidates, active_unit_count=len(units)
            )

            if impact.is_noop:
                session.rollback()
                self._transition(RecalculationState.ABORTED)
                logger.info(
                    "recalculation_aborted",
                    extra={
                        "reason": "no_active_units" if not units else "no_qualifying_expenses",
                        "active_unit_count": len(units),
                        "candidate_count": len(candidates),
                    },
                )
                return RecalculationResult.no_work()

            self._transition(RecalculationState.COMMITTING)
            committed_at = self._clock.now()
            products = self._apply_to_units(session, units, impact, actor_id, committed_at)
            self._mark_consumed(session, impact, run_id, committed_at)

            session.add(
                RecalculationRun(
                    id=run_id,
                    trigger=trigger.value,
                    actor_id=str(actor_id) if actor_id else None,
                    units_updated=len(units),
                    expenses_applied=impact.expense_count,
                    impact_per_unit=impact.impact_per_unit,
                    total_prorated=impact.total_amount,
                    started_at=started_at,
                    committed_at=committed_at,
                )
            )
            guard.run_count += 1
            guard.last_run_at = committed_at
            session.flush()
            session.commit()
        except Exception as exc:
            session.rollback()
            self._transition(RecalculationState.ABORTED)
            logger.error(
                "recalculation_failed",
                extra={
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                },
                exc_info=True,
            )
            raise
        finally:
            session.close()

        logger.info(
            "recalculation_committed",
            extra={
                "units_updated": len(units),
                "expenses_applied": impact.expense_count,
                "impact_per_unit": str(impact.impact_per_unit),
                "total_prorated": str(impact.total_amount),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )

        refreshed, failures = self.refresh_aggregates(products, run_id)
        return RecalculationResult(
            status=RecalculationStatus.COMMITTED,
            units_updated=len(units),
            expenses_applied=impact.expense_count,
            impact_per_unit=impact.impact_per_unit,
            run_id=run_id,
            products_refreshed=refreshed,
            aggregate_failures=failures,
        )

    def _acquire_guard(self, session: Session) -> RecalculationGuard:
        guard = session.execute(
            select(RecalculationGuard)
            .where(RecalculationGuard.name == self.GUARD_NAME)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if guard is None:
            guard = RecalculationGuard(name=self.GUARD_NAME, run_count=0)
            session.add(guard)
            session.flush()
        return guard

    def _lock_active_units(self, session: Session) -> list[Unit]:
        """Active units, row-locked until commit so no state change slips in."""
        states = sorted(s.value for s in self._config.active_states)
        return list(
            session.scalars(
                select(Unit)
                .where(Unit.state.in_(states))
                .order_by(Unit.id)
                .with_for_update()
            )
        )

    def _apply_to_units(
        self,
        session: Session,
        units: list[Unit],
        impact: ProrationImpact,
        actor_id: UUID | None,
        now: datetime,
    ) -> list[str]:
        """Add the impact to every active unit, stamping base cost where missing."""
        landed = LandedCostService(session, self._config, self._resolver)
        products: dict[str, None] = {}
        for unit in units:
            base = unit.base_landed_cost
            if base is None:
                base = landed.base_cost(UnitCostInputs.from_model(unit)).base_landed_cost
            prorated = (unit.prorated_cost or ZERO) + impact.impact_per_unit
            unit.base_landed_cost = base
            unit.prorated_cost = prorated
            unit.dynamic_cost = base + prorated
            unit.cost_updated_at = now
            if actor_id is not None:
                unit.updated_by_id = actor_id
            products[unit.product_id] = None
        session.flush()
        return list(products)

    def _mark_consumed(
        self,
        session: Session,
        impact: ProrationImpact,
        run_id: UUID,
        now: datetime,
    ) -> None:
        ids = list(impact.consumed_expense_ids)
        result = session.execute(
            update(Expense)
            .where(Expense.id.in_(ids), Expense.consumed.is_(False))
            .values(consumed=True, consumed_at=now, consumed_by_run_id=run_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(ids):
            logger.warning(
                "consumed_expense_conflict",
                extra={"expected": len(ids), "flipped": result.rowcount},
            )
            raise ConsumedExpenseConflictError(len(ids), result.rowcount)

    def refresh_aggregates(
        self,
        product_ids: list[str],
        run_id: UUID | None = None,
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """
        Refresh each product's aggregate in its own transaction.

        A failure is logged as aggregate_refresh_failed and does not affect
        the already committed units or other products.

        Returns:
            (refreshed product ids, failed product ids)
        """
        refreshed: list[str] = []
        failed: list[str] = []
        for product_id in product_ids:
            session = self._session_factory()
            try:
                updater = ProductAggregateUpdater(
                    session, self._config, self._clock, self._resolver
                )
                if updater.refresh(product_id, run_id) is not None:
                    refreshed.append(product_id)
                session.commit()
            except Exception as exc:
                session.rollback()
                failed.append(product_id)
                logger.error(
                    "aggregate_refresh_failed",
                    extra={"product_id": product_id, "error_type": type(exc).__name__},
                    exc_info=True,
                )
            finally:
                session.close()
        return tuple(refreshed), tuple(failed)
