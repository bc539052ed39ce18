"""
CtruEngine -- public facade of the unit cost allocation engine.

Responsibility:
    The single object collaborators talk to: ``recalculate()``,
    ``get_product_cost()``, ``compute_margin()``, plus expense
    registration, initial cost stamping, and read-side reports.  Owns
    session lifecycle for every call.

Architecture position:
    Services -- outermost shell below the CLI.

Invariants enforced:
    - Construction validates configuration; a missing fallback exchange
      rate is fatal here, never per call.
    - Correctness-sensitive reads (margin) go to live unit rows; only
      get_product_cost / top_products_by_cost read the cached aggregate.
    - A registered expense is committed before any recalculation it
      triggers; a failing recalculation never undoes it.
    - Freight registered against a purchase order reaches the stored cost
      of that order's active units when the expense commits.

Failure modes:
    - recalculate() raises (ConcurrencyError, SQLAlchemyError, ...).
      try_recalculate() converts any error into a FAILED result for callers
      that want the user-visible "0 units updated, error: <cause>" report.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_engines.base_cost import BaseCost
from ctru_engines.currency import CurrencyResolver
from ctru_engines.margin import MarginResult, SaleMarginResult
from ctru_engines.proration import ExpenseProrationEngine
from ctru_kernel.db.engine import get_session_factory
from ctru_kernel.domain.clock import Clock, SystemClock
from ctru_kernel.domain.dtos import (
    CostBreakdown,
    CostHistoryPoint,
    ExpenseSnapshot,
    NewExpense,
    ProductCostSummary,
)
from ctru_kernel.logging_config import get_logger
from ctru_kernel.selectors.product_cost_selector import (
    ProductCostSelector,
    RecalculationRunInfo,
)
from ctru_kernel.services.expense_service import ExpenseService
from ctru_services.cost_report_service import CostReportService
from ctru_services.landed_cost_service import LandedCostService
from ctru_services.margin_service import MarginService
from ctru_services.recalculation_orchestrator import (
    RecalculationOrchestrator,
    RecalculationResult,
    RecalculationTrigger,
)

logger = get_logger("services.engine")

# Actor recorded for writes made without an explicit operator
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True)
class ExpenseRegistration:
    """A committed expense and the recalculation it triggered, if any."""

    expense: ExpenseSnapshot
    expense_number: str
    qualifies_for_proration: bool
    recalculation: RecalculationResult | None = None
    units_restamped: int = 0


class CtruEngine:
    """
    Facade over the CTRU services.

    Usage:
        engine = CtruEngine(get_active_config())
        result = engine.recalculate()
        print(result.describe())
    """

    def __init__(
        self,
        config: EngineConfig,
        session_factory: Callable[[], Session] | None = None,
        clock: Clock | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        # Raises MissingFallbackRateError before anything else is built
        self._resolver = CurrencyResolver(config.fallback_exchange_rate)
        self._config = config
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id
        self._orchestrator = RecalculationOrchestrator(
            self._session_factory, config, self._clock, self._resolver
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def orchestrator(self) -> RecalculationOrchestrator:
        return self._orchestrator

    @contextmanager
    def _transaction(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _read(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    # -- Recalculation ------------------------------------------------------

    def recalculate(
        self,
        trigger: RecalculationTrigger = RecalculationTrigger.MANUAL,
        wait: bool = False,
    ) -> RecalculationResult:
        """Run the orchestrator; errors propagate unchanged."""
        return self._orchestrator.recalculate(
            trigger=trigger, actor_id=self._actor_id, wait=wait
        )

    def try_recalculate(
        self,
        trigger: RecalculationTrigger = RecalculationTrigger.MANUAL,
        wait: bool = False,
    ) -> RecalculationResult:
        """Like recalculate(), but any error becomes a FAILED result."""
        try:
            return self.recalculate(trigger=trigger, wait=wait)
        except Exception as exc:
            logger.warning(
                "recalculation_reported_failed",
                extra={"error_type": type(exc).__name__, "trigger": trigger.value},
            )
            return RecalculationResult.failed(str(exc) or type(exc).__name__)

    # -- Writes -------------------------------------------------------------

    def register_expense(self, new_expense: NewExpense) -> ExpenseRegistration:
        """
        Commit a new expense, then recalculate if it feeds the shared pool.

        A freight expense tied to a purchase order re-stamps that order's
        active units in the same transaction.  The recalculation waits for
        any run in progress; its failure is reported in the returned
        registration.
        """
        with self._transaction() as session:
            expense = ExpenseService(session, self._config.local_currency).register(
                new_expense, self._actor_id
            )
            snapshot = ExpenseSnapshot.from_model(expense)
            number = expense.expense_number
            restamped = self._restamp_for_freight(session, snapshot)
        if restamped:
            self._orchestrator.refresh_aggregates(
                sorted({cost.product_id for cost in restamped})
            )

        qualifies = ExpenseProrationEngine(self._config.freight_expense_type).qualifies(
            snapshot
        )
        recalculation = None
        if qualifies and self._config.auto_recalculate_on_expense:
            recalculation = self.try_recalculate(
                trigger=RecalculationTrigger.EXPENSE_CREATED, wait=True
            )
            if not recalculation.succeeded:
                logger.error(
                    "expense_recalculation_failed",
                    extra={"expense_number": number, "error": recalculation.error},
                )

        return ExpenseRegistration(
            expense=snapshot,
            expense_number=number,
            qualifies_for_proration=qualifies,
            recalculation=recalculation,
            units_restamped=len(restamped),
        )

    def _restamp_for_freight(
        self, session: Session, expense: ExpenseSnapshot
    ) -> list[BaseCost]:
        if (
            expense.expense_type != self._config.freight_expense_type
            or not expense.purchase_order_id
        ):
            return []
        return LandedCostService(
            session, self._config, self._resolver
        ).restamp_purchase_order(
            expense.purchase_order_id, self._actor_id, self._clock.now()
        )

    def stamp_initial_costs(self, unit_ids: Iterable[UUID]) -> int:
        """Stamp base and dynamic cost on received units; returns units stamped."""
        with self._transaction() as session:
            stamped = LandedCostService(
                session, self._config, self._resolver
            ).stamp_initial_costs(unit_ids, self._actor_id, self._clock.now())
            products = sorted({cost.product_id for cost in stamped})
        self._orchestrator.refresh_aggregates(products)
        return len(stamped)

    # -- Reads --------------------------------------------------------------

    def get_product_cost(self, product_id: str) -> ProductCostSummary:
        with self._read() as session:
            return ProductCostSelector(session).get_summary(product_id)

    def top_products_by_cost(self, limit: int = 10) -> list[ProductCostSummary]:
        with self._read() as session:
            return ProductCostSelector(session).top_by_average(limit)

    def last_recalculation(self) -> RecalculationRunInfo | None:
        with self._read() as session:
            return ProductCostSelector(session).last_run()

    def product_cost_history(
        self,
        product_id: str,
        months: int = 6,
        as_of: datetime | None = None,
    ) -> list[CostHistoryPoint]:
        with self._read() as session:
            return CostReportService(session, self._config).product_cost_history(
                product_id, as_of or self._clock.now(), months
            )

    def cost_breakdown(self) -> CostBreakdown:
        with self._read() as session:
            return CostReportService(session, self._config).cost_breakdown()

    def compute_margin(
        self,
        sale_price: Decimal | str | int,
        unit_ids: Iterable[UUID | str],
    ) -> MarginResult:
        with self._read() as session:
            margins = MarginService(session, self._config, self._resolver)
            return margins.compute_margin(sale_price, unit_ids)

    def compute_sale_margin(
        self,
        sale_id: str,
        sale_price: Decimal | str | int,
        unit_ids: Iterable[UUID | str],
    ) -> SaleMarginResult:
        with self._read() as session:
            margins = MarginService(session, self._config, self._resolver)
            return margins.compute_sale_margin(
                sale_id, sale_price, unit_ids
            )
