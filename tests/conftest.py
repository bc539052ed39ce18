"""
Pytest fixtures for the CTRU engine test suite.

Provides:
- A session-scoped database engine and per-test table recreation
- A ``session`` for arranging data and a ``session_factory`` for the code
  under test (every recalculation opens its own sessions and commits)
- Deterministic clock, engine configuration, and a ready ``ctru_engine``
- Builders for units and expenses
- Structured-log capture

Environment Variables:
- CTRU_TEST_DATABASE_URL: SQLAlchemy URL of the test database.
  Defaults to an in-memory SQLite database shared through a StaticPool.
"""

import json
import logging
import os
from collections.abc import Generator
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ctru_config.schema import EngineConfig
from ctru_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ctru_kernel.domain.classification import (
    ExpenseCategory,
    UnitState,
    class_for_category,
    default_prorateable,
)
from ctru_kernel.domain.clock import DeterministicClock
from ctru_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ctru_kernel.models.expense import Expense
from ctru_kernel.models.unit import Unit
from ctru_services.engine import CtruEngine

DEFAULT_TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"

# Actor for all arranged rows
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ctru_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ctru_engine):
            ctru_engine.recalculate()
            logs = captured_logs()
            assert any(r["message"] == "recalculation_aborted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ctru_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("CTRU_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


@pytest.fixture(scope="session")
def db_engine():
    """Session-scoped engine for the whole run."""
    engine = init_engine_from_url(get_database_url(), echo=False)
    yield engine
    reset_engine()


@pytest.fixture
def tables(db_engine):
    """Fresh schema per test: tests commit for real."""
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def session_factory(tables):
    """Factory handed to the code under test."""
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Session for arranging data and asserting on results.

    Call ``session.expire_all()`` before reading rows that the engine
    changed in its own sessions.
    """
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(fallback_exchange_rate=Decimal("3.70"))


@pytest.fixture
def ctru_engine(session_factory, engine_config, deterministic_clock) -> CtruEngine:
    return CtruEngine(
        engine_config,
        session_factory=session_factory,
        clock=deterministic_clock,
    )


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_unit(session, test_actor_id):
    """
    Create and commit one unit.

    Costs default to a stamped unit: base_landed_cost = dynamic_cost =
    purchase_cost_usd * (payment_rate or purchase_rate or 3.70).
    """

    def _make(
        product_id: str = "PROD-1",
        state: UnitState = UnitState.AVAILABLE_DESTINATION,
        purchase_cost_usd: Decimal | str = "10",
        purchase_rate: Decimal | str | None = "3.5",
        payment_rate: Decimal | str | None = None,
        freight_cost_usd: Decimal | str | None = None,
        purchase_order_id: str | None = None,
        base_landed_cost: Decimal | str | None = "auto",
        prorated_cost: Decimal | str = "0",
        received_at: datetime | None = None,
    ) -> Unit:
        cost = Decimal(str(purchase_cost_usd))
        purchase = Decimal(str(purchase_rate)) if purchase_rate is not None else None
        payment = Decimal(str(payment_rate)) if payment_rate is not None else None
        if base_landed_cost == "auto":
            base = cost * (payment or purchase or Decimal("3.70"))
        elif base_landed_cost is None:
            base = None
        else:
            base = Decimal(str(base_landed_cost))
        prorated = Decimal(str(prorated_cost))

        unit = Unit(
            product_id=product_id,
            state=UnitState(state).value,
            purchase_cost_usd=cost,
            purchase_rate=purchase,
            payment_rate=payment,
            freight_cost_usd=(
                Decimal(str(freight_cost_usd)) if freight_cost_usd is not None else None
            ),
            purchase_order_id=purchase_order_id,
            base_landed_cost=base,
            prorated_cost=prorated,
            dynamic_cost=base + prorated if base is not None else None,
            received_at=received_at or datetime(2024, 6, 1, tzinfo=timezone.utc),
            created_by_id=test_actor_id,
        )
        session.add(unit)
        session.commit()
        return unit

    return _make


@pytest.fixture
def make_units(make_unit):
    def _make(count: int, **kwargs) -> list[Unit]:
        return [make_unit(**kwargs) for _ in range(count)]

    return _make


@pytest.fixture
def make_expense(session, test_actor_id):
    """
    Create and commit one expense directly (bypassing registration).

    Allows arranging states registration would not produce, such as a
    direct expense flagged prorateable.
    """
    counter = {"n": 0}

    def _make(
        amount: Decimal | str = "1000",
        category: ExpenseCategory = ExpenseCategory.ADMINISTRATIVE,
        expense_type: str = "utilities",
        is_prorateable: bool | None = None,
        consumed: bool = False,
        purchase_order_id: str | None = None,
        sale_id: str | None = None,
    ) -> Expense:
        counter["n"] += 1
        expense_class = class_for_category(category)
        value = Decimal(str(amount))
        expense = Expense(
            expense_number=f"T{expense_class.number_prefix}-{counter['n']:04d}",
            category=ExpenseCategory(category).value,
            expense_class=expense_class.value,
            expense_type=expense_type,
            currency="PEN",
            original_amount=value,
            amount_local=value,
            is_prorateable=(
                default_prorateable(category) if is_prorateable is None else is_prorateable
            ),
            consumed=consumed,
            purchase_order_id=purchase_order_id,
            sale_id=sale_id,
            incurred_on=date(2024, 6, 10),
            created_by_id=test_actor_id,
        )
        session.add(expense)
        session.commit()
        return expense

    return _make
