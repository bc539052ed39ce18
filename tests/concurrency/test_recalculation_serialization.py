"""
Serialization tests for recalculation.

Two recalculations must never share a read set of unconsumed expenses.
Guarantees come from the in-process lock, the locked guard row, and the
conditional consumed-flag UPDATE.

Covers:
- Non-blocking call rejected while another run holds the lock
- Concurrent waiting callers: exactly one applies the pool
- Conflict detection when a candidate was consumed underneath a run
- Source-level check that the guard row is locked FOR UPDATE

Run with: pytest tests/concurrency -v
"""

import inspect
import threading
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import select

from ctru_kernel.exceptions import (
    ConcurrencyError,
    ConsumedExpenseConflictError,
    RecalculationInProgressError,
)
from ctru_kernel.models.expense import Expense
from ctru_kernel.models.recalculation import RecalculationRun
from ctru_kernel.models.unit import Unit
from ctru_kernel.selectors.expense_selector import ExpenseSelector
from ctru_services.engine import CtruEngine
from ctru_services.recalculation_orchestrator import (
    RecalculationOrchestrator,
    RecalculationStatus,
)


class TestInProgressGuard:
    def test_non_blocking_call_rejected_while_locked(self, ctru_engine, make_units, make_expense):
        make_units(2)
        make_expense("100")

        RecalculationOrchestrator._lock.acquire()
        try:
            assert RecalculationOrchestrator.is_running()
            with pytest.raises(RecalculationInProgressError) as exc_info:
                ctru_engine.recalculate()
        finally:
            RecalculationOrchestrator._lock.release()

        assert isinstance(exc_info.value, ConcurrencyError)
        assert exc_info.value.code == "RECALCULATION_IN_PROGRESS"
        # The rejected call changed nothing; the next one applies the pool
        assert ctru_engine.recalculate().units_updated == 2

    def test_try_recalculate_reports_in_progress(self, ctru_engine):
        RecalculationOrchestrator._lock.acquire()
        try:
            result = ctru_engine.try_recalculate()
        finally:
            RecalculationOrchestrator._lock.release()

        assert result.status is RecalculationStatus.FAILED
        assert "already in progress" in result.error


class TestConcurrentCallers:
    def test_exactly_one_run_applies_the_pool(
        self, session, session_factory, engine_config, deterministic_clock,
        make_units, make_expense,
    ):
        make_units(5)
        make_expense("500")
        engines = [
            CtruEngine(engine_config, session_factory=session_factory, clock=deterministic_clock)
            for _ in range(4)
        ]
        barrier = threading.Barrier(len(engines))
        results = []
        errors = []

        def _worker(engine):
            barrier.wait()
            try:
                results.append(engine.recalculate(wait=True))
            except Exception as exc:  # collected for the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=_worker, args=(e,)) for e in engines]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        statuses = sorted(r.status.value for r in results)
        assert statuses == ["committed", "no_work", "no_work", "no_work"]

        session.expire_all()
        assert all(
            u.prorated_cost == Decimal("100") for u in session.scalars(select(Unit))
        )
        assert len(list(session.scalars(select(RecalculationRun)))) == 1


class TestConsumedConflict:
    def test_stale_candidate_rolls_back_batch(
        self, ctru_engine, session, make_units, make_expense, monkeypatch
    ):
        units = make_units(2)
        before = {u.id: u.dynamic_cost for u in units}
        already = make_expense("100", consumed=True)
        fresh = make_expense("50")
        real_pending = ExpenseSelector.pending_prorateable

        def _stale_read(self):
            stale = replace(ExpenseSelector(self.session).get(already.id), consumed=False)
            return [stale, *real_pending(self)]

        monkeypatch.setattr(ExpenseSelector, "pending_prorateable", _stale_read)

        with pytest.raises(ConsumedExpenseConflictError) as exc_info:
            ctru_engine.recalculate()

        assert exc_info.value.expected == 2
        assert exc_info.value.flipped == 1
        session.expire_all()
        for unit in session.scalars(select(Unit)):
            assert unit.dynamic_cost == before[unit.id]
        assert session.get(Expense, fresh.id).consumed is False


class TestGuardImplementation:
    def test_guard_row_locked_for_update(self):
        source = Path(inspect.getfile(RecalculationOrchestrator)).read_text()
        body = source.split("def _acquire_guard", 1)[1].split("\n    def ", 1)[0]
        assert ".with_for_update()" in body

    def test_consumed_flag_flipped_conditionally(self):
        source = Path(inspect.getfile(RecalculationOrchestrator)).read_text()
        body = source.split("def _mark_consumed", 1)[1].split("\n    def ", 1)[0]
        assert "Expense.consumed.is_(False)" in body
        assert "rowcount" in body

    def test_active_units_locked_for_update(self):
        source = Path(inspect.getfile(RecalculationOrchestrator)).read_text()
        body = source.split("def _lock_active_units", 1)[1].split("\n    def ", 1)[0]
        assert ".with_for_update()" in body
        run = source.split("def _run", 1)[1].split("\n    def ", 1)[0]
        assert "self._lock_active_units(session)" in run
