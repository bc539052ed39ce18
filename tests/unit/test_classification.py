"""Tests for unit states and expense classification."""

import pytest

from ctru_kernel.domain.classification import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    ExpenseCategory,
    ExpenseClass,
    UnitState,
    class_for_category,
    default_prorateable,
    is_active,
)


class TestUnitStates:
    def test_active_and_terminal_partition_all_states(self):
        assert ACTIVE_STATES | TERMINAL_STATES == set(UnitState)
        assert not ACTIVE_STATES & TERMINAL_STATES

    @pytest.mark.parametrize(
        "state, expected",
        [
            (UnitState.RECEIVED_ORIGIN, True),
            (UnitState.AVAILABLE_DESTINATION, True),
            (UnitState.RESERVED, True),
            (UnitState.SOLD, False),
            (UnitState.EXPIRED, False),
            (UnitState.DAMAGED, False),
        ],
    )
    def test_is_active(self, state, expected):
        assert is_active(state) is expected


class TestExpenseClassification:
    @pytest.mark.parametrize(
        "category, expense_class, prefix",
        [
            (ExpenseCategory.SALE, ExpenseClass.DIRECT, "GVD"),
            (ExpenseCategory.DISTRIBUTION, ExpenseClass.DIRECT, "GVD"),
            (ExpenseCategory.ADMINISTRATIVE, ExpenseClass.SHARED, "GAO"),
            (ExpenseCategory.OPERATIONAL, ExpenseClass.SHARED, "GAO"),
        ],
    )
    def test_category_determines_class(self, category, expense_class, prefix):
        assert class_for_category(category) is expense_class
        assert class_for_category(category.value) is expense_class
        assert expense_class.number_prefix == prefix

    def test_only_shared_expenses_prorateable_by_default(self):
        assert default_prorateable(ExpenseCategory.ADMINISTRATIVE)
        assert default_prorateable(ExpenseCategory.OPERATIONAL)
        assert not default_prorateable(ExpenseCategory.SALE)
        assert not default_prorateable(ExpenseCategory.DISTRIBUTION)
