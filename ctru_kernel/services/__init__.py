"""Kernel services (flush-only; the caller owns the transaction)."""

from ctru_kernel.services.expense_service import ExpenseService
from ctru_kernel.services.sequence_service import SequenceService

__all__ = ["ExpenseService", "SequenceService"]
