"""
Module: ctru_engines.currency
Responsibility:
    Resolve the exchange rate that applies to a unit and convert USD
    amounts into the local currency.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Rate precedence: payment-time rate, else purchase-time rate, else the
      configured fallback.  A zero or negative stored rate counts as absent.
    - Never fails on a missing rate; historical units may predate stricter
      data entry.
    - No rounding: conversions keep full Decimal precision.

Failure modes:
    - MissingFallbackRateError at construction if the fallback is not a
      positive number.  This is a startup error, never a per-call one.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ctru_kernel.domain.dtos import UnitCostInputs
from ctru_kernel.exceptions import MissingFallbackRateError


def _usable(rate: Decimal | None) -> bool:
    return rate is not None and rate > 0


class CurrencyResolver:
    """
    Effective-rate lookup and USD -> local conversion.

    Guarantees:
        - effective_rate() always returns a positive Decimal.
        - to_local(x, unit) == x * effective_rate(unit).
    """

    def __init__(self, fallback_rate: Decimal | str | None):
        try:
            rate = Decimal(str(fallback_rate)) if fallback_rate is not None else None
        except InvalidOperation as exc:
            raise MissingFallbackRateError(fallback_rate) from exc
        if not _usable(rate):
            raise MissingFallbackRateError(fallback_rate)
        self._fallback_rate = rate

    @property
    def fallback_rate(self) -> Decimal:
        return self._fallback_rate

    def resolve(
        self,
        payment_rate: Decimal | None = None,
        purchase_rate: Decimal | None = None,
    ) -> Decimal:
        if _usable(payment_rate):
            return payment_rate
        if _usable(purchase_rate):
            return purchase_rate
        return self._fallback_rate

    def effective_rate(self, unit: UnitCostInputs) -> Decimal:
        """Rate applicable to one unit."""
        return self.resolve(unit.payment_rate, unit.purchase_rate)

    def convert(self, usd_amount: Decimal, rate: Decimal) -> Decimal:
        return usd_amount * rate

    def to_local(self, usd_amount: Decimal, unit: UnitCostInputs) -> Decimal:
        """Convert a USD amount with the unit's effective rate."""
        return self.convert(usd_amount, self.effective_rate(unit))
