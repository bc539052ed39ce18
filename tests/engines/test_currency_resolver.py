"""
Tests for the Currency Resolver.

Covers:
- Rate precedence (payment > purchase > fallback)
- Zero/negative stored rates treated as absent
- Fallback validation at construction
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ctru_engines.currency import CurrencyResolver
from ctru_kernel.domain.classification import UnitState
from ctru_kernel.domain.dtos import UnitCostInputs
from ctru_kernel.exceptions import ConfigurationError, MissingFallbackRateError


def _unit(purchase_rate=None, payment_rate=None, cost="100") -> UnitCostInputs:
    return UnitCostInputs(
        unit_id=uuid4(),
        product_id="P",
        state=UnitState.RECEIVED_ORIGIN,
        purchase_cost_usd=Decimal(cost),
        purchase_rate=Decimal(purchase_rate) if purchase_rate else None,
        payment_rate=Decimal(payment_rate) if payment_rate else None,
    )


class TestEffectiveRate:
    def setup_method(self):
        self.resolver = CurrencyResolver(Decimal("3.70"))

    def test_payment_rate_wins(self):
        assert self.resolver.effective_rate(_unit("3.50", "3.80")) == Decimal("3.80")

    def test_purchase_rate_when_no_payment_rate(self):
        assert self.resolver.effective_rate(_unit("3.50")) == Decimal("3.50")

    def test_fallback_when_no_rates(self):
        assert self.resolver.effective_rate(_unit()) == Decimal("3.70")

    def test_zero_rates_fall_through(self):
        rate = self.resolver.resolve(payment_rate=Decimal("0"), purchase_rate=Decimal("0"))
        assert rate == Decimal("3.70")

    def test_negative_payment_rate_ignored(self):
        rate = self.resolver.resolve(payment_rate=Decimal("-1"), purchase_rate=Decimal("3.6"))
        assert rate == Decimal("3.6")


class TestConversion:
    def test_to_local_multiplies_by_effective_rate(self):
        resolver = CurrencyResolver("3.70")
        assert resolver.to_local(Decimal("100"), _unit("3.50")) == Decimal("350.00")

    def test_no_rounding(self):
        resolver = CurrencyResolver("3.7123")
        assert resolver.to_local(Decimal("0.01"), _unit()) == Decimal("0.037123")


class TestFallbackValidation:
    @pytest.mark.parametrize("bad", [None, "0", "-3.7", "abc", Decimal("0")])
    def test_invalid_fallback_rejected(self, bad):
        with pytest.raises(MissingFallbackRateError):
            CurrencyResolver(bad)

    def test_missing_fallback_is_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CurrencyResolver(None)
        assert exc_info.value.code == "MISSING_FALLBACK_RATE"
