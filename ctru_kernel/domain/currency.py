"""Currency -- ISO 4217 registry used to validate currency codes."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies the cost engine deals in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "PEN": CurrencyInfo("PEN", 2, "Peruvian Sol"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "COP": CurrencyInfo("COP", 2, "Colombian Peso"),
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "ARS": CurrencyInfo("ARS", 2, "Argentine Peso"),
        "BOB": CurrencyInfo("BOB", 2, "Bolivian Boliviano"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "CNY": CurrencyInfo("CNY", 2, "Chinese Yuan"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return code.upper() in cls._CURRENCIES

