"""
Currency Normalizer

Everything inside the engine is stored in the base currency. This module
turns foreign amounts into base amounts when data comes in, and base amounts
into a display currency on the way out.

Rates are "multiplier to base": amount_in_base = amount * rate.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal

import requests

from .errors import ExternalServiceError
from .models import to_decimal
from .money import quantize_money

logger = logging.getLogger(__name__)

DEFAULT_BASE_CURRENCY = "BRL"

# Approximate fallback rates, base BRL
FALLBACK_RATES: dict[str, Decimal] = {
    code: Decimal(rate)
    for code, rate in {
        "BRL": "1",
        "USD": "5.85",
        "EUR": "6.15",
        "GBP": "7.35",
        "JPY": "0.038",
        "AUD": "3.80",
        "CAD": "4.15",
        "CHF": "6.50",
        "CNY": "0.80",
        "SEK": "0.53",
        "NZD": "3.45",
        "MXN": "0.28",
        "SGD": "4.30",
        "HKD": "0.75",
        "NOK": "0.52",
        "KRW": "0.0041",
        "TRY": "0.17",
        "RUB": "0.058",
        "INR": "0.068",
        "ZAR": "0.32",
        "DKK": "0.82",
        "PLN": "1.45",
        "THB": "0.17",
        "IDR": "0.00037",
        "HUF": "0.015",
        "CZK": "0.24",
        "ILS": "1.60",
    }.items()
}


@dataclass
class RateTable:
    """Rates plus where they came from."""

    base: str
    rates: dict[str, Decimal] = field(default_factory=dict)
    source: str = "fallback"  # 'live' or 'fallback'
    error: ExternalServiceError | None = None


def fallback_table(base: str = DEFAULT_BASE_CURRENCY) -> RateTable:
    # The static table is BRL-based; any other base only knows itself
    if base == DEFAULT_BASE_CURRENCY:
        return RateTable(base=base, rates=dict(FALLBACK_RATES), source="fallback")
    return RateTable(base=base, rates={base: Decimal("1")}, source="fallback")


def fetch_rates(url: str, base: str = DEFAULT_BASE_CURRENCY, timeout: float = 10) -> RateTable:
    """
    Fetch live rates. Never raises: on any failure the static table is
    returned with the error attached.

    The service answers in base terms (1 BRL = 0.17 USD), so each rate is
    inverted to get the multiplier to base (1 USD = 5.88 BRL).
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
        rates = {}
        for code, value in payload["rates"].items():
            quoted = to_decimal(value, f"rates.{code}")
            if quoted > 0:
                rates[code.upper()] = Decimal("1") / quoted
    except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning(f"Failed to fetch exchange rates from {url}, using fallback: {e}")
        table = fallback_table(base)
        table.error = ExternalServiceError(f"Exchange rate fetch failed: {e}", url=url)
        return table

    rates[base] = Decimal("1")
    logger.info(f"Fetched {len(rates)} exchange rates (base {base})")
    return RateTable(base=base, rates=rates, source="live")


class CurrencyNormalizer:
    """
    Converts between the base currency and foreign currencies.

    With a `loader` instead of a table, rates are loaded on first use.
    """

    def __init__(self, table: RateTable | None = None, loader: Callable[[], RateTable] | None = None):
        self._table = table
        self._loader = loader

    @property
    def table(self) -> RateTable:
        if self._table is None:
            self._table = self._loader() if self._loader else fallback_table()
        return self._table

    @property
    def base(self) -> str:
        return self.table.base

    def rate_for(self, currency: str | None) -> Decimal:
        """
        Multiplier to base for a currency code.

        Missing from the live table: try the static table. Missing from both:
        1, with a warning.
        """
        code = (currency or self.base).upper()
        if code == self.base:
            return Decimal("1")
        if code in self.table.rates:
            return self.table.rates[code]
        if self.base == DEFAULT_BASE_CURRENCY and code in FALLBACK_RATES:
            return FALLBACK_RATES[code]
        logger.warning(f"No exchange rate for {code}, treating as 1:1 with {self.base}")
        return Decimal("1")

    def convert_to_base(self, amount: Decimal, currency: str | None) -> Decimal:
        return amount * self.rate_for(currency)

    def convert_from_base(self, amount: Decimal, target_currency: str | None) -> Decimal:
        return amount / self.rate_for(target_currency)


def format_money(amount: Decimal, currency: str) -> str:
    """Display string such as 'USD 1,234.50'."""
    return f"{currency.upper()} {quantize_money(amount):,.2f}"
