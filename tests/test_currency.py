"""
Unit Tests for Currency Normalizer

Live rates are fetched with requests; tests replace requests.get.
"""

import pytest
import requests
from decimal import Decimal
from reconciliation import currency
from reconciliation.currency import (
    CurrencyNormalizer,
    RateTable,
    fallback_table,
    fetch_rates,
    format_money,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class TestFetchRates:
    """Test loading and falling back on exchange rates."""

    def test_live_rates_are_inverted(self, monkeypatch):
        """1 BRL = 0.2 USD means 1 USD = 5 BRL."""
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse({"base": "BRL", "rates": {"BRL": 1, "USD": 0.2, "EUR": 0.16}})

        monkeypatch.setattr(currency.requests, "get", fake_get)
        table = fetch_rates("https://rates.test/latest/BRL", "BRL", timeout=3)

        assert table.source == "live"
        assert table.rates["USD"] == Decimal("5")
        assert table.rates["EUR"] == Decimal("6.25")
        assert calls == [("https://rates.test/latest/BRL", 3)]

    def test_network_error_falls_back(self, monkeypatch):
        """A failed request returns the static table with the error attached."""

        def fake_get(url, timeout):
            raise requests.ConnectionError("no route to host")

        monkeypatch.setattr(currency.requests, "get", fake_get)
        table = fetch_rates("https://rates.test/latest/BRL")

        assert table.source == "fallback"
        assert table.error.code == "external_service_error"
        assert table.rates["USD"] == Decimal("5.85")

    def test_http_error_falls_back(self, monkeypatch):
        """A non-2xx answer is treated like a network failure."""
        monkeypatch.setattr(currency.requests, "get", lambda url, timeout: FakeResponse({}, status_code=503))
        assert fetch_rates("https://rates.test/latest/BRL").source == "fallback"

    def test_malformed_payload_falls_back(self, monkeypatch):
        """A payload without rates falls back."""
        monkeypatch.setattr(currency.requests, "get", lambda url, timeout: FakeResponse({"oops": True}))
        assert fetch_rates("https://rates.test/latest/BRL").source == "fallback"

    def test_fallback_for_other_base(self):
        """The static table only applies to BRL; other bases know only themselves."""
        table = fallback_table("USD")
        assert table.rates == {"USD": Decimal("1")}


class TestCurrencyNormalizer:
    """Test conversions to and from the base currency."""

    @pytest.fixture
    def normalizer(self):
        return CurrencyNormalizer(RateTable(base="BRL", rates={"BRL": Decimal("1"), "USD": Decimal("5")}))

    def test_convert_to_base(self, normalizer):
        """100 USD is 500 BRL."""
        assert normalizer.convert_to_base(Decimal("100"), "usd") == Decimal("500")

    def test_convert_from_base(self, normalizer):
        """500 BRL is 100 USD."""
        assert normalizer.convert_from_base(Decimal("500"), "USD") == Decimal("100")

    def test_base_currency_is_identity(self, normalizer):
        """No currency means base currency."""
        assert normalizer.convert_to_base(Decimal("42"), None) == Decimal("42")

    def test_missing_live_rate_uses_static_rate(self, normalizer):
        """EUR is not in the live table but is in the static one."""
        assert normalizer.rate_for("EUR") == Decimal("6.15")

    def test_unknown_currency_is_one_to_one(self, normalizer):
        """A currency nobody knows converts 1:1."""
        assert normalizer.convert_to_base(Decimal("10"), "XYZ") == Decimal("10")

    def test_loader_runs_once_on_first_use(self):
        """Rates are loaded lazily and cached."""
        loads = []

        def loader():
            loads.append(1)
            return RateTable(base="BRL", rates={"USD": Decimal("5")}, source="live")

        normalizer = CurrencyNormalizer(loader=loader)
        assert loads == []
        normalizer.rate_for("USD")
        normalizer.rate_for("USD")
        assert loads == [1]

    def test_format_money(self):
        """Display strings use the currency code and thousands separators."""
        assert format_money(Decimal("1234.5"), "usd") == "USD 1,234.50"
        assert format_money(Decimal("0.005"), "BRL") == "BRL 0.01"
