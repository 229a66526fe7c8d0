"""Tests for the Mastercard and Visa normalizers and providers."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest

from fxcompare.core.errors import ParseError
from fxcompare.services.rates.mastercard_provider import (
    MastercardClient,
    MastercardRateProvider,
    normalize_mastercard,
)
from fxcompare.services.rates.visa_provider import (
    VisaClient,
    VisaRateProvider,
    build_visa_url,
    format_visa_date,
    normalize_visa,
)


def test_mastercard_divides_billed_amount() -> None:
    payload = {"data": {"crdhldBillAmt": Decimal("107.50"), "conversionRate": Decimal("1.07")}}

    assert normalize_mastercard(payload, Decimal("100")) == Decimal("1.075")


def test_mastercard_falls_back_to_conversion_rate() -> None:
    assert normalize_mastercard({"data": {"conversionRate": "1.0731"}}, Decimal("100")) == Decimal("1.0731")
    assert normalize_mastercard(
        {"data": {"crdhldBillAmt": "107.50", "conversionRate": "1.0731"}}, Decimal("0")
    ) == Decimal("1.0731")


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "error"},
        {"data": {}},
        {"data": {"crdhldBillAmt": "abc"}},
        None,
    ],
)
def test_mastercard_unusable_payload_raises(payload: Any) -> None:
    with pytest.raises(ParseError):
        normalize_mastercard(payload, Decimal("1"))


class FakeHttp:
    def __init__(self, payload: Any) -> None:
        self.payload = payload
        self.requests: list[tuple[str, dict[str, str]]] = []

    async def get_json(self, url: str, *, params: dict[str, str] | None = None) -> Any:
        self.requests.append((url, dict(params or {})))
        return self.payload


def test_mastercard_provider_sends_query_and_keys_cache_by_amount() -> None:
    http = FakeHttp({"data": {"crdhldBillAmt": "10.75"}})
    provider = MastercardRateProvider(MastercardClient(http))  # type: ignore[arg-type]
    day = date(2024, 5, 10)

    async def _run() -> list[Any]:
        return [
            await provider.get_rate(day, "EUR", "USD", Decimal("10")),
            await provider.get_rate(day, "EUR", "USD", Decimal("10")),
            await provider.get_rate(day, "EUR", "USD", Decimal("20")),
        ]

    results = asyncio.run(_run())

    assert results[0] == Decimal("1.075")
    assert len(http.requests) == 2
    _, params = http.requests[0]
    assert params["exchange_date"] == "2024-05-10"
    assert params["transaction_currency"] == "EUR"
    assert params["cardholder_billing_currency"] == "USD"
    assert params["bank_fee"] == "0"
    assert params["transaction_amount"] == "10"


def test_visa_normalizer_uses_fee_adjusted_amount() -> None:
    payload = {"originalValues": {"toAmountWithAdditionalFee": "108.2"}}

    assert normalize_visa(payload, Decimal("100")) == Decimal("1.082")


def test_visa_normalizer_zero_amount_returns_converted() -> None:
    payload = {"originalValues": {"toAmountWithAdditionalFee": "1.082"}}

    assert normalize_visa(payload, Decimal("0")) == Decimal("1.082")


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"originalValues": {}},
        {"originalValues": {"toAmountWithAdditionalFee": "n/a"}},
        ["unexpected"],
    ],
)
def test_visa_unusable_payload_raises(payload: Any) -> None:
    with pytest.raises(ParseError):
        normalize_visa(payload, Decimal("1"))


def test_visa_url_uses_us_date_and_swapped_currency_names() -> None:
    day = date(2024, 5, 3)
    url = build_visa_url(day, "EUR", "USD", Decimal("100"))
    query = parse_qs(urlsplit(url).query)

    assert format_visa_date(day) == "05/03/2024"
    assert query["utcConvertedDate"] == ["05/03/2024"]
    assert query["exchangedate"] == ["05/03/2024"]
    assert query["fromCurr"] == ["USD"]
    assert query["toCurr"] == ["EUR"]
    assert query["amount"] == ["100"]
    assert query["fee"] == ["0"]


class FakeBrowserSession:
    def __init__(self, payload: Any) -> None:
        self.payload = payload
        self.urls: list[str] = []

    async def fetch_json(self, url: str, *, method: str = "GET", headers: dict[str, str] | None = None) -> Any:
        self.urls.append(url)
        return self.payload


def test_visa_provider_goes_through_browser_session() -> None:
    session = FakeBrowserSession({"originalValues": {"toAmountWithAdditionalFee": 216.4}})
    provider = VisaRateProvider(VisaClient(session))

    rate = asyncio.run(provider.get_rate(date(2024, 5, 10), "eur", "usd", Decimal("200")))

    assert rate == Decimal("216.4") / Decimal("200")
    assert len(session.urls) == 1
    assert "fromCurr=USD" in session.urls[0]


def test_same_currency_skips_network() -> None:
    session = FakeBrowserSession(None)
    provider = VisaRateProvider(VisaClient(session))

    assert asyncio.run(provider.get_rate(date(2024, 5, 10), "USD", "USD", Decimal("50"))) == Decimal("1")
    assert session.urls == []
