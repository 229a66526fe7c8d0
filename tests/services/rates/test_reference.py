"""Tests for the mid-market reference resolver."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any

import pytest

from fxcompare.core.errors import DateNotAvailable, ParseError
from fxcompare.services.rates.cache import TTLCache
from fxcompare.services.rates.models import RateValue, Unsupported
from fxcompare.services.rates.reference import ReferenceRateResolver, derive_rate

DAY = date(2024, 5, 10)


class FakeFrankfurter:
    """Serves canned EUR-based rates and records every call."""

    def __init__(self, rates: dict[str, str], *, missing_dates: set[date] | None = None) -> None:
        self.rates = {code: Decimal(value) for code, value in rates.items()}
        self.missing_dates = missing_dates or set()
        self.calls: list[tuple[Any, ...]] = []
        self.range_payload: dict[str, Any] = {}

    def _subset(self, to_ccys: list[str]) -> dict[str, Any]:
        return {"rates": {code: self.rates[code] for code in to_ccys if code in self.rates}}

    async def fetch_rates(self, day: date, from_ccy: str, to_ccys: list[str]) -> dict[str, Any]:
        self.calls.append(("date", day, from_ccy, tuple(to_ccys)))
        if day in self.missing_dates:
            raise DateNotAvailable("no fixing", provider="mid", status_code=404)
        return self._subset(to_ccys)

    async def fetch_latest(self, from_ccy: str, to_ccys: list[str]) -> dict[str, Any]:
        self.calls.append(("latest", from_ccy, tuple(to_ccys)))
        return self._subset(to_ccys)

    async def fetch_range(self, start: date, end: date, from_ccy: str, to_ccys: list[str]) -> dict[str, Any]:
        self.calls.append(("range", start, end, from_ccy, tuple(to_ccys)))
        return self.range_payload


@pytest.fixture
def transport() -> FakeFrankfurter:
    return FakeFrankfurter({"USD": "1.0800", "JPY": "162.00", "GBP": "0.8600"})


def test_same_currency_returns_one_without_calls(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    assert asyncio.run(resolver.get_rate(DAY, "usd", "USD")) == Decimal("1")
    assert transport.calls == []


def test_reference_base_uses_published_rate(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    assert asyncio.run(resolver.resolve(DAY, "EUR", "USD")) == Decimal("1.0800")
    assert transport.calls == [("date", DAY, "EUR", ("USD",))]


def test_reference_quote_is_inverse(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    rate = asyncio.run(resolver.resolve(DAY, "USD", "EUR"))

    assert rate == Decimal("1") / Decimal("1.0800")


def test_cross_rate_uses_both_legs_from_one_request(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    rate = asyncio.run(resolver.resolve(DAY, "USD", "JPY"))

    assert rate == Decimal("162.00") / Decimal("1.0800")
    assert len(transport.calls) == 1
    assert transport.calls[0][3] == ("USD", "JPY")


def test_lookups_are_cached(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    async def _twice() -> tuple[Decimal, Decimal]:
        first = await resolver.resolve(DAY, "EUR", "GBP")
        second = await resolver.resolve(DAY, "EUR", "GBP")
        return first, second

    first, second = asyncio.run(_twice())

    assert first == second == Decimal("0.8600")
    assert len(transport.calls) == 1


def test_missing_date_falls_back_to_latest() -> None:
    transport = FakeFrankfurter({"USD": "1.0750"}, missing_dates={date(2024, 5, 11)})
    resolver = ReferenceRateResolver(transport)

    rate = asyncio.run(resolver.resolve(date(2024, 5, 11), "EUR", "USD"))

    assert rate == Decimal("1.0750")
    assert [call[0] for call in transport.calls] == ["date", "latest"]


def test_missing_leg_raises_parse_error() -> None:
    transport = FakeFrankfurter({"USD": "1.08"})
    resolver = ReferenceRateResolver(transport)

    with pytest.raises(ParseError):
        asyncio.run(resolver.resolve(DAY, "EUR", "XAU"))


def test_derive_rate_rejects_non_positive_leg() -> None:
    with pytest.raises(ParseError):
        derive_rate({"USD": Decimal("0")}, "EUR", "USD", "EUR")


def test_series_uses_one_ranged_request_and_carries_forward(transport: FakeFrankfurter) -> None:
    transport.range_payload = {
        "rates": {
            "2024-05-10": {"USD": Decimal("1.08"), "JPY": Decimal("162.0")},
            "2024-05-13": {"USD": Decimal("1.10"), "JPY": Decimal("165.0")},
        }
    }
    resolver = ReferenceRateResolver(transport)

    series = asyncio.run(resolver.get_series(date(2024, 5, 10), date(2024, 5, 13), "USD", "JPY"))

    assert series.labels == ["2024-05-10", "2024-05-11", "2024-05-12", "2024-05-13"]
    assert series.values == [Decimal("150"), Decimal("150"), Decimal("150"), Decimal("150")]
    assert transport.calls == [("range", date(2024, 5, 10), date(2024, 5, 13), "EUR", ("USD", "JPY"))]


def test_series_leading_gap_stays_null(transport: FakeFrankfurter) -> None:
    transport.range_payload = {"rates": {"2024-05-13": {"USD": Decimal("1.10")}}}
    resolver = ReferenceRateResolver(transport)

    series = asyncio.run(resolver.get_series(date(2024, 5, 11), date(2024, 5, 13), "EUR", "USD"))

    assert series.values == [None, None, Decimal("1.10")]


def test_same_currency_series_needs_no_request(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    series = asyncio.run(resolver.get_series(date(2024, 5, 10), date(2024, 5, 11), "JPY", "JPY"))

    assert series.values == [Decimal("1"), Decimal("1")]
    assert transport.calls == []


def test_triangulation_matches_reference_legs(transport: FakeFrankfurter) -> None:
    resolver = ReferenceRateResolver(transport)

    async def _legs() -> tuple[Decimal, Decimal, Decimal]:
        cross = await resolver.resolve(DAY, "GBP", "JPY")
        to_jpy = await resolver.resolve(DAY, "EUR", "JPY")
        to_gbp = await resolver.resolve(DAY, "EUR", "GBP")
        return cross, to_jpy, to_gbp

    cross, to_jpy, to_gbp = asyncio.run(_legs())

    assert cross == to_jpy / to_gbp


def test_expired_entry_triggers_new_fetch(transport: FakeFrankfurter) -> None:
    now = [0.0]
    resolver = ReferenceRateResolver(transport, cache=TTLCache(3600, clock=lambda: now[0]))

    asyncio.run(resolver.resolve(DAY, "EUR", "USD"))
    now[0] = 59 * 60
    asyncio.run(resolver.resolve(DAY, "EUR", "USD"))
    assert len(transport.calls) == 1

    now[0] = 61 * 60
    asyncio.run(resolver.resolve(DAY, "EUR", "USD"))
    assert len(transport.calls) == 2


def test_resolve_rejects_non_numeric_value(transport: FakeFrankfurter) -> None:
    class PairlessResolver(ReferenceRateResolver):
        async def fetch_rate(self, day: date, base: str, quote: str, amount: Decimal) -> RateValue:
            return Unsupported(provider="mid", reason="pair not published")

    resolver = PairlessResolver(transport)

    with pytest.raises(ParseError, match="EUR/XAU"):
        asyncio.run(resolver.resolve(DAY, "EUR", "XAU"))
