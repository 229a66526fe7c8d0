"""Visa rates from the exchange-rate calculator backend."""

from __future__ import annotations

import logging
from datetime import date as date_cls
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol
from urllib.parse import urlencode

from fxcompare.core.errors import ParseError

from .base import RateSource, log_circuit
from .cache import TTLCache
from .models import RateValue

LOGGER = logging.getLogger(__name__)

PROVIDER = "visa"
SOURCE_LABEL = "Visa"

LANDING_URL = "https://www.visa.co.uk/support/consumer/travel-support/exchange-rate-calculator.html"
API_URL = "https://www.visa.co.uk/cmsapi/fx/rates"


class VisaTransport(Protocol):
    async def fetch_conversion(self, day: date_cls, base: str, quote: str, amount: Decimal) -> Any:
        ...


def format_visa_date(day: date_cls) -> str:
    """Visa expects ``MM/DD/YYYY``."""

    return day.strftime("%m/%d/%Y")


def build_visa_url(day: date_cls, base: str, quote: str, amount: Decimal, *, api_url: str = API_URL) -> str:
    stamp = format_visa_date(day)
    # Visa names the card currency ``fromCurr`` and the transaction currency ``toCurr``.
    params = {
        "amount": str(amount),
        "fee": "0",
        "utcConvertedDate": stamp,
        "exchangedate": stamp,
        "fromCurr": quote,
        "toCurr": base,
    }
    return f"{api_url}?{urlencode(params)}"


class VisaClient:
    """Runs the calculator request from inside a warmed-up Visa page."""

    def __init__(self, session: Any, *, api_url: str = API_URL) -> None:
        self._session = session
        self._api_url = api_url

    async def fetch_conversion(self, day: date_cls, base: str, quote: str, amount: Decimal) -> Any:
        url = build_visa_url(day, base, quote, amount, api_url=self._api_url)
        payload = await self._session.fetch_json(
            url,
            method="GET",
            headers={"Accept": "application/json", "X-Requested-With": "XMLHttpRequest"},
        )
        log_circuit(
            PROVIDER,
            {"date": day.isoformat(), "base": base, "quote": quote, "amount": str(amount)},
            url,
            payload,
        )
        return payload


def normalize_visa(raw_response: Any, amount: Decimal) -> Decimal:
    """Rate per unit from the fee-adjusted converted amount."""

    original = raw_response.get("originalValues") if isinstance(raw_response, Mapping) else None
    raw = original.get("toAmountWithAdditionalFee") if isinstance(original, Mapping) else None
    if raw is None or isinstance(raw, bool):
        raise ParseError("Visa payload lacks toAmountWithAdditionalFee", provider=PROVIDER, payload=raw_response)
    try:
        converted = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ParseError(f"Visa converted amount is not numeric: {raw!r}", provider=PROVIDER) from exc
    if not converted.is_finite():
        raise ParseError(f"Visa converted amount is not finite: {raw!r}", provider=PROVIDER)
    return converted / amount if amount > 0 else converted


class VisaRateProvider(RateSource):
    """Visa card rates; the amount is part of the cache key."""

    name = PROVIDER
    label = SOURCE_LABEL
    amount_sensitive = True

    def __init__(self, transport: VisaTransport, *, cache: TTLCache[RateValue] | None = None) -> None:
        super().__init__(cache)
        self._transport = transport

    async def fetch_rate(self, day: date_cls, base: str, quote: str, amount: Decimal) -> RateValue:
        LOGGER.debug("visa conversion %s %s->%s amount=%s", day.isoformat(), base, quote, amount)
        payload = await self._transport.fetch_conversion(day, base, quote, amount)
        return normalize_visa(payload, amount)


__all__ = [
    "LANDING_URL",
    "PROVIDER",
    "SOURCE_LABEL",
    "VisaClient",
    "VisaRateProvider",
    "VisaTransport",
    "build_visa_url",
    "format_visa_date",
    "normalize_visa",
]
