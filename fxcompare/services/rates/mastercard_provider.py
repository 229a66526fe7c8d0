"""Mastercard rates from the public currency-conversion API."""

from __future__ import annotations

import logging
from datetime import date as date_cls
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol

from fxcompare.core.errors import ParseError

from .base import RateSource, log_circuit
from .cache import TTLCache
from .http import HttpClient
from .models import RateValue

LOGGER = logging.getLogger(__name__)

PROVIDER = "mc"
SOURCE_LABEL = "Mastercard"

PAGE_URL = "https://www.mastercard.com/global/en/personal/get-support/currency-exchange-rate-converter.html"
API_URL = (
    "https://www.mastercard.com/marketingservices/public/mccom-services/"
    "currency-conversions/conversion-rates"
)

BROWSER_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": PAGE_URL,
    "Origin": "https://www.mastercard.com",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
}


class MastercardTransport(Protocol):
    async def fetch_conversion(self, day: date_cls, base: str, quote: str, amount: Decimal) -> Any:
        ...


class MastercardClient:
    """Conversion-rate lookups over the shared HTTP transport."""

    def __init__(self, http: HttpClient, *, api_url: str = API_URL) -> None:
        self._http = http
        self._api_url = api_url

    async def fetch_conversion(self, day: date_cls, base: str, quote: str, amount: Decimal) -> Any:
        params = {
            "exchange_date": day.isoformat(),
            "transaction_currency": base,
            "cardholder_billing_currency": quote,
            "bank_fee": "0",
            "transaction_amount": str(amount),
        }
        payload = await self._http.get_json(self._api_url, params=params)
        log_circuit(PROVIDER, params, self._api_url, payload)
        return payload


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def normalize_mastercard(raw_response: Any, amount: Decimal) -> Decimal:
    """Rate per unit from a conversion payload.

    The converted total divided by ``amount`` is preferred because it carries
    the provider's rounding at that amount; the stated per-unit rate is the
    fallback.
    """

    data = raw_response.get("data") if isinstance(raw_response, Mapping) else None
    if not isinstance(data, Mapping):
        raise ParseError("Mastercard payload lacks a 'data' object", provider=PROVIDER, payload=raw_response)

    converted = _decimal_or_none(data.get("crdhldBillAmt"))
    if converted is not None and amount > 0:
        return converted / amount

    per_unit = _decimal_or_none(data.get("conversionRate"))
    if per_unit is not None:
        LOGGER.debug("Mastercard payload without crdhldBillAmt; using conversionRate")
        return per_unit

    raise ParseError("Mastercard payload has no usable rate", provider=PROVIDER, payload=raw_response)


class MastercardRateProvider(RateSource):
    """Mastercard card rates; the amount is part of the cache key."""

    name = PROVIDER
    label = SOURCE_LABEL
    amount_sensitive = True

    def __init__(self, transport: MastercardTransport, *, cache: TTLCache[RateValue] | None = None) -> None:
        super().__init__(cache)
        self._transport = transport

    async def fetch_rate(self, day: date_cls, base: str, quote: str, amount: Decimal) -> RateValue:
        payload = await self._transport.fetch_conversion(day, base, quote, amount)
        return normalize_mastercard(payload, amount)


__all__ = [
    "BROWSER_HEADERS",
    "MastercardClient",
    "MastercardRateProvider",
    "MastercardTransport",
    "PROVIDER",
    "SOURCE_LABEL",
    "normalize_mastercard",
]
