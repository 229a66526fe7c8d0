"""Mid-market reference rates from the ECB via the Frankfurter API.

Frankfurter publishes rates against a single reference currency (EUR). Every
other pair is derived from it:

* reference -> quote: the published figure as is;
* base -> reference: the inverse of reference -> base;
* base -> quote: the cross rate ``(ref->quote) / (ref->base)`` from one
  request carrying both legs.

Dates without a fixing (weekends, TARGET holidays) answer 404; the lookup is
then repeated against ``/latest``.
"""

from __future__ import annotations

import logging
from datetime import date as date_cls
from decimal import Decimal, DivisionByZero, InvalidOperation
from typing import Any, Mapping, Protocol

from fxcompare.core.errors import DateNotAvailable, ParseError

from .base import ONE, RateSource, log_circuit
from .cache import TTLCache
from .config import DEFAULT_FRANKFURTER_URL, DEFAULT_REFERENCE_CURRENCY
from .http import HttpClient
from .models import RateSeries, RateValue
from .series import calendar_days, series_from_mapping

LOGGER = logging.getLogger(__name__)

PROVIDER = "mid"
SOURCE_LABEL = "ECB via Frankfurter"


class ReferenceTransport(Protocol):
    """Fetches ``{"rates": ...}`` payloads from the reference provider."""

    async def fetch_rates(self, day: date_cls, from_ccy: str, to_ccys: list[str]) -> Mapping[str, Any]:
        ...

    async def fetch_latest(self, from_ccy: str, to_ccys: list[str]) -> Mapping[str, Any]:
        ...

    async def fetch_range(
        self, start: date_cls, end: date_cls, from_ccy: str, to_ccys: list[str]
    ) -> Mapping[str, Any]:
        ...


class FrankfurterClient:
    """Frankfurter endpoints over the shared HTTP transport."""

    def __init__(self, http: HttpClient, *, base_url: str = DEFAULT_FRANKFURTER_URL) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def fetch_rates(self, day: date_cls, from_ccy: str, to_ccys: list[str]) -> Mapping[str, Any]:
        return await self._get(f"{self._base_url}/{day.isoformat()}", from_ccy, to_ccys)

    async def fetch_latest(self, from_ccy: str, to_ccys: list[str]) -> Mapping[str, Any]:
        return await self._get(f"{self._base_url}/latest", from_ccy, to_ccys)

    async def fetch_range(
        self, start: date_cls, end: date_cls, from_ccy: str, to_ccys: list[str]
    ) -> Mapping[str, Any]:
        url = f"{self._base_url}/{start.isoformat()}..{end.isoformat()}"
        return await self._get(url, from_ccy, to_ccys)

    async def _get(self, url: str, from_ccy: str, to_ccys: list[str]) -> Mapping[str, Any]:
        params = {"from": from_ccy, "to": ",".join(to_ccys)}
        payload = await self._http.get_json(url, params=params)
        if not isinstance(payload, Mapping):
            raise ParseError("Frankfurter payload is not an object", provider=PROVIDER, payload=payload)
        log_circuit(PROVIDER, params, url, payload)
        return payload


def _leg(rates: Mapping[str, Any], code: str) -> Decimal:
    value = rates.get(code)
    try:
        rate = Decimal(str(value)) if value is not None else None
    except InvalidOperation:
        rate = None
    if rate is None or not rate.is_finite() or rate <= 0:
        raise ParseError(f"reference rate for {code} missing or invalid", provider=PROVIDER, payload=dict(rates))
    return rate


def derive_rate(rates: Mapping[str, Any], reference: str, base: str, quote: str) -> Decimal:
    """Turn a reference-based ``rates`` mapping into quote units per base unit."""

    try:
        if base == reference:
            return _leg(rates, quote)
        if quote == reference:
            return ONE / _leg(rates, base)
        return _leg(rates, quote) / _leg(rates, base)
    except (DivisionByZero, InvalidOperation) as exc:
        raise ParseError(f"cannot derive {base}/{quote} from reference rates", provider=PROVIDER) from exc


class ReferenceRateResolver(RateSource):
    """Resolve mid-market rates for any pair through the reference currency."""

    name = PROVIDER
    label = SOURCE_LABEL

    def __init__(
        self,
        transport: ReferenceTransport,
        *,
        reference_currency: str = DEFAULT_REFERENCE_CURRENCY,
        cache: TTLCache[RateValue] | None = None,
    ) -> None:
        super().__init__(cache)
        self._transport = transport
        self.reference_currency = reference_currency.upper()

    def _targets(self, base: str, quote: str) -> list[str]:
        if base == self.reference_currency:
            return [quote]
        if quote == self.reference_currency:
            return [base]
        return [base, quote]

    async def resolve(self, day: date_cls, base: str, quote: str) -> Decimal:
        """Mid-market rate for ``base``/``quote`` on ``day``."""

        value = await self.get_rate(day, base, quote)
        if not isinstance(value, Decimal):
            raise ParseError(f"no reference rate for {base}/{quote}", provider=PROVIDER)
        return value

    async def fetch_rate(self, day: date_cls, base: str, quote: str, amount: Decimal) -> RateValue:
        targets = self._targets(base, quote)
        try:
            payload = await self._transport.fetch_rates(day, self.reference_currency, targets)
        except DateNotAvailable:
            LOGGER.info("No reference fixing for %s; using latest available rates", day.isoformat())
            payload = await self._transport.fetch_latest(self.reference_currency, targets)
        return derive_rate(_rates_of(payload), self.reference_currency, base, quote)

    async def get_series(self, start: date_cls, end: date_cls, base: str, quote: str) -> RateSeries:
        """One ranged request, then carry-forward across every calendar day."""

        base = base.upper()
        quote = quote.upper()
        if base == quote:
            days = calendar_days(start, end)
            return RateSeries(labels=[day.isoformat() for day in days], values=[ONE] * len(days))

        payload = await self._transport.fetch_range(start, end, self.reference_currency, self._targets(base, quote))
        by_date: dict[str, Decimal] = {}
        for label, entries in _rates_of(payload).items():
            if not isinstance(entries, Mapping):
                continue
            try:
                by_date[str(label)] = derive_rate(entries, self.reference_currency, base, quote)
            except ParseError:
                LOGGER.debug("Skipping reference entry %s without %s/%s legs", label, base, quote)
        return series_from_mapping(start, end, by_date)


def _rates_of(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    rates = payload.get("rates") if isinstance(payload, Mapping) else None
    if not isinstance(rates, Mapping):
        raise ParseError("reference payload lacks a 'rates' object", provider=PROVIDER, payload=payload)
    return rates


__all__ = [
    "FrankfurterClient",
    "PROVIDER",
    "ReferenceRateResolver",
    "ReferenceTransport",
    "SOURCE_LABEL",
    "derive_rate",
]
