"""American Express rates derived from settlement-currency variances.

Amex does not publish card rates directly. For a market it returns one entry
per settlement currency, each listing the percentage variance of the card
rate against the ECB reference for every submission currency. The card rate
is the reference rate adjusted by that variance.
"""

from __future__ import annotations

import logging
from datetime import date as date_cls
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol, Sequence

from fxcompare.core.errors import ParseError

from .base import RateSource, log_circuit
from .cache import TTLCache
from .models import RateValue, Unsupported
from .reference import ReferenceRateResolver

LOGGER = logging.getLogger(__name__)

PROVIDER = "amex"
SOURCE_LABEL = "American Express"

LANDING_URL = "https://www.americanexpress.com/en-us/foreign-exchange/fxrates/"
API_URL = "https://www.americanexpress.com/gemservices/gcdt/ecbrates/"

DEFAULT_MARKET = "ICC"

# Regional markets publish a single settlement entry; everything else is
# served by the International Card Center group.
SETTLEMENT_MARKETS: Mapping[str, str] = {
    "EUR": "IT",
    "GBP": "UK",
    "SEK": "SE",
    "DKK": "DK",
    "NOK": "NO",
    "PLN": "PL",
    "CZK": "CZ",
    "HUF": "HU",
}

# Labels Amex uses in place of ISO codes for settlement currencies.
SETTLEMENT_ALIASES: Mapping[str, str] = {"EUR": "EURO"}

HUNDRED = Decimal("100")


def market_for(base: str) -> str:
    return SETTLEMENT_MARKETS.get(base.upper(), DEFAULT_MARKET)


class AmexTransport(Protocol):
    async def fetch_market(self, market: str) -> Any:
        ...


class AmexClient:
    """POSTs the market query from inside a warmed-up Amex page."""

    def __init__(self, session: Any, *, api_url: str = API_URL) -> None:
        self._session = session
        self._api_url = api_url

    async def fetch_market(self, market: str) -> Any:
        url = f"{self._api_url}?market={market}"
        payload = await self._session.fetch_json(
            url,
            method="POST",
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )
        log_circuit(PROVIDER, {"market": market}, url, payload)
        return payload


def _matches(label: Any, code: str) -> bool:
    if not isinstance(label, str):
        return False
    label = label.strip().upper()
    return label == code or label == SETTLEMENT_ALIASES.get(code)


def _find_settlement(entries: Sequence[Any], code: str) -> Mapping[str, Any] | None:
    for entry in entries:
        if isinstance(entry, Mapping) and _matches(entry.get("settlementCurrency"), code):
            return entry
    return None


def _variance(entry: Mapping[str, Any], code: str) -> Decimal | None:
    consumer = entry.get("consumer")
    if not isinstance(consumer, Sequence):
        return None
    for item in consumer:
        if not isinstance(item, Mapping) or not _matches(item.get("submissionCurrencyCode"), code):
            continue
        raw = item.get("percentageVariance")
        if raw is None or isinstance(raw, bool):
            return None
        try:
            value = Decimal(str(raw).strip())
        except InvalidOperation:
            return None
        return value if value.is_finite() else None
    return None


def normalize_amex(
    raw_response: Any,
    base: str,
    quote: str,
    reference_rate: Decimal,
    *,
    single_region: bool = False,
) -> RateValue:
    """Apply the settlement variance for ``base``/``quote`` to ``reference_rate``.

    * the ``base`` settlement entry lists ``quote``: ``ref * (1 + v/100)``;
    * otherwise the ``quote`` settlement entry lists ``base``: the variance
      describes the opposite direction, so ``ref / (1 + v/100)``;
    * otherwise the pair is :class:`Unsupported`.

    A regional market returns a single entry, which is used as the ``base``
    settlement entry without searching.
    """

    if not isinstance(raw_response, Sequence) or isinstance(raw_response, (str, bytes)) or not raw_response:
        raise ParseError("Amex payload is not a non-empty list", provider=PROVIDER, payload=raw_response)

    if single_region:
        entry = raw_response[0]
        variance = _variance(entry, quote) if isinstance(entry, Mapping) else None
        if variance is None:
            return Unsupported(PROVIDER, f"{quote} not listed for the {base} regional market")
        return reference_rate * (1 + variance / HUNDRED)

    entry = _find_settlement(raw_response, base)
    if entry is not None:
        variance = _variance(entry, quote)
        if variance is None:
            return Unsupported(PROVIDER, f"no variance for {quote} under {base} settlement")
        return reference_rate * (1 + variance / HUNDRED)

    entry = _find_settlement(raw_response, quote)
    if entry is not None:
        variance = _variance(entry, base)
        if variance is None:
            return Unsupported(PROVIDER, f"no variance for {base} under {quote} settlement")
        multiplier = 1 + variance / HUNDRED
        if multiplier == 0:
            raise ParseError(f"Amex variance for {base} cannot be inverted", provider=PROVIDER)
        return reference_rate / multiplier

    return Unsupported(PROVIDER, f"neither {base} nor {quote} is an Amex settlement currency")


class AmexRateProvider(RateSource):
    """Amex card rates, priced off the mid-market reference."""

    name = PROVIDER
    label = SOURCE_LABEL

    def __init__(
        self,
        transport: AmexTransport,
        reference: ReferenceRateResolver,
        *,
        cache: TTLCache[RateValue] | None = None,
    ) -> None:
        super().__init__(cache)
        self._transport = transport
        self._reference = reference

    async def fetch_rate(self, day: date_cls, base: str, quote: str, amount: Decimal) -> RateValue:
        reference_rate = await self._reference.resolve(day, base, quote)
        market = market_for(base)
        payload = await self._transport.fetch_market(market)
        return normalize_amex(
            payload,
            base,
            quote,
            reference_rate,
            single_region=market != DEFAULT_MARKET,
        )


__all__ = [
    "AmexClient",
    "AmexRateProvider",
    "AmexTransport",
    "DEFAULT_MARKET",
    "LANDING_URL",
    "PROVIDER",
    "SETTLEMENT_MARKETS",
    "SOURCE_LABEL",
    "market_for",
    "normalize_amex",
]
