"""Shared behaviour for every rate source."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import date as date_cls
from decimal import Decimal
from typing import Any, Hashable, Mapping

from .cache import TTLCache
from .models import RateSeries, RateValue, Unsupported
from .series import assemble, calendar_days

LOGGER = logging.getLogger(__name__)

ONE = Decimal("1")


def log_circuit(provider: str, params: Mapping[str, Any], request: str, response: Any) -> None:
    """Emit one structured record per upstream exchange."""

    if not LOGGER.isEnabledFor(logging.DEBUG):
        return
    payload = {"circuit": provider, "params": params, "request": request, "response": response}
    LOGGER.debug("%s", json.dumps(payload, default=str, ensure_ascii=False))


class RateSource(ABC):
    """A provider exposing ``get_rate`` and ``get_series`` behind its own cache."""

    name: str = ""
    label: str = ""
    amount_sensitive: bool = False

    def __init__(self, cache: TTLCache[RateValue] | None = None) -> None:
        self.cache: TTLCache[RateValue] = cache if cache is not None else TTLCache()

    def cache_key(self, day: date_cls, base: str, quote: str, amount: Decimal) -> Hashable:
        if self.amount_sensitive:
            return (day.isoformat(), base, quote, amount)
        return (day.isoformat(), base, quote)

    async def get_rate(
        self,
        day: date_cls,
        base: str,
        quote: str,
        amount: Decimal = ONE,
    ) -> RateValue:
        """Return quote units per one base unit, or :class:`Unsupported`."""

        base = base.upper()
        quote = quote.upper()
        if base == quote:
            return ONE

        key = self.cache_key(day, base, quote, amount)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        value = await self.fetch_rate(day, base, quote, amount)
        if isinstance(value, Unsupported):
            LOGGER.info("%s cannot price %s/%s: %s", self.name, base, quote, value.reason)
        self.cache.set(key, value)
        return value

    async def get_series(self, start: date_cls, end: date_cls, base: str, quote: str) -> RateSeries:
        """Daily series over ``[start, end]``; one lookup per calendar day."""

        if base.upper() == quote.upper():
            days = calendar_days(start, end)
            return RateSeries(labels=[day.isoformat() for day in days], values=[ONE] * len(days))

        async def _fetch(day: date_cls) -> RateValue:
            return await self.get_rate(day, base, quote)

        return await assemble(start, end, _fetch)

    @abstractmethod
    async def fetch_rate(self, day: date_cls, base: str, quote: str, amount: Decimal) -> RateValue:
        """Fetch and normalize one rate, bypassing the cache."""


__all__ = ["ONE", "RateSource", "log_circuit"]
