"""Aggregation facade comparing card-network rates with the reference rate."""

from __future__ import annotations

import asyncio
import logging
from datetime import date as date_cls, timedelta
from decimal import Decimal
from typing import Mapping

from .base import RateSource
from .config import DEFAULT_HISTORY_MAX_DAYS, DEFAULT_HISTORY_MIN_DAYS
from .models import (
    ComparisonResult,
    HistoryResult,
    ProviderQuote,
    RateQuery,
    RateSeries,
    RateValue,
    Unsupported,
    is_rate,
)
from .series import calendar_days

LOGGER = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def pct_change(value: Decimal | None, baseline: Decimal | None) -> Decimal | None:
    """``(value - baseline) / baseline * 100``; ``None`` when undefined."""

    if value is None or baseline is None or baseline == 0:
        return None
    return (value - baseline) / baseline * HUNDRED


def clamp_days(days: int, minimum: int = DEFAULT_HISTORY_MIN_DAYS, maximum: int = DEFAULT_HISTORY_MAX_DAYS) -> int:
    return max(minimum, min(maximum, days))


class RateAggregator:
    """Runs every source concurrently and shapes comparison payloads."""

    def __init__(
        self,
        sources: Mapping[str, RateSource],
        *,
        reference: str = "mid",
        history_min_days: int = DEFAULT_HISTORY_MIN_DAYS,
        history_max_days: int = DEFAULT_HISTORY_MAX_DAYS,
    ) -> None:
        if reference not in sources:
            raise ValueError(f"reference source '{reference}' is not registered")
        self.sources = dict(sources)
        self.reference = reference
        self.history_min_days = history_min_days
        self.history_max_days = history_max_days

    def _source(self, provider: str) -> RateSource:
        try:
            return self.sources[provider]
        except KeyError:
            valid = ", ".join(self.sources)
            raise ValueError(f"Invalid provider '{provider}'. Use one of: {valid}") from None

    async def _lookup(self, source: RateSource, query: RateQuery) -> RateValue:
        return await source.get_rate(query.date, query.base, query.quote, query.amount)

    async def _yesterday(self, source: RateSource, query: RateQuery) -> RateValue | None:
        try:
            return await self._lookup(source, query.previous_day())
        except Exception as exc:  # noqa: BLE001 - day-over-day context is advisory
            LOGGER.warning("%s previous-day lookup failed for %s: %s", source.name, query.iso_date, exc)
            return None

    def _quote(
        self,
        source: RateSource,
        query: RateQuery,
        today: RateValue | BaseException,
        yesterday: RateValue | None,
        reference_rate: Decimal | None,
    ) -> ProviderQuote:
        if isinstance(today, BaseException):
            return ProviderQuote(provider=source.name, source=source.label, status="error", reason=str(today))
        if isinstance(today, Unsupported):
            return ProviderQuote(provider=source.name, source=source.label, status="unsupported", reason=today.reason)
        previous = yesterday if is_rate(yesterday) else None
        return ProviderQuote(
            provider=source.name,
            source=source.label,
            status="ok",
            rate=today,
            converted=today * query.amount,
            delta_from_reference_pct=None if source.name == self.reference else pct_change(today, reference_rate),
            day_over_day_pct=pct_change(today, previous),  # type: ignore[arg-type]
        )

    async def single(self, provider: str, query: RateQuery) -> ProviderQuote:
        """One provider; a failing primary lookup propagates to the caller."""

        source = self._source(provider)
        today = await self._lookup(source, query)
        if isinstance(today, Unsupported):
            return self._quote(source, query, today, None, None)
        yesterday = await self._yesterday(source, query)
        return self._quote(source, query, today, yesterday, None)

    async def compare(self, query: RateQuery) -> ComparisonResult:
        """Every provider for ``query.date`` and the day before, concurrently."""

        names = list(self.sources)
        sources = [self.sources[name] for name in names]
        results = await asyncio.gather(
            *(self._lookup(source, query) for source in sources),
            *(self._yesterday(source, query) for source in sources),
            return_exceptions=True,
        )
        today_results = results[: len(sources)]
        yesterday_results = results[len(sources):]

        reference_today = today_results[names.index(self.reference)]
        reference_rate = reference_today if is_rate(reference_today) else None
        if reference_rate is None:
            LOGGER.warning("Reference rate unavailable for %s %s/%s", query.iso_date, query.base, query.quote)

        quotes: dict[str, ProviderQuote] = {}
        for name, source, today, yesterday in zip(names, sources, today_results, yesterday_results):
            if isinstance(today, BaseException):
                LOGGER.warning("%s lookup failed for %s: %s", name, query.iso_date, today)
            if isinstance(yesterday, BaseException):
                yesterday = None
            quotes[name] = self._quote(source, query, today, yesterday, reference_rate)  # type: ignore[arg-type]
        return ComparisonResult(query=query, reference=self.reference, quotes=quotes)

    async def _series(self, source: RateSource, start: date_cls, end: date_cls, base: str, quote: str) -> RateSeries:
        try:
            return await source.get_series(start, end, base, quote)
        except Exception as exc:  # noqa: BLE001 - one failing history must not sink the others
            LOGGER.warning("%s series failed for %s..%s: %s", source.name, start, end, exc)
            return RateSeries.empty([day.isoformat() for day in calendar_days(start, end)])

    async def history(self, base: str, quote: str, end: date_cls, days: int) -> HistoryResult:
        """Daily series for every provider over the ``days`` ending at ``end``."""

        span = clamp_days(days, self.history_min_days, self.history_max_days)
        start = end - timedelta(days=span - 1)
        names = list(self.sources)
        series_list = await asyncio.gather(
            *(self._series(self.sources[name], start, end, base, quote) for name in names)
        )
        series = dict(zip(names, series_list))

        reference_mean = series[self.reference].mean()
        avg_delta = {
            name: pct_change(item.mean(), reference_mean)
            for name, item in series.items()
            if name != self.reference
        }
        return HistoryResult(
            base=base,
            quote=quote,
            start=start,
            end=end,
            labels=series[self.reference].labels,
            series={name: item.values for name, item in series.items()},
            avg_delta_pct=avg_delta,
            sources={name: source.label for name, source in self.sources.items()},
        )


__all__ = ["RateAggregator", "clamp_days", "pct_change"]
