"""Daily series assembly with carry-forward gap filling."""

from __future__ import annotations

import logging
from datetime import date as date_cls
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Mapping

import pandas as pd

from .models import RateSeries, RateValue, is_rate

LOGGER = logging.getLogger(__name__)

PerDateFetch = Callable[[date_cls], Awaitable[RateValue]]


def calendar_days(start: date_cls, end: date_cls) -> list[date_cls]:
    """Every calendar day from ``start`` to ``end`` inclusive, weekends included."""

    if end < start:
        raise ValueError(f"end date {end} precedes start date {start}")
    return [stamp.date() for stamp in pd.date_range(start=start, end=end, freq="D")]


def carry_forward(values: Iterable[object]) -> list[Decimal | None]:
    """Replace every non-rate with the last known rate.

    Positions before the first known rate stay ``None``.
    """

    filled: list[Decimal | None] = []
    last_good: Decimal | None = None
    for value in values:
        if is_rate(value):
            last_good = value  # type: ignore[assignment]
        filled.append(last_good)
    return filled


def series_from_mapping(
    start: date_cls,
    end: date_cls,
    rates_by_date: Mapping[str, Decimal],
) -> RateSeries:
    """Lay a sparse ``ISO date -> rate`` mapping over the full calendar window."""

    labels = [day.isoformat() for day in calendar_days(start, end)]
    return RateSeries(labels=labels, values=carry_forward(rates_by_date.get(label) for label in labels))


async def assemble(start: date_cls, end: date_cls, per_date_fetch: PerDateFetch) -> RateSeries:
    """Fetch one rate per calendar day, sequentially, carrying gaps forward.

    Failures and unsupported outcomes never abort the series; they count as
    gaps.
    """

    days = calendar_days(start, end)
    raw: list[RateValue | None] = []
    for day in days:
        try:
            raw.append(await per_date_fetch(day))
        except Exception as exc:  # noqa: BLE001 - history degrades to carry-forward
            LOGGER.warning("Series fetch failed for %s: %s", day.isoformat(), exc)
            raw.append(None)
    return RateSeries(labels=[day.isoformat() for day in days], values=carry_forward(raw))


__all__ = ["PerDateFetch", "assemble", "calendar_days", "carry_forward", "series_from_mapping"]
