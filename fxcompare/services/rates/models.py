"""Domain models shared by the rate providers and the aggregation facade."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date as date_cls, timedelta
from decimal import Decimal
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True, slots=True)
class Unsupported:
    """A provider cannot price this currency pair.

    Distinct from a numeric rate and from a failure: callers receive it as a
    normal value and may cache it.
    """

    provider: str
    reason: str


RateValue = Union[Decimal, Unsupported]


def normalize_currency(code: str) -> str:
    """Upper-case ``code`` and ensure it is an ISO 4217 style three letter code."""

    value = (code or "").strip().upper()
    if not CURRENCY_PATTERN.match(value):
        raise ValueError(f"invalid currency code: {code!r}")
    return value


def is_rate(value: object) -> bool:
    """Return True when ``value`` is a usable finite numeric rate."""

    return isinstance(value, Decimal) and value.is_finite()


class RateQuery(BaseModel):
    """Single-date lookup requested by a caller."""

    model_config = ConfigDict(frozen=True)

    date: date_cls
    base: str
    quote: str
    amount: Decimal = Field(default=Decimal("1"), gt=0)

    @field_validator("base", "quote", mode="before")
    @classmethod
    def _validate_currency(cls, value: Any) -> str:
        return normalize_currency(str(value))

    @property
    def iso_date(self) -> str:
        return self.date.isoformat()

    def previous_day(self) -> "RateQuery":
        """Return the same query one calendar day earlier."""

        return self.model_copy(update={"date": self.date - timedelta(days=1)})


@dataclass(slots=True)
class RateSeries:
    """Daily rates aligned by position with ISO date labels."""

    labels: list[str] = field(default_factory=list)
    values: list[Decimal | None] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.labels) != len(self.values):
            raise ValueError("labels and values must have the same length")

    def known(self) -> list[Decimal]:
        return [value for value in self.values if value is not None]

    def mean(self) -> Decimal | None:
        known = self.known()
        if not known:
            return None
        return sum(known, Decimal("0")) / len(known)

    @classmethod
    def empty(cls, labels: list[str]) -> "RateSeries":
        return cls(labels=list(labels), values=[None] * len(labels))


def _to_float(value: Decimal | None) -> float | None:
    return None if value is None else float(value)


class ProviderQuote(BaseModel):
    """Outcome of one provider for one query."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: str
    source: str
    status: Literal["ok", "unsupported", "error"]
    rate: Decimal | None = None
    converted: Decimal | None = None
    delta_from_reference_pct: Decimal | None = None
    day_over_day_pct: Decimal | None = None
    reason: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "source": self.source,
            "status": self.status,
            "unavailable": self.status != "ok",
            "rate": _to_float(self.rate),
            "converted": _to_float(self.converted),
            "deltaFromReferencePct": _to_float(self.delta_from_reference_pct),
            "dayOverDayPct": _to_float(self.day_over_day_pct),
            "reason": self.reason,
        }


class ComparisonResult(BaseModel):
    """All providers for a single date and currency pair."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    query: RateQuery
    reference: str
    quotes: dict[str, ProviderQuote]

    def to_payload(self) -> dict[str, Any]:
        return {
            "date": self.query.iso_date,
            "base": self.query.base,
            "quote": self.query.quote,
            "amount": float(self.query.amount),
            "reference": self.reference,
            "providers": {name: quote.to_payload() for name, quote in self.quotes.items()},
        }


class HistoryResult(BaseModel):
    """Daily series per provider over a date window."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    base: str
    quote: str
    start: date_cls
    end: date_cls
    labels: list[str]
    series: dict[str, list[Decimal | None]]
    avg_delta_pct: dict[str, Decimal | None]
    sources: dict[str, str]

    def to_payload(self) -> dict[str, Any]:
        return {
            "base": self.base,
            "quote": self.quote,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "labels": list(self.labels),
            "series": {
                name: [_to_float(value) for value in values] for name, values in self.series.items()
            },
            "avgDeltaPct": {name: _to_float(value) for name, value in self.avg_delta_pct.items()},
            "sources": dict(self.sources),
        }


__all__ = [
    "ComparisonResult",
    "HistoryResult",
    "ProviderQuote",
    "RateQuery",
    "RateSeries",
    "RateValue",
    "Unsupported",
    "is_rate",
    "normalize_currency",
]
