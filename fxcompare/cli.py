"""Typer based command line entry points for fxcompare."""

from __future__ import annotations

import asyncio
import json
import re
import time
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import typer

from fxcompare.core.errors import BrowserError, ConfigError, UpstreamError
from fxcompare.core.logger import get_logger, set_level
from fxcompare.services.rates import BROWSER_PROVIDERS, RateQuery, open_aggregator, resolve_config
from fxcompare.services.rates.config import RatesConfig

VALID_PROVIDERS = ("mid", "mc", "visa", "amex")
CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

app = typer.Typer(help="Compare card-network exchange rates with the ECB reference rate.")

_STATE: dict[str, Any] = {"profile": None}


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter("date must be in YYYY-MM-DD format") from exc


def _validate_currency(value: str) -> str:
    code = value.strip().upper()
    if not CURRENCY_RE.match(code):
        raise typer.BadParameter("currency must be a 3-letter code (e.g. EUR, JPY)")
    return code


def _parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise typer.BadParameter("amount must be a number") from exc
    if not amount.is_finite() or amount <= 0:
        raise typer.BadParameter("amount must be greater than zero")
    return amount


def _validate_provider(value: str) -> str:
    value = value.lower()
    if value not in VALID_PROVIDERS:
        raise typer.BadParameter(f"provider must be one of {', '.join(VALID_PROVIDERS)}")
    return value


def _load_config() -> RatesConfig:
    try:
        return resolve_config(_STATE["profile"])
    except ConfigError as exc:
        typer.secho(f"Unable to load configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc


def _emit(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _run(coro) -> Any:
    logger = get_logger()
    started = time.monotonic()
    try:
        return asyncio.run(coro)
    except (UpstreamError, BrowserError) as exc:
        logger.error("Rate lookup failed: %s", exc)
        typer.secho(f"Failed to fetch rates: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    finally:
        logger.info("Command finished in %.2fs", time.monotonic() - started)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set global logging level (e.g. DEBUG/INFO/WARNING).",
    ),
    profile: Optional[str] = typer.Option(None, "--profile", help="Profile name under 'rates' in profiles.yaml"),
) -> None:
    """Configure global CLI behaviour before executing commands."""

    try:
        set_level(log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    _STATE["profile"] = profile


@app.command("rate")
def cli_rate(
    provider: str = typer.Argument(..., help="Provider: mid, mc, visa or amex", callback=_validate_provider),
    date_str: str = typer.Option(..., "--date", help="Rate date in YYYY-MM-DD format"),
    base: str = typer.Option(..., "--base", help="Base currency code", callback=_validate_currency),
    quote: str = typer.Option(..., "--quote", help="Quote currency code", callback=_validate_currency),
    amount: str = typer.Option("1", "--amount", help="Amount of base currency to convert"),
) -> None:
    """Fetch one provider's rate with its day-over-day change."""

    query = RateQuery(date=_parse_date(date_str), base=base, quote=quote, amount=_parse_amount(amount))
    config = _load_config()

    async def _main() -> dict[str, Any]:
        async with open_aggregator(config, browser_providers=BROWSER_PROVIDERS & {provider}) as aggregator:
            result = await aggregator.single(provider, query)
        payload = result.to_payload()
        payload.update(date=query.iso_date, base=query.base, quote=query.quote, amount=float(query.amount))
        return payload

    _emit(_run(_main()))


@app.command("compare")
def cli_compare(
    date_str: str = typer.Option(..., "--date", help="Rate date in YYYY-MM-DD format"),
    base: str = typer.Option(..., "--base", help="Base currency code", callback=_validate_currency),
    quote: str = typer.Option(..., "--quote", help="Quote currency code", callback=_validate_currency),
    amount: str = typer.Option("1", "--amount", help="Amount of base currency to convert"),
    browser: bool = typer.Option(True, "--browser/--no-browser", help="Include the browser-backed Visa and Amex providers."),
) -> None:
    """Compare every provider against the reference rate."""

    query = RateQuery(date=_parse_date(date_str), base=base, quote=quote, amount=_parse_amount(amount))
    config = _load_config()

    async def _main() -> dict[str, Any]:
        async with open_aggregator(config, browser_providers=BROWSER_PROVIDERS if browser else ()) as aggregator:
            result = await aggregator.compare(query)
        return result.to_payload()

    _emit(_run(_main()))


@app.command("history")
def cli_history(
    date_str: str = typer.Option(..., "--date", help="Last day of the window in YYYY-MM-DD format"),
    base: str = typer.Option(..., "--base", help="Base currency code", callback=_validate_currency),
    quote: str = typer.Option(..., "--quote", help="Quote currency code", callback=_validate_currency),
    days: Optional[int] = typer.Option(None, "--days", help="Window length in days (clamped to the configured bounds)"),
    browser: bool = typer.Option(True, "--browser/--no-browser", help="Include the browser-backed Visa and Amex providers."),
) -> None:
    """Daily series for every provider, gaps carried forward."""

    end = _parse_date(date_str)
    config = _load_config()
    span = days if days is not None else config.history_days

    async def _main() -> dict[str, Any]:
        async with open_aggregator(config, browser_providers=BROWSER_PROVIDERS if browser else ()) as aggregator:
            result = await aggregator.history(base, quote, end, span)
        return result.to_payload()

    _emit(_run(_main()))


def main() -> None:  # pragma: no cover - console script entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
