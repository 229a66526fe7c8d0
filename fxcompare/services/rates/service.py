"""Wiring of transports, caches and providers into an aggregator."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Collection

from browser import PlaywrightSession
from fxcompare.core.errors import BrowserError, UpstreamError

from . import amex_provider, visa_provider
from .aggregator import RateAggregator
from .amex_provider import AmexClient, AmexRateProvider
from .base import RateSource
from .cache import TTLCache
from .config import RatesConfig
from .http import HttpClient
from .mastercard_provider import BROWSER_HEADERS, MastercardClient, MastercardRateProvider
from .reference import FrankfurterClient, ReferenceRateResolver
from .visa_provider import VisaClient, VisaRateProvider

LOGGER = logging.getLogger(__name__)

_LANDING_URLS = {
    visa_provider.PROVIDER: visa_provider.LANDING_URL,
    amex_provider.PROVIDER: amex_provider.LANDING_URL,
}
BROWSER_PROVIDERS = frozenset(_LANDING_URLS)


def build_sources(
    config: RatesConfig,
    *,
    reference_http: HttpClient,
    mastercard_http: HttpClient,
    visa_session: Any,
    amex_session: Any,
) -> dict[str, RateSource]:
    """Create every provider with its own cache, keyed by provider name."""

    def _cache() -> TTLCache:
        return TTLCache(config.cache_ttl_sec)

    mid = ReferenceRateResolver(
        FrankfurterClient(reference_http, base_url=config.frankfurter_url),
        reference_currency=config.reference_currency,
        cache=_cache(),
    )
    return {
        mid.name: mid,
        MastercardRateProvider.name: MastercardRateProvider(MastercardClient(mastercard_http), cache=_cache()),
        VisaRateProvider.name: VisaRateProvider(VisaClient(visa_session), cache=_cache()),
        AmexRateProvider.name: AmexRateProvider(AmexClient(amex_session), mid, cache=_cache()),
    }


def _browser_session(config: RatesConfig, name: str, landing_url: str) -> PlaywrightSession:
    return PlaywrightSession(
        name,
        landing_url=landing_url,
        headless=config.headless,
        user_agent=config.user_agent,
        default_timeout_ms=config.browser_timeout_ms,
    )


class _UnavailableSession:
    """Stand-in for a browser session whose warm-up failed; every request fails."""

    def __init__(self, name: str, error: BrowserError) -> None:
        self.name = name
        self.error = error

    async def fetch_json(self, url: str, **_kwargs: Any) -> Any:
        raise UpstreamError(f"{self.name} browser session unavailable: {self.error}", provider=self.name)


async def _enter_browser(stack: AsyncExitStack, config: RatesConfig, name: str, landing_url: str) -> Any:
    try:
        return await stack.enter_async_context(_browser_session(config, name, landing_url))
    except BrowserError as exc:
        LOGGER.warning("%s browser session unavailable: %s", name, exc)
        return _UnavailableSession(name, exc)


@asynccontextmanager
async def open_aggregator(
    config: RatesConfig,
    *,
    browser_providers: Collection[str] | None = None,
) -> AsyncIterator[RateAggregator]:
    """Yield a ready aggregator; browser sessions and HTTP sessions are released on exit.

    Only the browser-backed providers named in ``browser_providers`` get a
    session (all of them when ``None``); the others are left out. A session
    that fails to open is logged and its provider answers with an error.
    """

    wanted = BROWSER_PROVIDERS if browser_providers is None else BROWSER_PROVIDERS & set(browser_providers)

    async with AsyncExitStack() as stack:
        reference_http = HttpClient.from_config(config, provider="mid")
        stack.callback(reference_http.close)
        mastercard_http = HttpClient.from_config(config, provider="mc", headers=BROWSER_HEADERS)
        stack.callback(mastercard_http.close)

        sessions: dict[str, Any] = {}
        for name, landing_url in _LANDING_URLS.items():
            if name in wanted:
                sessions[name] = await _enter_browser(stack, config, name, landing_url)

        sources = build_sources(
            config,
            reference_http=reference_http,
            mastercard_http=mastercard_http,
            visa_session=sessions.get(visa_provider.PROVIDER),
            amex_session=sessions.get(amex_provider.PROVIDER),
        )
        for name in BROWSER_PROVIDERS - wanted:
            sources.pop(name)

        yield RateAggregator(
            sources,
            history_min_days=config.history_min_days,
            history_max_days=config.history_max_days,
        )


__all__ = ["BROWSER_PROVIDERS", "build_sources", "open_aggregator"]
