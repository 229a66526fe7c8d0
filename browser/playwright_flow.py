"""Playwright session helpers for provider endpoints behind a browser.

Some card networks only answer their rate APIs to requests issued from a page
that has loaded their calculator (cookies, bot checks). ``PlaywrightSession``
owns one headless Chromium page warmed up on such a landing page and runs
``fetch()`` calls from inside it. The session is an async context manager so
the browser is always released, and rate code only ever sees ``fetch_json``.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Mapping

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from fxcompare.core.errors import BrowserError, ParseError, UpstreamError

LOGGER = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1280, "height": 720}
WARMUP_DELAY_MS = 2_000

_FETCH_SCRIPT = """
async ({ url, method, headers }) => {
  const response = await fetch(url, { method, headers, credentials: 'include' });
  const text = await response.text();
  return { status: response.status, url: response.url, text };
}
"""


class PlaywrightSession:
    """Scoped headless browser page used as an HTTP client.

    Usage::

        async with PlaywrightSession("visa", landing_url=VISA_URL) as session:
            payload = await session.fetch_json(url)
    """

    def __init__(
        self,
        name: str,
        *,
        landing_url: str,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        default_timeout_ms: int = 25_000,
        warmup_delay_ms: int = WARMUP_DELAY_MS,
    ) -> None:
        self.name = name
        self.landing_url = landing_url
        self.headless = headless
        self.user_agent = user_agent
        self.default_timeout_ms = default_timeout_ms
        self.warmup_delay_ms = warmup_delay_ms

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    # ------------------------------------------------------------------
    # Lifecycle helpers
    async def __aenter__(self) -> "PlaywrightSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, _tb) -> bool:
        if exc is not None:
            LOGGER.error("%s browser session failed: %s", self.name, exc)
        await self.close()
        # Do not suppress exceptions
        return False

    @property
    def is_open(self) -> bool:
        return self._page is not None

    async def open(self) -> Page:
        """Start Playwright, launch Chromium and warm up the landing page."""

        if self._page is not None:
            return self._page

        try:
            self._playwright = await async_playwright().start()
        except Exception as exc:  # noqa: BLE001
            raise BrowserError(
                "Playwright is not installed or failed to start; run python -m playwright install chromium"
            ) from exc

        try:
            self._browser = await self._launch_browser(self._playwright)
            self._context = await self._browser.new_context(
                user_agent=self.user_agent,
                viewport=DEFAULT_VIEWPORT,
            )
            self._context.set_default_timeout(self.default_timeout_ms)
            page = await self._context.new_page()
            LOGGER.info("%s: opening %s", self.name, self.landing_url)
            await page.goto(self.landing_url, wait_until="networkidle")
            await page.wait_for_timeout(self.warmup_delay_ms)
        except BrowserError:
            await self.close()
            raise
        except PlaywrightTimeoutError as exc:
            await self.close()
            raise BrowserError(f"{self.name}: landing page timed out: {self.landing_url}") from exc
        except PlaywrightError as exc:
            await self.close()
            raise BrowserError(f"{self.name}: landing page failed: {self.landing_url}") from exc

        self._page = page
        return page

    async def close(self) -> None:
        """Release Playwright resources."""
        if self._context is not None:
            try:
                await self._context.close()
            except Exception:  # noqa: BLE001
                LOGGER.warning("%s: closing BrowserContext failed", self.name, exc_info=True)
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception:  # noqa: BLE001
                LOGGER.warning("%s: closing Browser failed", self.name, exc_info=True)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:  # noqa: BLE001
                LOGGER.warning("%s: stopping Playwright failed", self.name, exc_info=True)

        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None

    # ------------------------------------------------------------------
    # Requests
    async def fetch_json(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Run ``fetch(url)`` inside the warmed-up page and decode the JSON body."""

        page = self._page
        if page is None:
            raise BrowserError(f"{self.name}: browser session used before open()")

        try:
            result = await page.evaluate(
                _FETCH_SCRIPT,
                {"url": url, "method": method, "headers": dict(headers or {})},
            )
        except PlaywrightTimeoutError as exc:
            raise UpstreamError(f"{self.name} request timed out", provider=self.name) from exc
        except PlaywrightError as exc:
            raise UpstreamError(f"{self.name} request failed: {exc}", provider=self.name) from exc

        status = int(result.get("status") or 0)
        LOGGER.debug("%s api_hit url=%s status=%d", self.name, result.get("url"), status)
        if not 200 <= status < 300:
            raise UpstreamError(f"{self.name} returned {status}", provider=self.name, status_code=status)
        return _decode_json(self.name, result.get("text") or "")

    # ------------------------------------------------------------------
    # Internal helpers
    async def _launch_browser(self, playwright: Playwright) -> Browser:
        attempts: list[tuple[str | None, str]] = [
            (None, "chromium"),
            ("msedge", "msedge"),
            ("chrome", "chrome"),
        ]
        last_exc: PlaywrightError | None = None
        for channel, label in attempts:
            try:
                if channel is None:
                    browser = await playwright.chromium.launch(headless=self.headless)
                else:
                    browser = await playwright.chromium.launch(headless=self.headless, channel=channel)
                LOGGER.info("%s: launched %s", self.name, label)
                return browser
            except PlaywrightError as exc:
                last_exc = exc
                continue
        raise BrowserError(
            "Unable to launch Chromium; run python -m playwright install chromium or install Edge/Chrome"
        ) from last_exc


def _decode_json(name: str, text: str) -> Any:
    try:
        return json.loads(text, parse_float=Decimal)
    except ValueError as exc:
        raise ParseError(f"{name} returned a non-JSON body", provider=name) from exc
