"""HTTP transport shared by the JSON rate providers."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from decimal import Decimal
from typing import Any, Mapping

import requests
from requests import Response
from requests.exceptions import RequestException, Timeout

from fxcompare.core.errors import DateNotAvailable, ParseError, UpstreamError

from .config import RatesConfig, RetryConfig, load_retry_config

LOGGER = logging.getLogger(__name__)

USER_AGENT = "fxcompare/1.0"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class HttpClient:
    """Blocking ``requests`` session with retries, exposed to asyncio callers.

    Requests run in a worker thread via :func:`asyncio.to_thread` so the event
    loop only suspends at the network boundary.
    """

    def __init__(
        self,
        *,
        provider: str,
        timeout_sec: float = 10.0,
        retries: RetryConfig | None = None,
        session: requests.Session | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.provider = provider
        self._timeout = timeout_sec
        self._retry_config = retries or RetryConfig()
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        if headers:
            self._session.headers.update(headers)

    @classmethod
    def from_config(
        cls,
        config: RatesConfig,
        *,
        provider: str,
        headers: Mapping[str, str] | None = None,
    ) -> "HttpClient":
        return cls(
            provider=provider,
            timeout_sec=config.timeout_sec,
            retries=load_retry_config(config),
            headers=headers,
        )

    async def get_json(self, url: str, *, params: Mapping[str, str] | None = None) -> Any:
        """GET ``url`` and decode its JSON body with floats parsed as ``Decimal``."""

        return await asyncio.to_thread(self._get_json_blocking, url, params)

    def close(self) -> None:
        self._session.close()

    # Internal helpers -------------------------------------------------

    def _get_json_blocking(self, url: str, params: Mapping[str, str] | None) -> Any:
        response = self._request(url, params=params)
        try:
            return response.json(parse_float=Decimal)
        except (ValueError, json.JSONDecodeError) as exc:
            raise ParseError(
                f"{self.provider} returned a non-JSON body",
                provider=self.provider,
                status_code=response.status_code,
            ) from exc

    def _request(self, url: str, *, params: Mapping[str, str] | None) -> Response:
        attempts = max(1, self._retry_config.max_attempts)
        base_backoff = max(0.05, self._retry_config.backoff_ms / 1000.0)
        max_backoff = max(base_backoff, self._retry_config.max_backoff_ms / 1000.0)
        last_error: UpstreamError | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = self._session.get(url, params=dict(params or {}), timeout=self._timeout)
            except Timeout as exc:
                last_error = UpstreamError(f"{self.provider} request timed out", provider=self.provider)
                LOGGER.warning("%s.http timeout url=%s attempt=%d", self.provider, url, attempt, exc_info=exc)
            except RequestException as exc:
                last_error = UpstreamError(f"{self.provider} request failed", provider=self.provider)
                LOGGER.warning(
                    "%s.http connection_error url=%s attempt=%d error=%s",
                    self.provider,
                    url,
                    attempt,
                    type(exc).__name__,
                )
            else:
                status = response.status_code
                if 200 <= status < 300:
                    return response
                if status == 404:
                    raise DateNotAvailable(
                        f"{self.provider} has no data for {response.url}",
                        provider=self.provider,
                        status_code=status,
                        payload=_safe_json(response),
                    )
                if status in RETRYABLE_STATUS:
                    LOGGER.warning(
                        "%s.http retryable_status url=%s status=%d attempt=%d",
                        self.provider,
                        url,
                        status,
                        attempt,
                    )
                    last_error = UpstreamError(
                        f"{self.provider} returned {status}",
                        provider=self.provider,
                        status_code=status,
                        payload=_safe_json(response),
                    )
                else:
                    raise UpstreamError(
                        f"{self.provider} returned unexpected status {status}",
                        provider=self.provider,
                        status_code=status,
                        payload=_safe_json(response),
                    )

            if attempt < attempts:
                _sleep_with_backoff(base_backoff, max_backoff, attempt)

        if last_error is not None:
            raise last_error
        raise UpstreamError(f"{self.provider} exhausted retries", provider=self.provider)


def _safe_json(response: Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _sleep_with_backoff(base: float, maximum: float, attempt: int) -> None:
    delay = min(maximum, base * (2 ** (attempt - 1)))
    time.sleep(delay + random.uniform(0, delay / 4))


__all__ = ["HttpClient", "RETRYABLE_STATUS", "USER_AGENT"]
