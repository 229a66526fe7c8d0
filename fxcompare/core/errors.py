"""Custom exceptions used across fxcompare."""

from __future__ import annotations

from typing import Any


class FxCompareError(Exception):
    """Base error for the application."""


class ConfigError(FxCompareError):
    """Configuration related error."""


class BrowserError(FxCompareError):
    """Raised when browser automation fails."""


class UpstreamError(FxCompareError):
    """Raised when a rate provider cannot be reached or answers badly."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.payload = payload


class DateNotAvailable(UpstreamError):
    """Raised when the reference provider has no data for the requested date."""


class ParseError(UpstreamError):
    """Raised when a provider payload does not match the expected shape."""
