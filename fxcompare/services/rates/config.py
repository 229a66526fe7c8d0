"""Configuration loader for the rate comparison services."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from fxcompare.core.errors import ConfigError
from fxcompare.core.profiles import load_profiles

DEFAULT_REFERENCE_CURRENCY = "EUR"
DEFAULT_FRANKFURTER_URL = "https://api.frankfurter.app"
DEFAULT_CACHE_TTL_SEC = 60 * 60
DEFAULT_TIMEOUT = 10.0
DEFAULT_BROWSER_TIMEOUT_MS = 25_000
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_HISTORY_DAYS = 30
DEFAULT_HISTORY_MIN_DAYS = 2
DEFAULT_HISTORY_MAX_DAYS = 60
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_MS = 200
DEFAULT_RETRY_MAX_BACKOFF_MS = 2000

REFERENCE_CURRENCY_ENV = "FXCOMPARE_REFERENCE_CURRENCY"
FRANKFURTER_URL_ENV = "FXCOMPARE_FRANKFURTER_URL"
CACHE_TTL_ENV = "FXCOMPARE_CACHE_TTL_SEC"
TIMEOUT_ENV = "FXCOMPARE_TIMEOUT_SEC"
RETRY_ATTEMPTS_ENV = "FXCOMPARE_RETRY_ATTEMPTS"
RETRY_BACKOFF_MS_ENV = "FXCOMPARE_RETRY_BACKOFF_MS"
HEADLESS_ENV = "FXCOMPARE_HEADLESS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class RetryConfig:
    """Retry parameters for provider HTTP requests."""

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    backoff_ms: int = DEFAULT_RETRY_BACKOFF_MS
    max_backoff_ms: int = DEFAULT_RETRY_MAX_BACKOFF_MS

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "RetryConfig":
        if not data:
            return cls()
        return cls(
            max_attempts=int(data.get("max_attempts", DEFAULT_RETRY_ATTEMPTS)),
            backoff_ms=int(data.get("backoff_ms", DEFAULT_RETRY_BACKOFF_MS)),
            max_backoff_ms=int(data.get("max_backoff_ms", DEFAULT_RETRY_MAX_BACKOFF_MS)),
        )


@dataclass(slots=True)
class RatesConfig:
    """Resolved configuration for rate lookups."""

    reference_currency: str = DEFAULT_REFERENCE_CURRENCY
    frankfurter_url: str = DEFAULT_FRANKFURTER_URL
    cache_ttl_sec: float = DEFAULT_CACHE_TTL_SEC
    timeout_sec: float = DEFAULT_TIMEOUT
    retries: RetryConfig = field(default_factory=RetryConfig)
    headless: bool = True
    browser_timeout_ms: int = DEFAULT_BROWSER_TIMEOUT_MS
    user_agent: str = DEFAULT_USER_AGENT
    history_days: int = DEFAULT_HISTORY_DAYS
    history_min_days: int = DEFAULT_HISTORY_MIN_DAYS
    history_max_days: int = DEFAULT_HISTORY_MAX_DAYS

    @classmethod
    def from_profile(cls, profile_name: str, *, config_path: str | Path | None = None) -> "RatesConfig":
        """Create a configuration instance from profiles.yaml.

        Args:
            profile_name: Logical profile name under the ``rates`` section.
            config_path: Optional override for the config file path.

        Returns:
            Parsed ``RatesConfig`` instance.

        Raises:
            ConfigError: If the configuration cannot be loaded or is invalid.
        """

        raw = _load_profiles_file(path=config_path).get(profile_name)
        if raw is None:
            raise ConfigError(f"rates profile '{profile_name}' not found in profiles.yaml")
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RatesConfig":
        """Create a configuration instance from a mapping."""

        try:
            return cls(
                reference_currency=str(
                    _expand_env(data.get("reference_currency", DEFAULT_REFERENCE_CURRENCY))
                ).upper(),
                frankfurter_url=_expand_env(data.get("frankfurter_url", DEFAULT_FRANKFURTER_URL)),
                cache_ttl_sec=float(data.get("cache_ttl_sec", DEFAULT_CACHE_TTL_SEC)),
                timeout_sec=float(data.get("timeout_sec", DEFAULT_TIMEOUT)),
                retries=RetryConfig.from_mapping(_ensure_mapping(data.get("retries"))),
                headless=_coerce_bool(data.get("headless", True)),
                browser_timeout_ms=int(data.get("browser_timeout_ms", DEFAULT_BROWSER_TIMEOUT_MS)),
                user_agent=_expand_env(data.get("user_agent", DEFAULT_USER_AGENT)),
                history_days=int(data.get("history_days", DEFAULT_HISTORY_DAYS)),
                history_min_days=int(data.get("history_min_days", DEFAULT_HISTORY_MIN_DAYS)),
                history_max_days=int(data.get("history_max_days", DEFAULT_HISTORY_MAX_DAYS)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid rates configuration: {exc}") from exc


def _read_env(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    return value.strip()


def _read_env_int(key: str) -> int | None:
    value = _read_env(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"Environment variable {key} must be an integer") from exc


def _read_env_float(key: str) -> float | None:
    value = _read_env(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"Environment variable {key} must be a number") from exc


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _read_env_bool(key: str) -> bool | None:
    value = _read_env(key)
    if value is None or value == "":
        return None
    try:
        return _coerce_bool(value)
    except ValueError as exc:
        raise ConfigError(f"Environment variable {key} must be a boolean") from exc


def load_retry_config(config: RatesConfig | None = None) -> RetryConfig:
    """Return retry configuration applying environment overrides."""

    base = config.retries if config is not None else RetryConfig()
    attempts = _read_env_int(RETRY_ATTEMPTS_ENV)
    backoff = _read_env_int(RETRY_BACKOFF_MS_ENV)
    return RetryConfig(
        max_attempts=max(1, attempts if attempts is not None else base.max_attempts),
        backoff_ms=backoff if backoff is not None else base.backoff_ms,
        max_backoff_ms=base.max_backoff_ms,
    )


def resolve_config(profile: str | None = None) -> RatesConfig:
    """Resolve configuration from a profile or defaults, then apply env overrides."""

    base = RatesConfig.from_profile(profile) if profile else RatesConfig()

    reference = _read_env(REFERENCE_CURRENCY_ENV) or base.reference_currency
    ttl = _read_env_float(CACHE_TTL_ENV)
    timeout = _read_env_float(TIMEOUT_ENV)
    headless = _read_env_bool(HEADLESS_ENV)

    return RatesConfig(
        reference_currency=reference.upper(),
        frankfurter_url=_read_env(FRANKFURTER_URL_ENV) or base.frankfurter_url,
        cache_ttl_sec=ttl if ttl is not None else base.cache_ttl_sec,
        timeout_sec=timeout if timeout is not None else base.timeout_sec,
        retries=load_retry_config(base),
        headless=headless if headless is not None else base.headless,
        browser_timeout_ms=base.browser_timeout_ms,
        user_agent=base.user_agent,
        history_days=base.history_days,
        history_min_days=base.history_min_days,
        history_max_days=base.history_max_days,
    )


def _ensure_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, Mapping):
        return value
    return None


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if "${" in value and "}" in value and expanded == value:
            raise ConfigError(f"Environment variable not set for value: {value}")
        return expanded
    return value


def _load_profiles_file(*, path: str | Path | None) -> dict[str, Mapping[str, Any]]:
    return load_profiles("rates", path)


__all__ = [
    "RatesConfig",
    "RetryConfig",
    "REFERENCE_CURRENCY_ENV",
    "FRANKFURTER_URL_ENV",
    "CACHE_TTL_ENV",
    "TIMEOUT_ENV",
    "RETRY_ATTEMPTS_ENV",
    "RETRY_BACKOFF_MS_ENV",
    "HEADLESS_ENV",
    "load_retry_config",
    "resolve_config",
]
