"""Tests for rates configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from fxcompare.core.errors import ConfigError
from fxcompare.services.rates import config as rates_config
from fxcompare.services.rates.config import RatesConfig, load_retry_config, resolve_config


def test_defaults_without_profile() -> None:
    config = resolve_config()

    assert config.reference_currency == "EUR"
    assert config.frankfurter_url == "https://api.frankfurter.app"
    assert config.cache_ttl_sec == 3600
    assert config.retries.max_attempts == 3
    assert config.headless is True


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FXCOMPARE_REFERENCE_CURRENCY", "usd")
    monkeypatch.setenv("FXCOMPARE_CACHE_TTL_SEC", "120")
    monkeypatch.setenv("FXCOMPARE_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("FXCOMPARE_RETRY_ATTEMPTS", "0")
    monkeypatch.setenv("FXCOMPARE_RETRY_BACKOFF_MS", "50")
    monkeypatch.setenv("FXCOMPARE_HEADLESS", "no")

    config = resolve_config()

    assert config.reference_currency == "USD"
    assert config.cache_ttl_sec == 120.0
    assert config.timeout_sec == 2.5
    assert config.retries.max_attempts == 1
    assert config.retries.backoff_ms == 50
    assert config.headless is False


def test_invalid_env_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FXCOMPARE_RETRY_ATTEMPTS", "many")

    with pytest.raises(ConfigError):
        load_retry_config()

    monkeypatch.delenv("FXCOMPARE_RETRY_ATTEMPTS")
    monkeypatch.setenv("FXCOMPARE_HEADLESS", "maybe")
    with pytest.raises(ConfigError):
        resolve_config()


def test_profile_loaded_from_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    profiles = tmp_path / "profiles.yaml"
    profiles.write_text(
        "\n".join(
            [
                "rates:",
                "  fast:",
                "    cache_ttl_sec: 30",
                "    frankfurter_url: ${FX_TEST_URL}",
                "    history_days: 7",
                "    retries:",
                "      max_attempts: 5",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("FX_TEST_URL", "https://frankfurter.test")

    config = RatesConfig.from_profile("fast", config_path=profiles)

    assert config.cache_ttl_sec == 30
    assert config.frankfurter_url == "https://frankfurter.test"
    assert config.history_days == 7
    assert config.retries.max_attempts == 5
    assert config.retries.backoff_ms == rates_config.DEFAULT_RETRY_BACKOFF_MS


def test_unknown_profile_raises(tmp_path: Path) -> None:
    profiles = tmp_path / "profiles.yaml"
    profiles.write_text("rates:\n  default:\n    cache_ttl_sec: 10\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        RatesConfig.from_profile("missing", config_path=profiles)


def test_unset_placeholder_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FX_UNSET_VALUE", raising=False)

    with pytest.raises(ConfigError):
        RatesConfig.from_mapping({"frankfurter_url": "${FX_UNSET_VALUE}"})


def test_bad_value_raises_config_error() -> None:
    with pytest.raises(ConfigError):
        RatesConfig.from_mapping({"cache_ttl_sec": "soon"})


def test_resolve_config_reads_named_profile(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_dir = tmp_path / "fxcompare"
    config_dir.mkdir()
    (config_dir / "profiles.yaml").write_text(
        "rates:\n  slow:\n    timeout_sec: 30\n    history_max_days: 90\n", encoding="utf-8"
    )
    monkeypatch.setenv("FXCOMPARE_ROOT", str(tmp_path))

    config = resolve_config("slow")

    assert config.timeout_sec == 30
    assert config.history_max_days == 90


@pytest.mark.parametrize(("raw", "expected"), [("false", False), ("Off", False), ("yes", True), (0, False), (True, True)])
def test_headless_accepts_quoted_booleans(raw: object, expected: bool) -> None:
    assert RatesConfig.from_mapping({"headless": raw}).headless is expected


def test_headless_rejects_unknown_word() -> None:
    with pytest.raises(ConfigError):
        RatesConfig.from_mapping({"headless": "maybe"})
