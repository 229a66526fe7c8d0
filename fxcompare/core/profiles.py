from __future__ import annotations

import os
from pathlib import Path
import sys
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .errors import ConfigError


load_dotenv(override=False)

PROFILES_FILE = "profiles.yaml"
ROOT_ENV = "FXCOMPARE_ROOT"


def _is_frozen() -> bool:
    return getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS")


def _project_root() -> Path:
    env = os.getenv(ROOT_ENV)
    if env:
        return Path(env)
    if _is_frozen():
        return Path(getattr(sys, "_MEIPASS"))  # type: ignore[arg-type]
    # <root>/fxcompare/core/profiles.py
    return Path(__file__).resolve().parents[2]


def _work_dir() -> Path:
    """Writable runtime directory (logs); next to the executable when frozen."""
    if _is_frozen():
        return Path(sys.executable).resolve().parent / "fxcompare" / "work"
    return Path(__file__).resolve().parents[2] / "fxcompare" / "work"


def resolve_config_path(path: str | Path) -> Path:
    p = Path(path)
    if p.is_absolute():
        return p
    if p.parts and p.parts[0] == "fxcompare":
        return _project_root() / p
    return _project_root() / "fxcompare" / p


def load_profiles(section: str, path: str | Path | None = None) -> dict[str, Mapping[str, Any]]:
    """Return the named profiles under ``section`` of profiles.yaml.

    Non-mapping entries are ignored.

    Raises:
        ConfigError: If the file is missing, unreadable, or the section holds no profiles.
    """
    cfg_path = resolve_config_path(path or PROFILES_FILE)
    if not cfg_path.exists():
        raise ConfigError(f"{PROFILES_FILE} not found at {cfg_path}")
    try:
        with cfg_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{cfg_path} is not valid YAML: {exc}") from exc

    raw = data.get(section) if isinstance(data, Mapping) else None
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{PROFILES_FILE} missing '{section}' section")
    profiles = {str(key): value for key, value in raw.items() if isinstance(value, Mapping)}
    if not profiles:
        raise ConfigError(f"No {section} profiles defined in {PROFILES_FILE}")
    return profiles
