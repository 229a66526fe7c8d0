from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from .profiles import _work_dir


APP_LOGGER_NAME = "fxcompare"
LOG_LEVEL_ENV = "FXCOMPARE_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_LOGGER: logging.Logger | None = None


def parse_level(name: str) -> int:
    """Map a level name such as ``"debug"`` to its ``logging`` constant."""

    value = getattr(logging, name.strip().upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {name}")
    return value


def get_logger(log_dir: Path | None = None) -> logging.Logger:
    """Return the ``fxcompare`` logger writing to ./fxcompare/work/logs/app.log.

    Configured once per process: a rotating file (2 MiB x 3) plus a console
    handler on stderr, leaving stdout to command output. Module loggers
    (``logging.getLogger(__name__)``) propagate into it. The initial level
    comes from ``FXCOMPARE_LOG_LEVEL`` (default INFO).
    """
    global _LOGGER
    if _LOGGER is not None:
        return _LOGGER

    base = _work_dir() / "logs" if log_dir is None else Path(log_dir)
    base.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(APP_LOGGER_NAME)
    # Drop handlers from an earlier configuration (their streams may be gone).
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(parse_level(os.getenv(LOG_LEVEL_ENV) or "INFO"))
    logger.propagate = False

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    file_handler = RotatingFileHandler(
        base / "app.log", maxBytes=2 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(fmt)
    logger.addHandler(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    logger.addHandler(console)

    _LOGGER = logger
    return logger


def set_level(name: str) -> logging.Logger:
    """Apply ``name`` to the root and application loggers."""

    level = parse_level(name)
    logger = get_logger()
    logging.getLogger().setLevel(level)
    logger.setLevel(level)
    return logger
