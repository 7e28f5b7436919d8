"""Utility functions related to environment parsing."""

from __future__ import annotations

import logging
import os
from typing import Final, Tuple

logger = logging.getLogger("maybe-auth.utils.environment")

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")
_FALSY: Final[Tuple[str, ...]] = ("false", "0", "no", "n", "off")


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def env_flag(name: str, default: bool) -> bool:
    """Return the boolean value of *name*, or *default* when unset/blank.

    Unrecognised values fall back to *default* with a warning.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    if _truthy(raw):
        return True
    if raw.strip().lower() in _FALSY:
        return False
    logger.warning("Ignoring unrecognised boolean %s=%r", name, raw)
    return default


def env_str(name: str, default: str | None = None) -> str | None:
    """Return the stripped value of *name* (``None``/*default* when blank)."""
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_float(name: str, default: float) -> float:
    """Return *name* parsed as a positive float, else *default*."""
    raw = env_str(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value
