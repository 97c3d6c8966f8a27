"""Central configuration constants with environment overrides."""

from __future__ import annotations

import os
from typing import Final


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _get_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped or default


VERSION: Final[str] = "0.3.0"

FETCH_TIMEOUT_S: Final[float] = _get_float("HTTP_CLOCK_FETCH_TIMEOUT_S", 2.0)
QUORUM: Final[int] = _get_int("HTTP_CLOCK_QUORUM", 3)
ROUND_DEADLINE_S: Final[float] = _get_float("HTTP_CLOCK_ROUND_DEADLINE_S", 2.0)
RESYNC_INTERVAL_S: Final[float] = _get_float("HTTP_CLOCK_RESYNC_INTERVAL_S", 15.0)
SYNC_RETRY_DELAY_S: Final[float] = _get_float("HTTP_CLOCK_SYNC_RETRY_DELAY_S", 0.5)
USER_AGENT: Final[str] = _get_str("HTTP_CLOCK_USER_AGENT", f"httpclock/{VERSION}")

__all__ = [
    "VERSION",
    "FETCH_TIMEOUT_S",
    "QUORUM",
    "ROUND_DEADLINE_S",
    "RESYNC_INTERVAL_S",
    "SYNC_RETRY_DELAY_S",
    "USER_AGENT",
]
