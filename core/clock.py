"""Utilities for measuring elapsed time on the host's monotonic clock."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

NS_PER_SECOND = 1_000_000_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MonotonicClock:
    """Process-local monotonic counter.

    The counter starts when this module is imported and only ever reports the
    nanoseconds elapsed since then. It is never used to derive absolute time;
    absolute values come from remote consensus and are projected forward with
    the elapsed deltas measured here.
    """

    _start_ns = time.monotonic_ns()

    @classmethod
    def elapsed_ns(cls) -> int:
        """Return nanoseconds elapsed since the process-local start instant."""

        return time.monotonic_ns() - cls._start_ns


def ns_to_datetime(timestamp_ns: int) -> datetime:
    """Translate absolute Unix nanoseconds to an aware UTC datetime.

    ``datetime`` only keeps microseconds, the remainder is truncated.
    """

    return _EPOCH + timedelta(microseconds=timestamp_ns // 1000)


def ns_to_utc_iso(timestamp_ns: int) -> str:
    """Format absolute Unix nanoseconds as an ISO 8601 UTC string."""

    return ns_to_datetime(timestamp_ns).isoformat()


def datetime_to_ns(value: datetime) -> int:
    """Convert *value* to Unix nanoseconds, treating naive values as UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * NS_PER_SECOND + delta.microseconds * 1000


__all__ = [
    "MonotonicClock",
    "NS_PER_SECOND",
    "datetime_to_ns",
    "ns_to_datetime",
    "ns_to_utc_iso",
]
