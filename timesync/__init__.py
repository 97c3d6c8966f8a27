"""Process-wide access to a shared :class:`ClockService`."""

from __future__ import annotations

import threading
from typing import Optional

from .service import ClockService, SyncState, SyncTimeoutError

_lock = threading.Lock()
_service: Optional[ClockService] = None


def get_service() -> ClockService:
    """Return the shared service, creating it on first use."""

    global _service
    with _lock:
        if _service is None:
            _service = ClockService()
        return _service


def sync(timeout: float) -> None:
    """Synchronise the shared service, see :meth:`ClockService.sync`."""

    get_service().sync(timeout)


def now() -> int:
    """Return the shared service's current time in Unix nanoseconds."""

    return get_service().now()


def shutdown() -> None:
    """Stop the shared service; the next call creates a fresh one."""

    global _service
    with _lock:
        service, _service = _service, None
    if service is not None:
        service.stop()


__all__ = [
    "ClockService",
    "SyncState",
    "SyncTimeoutError",
    "get_service",
    "now",
    "shutdown",
    "sync",
]
