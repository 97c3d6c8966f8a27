"""Synchronised wall-clock estimate backed by HTTP consensus time."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from consensus.resolver import ConsensusResolver, OfflineError
from core.clock import NS_PER_SECOND, MonotonicClock, ns_to_datetime
from core.config import RESYNC_INTERVAL_S, SYNC_RETRY_DELAY_S

__all__ = ["ClockService", "SyncState", "SyncTimeoutError"]

log = logging.getLogger(__name__)


class SyncTimeoutError(OfflineError):
    """Raised when :meth:`ClockService.sync` found no consensus before its timeout."""


@dataclass
class SyncState:
    """Anchor pair tying a remote timestamp to a monotonic counter reading."""

    remote_ns: int = 0
    local_ns: int = 0
    synced: bool = False


class ClockService:
    """Estimate the current time from remote consensus and a monotonic counter.

    :meth:`sync` establishes an anchor pair and starts a background thread that
    refreshes it every ``resync_interval`` seconds. :meth:`now` projects the
    anchor forward by the monotonic time elapsed since it was taken, so no
    network I/O happens on the hot path.
    """

    def __init__(
        self,
        resolver: Optional[ConsensusResolver] = None,
        *,
        resync_interval: Optional[float] = None,
        retry_delay: Optional[float] = None,
        monotonic_ns: Optional[Callable[[], int]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._resolver = resolver or ConsensusResolver()
        interval = RESYNC_INTERVAL_S if resync_interval is None else resync_interval
        if interval <= 0:
            raise ValueError("resync_interval must be positive")
        self._resync_interval = float(interval)
        delay = SYNC_RETRY_DELAY_S if retry_delay is None else retry_delay
        self._retry_delay = max(0.0, float(delay))
        self._monotonic_ns = monotonic_ns or MonotonicClock.elapsed_ns
        self._log = logger or log
        self._lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self._state = SyncState()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_synced(self) -> bool:
        with self._lock:
            return self._state.synced

    @property
    def resolver(self) -> ConsensusResolver:
        return self._resolver

    def anchor(self) -> SyncState:
        """Return a snapshot of the current anchor pair."""

        with self._lock:
            return SyncState(self._state.remote_ns, self._state.local_ns, self._state.synced)

    # ------------------------------------------------------------------
    def sync(self, timeout: float) -> None:
        """Establish the anchor pair and start background resynchronisation.

        Calling this again after a successful sync is a no-op. Each attempt is a
        full consensus round; rounds are repeated until one succeeds or
        *timeout* seconds have passed. Time spent waiting for a concurrent
        :meth:`sync` call counts against *timeout*.

        Raises:
            SyncTimeoutError: If no round reached consensus in time.
            RuntimeError: If the service has been stopped.
        """

        deadline = time.monotonic() + max(0.0, timeout)
        if not self._sync_lock.acquire(timeout=max(0.0, timeout)):
            if self.is_synced:
                return
            raise SyncTimeoutError(
                f"No consensus time within {timeout:.2f}s, another sync is still running"
            )
        try:
            self._sync_locked(timeout, deadline)
        finally:
            self._sync_lock.release()

    def _sync_locked(self, timeout: float, deadline: float) -> None:
        if self._stop.is_set():
            raise RuntimeError("Cannot sync a stopped ClockService")
        if self.is_synced:
            return

        resolved = 0
        last_error: Optional[OfflineError] = None
        attempt = 0
        while resolved == 0:
            attempt += 1
            try:
                resolved = self._resolver.resolve()
            except OfflineError as exc:
                last_error = exc
                self._log.debug("Sync attempt %d failed: %s", attempt, exc)
            remaining = deadline - time.monotonic()
            if resolved or remaining <= 0:
                break
            if self._stop.wait(min(self._retry_delay, remaining)):
                break

        if resolved == 0:
            if self._stop.is_set():
                raise RuntimeError("Cannot sync a stopped ClockService")
            raise SyncTimeoutError(
                f"No consensus time within {timeout:.2f}s, network appears offline"
            ) from last_error

        local_ns = self._monotonic_ns()
        with self._lock:
            self._state = SyncState(remote_ns=resolved, local_ns=local_ns, synced=True)
        self._log.info(
            "Clock synchronised after %d attempt(s), local skew %.3fs",
            attempt,
            (time.time_ns() - resolved) / NS_PER_SECOND,
        )
        self._start_resync_loop()

    def now(self) -> int:
        """Return the best estimate of the current time in Unix nanoseconds.

        Without a prior :meth:`sync` this runs one blocking consensus round and
        may raise :class:`~consensus.resolver.OfflineError`.
        """

        with self._lock:
            state = self._state
            if state.synced:
                return state.remote_ns + (self._monotonic_ns() - state.local_ns)
        return self._resolver.resolve()

    def now_datetime(self) -> datetime:
        """Return :meth:`now` as an aware UTC :class:`~datetime.datetime`."""

        return ns_to_datetime(self.now())

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the resync thread to exit and wait for it to finish."""

        self._stop.set()
        # A sync in progress either sees the event or has published its thread.
        with self._sync_lock:
            thread = self._thread
        if thread and thread.is_alive() and threading.current_thread() is not thread:
            thread.join(timeout=timeout)

    def __enter__(self) -> "ClockService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    def _start_resync_loop(self) -> None:
        if self._thread is not None or self._stop.is_set():
            return
        self._thread = threading.Thread(
            target=self._resync_loop, name="HttpClockResync", daemon=True
        )
        self._thread.start()

    def _resync_loop(self) -> None:
        while not self._stop.wait(self._resync_interval):
            self._resync_once()

    def _resync_once(self) -> bool:
        """Run one refresh round; return whether the anchor moved."""

        try:
            resolved = self._resolver.resolve()
        except OfflineError as exc:
            self._log.debug("Resync skipped: %s", exc)
            return False
        except Exception:
            self._log.exception("Resync round crashed")
            return False

        with self._lock:
            if resolved <= self._state.remote_ns:
                return False
            local_ns = self._monotonic_ns()
            projected = self._state.remote_ns + (local_ns - self._state.local_ns)
            self._state = SyncState(remote_ns=resolved, local_ns=local_ns, synced=True)
        self._log.info(
            "Clock re-anchored, drift %.3fs", (resolved - projected) / NS_PER_SECOND
        )
        return True
