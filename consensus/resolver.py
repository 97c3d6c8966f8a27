"""Consensus time resolution across independent HTTP hosts.

Each round queries every host concurrently and waits until a quorum of
observations has arrived. Among all pairs of observations the pair whose
timestamps lie closest together wins, and its earlier endpoint becomes the
round's candidate. A per-resolver floor guarantees that resolved values never
move backwards, even when rounds race each other.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from itertools import combinations
from typing import Callable, List, Optional, Sequence

from core.config import QUORUM, ROUND_DEADLINE_S
from remote.client import FetchFailedError, fetch_remote_time
from remote.hosts import CFG

log = logging.getLogger(__name__)

Fetcher = Callable[[str], int]


class OfflineError(RuntimeError):
    """Raised when a round could not gather a quorum before its deadline."""


@dataclass(frozen=True)
class HostObservation:
    host: str
    timestamp_ns: int


@dataclass(frozen=True)
class PairwiseInterval:
    low_ns: int
    high_ns: int
    width_ns: int


def pairwise_intervals(observations: Sequence[HostObservation]) -> List[PairwiseInterval]:
    """Return the interval spanned by every unordered pair of *observations*."""

    intervals: List[PairwiseInterval] = []
    for first, second in combinations(observations, 2):
        low, high = sorted((first.timestamp_ns, second.timestamp_ns))
        intervals.append(PairwiseInterval(low, high, high - low))
    return intervals


def select_consensus(observations: Sequence[HostObservation]) -> int:
    """Return the lower endpoint of the narrowest pairwise interval.

    Ties are broken by arrival order of the observations.
    """

    intervals = pairwise_intervals(observations)
    if not intervals:
        raise ValueError("At least two observations are required")
    return min(intervals, key=lambda interval: interval.width_ns).low_ns


class ConsensusResolver:
    """Resolve consensus time from a set of hosts.

    Parameters
    ----------
    hosts:
        Hosts queried in every round. Defaults to the configured host set.
    fetcher:
        Callable returning a host's time in Unix nanoseconds or raising
        :class:`~remote.client.FetchFailedError`.
    quorum:
        Minimum number of observations a round needs.
    round_deadline:
        Seconds a round waits for the quorum.
    """

    def __init__(
        self,
        hosts: Optional[Sequence[str]] = None,
        *,
        fetcher: Optional[Fetcher] = None,
        quorum: Optional[int] = None,
        round_deadline: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._hosts = tuple(CFG.HOSTS if hosts is None else hosts)
        if len(self._hosts) < 2:
            raise ValueError("At least two hosts are required")
        self._fetcher = fetcher or fetch_remote_time
        self._quorum = max(2, int(QUORUM if quorum is None else quorum))
        if self._quorum > len(self._hosts):
            raise ValueError(
                f"quorum {self._quorum} exceeds the number of hosts ({len(self._hosts)})"
            )
        self._round_deadline = max(
            0.0, ROUND_DEADLINE_S if round_deadline is None else round_deadline
        )
        self._log = logger or log
        self._floor_lock = threading.Lock()
        self._floor_ns = 0

    @property
    def hosts(self) -> tuple[str, ...]:
        return self._hosts

    @property
    def quorum(self) -> int:
        return self._quorum

    @property
    def floor_ns(self) -> int:
        with self._floor_lock:
            return self._floor_ns

    def resolve(self) -> int:
        """Run one consensus round and return the resolved Unix nanoseconds.

        Raises:
            OfflineError: If fewer than ``quorum`` hosts answered in time.
        """

        observations = self.collect_observations()
        candidate = select_consensus(observations)
        return self._raise_floor(candidate)

    def collect_observations(self) -> List[HostObservation]:
        """Query all hosts concurrently and return at least ``quorum`` observations.

        Fetches still running when this returns are abandoned. Their results
        land in this round's private queue and are never seen by other rounds.
        """

        results: "queue.Queue[Optional[HostObservation]]" = queue.Queue()
        for host in self._hosts:
            thread = threading.Thread(
                target=self._fetch_into,
                args=(host, results),
                name=f"HttpClockFetch-{host}",
                daemon=True,
            )
            thread.start()

        deadline = time.monotonic() + self._round_deadline
        observations: List[HostObservation] = []
        pending = len(self._hosts)
        while len(observations) < self._quorum:
            if len(observations) + pending < self._quorum:
                raise OfflineError(
                    f"Only {len(observations)} of {len(self._hosts)} hosts answered, "
                    f"quorum is {self._quorum}"
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                item = results.get(timeout=remaining)
            except queue.Empty:
                break
            pending -= 1
            if item is not None:
                observations.append(item)

        if len(observations) < self._quorum:
            raise OfflineError(
                f"Quorum of {self._quorum} not reached within {self._round_deadline:.2f}s "
                f"({len(observations)} observations)"
            )

        while True:
            try:
                item = results.get_nowait()
            except queue.Empty:
                break
            if item is not None:
                observations.append(item)
        return observations

    # ------------------------------------------------------------------
    def _fetch_into(
        self, host: str, results: "queue.Queue[Optional[HostObservation]]"
    ) -> None:
        try:
            timestamp_ns = self._fetcher(host)
        except FetchFailedError as exc:
            self._log.debug("Dropping observation from %s: %s", host, exc)
            results.put(None)
        except Exception:
            self._log.exception("Time fetcher crashed for %s", host)
            results.put(None)
        else:
            results.put(HostObservation(host, int(timestamp_ns)))

    def _raise_floor(self, candidate_ns: int) -> int:
        with self._floor_lock:
            if candidate_ns > self._floor_ns:
                self._floor_ns = candidate_ns
            return self._floor_ns


__all__ = [
    "ConsensusResolver",
    "HostObservation",
    "OfflineError",
    "PairwiseInterval",
    "pairwise_intervals",
    "select_consensus",
]
