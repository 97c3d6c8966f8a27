import threading
import time
from typing import Dict, List, Union

import pytest

from consensus.resolver import (
    ConsensusResolver,
    HostObservation,
    OfflineError,
    pairwise_intervals,
    select_consensus,
)
from remote.client import FetchFailedError

_Answer = Union[int, Exception]


class _FakeFetcher:
    def __init__(self, answers: Dict[str, _Answer], delays: Dict[str, float] | None = None) -> None:
        self.answers = dict(answers)
        self.delays = dict(delays or {})
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, host: str) -> int:
        with self._lock:
            self.calls.append(host)
            answer = self.answers[host]
        delay = self.delays.get(host)
        if delay:
            time.sleep(delay)
        if isinstance(answer, Exception):
            raise answer
        return answer


def _observations(*values: int) -> List[HostObservation]:
    return [HostObservation(f"h{idx}", value) for idx, value in enumerate(values)]


def test_select_consensus_picks_lower_end_of_closest_pair():
    assert select_consensus(_observations(100, 105, 250, 108)) == 105


def test_select_consensus_prefers_first_pair_on_ties():
    assert select_consensus(_observations(10, 20, 30)) == 10


def test_select_consensus_requires_two_observations():
    with pytest.raises(ValueError):
        select_consensus(_observations(100))


def test_pairwise_intervals_cover_all_unordered_pairs():
    intervals = pairwise_intervals(_observations(108, 100, 105))

    assert len(intervals) == 3
    assert all(item.low_ns <= item.high_ns for item in intervals)
    assert [item.width_ns for item in intervals] == [8, 3, 5]


def test_resolve_uses_all_answers():
    fetcher = _FakeFetcher({"a": 100, "b": 105, "c": 250, "d": 108})
    resolver = ConsensusResolver(["a", "b", "c", "d"], fetcher=fetcher, quorum=4, round_deadline=1.0)

    assert resolver.resolve() == 105
    assert sorted(fetcher.calls) == ["a", "b", "c", "d"]
    assert resolver.floor_ns == 105


def test_resolve_tolerates_failed_hosts():
    fetcher = _FakeFetcher(
        {
            "a": 1_000,
            "b": FetchFailedError("down"),
            "c": 1_002,
            "d": FetchFailedError("no date"),
            "e": 5_000,
        }
    )
    resolver = ConsensusResolver(list(fetcher.answers), fetcher=fetcher, quorum=3, round_deadline=1.0)

    assert resolver.resolve() == 1_000


def test_resolve_fails_fast_when_quorum_impossible():
    fetcher = _FakeFetcher(
        {"a": 1_000, "b": 1_001, "c": FetchFailedError("down"), "d": FetchFailedError("down")}
    )
    resolver = ConsensusResolver(list(fetcher.answers), fetcher=fetcher, quorum=3, round_deadline=5.0)

    start = time.monotonic()
    with pytest.raises(OfflineError):
        resolver.resolve()
    assert time.monotonic() - start < 1.0
    assert resolver.floor_ns == 0


def test_resolve_times_out_waiting_for_quorum():
    fetcher = _FakeFetcher(
        {"a": 1_000, "b": 1_001, "c": 1_002}, delays={"c": 0.5}
    )
    resolver = ConsensusResolver(list(fetcher.answers), fetcher=fetcher, quorum=3, round_deadline=0.05)

    with pytest.raises(OfflineError, match="not reached"):
        resolver.resolve()


def test_unexpected_fetcher_errors_are_logged_and_dropped(caplog):
    fetcher = _FakeFetcher(
        {"a": 10, "b": 11, "c": 12, "d": KeyError("boom")},
        delays={"a": 0.1, "b": 0.1, "c": 0.1},
    )
    resolver = ConsensusResolver(list(fetcher.answers), fetcher=fetcher, quorum=3, round_deadline=1.0)

    assert resolver.resolve() == 10
    assert "Time fetcher crashed for d" in caplog.text


def test_floor_never_moves_backwards():
    fetcher = _FakeFetcher({"a": 5_000, "b": 5_001, "c": 5_002})
    resolver = ConsensusResolver(list(fetcher.answers), fetcher=fetcher, quorum=3, round_deadline=1.0)

    assert resolver.resolve() == 5_000

    fetcher.answers.update({"a": 4_000, "b": 4_001, "c": 4_002})
    assert resolver.resolve() == 5_000

    fetcher.answers.update({"a": 6_000, "b": 6_001, "c": 6_002})
    assert resolver.resolve() == 6_000


def test_concurrent_rounds_return_non_decreasing_values():
    counter = iter(range(10_000, 10_000_000, 1_000))
    lock = threading.Lock()

    def _fetch(_host: str) -> int:
        with lock:
            return next(counter)

    resolver = ConsensusResolver(["a", "b", "c", "d"], fetcher=_fetch, quorum=3, round_deadline=1.0)
    per_worker: List[List[int]] = [[] for _ in range(4)]

    def _worker(values: List[int]) -> None:
        for _ in range(5):
            values.append(resolver.resolve())

    threads = [threading.Thread(target=_worker, args=(values,)) for values in per_worker]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for values in per_worker:
        assert len(values) == 5
        assert values == sorted(values)
    assert resolver.floor_ns == max(max(values) for values in per_worker)


def test_late_results_do_not_leak_into_next_round():
    fetcher = _FakeFetcher(
        {"a": 1_000, "b": 1_001, "c": 1_002, "slow": 999_999}, delays={"slow": 0.2}
    )
    resolver = ConsensusResolver(list(fetcher.answers), fetcher=fetcher, quorum=3, round_deadline=1.0)

    first = resolver.collect_observations()
    assert {item.host for item in first} <= {"a", "b", "c"}

    time.sleep(0.3)
    fetcher.delays = {}
    fetcher.answers["slow"] = FetchFailedError("gone")
    second = resolver.collect_observations()

    assert all(item.timestamp_ns != 999_999 for item in second)


@pytest.mark.parametrize("hosts, quorum", [(["a"], 1), (["a", "b"], 3)])
def test_invalid_host_quorum_combinations(hosts, quorum):
    with pytest.raises(ValueError):
        ConsensusResolver(hosts, fetcher=lambda _host: 0, quorum=quorum)
