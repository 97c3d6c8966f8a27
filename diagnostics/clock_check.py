"""Compare the local wall clock against HTTP consensus time."""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from consensus.resolver import ConsensusResolver, OfflineError, select_consensus
from core.clock import NS_PER_SECOND, ns_to_utc_iso
from core.config import (
    FETCH_TIMEOUT_S,
    QUORUM,
    RESYNC_INTERVAL_S,
    ROUND_DEADLINE_S,
    SYNC_RETRY_DELAY_S,
)
from timesync.service import ClockService

log = logging.getLogger(__name__)

_DIAGNOSTIC_DIR = Path("diagnostics")
_DEFAULT_MAX_SKEW_S = 5.0


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Maximum seconds to wait for the initial sync (default: %(default)s)",
    )
    parser.add_argument(
        "--max-skew",
        dest="max_skew",
        type=float,
        default=_DEFAULT_MAX_SKEW_S,
        help="Warn when the local clock deviates by more seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--output-dir",
        dest="output_dir",
        type=Path,
        default=_DIAGNOSTIC_DIR,
        help="Directory for the generated reports (default: %(default)s)",
    )
    return parser.parse_args(argv)


def _collect_project_flags() -> Dict[str, Any]:
    return {
        "FETCH_TIMEOUT_S": FETCH_TIMEOUT_S,
        "QUORUM": QUORUM,
        "RESYNC_INTERVAL_S": RESYNC_INTERVAL_S,
        "ROUND_DEADLINE_S": ROUND_DEADLINE_S,
        "SYNC_RETRY_DELAY_S": SYNC_RETRY_DELAY_S,
    }


def _collect_observations(resolver: ConsensusResolver) -> Dict[str, Any]:
    try:
        observations = resolver.collect_observations()
    except OfflineError as exc:
        log.warning("Observation round failed: %s", exc)
        return {"hosts": {}, "candidate_utc": None, "error": str(exc)}
    return {
        "hosts": {item.host: ns_to_utc_iso(item.timestamp_ns) for item in observations},
        "candidate_utc": ns_to_utc_iso(select_consensus(observations)),
        "error": None,
    }


def gather_diagnostics(
    service: Optional[ClockService] = None,
    *,
    timeout: float = 10.0,
    max_skew: float = _DEFAULT_MAX_SKEW_S,
) -> Dict[str, Any]:
    owned = service is None
    service = service or ClockService()
    try:
        service.sync(timeout)
        consensus_ns = service.now()
        local_ns = time.time_ns()
        round_info = _collect_observations(service.resolver)
    finally:
        if owned:
            service.stop()

    skew_s = (local_ns - consensus_ns) / NS_PER_SECOND
    if abs(skew_s) > max_skew:
        log.warning("Local clock skew %.3fs exceeds %.3fs", skew_s, max_skew)
    return {
        "consensus_utc": ns_to_utc_iso(consensus_ns),
        "local_utc": ns_to_utc_iso(local_ns),
        "skew_seconds": skew_s,
        "skew_exceeded": abs(skew_s) > max_skew,
        "observations": round_info,
        "project_flags": _collect_project_flags(),
    }


def write_reports(data: Mapping[str, Any], directory: Path = _DIAGNOSTIC_DIR) -> tuple[Path, Path]:
    directory.mkdir(parents=True, exist_ok=True)
    json_path = directory / "clock_check.json"
    txt_path = directory / "clock_check.txt"

    with json_path.open("w", encoding="utf-8") as fp:
        json.dump(data, fp, ensure_ascii=False, indent=2, sort_keys=True)

    lines = [
        f"Consensus time: {data.get('consensus_utc', 'unknown')}",
        f"Local time: {data.get('local_utc', 'unknown')}",
        f"Skew: {data.get('skew_seconds', 0.0):+.3f}s"
        + (" (exceeded)" if data.get("skew_exceeded") else ""),
        "",
        "Observations:",
    ]

    observations = data.get("observations", {})
    hosts = observations.get("hosts", {}) if isinstance(observations, Mapping) else {}
    if hosts:
        for host, value in sorted(hosts.items()):
            lines.append(f"  - {host}: {value}")
    else:
        error = observations.get("error") if isinstance(observations, Mapping) else None
        lines.append(f"  - none ({error or 'no data'})")

    lines.append("")
    lines.append("Configuration:")
    for name, value in sorted(_collect_project_flags().items()):
        lines.append(f"  - {name}={value}")

    with txt_path.open("w", encoding="utf-8") as fp:
        fp.write("\n".join(lines) + "\n")

    return json_path, txt_path


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)
    try:
        data = gather_diagnostics(timeout=args.timeout, max_skew=args.max_skew)
    except OfflineError as exc:
        log.error("Clock check failed: %s", exc)
        return 1
    write_reports(data, args.output_dir)
    return 2 if data["skew_exceeded"] else 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
