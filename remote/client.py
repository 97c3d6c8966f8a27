"""HTTP client utilities for reading a host's ``Date`` response header."""

from __future__ import annotations

import logging
from email.utils import parsedate_to_datetime
from typing import Optional

import requests
from requests import Response

from core.clock import datetime_to_ns
from core.config import FETCH_TIMEOUT_S, USER_AGENT

log = logging.getLogger(__name__)


class FetchFailedError(RuntimeError):
    """Raised when a single host did not yield a usable timestamp."""


def _build_headers() -> dict[str, str]:
    return {"User-Agent": USER_AGENT, "Accept": "*/*"}


def _send_request(url: str, timeout: float) -> Response:
    # HEAD keeps the exchange body-less; the tuple sets connect and read timeouts.
    return requests.head(
        url,
        headers=_build_headers(),
        timeout=(timeout, timeout),
        allow_redirects=True,
    )


def parse_http_date(value: str) -> int:
    """Parse an RFC 2822 ``Date`` header into Unix nanoseconds.

    The header carries whole seconds only, so the result always has a zero
    sub-second component. Consensus built on these values is therefore only
    accurate to roughly one second.

    Raises:
        ValueError: If *value* is not a valid RFC 2822 date-time.
    """

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError) as exc:
        raise ValueError(f"Unparsable Date header {value!r}") from exc
    if parsed is None:  # pragma: no cover - only on older interpreters
        raise ValueError(f"Unparsable Date header {value!r}")
    return datetime_to_ns(parsed)


def fetch_remote_time(host: str, *, timeout: Optional[float] = None) -> int:
    """Return the absolute time reported by *host* in Unix nanoseconds.

    Every failure mode (network error, timeout, non-2xx status, missing or
    malformed header) is reported as :class:`FetchFailedError`.
    """

    url = f"http://{host}"
    effective_timeout = FETCH_TIMEOUT_S if timeout is None else max(0.0, timeout)
    try:
        response = _send_request(url, effective_timeout)
    except requests.RequestException as exc:
        raise FetchFailedError(f"Request to {host} failed: {exc}") from exc

    status = response.status_code
    if not 200 <= status < 300:
        raise FetchFailedError(f"{host} answered with status {status}")

    header = response.headers.get("Date")
    if not header:
        raise FetchFailedError(f"{host} did not send a Date header")

    try:
        timestamp_ns = parse_http_date(header)
    except ValueError as exc:
        raise FetchFailedError(f"{host} sent an invalid Date header") from exc

    log.debug("Host %s reported %s", host, header)
    return timestamp_ns


__all__ = ["FetchFailedError", "fetch_remote_time", "parse_http_date"]
