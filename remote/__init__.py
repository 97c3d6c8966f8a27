"""Remote time sources."""

from .client import FetchFailedError, fetch_remote_time, parse_http_date
from .hosts import CFG, DEFAULT_HOSTS

__all__ = [
    "CFG",
    "DEFAULT_HOSTS",
    "FetchFailedError",
    "fetch_remote_time",
    "parse_http_date",
]
