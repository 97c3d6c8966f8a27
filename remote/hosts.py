"""Static host set used as distributed time oracles."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

# Only the ``Date`` response header of these hosts is used, never their content.
DEFAULT_HOSTS: Tuple[str, ...] = (
    "facebook.com",
    "microsoft.com",
    "amazon.com",
    "google.com",
    "youtube.com",
    "twitter.com",
    "reddit.com",
    "netflix.com",
    "bing.com",
    "twitch.tv",
    "myshopify.com",
    "wikipedia.org",
)


def _read_hosts() -> Tuple[str, ...]:
    """Return the configured host set, falling back to :data:`DEFAULT_HOSTS`."""

    value = os.getenv("HTTP_CLOCK_HOSTS")
    if value is None:
        return DEFAULT_HOSTS
    hosts = []
    for item in value.split(","):
        host = item.strip()
        if host and host not in hosts:
            hosts.append(host)
    return tuple(hosts) or DEFAULT_HOSTS


@dataclass(frozen=True)
class _HostConfig:
    """Namespace for host-related configuration values."""

    HOSTS: Tuple[str, ...]


CFG = _HostConfig(HOSTS=_read_hosts())


__all__ = ["CFG", "DEFAULT_HOSTS"]
