"""Routing keys built from hosts and path prefixes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from urllib.parse import urlsplit

Key = str


@dataclass
class RouteTarget:
    """A scaled HTTP application: where its traffic comes from and how it scales.

    ``hosts`` and ``path_prefixes`` of ``None`` match any host or path.
    ``creation_timestamp`` is in seconds; older targets win routing conflicts.
    """

    namespace: str = ""
    name: str = ""
    hosts: Optional[List[str]] = None
    path_prefixes: Optional[List[str]] = None
    creation_timestamp: float = 0.0
    target_pending_requests: Optional[int] = None
    min_replicas: Optional[int] = None
    max_replicas: Optional[int] = None
    rate_window: Optional[timedelta] = None
    rate_granularity: Optional[timedelta] = None


def new_key(host: str, path: str) -> Key:
    """Normalised key ``//host/path/`` with any port and surrounding slashes removed."""
    colon = host.rfind(":")
    if colon != -1:
        host = host[:colon]
    path = path.strip("/")
    if path:
        path += "/"
    return f"//{host}/{path}"


def _host_of(netloc: str) -> str:
    return netloc.rpartition("@")[2]


def new_key_from_url(url: Optional[str]) -> Optional[Key]:
    """Key for the host and path of ``url``, or None if there is no URL."""
    if url is None:
        return None
    parts = urlsplit(url)
    return new_key(_host_of(parts.netloc), parts.path)


def new_key_from_request(url: Optional[str], host: str = "") -> Optional[Key]:
    """Key for a request to ``url``; a non-empty ``host`` header overrides the URL's host."""
    if url is None:
        return None
    parts = urlsplit(url)
    return new_key(host or _host_of(parts.netloc), parts.path)


def new_keys_from_target(target: Optional[RouteTarget]) -> Optional[List[Key]]:
    """Every key the target answers for: each host combined with each path prefix."""
    if target is None:
        return None
    hosts = target.hosts if target.hosts is not None else [""]
    prefixes = target.path_prefixes if target.path_prefixes is not None else [""]
    return [new_key(host, prefix) for host in hosts for prefix in prefixes]