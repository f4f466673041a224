"""Service endpoints, namespaced names and small object helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import urlsplit


@dataclass(frozen=True)
class NamespacedName:
    """Namespace and name that identify an object."""

    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class EndpointAddress:
    ip: str = ""
    hostname: str = ""


@dataclass
class EndpointPort:
    port: int = 0


@dataclass
class EndpointSubset:
    addresses: List[EndpointAddress] = field(default_factory=list)
    ports: List[EndpointPort] = field(default_factory=list)


@dataclass
class Endpoints:
    """The addresses backing a service."""

    namespace: str = ""
    name: str = ""
    subsets: List[EndpointSubset] = field(default_factory=list)


GetEndpointsFunc = Callable[[str, str], Endpoints]


def endpoints_for_service(
    namespace: str,
    service_name: str,
    service_port: str,
    endpoints_fn: GetEndpointsFunc,
) -> List[str]:
    """URLs ``http://<ip>:<port>`` for every address of the service.

    Errors from ``endpoints_fn`` propagate; an address that does not form a
    valid URL raises :class:`ValueError`.
    """
    endpoints = endpoints_fn(namespace, service_name)
    urls = []
    for subset in endpoints.subsets:
        for address in subset.addresses:
            url = f"http://{address.ip}:{service_port}"
            urlsplit(url).port  # raises ValueError on a malformed host or port
            urls.append(url)
    return urls


def _host_and_port(url: str) -> Tuple[str, str]:
    netloc = urlsplit(url).netloc.rpartition("@")[2]
    if netloc.startswith("["):
        host, _, rest = netloc[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
        return host, port
    if ":" in netloc:
        host, _, port = netloc.rpartition(":")
        return host, port
    return netloc, ""


def fake_endpoints_for_url(url: str, namespace: str, name: str, num: int) -> Endpoints:
    """Endpoints with one subset holding ``num`` addresses, all for ``url``'s host."""
    return fake_endpoints_for_urls([url] * num, namespace, name)


def fake_endpoints_for_urls(urls: List[str], namespace: str, name: str) -> Endpoints:
    """Endpoints with one subset holding an address and a port per URL.

    Raises :class:`ValueError` if a URL has no numeric port.
    """
    addresses = []
    ports = []
    for url in urls:
        host, port = _host_and_port(url)
        addresses.append(EndpointAddress(ip=host, hostname=host))
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"invalid port {port!r} in {url!r}") from None
        ports.append(EndpointPort(port=port_number))
    return Endpoints(
        namespace=namespace,
        name=name,
        subsets=[EndpointSubset(addresses=addresses, ports=ports)],
    )


def namespaced_name_from_object(obj: Any) -> Optional[NamespacedName]:
    """Namespaced name of an object with ``namespace`` and ``name``, or None."""
    if obj is None:
        return None
    return NamespacedName(namespace=obj.namespace, name=obj.name)


def namespaced_name_from_scaled_object_ref(ref: Any) -> Optional[NamespacedName]:
    """Namespaced name of a scaled-object reference, or None."""
    if ref is None:
        return None
    return NamespacedName(namespace=ref.namespace, name=ref.name)


def object_kind(obj: Any) -> str:
    """Kind of an object: the name of its class (or of ``obj`` if it is a class)."""
    if isinstance(obj, type):
        return obj.__name__
    return type(obj).__name__