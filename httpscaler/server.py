"""Run a WSGI application until a stop event is set."""

from __future__ import annotations

import logging
import ssl
import threading
from socketserver import ThreadingMixIn
from typing import Callable, Mapping, Optional, Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

logger = logging.getLogger(__name__)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)


def _split_addr(addr: str) -> Tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not port:
        raise ValueError(f"address {addr!r} has no port")
    return host.strip("[]"), int(port)


def _shutdown_when_stopped(stop: threading.Event, server: WSGIServer) -> None:
    stop.wait()
    try:
        server.shutdown()
    except Exception:
        logger.exception("failed shutting down server")


def serve_context(
    stop: threading.Event,
    addr: str,
    app: Callable,
    tls_enabled: bool = False,
    tls_config: Optional[Mapping[str, str]] = None,
) -> None:
    """Serve ``app`` on ``addr`` (``host:port``) until ``stop`` is set.

    With TLS enabled, ``tls_config`` supplies ``certificatePath`` and
    ``keyPath``. Returns once the server has shut down.
    """
    host, port = _split_addr(addr)
    ssl_context = None
    if tls_enabled:
        config = tls_config or {}
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(
            config.get("certificatePath", ""), config.get("keyPath", "")
        )

    server = make_server(
        host, port, app, server_class=_ThreadingWSGIServer, handler_class=_QuietHandler
    )
    try:
        if ssl_context is not None:
            server.socket = ssl_context.wrap_socket(server.socket, server_side=True)
        threading.Thread(
            target=_shutdown_when_stopped, args=(stop, server), daemon=True
        ).start()
        server.serve_forever(poll_interval=0.1)
    finally:
        server.server_close()