"""HTTP endpoint that publishes queue counts, and a client for it."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from typing import Callable, Iterable
from urllib.parse import urlsplit, urlunsplit

from httpscaler.queue import CountReader, Counts

logger = logging.getLogger(__name__)

COUNTS_PATH = "/queue"
_REQUEST_TIMEOUT = 10.0


def _respond(start_response: Callable, status: str, body: bytes, content_type: str) -> Iterable[bytes]:
    start_response(
        status,
        [("Content-Type", content_type), ("Content-Length", str(len(body)))],
    )
    return [body]


def make_counts_app(reader: CountReader) -> Callable:
    """WSGI application serving ``reader``'s counts as JSON at ``/queue``."""
    logger.info("adding queue counts route path=%s", COUNTS_PATH)

    def app(environ, start_response):
        if environ.get("PATH_INFO", "") != COUNTS_PATH:
            return _respond(start_response, "404 Not Found", b"404 page not found\n",
                            "text/plain; charset=utf-8")
        try:
            counts = reader.current()
        except Exception:
            logger.exception("getting queue size")
            return _respond(start_response, "500 Internal Server Error",
                            b"error getting queue size", "text/plain; charset=utf-8")
        try:
            body = (counts.to_json() + "\n").encode("utf-8")
        except Exception:
            logger.exception("encoding QueueCounts")
            return _respond(start_response, "500 Internal Server Error",
                            b"error encoding queue counts", "text/plain; charset=utf-8")
        return _respond(start_response, "200 OK", body, "application/json")

    return app


def get_counts(interceptor_url: str) -> Counts:
    """Fetch queue counts from the interceptor at ``interceptor_url``.

    The URL's path is replaced by ``/queue``. Raises :class:`OSError` if the
    request fails and :class:`ValueError` if the response cannot be decoded.
    """
    parts = urlsplit(interceptor_url)
    url = urlunsplit(parts._replace(path=COUNTS_PATH))
    try:
        with urllib.request.urlopen(url, timeout=_REQUEST_TIMEOUT) as response:
            body = response.read()
    except urllib.error.HTTPError as exc:
        body = exc.read()
        exc.close()
    except OSError as exc:
        raise OSError(f"requesting the queue counts from {url}: {exc}") from exc
    try:
        return Counts.from_json(body)
    except ValueError as exc:
        raise ValueError(f"decoding response from the interceptor at {url}: {exc}") from exc