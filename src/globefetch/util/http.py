from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Any, Callable, Iterable, List, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import FetchTimeout, TransportError, UpstreamUnavailable

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
INDEX_TIMEOUT = 15
CHUNK_SIZE = 64 * 1024
SUPPORTED_SCHEMES = ("http", "https")


class TimeoutHTTPAdapter(HTTPAdapter):
    def __init__(self, *args, timeout: float = DEFAULT_TIMEOUT, **kwargs) -> None:
        self.timeout = timeout
        super().__init__(*args, **kwargs)

    def send(self, request, **kwargs):  # type: ignore[override]
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def create_session(user_agent: str, retries: int = 0, backoff: float = 0.3, status_forcelist: Iterable[int] = (500, 502, 503, 504)) -> requests.Session:
    """Build a session with one adapter per scheme.

    Retries default to zero: the poll loop re-attempts on its own schedule.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff,
        status_forcelist=status_forcelist,
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    adapter = TimeoutHTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _response_socket(resp: requests.Response) -> Optional[socket.socket]:
    raw: Any = getattr(resp, "raw", None)
    conn = getattr(raw, "_connection", None) or getattr(raw, "connection", None)
    sock = getattr(conn, "sock", None)
    if sock is None:
        fp = getattr(getattr(raw, "_fp", None), "fp", None)
        sock = getattr(getattr(fp, "raw", None), "_sock", None)
    return sock if isinstance(sock, socket.socket) else None


def abort_response(resp: requests.Response) -> None:
    """Unblock a reader stuck on ``resp`` from another thread.

    Closing the file object alone leaves a blocked ``recv`` waiting; shutting
    the socket down makes it return immediately.
    """
    sock = _response_socket(resp)
    if sock is not None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            LOGGER.debug("Socket already closed while aborting a response")
    try:
        resp.close()
    except (OSError, ValueError):
        LOGGER.debug("Response close raced with the reader", exc_info=True)


class Fetcher:
    """Single bounded-time GET returning the whole body.

    ``timeout`` bounds the whole request. requests only bounds each socket
    read, so a watchdog thread aborts the response when the deadline passes
    and the blocked read fails over to :class:`FetchTimeout`.
    """

    def __init__(self, session: requests.Session, clock: Callable[[], float] = time.monotonic) -> None:
        self.session = session
        self.clock = clock

    def fetch(self, url: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
        scheme = urlparse(url).scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise TransportError(url, f"unsupported scheme {scheme!r}")

        deadline = self.clock() + timeout
        try:
            resp = self.session.get(url, timeout=timeout, stream=True)
        except requests.Timeout as exc:
            raise FetchTimeout(url, timeout) from exc
        except requests.RequestException as exc:
            raise TransportError(url, str(exc)) from exc

        expired = threading.Event()

        def _expire() -> None:
            expired.set()
            abort_response(resp)

        watchdog = threading.Timer(max(deadline - self.clock(), 0.0), _expire)
        watchdog.daemon = True
        watchdog.start()

        chunks: List[bytes] = []
        try:
            if resp.status_code != 200:
                raise UpstreamUnavailable(url, status=resp.status_code)
            for chunk in resp.iter_content(CHUNK_SIZE):
                if expired.is_set() or self.clock() > deadline:
                    raise FetchTimeout(url, timeout)
                chunks.append(chunk)
        except (requests.RequestException, OSError, ValueError) as exc:
            # reads cut short by the watchdog fail in assorted ways
            if expired.is_set() or isinstance(exc, requests.Timeout) or self.clock() > deadline:
                raise FetchTimeout(url, timeout) from exc
            if isinstance(exc, (requests.RequestException, OSError)):
                raise TransportError(url, str(exc)) from exc
            raise
        finally:
            watchdog.cancel()
            resp.close()

        if expired.is_set():
            # the abort can also look like a clean (truncated) end of body
            raise FetchTimeout(url, timeout)
        body = b"".join(chunks)
        LOGGER.debug("Fetched %d bytes from %s", len(body), url)
        return body
