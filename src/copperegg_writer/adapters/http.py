"""httpx-backed client for the sink's REST API.

Every call carries the JSON content type and Basic credentials, honours the
configured proxy and read timeout, and returns an HttpResponse instead of
raising on transport failures.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import httpx

from copperegg_writer.core.models import HttpResponse
from copperegg_writer.core.settings import WriterSettings

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json; charset=utf-8"


class SinkClient:
    """SinkClientPort implementation over a shared httpx.Client.

    httpx.Client is safe to share between the host's writer threads. close()
    waits for the last open session() to end before releasing the pool, so
    a stop() racing a write() never closes the client under it.

    Example:
        ```python
        client = SinkClient.from_settings(settings)
        with client.session():
            response = client.request("GET", "/dashboards.json")
        client.close()
        ```
    """

    def __init__(
        self,
        base_url: str,
        basic_auth: str,
        read_timeout_ms: int,
        proxy_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API base URL; request paths are appended verbatim.
            basic_auth: Base64 credentials for the Authorization header.
            read_timeout_ms: Read timeout in milliseconds. Connect uses none.
            proxy_url: Optional HTTP proxy URL.
            transport: Optional transport, used instead of the network (and
                of the proxy) when given.
        """
        self._base_url = base_url
        headers = {
            "Content-Type": CONTENT_TYPE,
            "Authorization": f"Basic {basic_auth}",
        }
        timeout = httpx.Timeout(None, read=read_timeout_ms / 1000.0)
        if transport is not None:
            self._client = httpx.Client(
                headers=headers, timeout=timeout, transport=transport
            )
        else:
            self._client = httpx.Client(headers=headers, timeout=timeout, proxy=proxy_url)
        # The sink gets no Accept header.
        self._client.headers.pop("Accept", None)

        self._lock = threading.Lock()
        self._sessions = 0
        self._closing = False

    @classmethod
    def from_settings(
        cls,
        settings: WriterSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> "SinkClient":
        return cls(
            base_url=settings.url,
            basic_auth=settings.basic_auth,
            read_timeout_ms=settings.read_timeout_ms,
            proxy_url=settings.proxy_url,
            transport=transport,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def url_for(self, path: str) -> str:
        return self._base_url + path

    @contextmanager
    def session(self) -> Iterator["SinkClient"]:
        """Keep the connection pool open for the duration of the block."""
        with self._lock:
            self._sessions += 1
        try:
            yield self
        finally:
            with self._lock:
                self._sessions -= 1
                release = self._closing and self._sessions == 0
            if release:
                self._client.close()

    def request(
        self, method: str, path: str, body: str | None = None
    ) -> HttpResponse:
        """Send one request and drain its response.

        Args:
            method: HTTP method (GET, POST or PUT).
            path: Path and query appended to the base URL.
            body: Optional JSON text, sent UTF-8 encoded.

        Returns:
            HttpResponse with the status and body, or with ``error`` set and
            status 0 when the call failed before a response arrived.
        """
        url = self.url_for(path)
        content = body.encode("utf-8") if body is not None else None
        try:
            response = self._client.request(method, url, content=content)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("%s %s failed: %s", method, url, e)
            return HttpResponse(status=0, error=e)
        except RuntimeError as e:
            # httpx raises RuntimeError once the client has been closed.
            if not self._client.is_closed:
                raise
            logger.debug("%s %s on a closed client: %s", method, url, e)
            return HttpResponse(status=0, error=e)

        result = HttpResponse(status=response.status_code, body=response.content)
        if response.status_code != 200:
            logger.debug(
                "%s %s returned %d: %s", method, url, result.status, result.text
            )
        return result

    def close(self) -> None:
        """Release the connection pool once no session() is open."""
        with self._lock:
            self._closing = True
            release = self._sessions == 0
        if release:
            self._client.close()
