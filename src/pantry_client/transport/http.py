# src/pantry_client/transport/http.py

import asyncio
import logging
from collections.abc import AsyncIterator
from time import monotonic
from typing import Any

import httpx

from pantry_client.errors import ApiError, TransportError, TransportErrorKind
from pantry_client.observability import names
from pantry_client.observability.base import MetricsHook, NoOpMetricsHook

from .base import EventSource, Transport

logger = logging.getLogger(__name__)

# Host is irrelevant over a UNIX socket, but httpx needs an absolute URL.
_UNIX_BASE_URL = "http://localhost"


def to_transport_error(error: httpx.RequestError) -> TransportError:
    """Classify an httpx failure. Connection refused and TLS failures are CONNECT.

    Anything else, including a corrupt content-encoding, is PROTOCOL.
    """
    if isinstance(error, httpx.TimeoutException):
        kind = TransportErrorKind.TIMEOUT
    elif isinstance(error, httpx.ConnectError):
        kind = TransportErrorKind.CONNECT
    else:
        kind = TransportErrorKind.PROTOCOL
    name = type(error).__name__
    detail = str(error)
    return TransportError(f"{name}: {detail}" if detail else name, kind)


def _timeout_kwargs(timeout: float | None) -> dict[str, Any]:
    return {} if timeout is None else {"timeout": timeout}


class HttpEventSource(EventSource):
    """Streaming httpx response. Holds its connection until aclose()."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.RequestError as e:
            raise to_transport_error(e) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()

    async def __aenter__(self) -> "HttpEventSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class HttpTransport(Transport):
    """httpx-backed transport over TCP (optionally TLS) or a UNIX socket.

    One AsyncClient per transport. Its connection pool is safe for concurrent
    use; every open stream holds a connection of its own.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_transport: httpx.AsyncBaseTransport,
        timeout: float = 30.0,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=http_transport,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._timeout = timeout
        self.metrics_hook = metrics_hook
        logger.info(
            "Initialized HttpTransport with base_url=%s, timeout=%s", base_url, timeout
        )

    @classmethod
    def over_tcp(
        cls,
        base_url: str,
        *,
        timeout: float = 30.0,
        verify: bool | str = True,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> "HttpTransport":
        return cls(
            base_url.rstrip("/"),
            http_transport=httpx.AsyncHTTPTransport(verify=verify),
            timeout=timeout,
            metrics_hook=metrics_hook,
        )

    @classmethod
    def over_unix_socket(
        cls,
        socket_path: str,
        *,
        timeout: float = 30.0,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> "HttpTransport":
        return cls(
            _UNIX_BASE_URL,
            http_transport=httpx.AsyncHTTPTransport(uds=socket_path),
            timeout=timeout,
            metrics_hook=metrics_hook,
        )

    async def send(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, path)
        start = monotonic()
        try:
            response = await self._client.request(
                method, path, json=json_body, **_timeout_kwargs(timeout)
            )
        except httpx.RequestError as e:
            self.metrics_hook.increment(
                names.PANTRY_REQUEST_ERRORS_TOTAL, labels={"endpoint": path}
            )
            raise to_transport_error(e) from e

        elapsed_ms = 1000 * (monotonic() - start)
        self.metrics_hook.record_latency(
            names.PANTRY_REQUEST_DURATION, elapsed_ms, labels={"endpoint": path}
        )
        self.metrics_hook.increment(
            names.PANTRY_REQUESTS_TOTAL, labels={"endpoint": path}
        )
        logger.debug(
            "%s %s -> %d in %.0fms", method, path, response.status_code, elapsed_ms
        )
        return response

    async def open_stream(
        self,
        path: str,
        json_body: dict[str, Any],
        timeout: float | None = None,
    ) -> HttpEventSource:
        header_timeout = self._timeout if timeout is None else timeout
        logger.debug("Opening stream %s, header timeout %ss", path, header_timeout)
        # No read timeout: the first token may take arbitrarily long.
        request = self._client.build_request(
            "POST",
            path,
            json=json_body,
            timeout=httpx.Timeout(header_timeout, read=None),
        )
        try:
            response = await asyncio.wait_for(
                self._client.send(request, stream=True), header_timeout
            )
        except asyncio.TimeoutError as e:
            self.metrics_hook.increment(
                names.PANTRY_REQUEST_ERRORS_TOTAL, labels={"endpoint": path}
            )
            raise TransportError(
                f"No response headers within {header_timeout}s",
                TransportErrorKind.TIMEOUT,
            ) from e
        except httpx.RequestError as e:
            self.metrics_hook.increment(
                names.PANTRY_REQUEST_ERRORS_TOTAL, labels={"endpoint": path}
            )
            raise to_transport_error(e) from e

        self.metrics_hook.increment(
            names.PANTRY_REQUESTS_TOTAL, labels={"endpoint": path}
        )
        if response.is_success:
            return HttpEventSource(response)

        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        except httpx.RequestError:
            body = ""
        finally:
            await response.aclose()
        raise ApiError(response.status_code, body)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
