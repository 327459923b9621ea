# src/pantry_client/transport/base.py

from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from pantry_client.observability.base import MetricsHook


class EventSource(Protocol):
    """An open streaming response.

    Owns one connection until closed. aclose() is idempotent.
    """

    @property
    def closed(self) -> bool: ...

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Raw body bytes as they arrive.

        Raises:
            TransportError: If the connection fails mid-stream.
        """
        ...

    async def aclose(self) -> None: ...


class Transport(Protocol):
    """Protocol for talking to a Pantry server.

    Design principles:
    - Transport only: maps failures to TransportError, never retries
    - One stream, one connection: streams never share frames
    """

    metrics_hook: MetricsHook

    async def send(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Request/response call. Returns the response whatever its status.

        Raises:
            TransportError: Connect, timeout or protocol failure.
        """
        ...

    async def open_stream(
        self,
        path: str,
        json_body: dict[str, Any],
        timeout: float | None = None,
    ) -> EventSource:
        """Open a long-lived streaming response.

        `timeout` bounds only the wait for response headers. Body reads are
        unbounded, since a model may take long to produce its first token.

        Raises:
            TransportError: Connect, timeout or protocol failure.
            ApiError: The server refused the stream with a non-success status.
        """
        ...

    async def aclose(self) -> None: ...
