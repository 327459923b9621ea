# src/pantry_client/session.py

"""Prompt sessions.

A SessionHandle is one generation context on one loaded model. Its state
machine is explicit:

    CREATED -> OPEN -> (STREAMING -> OPEN)* -> CLOSED

CLOSED is reachable from every state (error or close()) and is terminal.
Only one generation may be outstanding per session.
"""

from __future__ import annotations

import logging
from enum import Enum
from time import monotonic
from typing import TYPE_CHECKING, Any
from uuid import UUID

from .errors import StateError
from .models import LLMFilter, LLMPreference, LLMRunningStatus, LLMStatus
from .observability import names
from .observability.base import MetricsHook
from .permissions import Capability
from .streaming.decoder import decode_events
from .streaming.events import Completed, Error, StreamEvent, is_terminal
from .transport.base import EventSource

if TYPE_CHECKING:
    from .client import PantryClient

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CREATED = "created"
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED = "closed"


class EventStream:
    """Lazy, single-use sequence of StreamEvents for one prompt.

    Ends after the first Completed or Error. Closing it early releases the
    connection, which the server treats as a client disconnect.

    Usage:
        async with await session.prompt("Hello") as stream:
            async for event in stream:
                ...
    """

    def __init__(self, session: SessionHandle, source: EventSource) -> None:
        self._session = session
        self._source = source
        self._events = decode_events(source.aiter_bytes())
        self._metrics = session.metrics_hook
        self._started = monotonic()
        self._finished = False
        self._closed = False
        self.result: Completed | Error | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration

        try:
            event = await self._events.__anext__()
        except BaseException:
            await self.aclose()
            raise

        self._metrics.increment(
            names.PANTRY_STREAM_EVENTS_TOTAL, labels={"kind": type(event).__name__}
        )
        if is_terminal(event):
            self._finished = True
            self.result = event  # type: ignore[assignment]
            await self.aclose()
            self._record_end(event)
            self._session._stream_finished(self, event)
        return event

    async def collect(self) -> list[StreamEvent]:
        """Consume the rest of the stream."""
        return [event async for event in self]

    async def aclose(self) -> None:
        """Release the connection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._events.aclose()
        finally:
            await self._source.aclose()
            if not self._finished:
                self._session._stream_abandoned(self)

    def _record_end(self, event: StreamEvent) -> None:
        elapsed_ms = 1000 * (monotonic() - self._started)
        self._metrics.record_latency(names.PANTRY_STREAM_DURATION, elapsed_ms)
        if isinstance(event, Error):
            self._metrics.increment(
                names.PANTRY_STREAM_ERRORS_TOTAL, labels={"source": event.source.value}
            )

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class SessionHandle:
    """One prompt/response context bound to one model on the server.

    Owned by the task that created it; not meant to be shared. Obtain one
    through PantryClient.create_session (or its _id/_flex variants), which
    return it already OPEN.
    """

    def __init__(
        self,
        client: PantryClient,
        *,
        llm_id: UUID | None = None,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        self._client = client
        self._llm_id = llm_id
        self._filter = filter
        self._preference = preference
        self._requested_parameters = dict(parameters or {})
        self._state = SessionState.CREATED
        self._stream: EventStream | None = None

        self.id: UUID | None = None
        self.llm_status: LLMStatus | None = None
        # parameters actually accepted by the LLM, user and system
        self.session_parameters: dict[str, Any] = {}

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def metrics_hook(self) -> MetricsHook:
        return self._client.metrics_hook

    @property
    def llm_uuid(self) -> str | None:
        return self.llm_status.uuid if self.llm_status is not None else None

    def _require_state(self, operation: str, *allowed: SessionState) -> None:
        if self._state not in allowed:
            raise StateError(
                f"Cannot {operation} a session that is {self._state.value}",
                self._state,
            )

    async def create(self, *, timeout: float | None = None) -> SessionHandle:
        """Create the session on the server.

        Raises:
            StateError: If not CREATED.
            AuthorizationError: Without the session capability. No request is made.
        """
        self._require_state("create", SessionState.CREATED)
        client = self._client
        identity = client.identity
        try:
            client.permissions.require(Capability.SESSION)
            if self._llm_id is not None:
                response = await client.api.create_session_id(
                    identity.user_id,
                    identity.api_key,
                    self._llm_id,
                    self._requested_parameters,
                    timeout=timeout,
                )
            elif self._filter is not None or self._preference is not None:
                response = await client.api.create_session_flex(
                    identity.user_id,
                    identity.api_key,
                    self._filter,
                    self._preference,
                    self._requested_parameters,
                    timeout=timeout,
                )
            else:
                response = await client.api.create_session(
                    identity.user_id,
                    identity.api_key,
                    self._requested_parameters,
                    timeout=timeout,
                )
        except BaseException:
            self._state = SessionState.CLOSED
            raise

        if self._state is SessionState.CLOSED:
            raise StateError("Session closed while it was being created", self._state)

        self.id = response.session_id
        self.llm_status = response.llm_status
        self.session_parameters = response.session_parameters
        self._state = SessionState.OPEN
        self.metrics_hook.increment(names.PANTRY_SESSIONS_CREATED)
        logger.info("Created session %s on llm %s", self.id, self.llm_uuid)
        return self

    async def prompt(
        self,
        text: str,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> EventStream:
        """Start generation and return its event stream.

        `parameters` are per-call settings such as temperature; which ones an
        LLM accepts is listed in its LLMStatus.user_parameters.

        Raises:
            StateError: Unless OPEN (including while a stream is outstanding).
            AuthorizationError: Without the session capability.
            TransportError, ApiError: Opening the stream failed. The session
                is CLOSED afterwards.
        """
        self._require_state("prompt", SessionState.OPEN)
        self._client.permissions.require(Capability.SESSION)
        # claimed before the first await so a concurrent prompt sees STREAMING
        self._state = SessionState.STREAMING

        identity = self._client.identity
        try:
            source = await self._client.api.prompt_session_stream(
                identity.user_id,
                identity.api_key,
                self.id,  # type: ignore[arg-type]
                self.llm_uuid,  # type: ignore[arg-type]
                text,
                dict(parameters or {}),
                timeout=timeout,
            )
        except BaseException as e:
            self._mark_closed(f"stream failed to open: {e!r}")
            raise

        if self._state is not SessionState.STREAMING:
            # closed by the caller while the stream was opening
            await source.aclose()
            raise StateError("Session closed while opening the stream", self._state)

        logger.debug("Session %s streaming, prompt length %d", self.id, len(text))
        self._stream = EventStream(self, source)
        return self._stream

    async def interrupt(self, *, timeout: float | None = None) -> LLMRunningStatus:
        """Ask the server to stop generating after the next token.

        Events already produced may still arrive on the open stream.
        """
        self._require_state("interrupt", SessionState.OPEN, SessionState.STREAMING)
        self._client.permissions.require(Capability.SESSION)
        identity = self._client.identity
        logger.info("Interrupting session %s", self.id)
        return await self._client.api.interrupt_session(
            identity.user_id,
            identity.api_key,
            self.llm_uuid,  # type: ignore[arg-type]
            self.id,  # type: ignore[arg-type]
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the session and release any open stream. Idempotent."""
        stream, self._stream = self._stream, None
        self._mark_closed("closed by caller")
        if stream is not None:
            await stream.aclose()

    def _mark_closed(self, reason: str) -> None:
        if self._state is SessionState.CLOSED:
            return
        was_open = self._state is not SessionState.CREATED
        self._state = SessionState.CLOSED
        if was_open:
            self.metrics_hook.increment(names.PANTRY_SESSIONS_CLOSED)
        logger.info("Session %s closed: %s", self.id, reason)

    def _stream_finished(self, stream: EventStream, event: StreamEvent) -> None:
        if self._stream is stream:
            self._stream = None
        if isinstance(event, Error):
            self._mark_closed(f"{event.source.value} error: {event.message}")
        elif self._state is SessionState.STREAMING:
            self._state = SessionState.OPEN

    def _stream_abandoned(self, stream: EventStream) -> None:
        if self._stream is stream:
            self._stream = None
        if self._state is not SessionState.CLOSED:
            logger.warning("Session %s stream released before completion", self.id)
        self._mark_closed("stream released before completion")

    async def __aenter__(self) -> SessionHandle:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
