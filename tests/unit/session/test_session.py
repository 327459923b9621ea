# tests/unit/session/test_session.py

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from pantry_client.errors import (
    ApiError,
    AuthorizationError,
    StateError,
    TransportError,
    TransportErrorKind,
)
from pantry_client.models import LLMFilter
from pantry_client.observability import names
from pantry_client.permissions import Capability, PermissionSet
from pantry_client.session import SessionHandle, SessionState
from pantry_client.streaming import (
    Completed,
    Error,
    ErrorSource,
    Heartbeat,
    TokenChunk,
)

HEL = {"type": "PromptProgress", "previous": "", "next": "Hel"}
LO = {"type": "PromptProgress", "previous": "Hel", "next": "lo"}
DONE = {"type": "PromptCompletion", "previous": "Hello"}


class FakeServer:
    """Routes requests by path and records them.

    `streams` holds one SSE body per prompt, consumed in order, unless
    `by_prompt` has a body for that prompt text.
    """

    def __init__(self, session_created: dict[str, Any]) -> None:
        self.session_created = session_created
        self.streams: list[Any] = []
        self.by_prompt: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/create_session"):
            return httpx.Response(200, json=self.session_created)
        if path == "/prompt_session_stream":
            prompt = json.loads(request.content)["prompt"]
            if prompt in self.by_prompt:
                body = self.by_prompt.pop(prompt)
            else:
                body = self.streams.pop(0)
            if isinstance(body, Exception):
                raise body
            return httpx.Response(
                200, content=body, headers={"content-type": "text/event-stream"}
            )
        if path == "/interrupt_session":
            return httpx.Response(
                200,
                json={
                    "llm_info": self.session_created["llm_status"],
                    "uuid": self.session_created["llm_status"]["uuid"],
                },
            )
        return httpx.Response(404, text="no such endpoint")


@pytest.fixture
def server(session_created: dict[str, Any]) -> FakeServer:
    return FakeServer(session_created)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_opens_session(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)

        session = await client.create_session({"temperature": 0.7})

        assert session.state is SessionState.OPEN
        assert str(session.id) == server.session_created["session_id"]
        assert session.llm_uuid == server.session_created["llm_status"]["uuid"]
        assert session.session_parameters == {"temperature": 0.7}
        body = json.loads(server.requests[0].content)
        assert body["user_session_parameters"] == {"temperature": 0.7}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_variants_pick_endpoint(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)

        await client.create_session()
        await client.create_session_id(server.session_created["session_id"])
        await client.create_session_flex(LLMFilter(family_id="llama"))

        assert server.paths == [
            "/create_session",
            "/create_session_id",
            "/create_session_flex",
        ]
        assert json.loads(server.requests[2].content)["filter"]["family_id"] == "llama"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_session_capability(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server, PermissionSet.of(Capability.VIEW_LLMS))
        session = SessionHandle(client)

        with pytest.raises(AuthorizationError) as exc_info:
            await session.create()

        assert exc_info.value.capability is Capability.SESSION
        assert server.requests == []
        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_failure_closes(self, make_client: Callable) -> None:
        client = make_client(lambda r: httpx.Response(503, text="no llm running"))
        session = SessionHandle(client)

        with pytest.raises(ApiError):
            await session.create()

        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_create_twice_rejected(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)
        session = await client.create_session()

        with pytest.raises(StateError):
            await session.create()
        await client.aclose()


class TestPrompt:
    @pytest.mark.asyncio
    async def test_stream_to_completion(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL, LO, DONE))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("Say hello", {"max_tokens": 5}) as stream:
            assert session.state is SessionState.STREAMING
            events = await stream.collect()

        assert [type(e) for e in events] == [TokenChunk, TokenChunk, Completed]
        text = "".join(e.text for e in events if isinstance(e, TokenChunk))
        assert text == events[-1].output == "Hello"
        assert stream.result == events[-1]
        assert session.state is SessionState.OPEN

        body = json.loads(server.requests[-1].content)
        assert body["prompt"] == "Say hello"
        assert body["parameters"] == {"max_tokens": 5}
        assert body["llm_uuid"] == session.llm_uuid
        await client.aclose()

    @pytest.mark.asyncio
    async def test_session_reusable_after_completion(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.extend([sse(HEL, LO, DONE), sse(DONE)])
        client = make_client(server)
        session = await client.create_session()

        for _ in range(2):
            async with await session.prompt("again") as stream:
                await stream.collect()

        assert session.state is SessionState.OPEN
        assert server.paths.count("/prompt_session_stream") == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_heartbeats_pass_through(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(b": keep-alive\n\n" + sse({"type": "Other"}, DONE))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("hi") as stream:
            events = await stream.collect()

        assert [type(e) for e in events] == [Heartbeat, Heartbeat, Completed]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_prompt_before_create(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)
        session = SessionHandle(client)

        with pytest.raises(StateError) as exc_info:
            await session.prompt("too early")

        assert exc_info.value.state is SessionState.CREATED
        assert server.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_second_prompt_while_streaming(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL, LO, DONE))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("first") as stream:
            with pytest.raises(StateError) as exc_info:
                await session.prompt("second")
            assert exc_info.value.state is SessionState.STREAMING
            await stream.collect()

        assert server.paths.count("/prompt_session_stream") == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_error_closes_session(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL, {"type": "PromptError", "message": "oom"}))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("hi") as stream:
            events = await stream.collect()

        assert events[-1] == Error(
            message="oom", source=ErrorSource.SERVER, envelope=events[-1].envelope
        )
        assert session.state is SessionState.CLOSED
        with pytest.raises(StateError):
            await session.prompt("again")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_malformed_frame_closes_session(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL) + b"data: not json\n\n" + sse(DONE))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("hi") as stream:
            events = await stream.collect()

        assert [type(e) for e in events] == [TokenChunk, Error]
        assert events[-1].source is ErrorSource.PROTOCOL
        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_drop_mid_stream(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        async def dropped() -> AsyncIterator[bytes]:
            yield sse(HEL)
            raise httpx.ReadError("connection reset by peer")

        server.streams.append(dropped())
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("hi") as stream:
            events = await stream.collect()

        assert isinstance(events[0], TokenChunk)
        assert isinstance(events[-1], Error)
        assert events[-1].source is ErrorSource.TRANSPORT
        assert events[-1].kind is TransportErrorKind.PROTOCOL
        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_open_timeout_closes_session(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        server.streams.append(httpx.ReadTimeout("timed out"))
        client = make_client(server)
        session = await client.create_session()

        with pytest.raises(TransportError) as exc_info:
            await session.prompt("hi", timeout=0.5)

        assert exc_info.value.kind is TransportErrorKind.TIMEOUT
        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_early_release_closes_session(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL, LO, DONE))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("hi") as stream:
            first = await stream.__anext__()

        assert isinstance(first, TokenChunk)
        assert stream.closed
        assert stream.result is None
        assert session.state is SessionState.CLOSED
        assert [e async for e in stream] == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_capability_on_prompt(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)
        session = await client.create_session()
        client._permissions = PermissionSet()

        with pytest.raises(AuthorizationError):
            await session.prompt("hi")

        assert server.paths == ["/create_session"]
        assert session.state is SessionState.OPEN
        await client.aclose()


class TestConcurrentSessions:
    @pytest.mark.asyncio
    async def test_streams_stay_separate(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        started: list[str] = []
        both_streaming = asyncio.Event()

        async def words(label: str, parts: list[str]) -> AsyncIterator[bytes]:
            # neither body produces a frame until both streams are open
            started.append(label)
            if len(started) == 2:
                both_streaming.set()
            await both_streaming.wait()
            for i, part in enumerate(parts):
                await asyncio.sleep(0)
                previous = "".join(parts[:i])
                yield sse(
                    {"type": "PromptProgress", "previous": previous, "next": part}
                )
            await asyncio.sleep(0)
            yield sse({"type": "PromptCompletion", "previous": "".join(parts)})

        server.by_prompt["english"] = words("a", ["Good", " morning"])
        server.by_prompt["french"] = words("b", ["Bonjour", " tout", "!"])
        client = make_client(server)
        first = await client.create_session()
        second = await client.create_session()

        async def run(session: SessionHandle, text: str) -> list:
            async with await session.prompt(text) as stream:
                return await stream.collect()

        events_a, events_b = await asyncio.wait_for(
            asyncio.gather(run(first, "english"), run(second, "french")), 5
        )

        expected = ((events_a, "Good morning"), (events_b, "Bonjour tout!"))
        for events, output in expected:
            text = "".join(e.text for e in events if isinstance(e, TokenChunk))
            assert isinstance(events[-1], Completed)
            assert text == events[-1].output == output
        assert sorted(started) == ["a", "b"]
        assert first.state is SessionState.OPEN
        assert second.state is SessionState.OPEN
        await client.aclose()


class TestCloseAndInterrupt:
    @pytest.mark.asyncio
    async def test_close_is_idempotent(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)
        session = await client.create_session()

        await session.close()
        await session.close()

        assert session.closed
        with pytest.raises(StateError) as exc_info:
            await session.prompt("hi")
        assert exc_info.value.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_releases_active_stream(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL, LO, DONE))
        client = make_client(server)
        session = await client.create_session()
        stream = await session.prompt("hi")

        await session.close()

        assert stream.closed
        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_closes(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)

        async with await client.create_session() as session:
            assert session.state is SessionState.OPEN

        assert session.state is SessionState.CLOSED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_interrupt(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        server.streams.append(sse(HEL, LO, DONE))
        client = make_client(server)
        session = await client.create_session()

        async with await session.prompt("hi") as stream:
            await session.interrupt()
            await stream.collect()

        body = json.loads(server.requests[-1].content)
        assert server.paths[-1] == "/interrupt_session"
        assert body["session_id"] == str(session.id)
        assert body["llm_uuid"] == session.llm_uuid
        await client.aclose()

    @pytest.mark.asyncio
    async def test_interrupt_closed_session(
        self, make_client: Callable, server: FakeServer
    ) -> None:
        client = make_client(server)
        session = await client.create_session()
        await session.close()

        with pytest.raises(StateError):
            await session.interrupt()
        await client.aclose()


class TestSessionMetrics:
    @pytest.mark.asyncio
    async def test_lifecycle_metrics(
        self, make_client: Callable, server: FakeServer, sse: Callable
    ) -> None:
        hook = MagicMock()
        server.streams.append(sse(HEL, DONE))
        client = make_client(server, metrics_hook=hook)

        async with await client.create_session() as session:
            async with await session.prompt("hi") as stream:
                await stream.collect()

        counted = [c.args[0] for c in hook.increment.call_args_list]
        assert counted.count(names.PANTRY_SESSIONS_CREATED) == 1
        assert counted.count(names.PANTRY_SESSIONS_CLOSED) == 1
        assert counted.count(names.PANTRY_STREAM_EVENTS_TOTAL) == 2
        latencies = [c.args[0] for c in hook.record_latency.call_args_list]
        assert names.PANTRY_STREAM_DURATION in latencies
