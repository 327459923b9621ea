# src/pantry_client/streaming/decoder.py

"""Server-sent events decoding.

Two layers:
- SSEParser turns text into SSEFrame values (one per blank-line-delimited frame).
- decode_events turns a byte stream into StreamEvent values, mapping each
  frame's JSON payload onto the closed set of event variants.

Malformed input is never skipped: it ends the stream with a single Error
event, since a gap in token output would silently corrupt the result.
"""

import codecs
import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pantry_client.errors import ProtocolError, TransportError
from pantry_client.models import EventEnvelope

from .events import (
    Completed,
    Error,
    ErrorSource,
    Heartbeat,
    StreamEvent,
    TokenChunk,
    is_terminal,
)

logger = logging.getLogger(__name__)

_EOL = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class SSEFrame:
    """One dispatched SSE frame. `data` is None when the frame had no data field."""

    data: str | None
    event: str | None = None
    id: str | None = None
    retry: int | None = None


class SSEParser:
    """Incremental SSE parser. Feed decoded text, get back complete frames."""

    def __init__(self) -> None:
        self._buffer = ""
        self._reset_frame()

    def _reset_frame(self) -> None:
        self._data: list[str] = []
        self._event: str | None = None
        self._id: str | None = None
        self._retry: int | None = None
        self._pending = False

    def feed(self, text: str) -> list[SSEFrame]:
        self._buffer += text
        frames = []
        while (line := self._next_line()) is not None:
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def close(self) -> None:
        """End of input. A trailing frame without its blank line is discarded."""
        if self._pending or self._buffer:
            logger.debug("Discarding incomplete SSE frame at end of stream")
        self._buffer = ""
        self._reset_frame()

    def _next_line(self) -> str | None:
        match = _EOL.search(self._buffer)
        if match is None:
            return None
        # a lone trailing \r may be the first half of \r\n
        if match.group() == "\r" and match.end() == len(self._buffer):
            return None
        line = self._buffer[: match.start()]
        self._buffer = self._buffer[match.end() :]
        return line

    def _process_line(self, line: str) -> SSEFrame | None:
        if not line:
            if not self._pending:
                return None
            frame = SSEFrame(
                data="\n".join(self._data) if self._data else None,
                event=self._event,
                id=self._id,
                retry=self._retry,
            )
            self._reset_frame()
            return frame

        self._pending = True
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            self._id = value
        elif field == "retry" and value.isdigit():
            self._retry = int(value)
        return None


def _required_text(body: dict[str, Any], key: str, kind: str) -> str:
    value = body.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"{kind} event is missing string field '{key}'")
    return value


def parse_event(frame: SSEFrame) -> StreamEvent:
    """Map one frame onto a StreamEvent.

    Raises:
        ProtocolError: invalid JSON, missing or unknown discriminator,
            or a variant without its required fields.
    """
    if frame.data is None:
        return Heartbeat()

    try:
        payload = json.loads(frame.data)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON in event frame: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError("Event frame payload is not a JSON object")

    body = payload.get("event")
    if not isinstance(body, dict) or "type" not in body:
        raise ProtocolError("Event frame has no 'type' discriminator")

    try:
        envelope = EventEnvelope.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid event envelope: {e}") from e

    kind = body["type"]
    if kind == "PromptProgress":
        return TokenChunk(
            text=_required_text(body, "next", kind),
            previous=body.get("previous") or "",
            envelope=envelope,
        )
    if kind == "PromptCompletion":
        return Completed(
            output=_required_text(body, "previous", kind), envelope=envelope
        )
    if kind == "PromptError":
        return Error(
            message=_required_text(body, "message", kind),
            source=ErrorSource.SERVER,
            envelope=envelope,
        )
    if kind == "Other":
        return Heartbeat(envelope=envelope)
    raise ProtocolError(f"Unknown event type: {kind!r}")


async def decode_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode a raw SSE byte stream into StreamEvents.

    Stops after the first Completed or Error. If the byte stream ends or
    fails before that, a final Error with source TRANSPORT is yielded.
    """
    parser = SSEParser()
    utf8 = codecs.getincrementaldecoder("utf-8")()

    try:
        async for chunk in chunks:
            try:
                text = utf8.decode(chunk)
            except UnicodeDecodeError as e:
                logger.warning("Undecodable bytes in event stream: %s", e)
                yield Error(message=f"Invalid UTF-8: {e}", source=ErrorSource.PROTOCOL)
                return

            for frame in parser.feed(text):
                try:
                    event = parse_event(frame)
                except ProtocolError as e:
                    logger.warning("Malformed event frame: %s", e)
                    yield Error(message=str(e), source=ErrorSource.PROTOCOL)
                    return

                yield event
                if is_terminal(event):
                    return
    except TransportError as e:
        logger.warning("Event stream failed: %s", e)
        yield Error(message=str(e), source=ErrorSource.TRANSPORT, kind=e.kind)
        return

    parser.close()
    yield Error(
        message="Stream closed before completion", source=ErrorSource.TRANSPORT
    )
