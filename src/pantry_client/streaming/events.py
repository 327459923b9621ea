# src/pantry_client/streaming/events.py

from dataclasses import dataclass
from enum import Enum
from typing import Union

from pantry_client.errors import TransportErrorKind
from pantry_client.models import EventEnvelope


class ErrorSource(str, Enum):
    """Where a terminal Error event came from."""

    SERVER = "server"  # the server reported an inference error
    PROTOCOL = "protocol"  # a frame could not be decoded
    TRANSPORT = "transport"  # the connection failed or closed early


@dataclass(frozen=True)
class TokenChunk:
    """Next piece of generated text."""

    text: str
    previous: str = ""
    envelope: EventEnvelope | None = None


@dataclass(frozen=True)
class Completed:
    """Generation finished. `output` is the full generated text."""

    output: str
    envelope: EventEnvelope | None = None


@dataclass(frozen=True)
class Error:
    """Generation failed. Always the last event of a stream.

    `kind` is set when the connection failed mid-stream.
    """

    message: str
    source: ErrorSource
    envelope: EventEnvelope | None = None
    kind: TransportErrorKind | None = None


@dataclass(frozen=True)
class Heartbeat:
    """Keep-alive. Carries no output."""

    envelope: EventEnvelope | None = None


StreamEvent = Union[TokenChunk, Completed, Error, Heartbeat]


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, (Completed, Error))
