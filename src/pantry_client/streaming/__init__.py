# src/pantry_client/streaming/__init__.py

"""Event decoding for streamed inference.

Example:
    >>> async for event in decode_events(source.aiter_bytes()):
    ...     if isinstance(event, TokenChunk):
    ...         print(event.text, end="")
"""

from .decoder import SSEFrame, SSEParser, decode_events, parse_event
from .events import (
    Completed,
    Error,
    ErrorSource,
    Heartbeat,
    StreamEvent,
    TokenChunk,
    is_terminal,
)

__all__ = [
    # Decoding
    "decode_events",
    "parse_event",
    "SSEFrame",
    "SSEParser",
    # Events
    "StreamEvent",
    "TokenChunk",
    "Completed",
    "Error",
    "ErrorSource",
    "Heartbeat",
    "is_terminal",
]
