# src/pantry_client/errors.py

"""Error types for pantry-client.

Every failure reaches the caller as one of these. Nothing is retried or
swallowed: generation requests are not idempotent on the server.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .permissions import Capability
    from .session import SessionState


class TransportErrorKind(str, Enum):
    """Why a transport call failed."""

    CONNECT = "connect"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"


class PantryError(Exception):
    """Base error for everything raised by pantry-client."""


class TransportError(PantryError):
    """The request never produced a usable HTTP response."""

    def __init__(self, message: str, kind: TransportErrorKind):
        super().__init__(message)
        self.kind = kind


class ApiError(PantryError):
    """The server answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"API returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class AuthorizationError(PantryError):
    """The client lacks the capability an operation requires.

    Raised locally, before any request is sent.
    """

    def __init__(self, capability: Capability):
        super().__init__(f"Missing capability: {capability.value}")
        self.capability = capability


class ProtocolError(PantryError):
    """A response or stream frame did not match the wire format."""


class StateError(PantryError):
    """The session is in a state that does not allow the operation."""

    def __init__(self, message: str, state: SessionState):
        super().__init__(message)
        self.state = state
