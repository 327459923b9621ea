# src/pantry_client/transport/__init__.py

"""Transport layer for pantry-client.

Carries JSON requests and streaming responses to the Pantry server over a
local UNIX socket or TCP/TLS. Selection is explicit via PantryConfig.

Design principles:
- Transport only: failures become TransportError with a kind
- No retries: a repeated generation request would duplicate work
- Scoped streams: every EventSource releases its connection on aclose()
"""

from .base import EventSource, Transport
from .factory import create_transport
from .http import HttpEventSource, HttpTransport, to_transport_error

__all__ = [
    # Factory
    "create_transport",
    # Protocols
    "Transport",
    "EventSource",
    # httpx implementation
    "HttpTransport",
    "HttpEventSource",
    "to_transport_error",
]
