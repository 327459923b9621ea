# Client
from .api import PantryAPI
from .client import ClientIdentity, PantryClient
from .config import PantryConfig

# Errors
from .errors import (
    ApiError,
    AuthorizationError,
    PantryError,
    ProtocolError,
    StateError,
    TransportError,
    TransportErrorKind,
)

# Wire models
from .models import (
    CapabilityFilter,
    CapabilityType,
    LLMConnectorType,
    LLMFilter,
    LLMPreference,
    LLMRegistryEntry,
    LLMRunningStatus,
    LLMStatus,
    UserRequestStatus,
)

# Observability
from .observability import LoggingMetricsHook, MetricsHook, NoOpMetricsHook

# Permissions
from .permissions import Capability, PermissionSet

# Sessions
from .session import EventStream, SessionHandle, SessionState

# Streaming
from .streaming import (
    Completed,
    Error,
    ErrorSource,
    Heartbeat,
    StreamEvent,
    TokenChunk,
)

# Transport
from .transport import HttpTransport, Transport, create_transport

__version__ = "0.1.0"

__all__ = [
    # Client
    "ClientIdentity",
    "PantryAPI",
    "PantryClient",
    "PantryConfig",
    # Errors
    "ApiError",
    "AuthorizationError",
    "PantryError",
    "ProtocolError",
    "StateError",
    "TransportError",
    "TransportErrorKind",
    # Wire models
    "CapabilityFilter",
    "CapabilityType",
    "LLMConnectorType",
    "LLMFilter",
    "LLMPreference",
    "LLMRegistryEntry",
    "LLMRunningStatus",
    "LLMStatus",
    "UserRequestStatus",
    # Observability
    "LoggingMetricsHook",
    "MetricsHook",
    "NoOpMetricsHook",
    # Permissions
    "Capability",
    "PermissionSet",
    # Sessions
    "EventStream",
    "SessionHandle",
    "SessionState",
    # Streaming
    "Completed",
    "Error",
    "ErrorSource",
    "Heartbeat",
    "StreamEvent",
    "TokenChunk",
    # Transport
    "HttpTransport",
    "Transport",
    "create_transport",
]
