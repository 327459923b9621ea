# src/pantry_client/config.py

from dataclasses import dataclass
from typing import Literal

TransportType = Literal["unix", "tcp"]

DEFAULT_BASE_URL = "http://localhost:9404"
DEFAULT_SOCKET_PATH = "/tmp/pantrylocal.sock"


@dataclass(frozen=True)
class PantryConfig:
    """Configuration for connecting to a Pantry server.

    Immutable. Explicit. No magic defaults from environment.
    The transport is chosen here, never auto-detected.
    """

    transport: TransportType = "tcp"
    base_url: str = DEFAULT_BASE_URL  # used by "tcp"; https:// enables TLS
    socket_path: str = DEFAULT_SOCKET_PATH  # used by "unix"
    timeout: float = 30.0
    verify: bool | str = True  # TLS verification, or a CA bundle path
