# src/pantry_client/permissions.py

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .errors import AuthorizationError

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Closed set of capabilities. Values are the wire field names."""

    SUPERUSER = "perm_superuser"
    LOAD_LLM = "perm_load_llm"
    UNLOAD_LLM = "perm_unload_llm"
    DOWNLOAD_LLM = "perm_download_llm"
    SESSION = "perm_session"  # create_session and prompt_session
    REQUEST_DOWNLOAD = "perm_request_download"
    REQUEST_LOAD = "perm_request_load"
    REQUEST_UNLOAD = "perm_request_unload"
    VIEW_LLMS = "perm_view_llms"
    BARE_MODEL = "perm_bare_model"


class PermissionSet(BaseModel):
    """Permissions held by (or requested for) a registered client.

    Fixed fields, immutable. Unknown keys from the server are ignored so a
    newer server can add capabilities without breaking older clients.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    perm_superuser: bool = False
    perm_load_llm: bool = False
    perm_unload_llm: bool = False
    perm_download_llm: bool = False
    perm_session: bool = False
    perm_request_download: bool = False
    perm_request_load: bool = False
    perm_request_unload: bool = False
    perm_view_llms: bool = False
    perm_bare_model: bool = False

    def allows(self, capability: Capability) -> bool:
        """Superuser satisfies every capability."""
        if self.perm_superuser:
            return True
        return bool(getattr(self, capability.value))

    def require(self, capability: Capability) -> None:
        """Raise AuthorizationError unless `capability` is granted."""
        if not self.allows(capability):
            logger.warning("Operation denied locally, missing %s", capability.value)
            raise AuthorizationError(capability)

    @classmethod
    def of(cls, *capabilities: Capability) -> "PermissionSet":
        """Build a set granting exactly the given capabilities."""
        return cls(**{c.value: True for c in capabilities})
