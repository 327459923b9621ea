# src/pantry_client/models.py

"""Wire models for the Pantry HTTP API.

These mirror the JSON the server sends and accepts. Validation happens at
the boundary (api.py); nothing above it sees raw dicts.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .permissions import PermissionSet


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CapabilityType(str, Enum):
    """Capability ratings an LLM can be scored on."""

    GENERAL = "general"
    ASSISTANT = "assistant"
    WRITING = "writing"
    CODING = "coding"


class LLMConnectorType(str, Enum):
    GENERIC_API = "genericapi"
    LLMRS = "llmrs"
    OPENAI = "openai"


class UserInfo(_WireModel):
    """Returned by /register_user. `id` and `api_key` identify the user later."""

    id: UUID
    name: str = ""
    api_key: str

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

    @property
    def permissions(self) -> PermissionSet:
        return PermissionSet.model_validate(self.model_dump())


class LLMStatus(_WireModel):
    """A model known to the server. `uuid` is the reference used by sessions."""

    id: str
    uuid: str
    family_id: str = ""
    organization: str = ""

    name: str = ""
    homepage: str = ""
    license: str = ""
    description: str = ""

    # 10 is roughly GPT-4 quality, -1 is not evaluated
    capabilities: dict[CapabilityType, int] = Field(default_factory=dict)
    requirements: str = ""
    tags: list[str] = Field(default_factory=list)
    url: str = ""

    local: bool = False
    connector_type: str = ""
    config: dict[str, Any] = Field(default_factory=dict)

    parameters: dict[str, Any] = Field(default_factory=dict)
    user_parameters: list[str] = Field(default_factory=list)
    session_parameters: dict[str, Any] = Field(default_factory=dict)
    user_session_parameters: list[str] = Field(default_factory=list)

    running: bool = False


class LLMRunningStatus(_WireModel):
    llm_info: LLMStatus
    uuid: str


class LLMRegistryEntry(_WireModel):
    """Everything the server needs to download a model.

    Only `id` and `connector_type` are mandatory. The llmrs connector needs
    config["model_architecture"].
    """

    id: str
    connector_type: LLMConnectorType
    family_id: str = ""
    organization: str = ""

    name: str = ""
    license: str = ""
    description: str = ""
    homepage: str = ""

    capabilities: dict[str, int] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    requirements: str = ""

    # overwritten by the server
    backend_uuid: str = ""
    url: str = ""

    config: dict[str, Any] = Field(default_factory=dict)
    local: bool = True

    parameters: dict[str, Any] = Field(default_factory=dict)
    user_parameters: list[str] = Field(default_factory=list)
    session_parameters: dict[str, Any] = Field(default_factory=dict)
    user_session_parameters: list[str] = Field(default_factory=list)


class CapabilityFilter(_WireModel):
    capability: CapabilityType
    value: int


class LLMFilter(_WireModel):
    """Hard requirements for the `_flex` calls. Match or fail (404).

    An empty filter allows any LLM.
    """

    llm_uuid: UUID | None = None
    llm_id: str | None = None
    family_id: str | None = None
    local: bool | None = None
    minimum_capabilities: list[CapabilityFilter] | None = None


class LLMPreference(_WireModel):
    """Soft ordering for the `_flex` calls.

    Evaluated in order: uuid, llm_id, local, family_id, capability_type.
    Ties fall back to the general capability.
    """

    llm_uuid: UUID | None = None
    llm_id: str | None = None
    local: bool | None = None
    family_id: str | None = None
    capability_type: CapabilityType | None = None


# ============================================================================
# User requests
# ============================================================================


class DownloadRequest(_WireModel):
    type: Literal["DownloadRequest"] = "DownloadRequest"
    llm_registry_entry: LLMRegistryEntry


class PermissionRequest(_WireModel):
    type: Literal["PermissionRequest"] = "PermissionRequest"
    requested_permissions: PermissionSet


class LoadRequest(_WireModel):
    type: Literal["LoadRequest"] = "LoadRequest"
    llm_id: str


class UnloadRequest(_WireModel):
    type: Literal["UnloadRequest"] = "UnloadRequest"
    llm_id: str


UserRequestType = Annotated[
    Union[DownloadRequest, PermissionRequest, LoadRequest, UnloadRequest],
    Field(discriminator="type"),
]


class UserRequestStatus(_WireModel):
    """A request the system owner accepts or rejects in the Pantry UI."""

    id: UUID
    user_id: UUID
    timestamp: datetime
    request: UserRequestType
    accepted: bool = False
    complete: bool = False


# ============================================================================
# Sessions
# ============================================================================


class LLMSessionStatus(_WireModel):
    id: UUID
    llm_uuid: UUID
    user_id: UUID
    started: datetime
    last_called: datetime
    session_parameters: dict[str, Any] = Field(default_factory=dict)


class CreateSessionResponse(_WireModel):
    session_id: UUID
    llm_status: LLMStatus
    session_parameters: dict[str, Any] = Field(default_factory=dict)


class BareModelResponse(_WireModel):
    model: LLMStatus
    path: str


class EventEnvelope(_WireModel):
    """Metadata the server wraps around every streamed inference event."""

    stream_id: UUID | None = None
    timestamp: datetime | None = None
    call_timestamp: datetime | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    input: str = ""
    llm_uuid: UUID | None = None
    session: LLMSessionStatus | None = None
