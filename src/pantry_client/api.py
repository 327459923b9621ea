# src/pantry_client/api.py

"""Low-level Pantry API wrapper.

One method per server endpoint. Requests are plain JSON, responses are
validated into wire models here, and raw dicts never leave this module.
No local permission checks: use PantryClient for that.
"""

import logging
from typing import Any, TypeVar
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from .errors import ApiError, ProtocolError
from .models import (
    BareModelResponse,
    CreateSessionResponse,
    LLMFilter,
    LLMPreference,
    LLMRegistryEntry,
    LLMRunningStatus,
    LLMStatus,
    UserInfo,
    UserRequestStatus,
)
from .permissions import PermissionSet
from .transport.base import EventSource, Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_USER_INFO = TypeAdapter(UserInfo)
_REQUEST_STATUS = TypeAdapter(UserRequestStatus)
_LLM_STATUS = TypeAdapter(LLMStatus)
_LLM_STATUS_LIST = TypeAdapter(list[LLMStatus])
_RUNNING_STATUS = TypeAdapter(LLMRunningStatus)
_CREATE_SESSION = TypeAdapter(CreateSessionResponse)
_BARE_MODEL = TypeAdapter(BareModelResponse)


def _auth(user_id: UUID, api_key: str) -> dict[str, Any]:
    return {"user_id": str(user_id), "api_key": api_key}


def _dump(model: LLMFilter | LLMPreference | None) -> dict[str, Any] | None:
    return model.model_dump(mode="json") if model is not None else None


class PantryAPI:
    """Thin wrapper around a Transport, one coroutine per endpoint.

    Every call takes the caller's `user_id` and `api_key` explicitly.
    """

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def _post_json(
        self, path: str, body: dict[str, Any], timeout: float | None
    ) -> Any:
        response = await self.transport.send("POST", path, body, timeout=timeout)
        if not response.is_success:
            logger.warning("%s failed with status %d", path, response.status_code)
            raise ApiError(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"{path} returned invalid JSON: {e}") from e

    async def _call(
        self,
        path: str,
        body: dict[str, Any],
        adapter: TypeAdapter[T],
        timeout: float | None,
    ) -> T:
        data = await self._post_json(path, body, timeout)
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            raise ProtocolError(f"{path} returned an unexpected payload: {e}") from e

    # ------------------------------------------------------------------
    # Users and requests
    # ------------------------------------------------------------------

    async def register_user(
        self, user_name: str, *, timeout: float | None = None
    ) -> UserInfo:
        """Create a user. The result's `id` and `api_key` authenticate later calls."""
        return await self._call(
            "/register_user", {"user_name": user_name}, _USER_INFO, timeout
        )

    async def request_permissions(
        self,
        user_id: UUID,
        api_key: str,
        requested_permissions: PermissionSet,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        """Ask the system owner for permissions. Accepted in the Pantry UI."""
        body = _auth(user_id, api_key)
        body["requested_permissions"] = requested_permissions.model_dump()
        return await self._call(
            "/request_permissions", body, _REQUEST_STATUS, timeout
        )

    async def request_download(
        self,
        user_id: UUID,
        api_key: str,
        llm_registry_entry: LLMRegistryEntry,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        body = _auth(user_id, api_key)
        # the server expects the entry as an embedded JSON string
        body["llm_registry_entry"] = llm_registry_entry.model_dump_json()
        return await self._call("/request_download", body, _REQUEST_STATUS, timeout)

    async def request_load(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: UUID,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        body = _auth(user_id, api_key)
        body["llm_id"] = str(llm_id)
        return await self._call("/request_load", body, _REQUEST_STATUS, timeout)

    async def request_load_flex(
        self,
        user_id: UUID,
        api_key: str,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        """Request a load without naming the LLM up front."""
        body = _auth(user_id, api_key)
        body["filter"] = _dump(filter)
        body["preference"] = _dump(preference)
        return await self._call("/request_load", body, _REQUEST_STATUS, timeout)

    async def request_unload(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: UUID,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        body = _auth(user_id, api_key)
        body["llm_id"] = str(llm_id)
        return await self._call("/request_unload", body, _REQUEST_STATUS, timeout)

    async def get_request_status(
        self,
        user_id: UUID,
        api_key: str,
        request_id: UUID,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        body = _auth(user_id, api_key)
        body["request_id"] = str(request_id)
        return await self._call(
            "/get_request_status", body, _REQUEST_STATUS, timeout
        )

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def get_llm_status(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: UUID,
        *,
        timeout: float | None = None,
    ) -> LLMStatus:
        body = _auth(user_id, api_key)
        body["llm_id"] = str(llm_id)
        return await self._call("/get_llm_status", body, _LLM_STATUS, timeout)

    async def get_running_llms(
        self, user_id: UUID, api_key: str, *, timeout: float | None = None
    ) -> list[LLMStatus]:
        return await self._call(
            "/get_running_llms", _auth(user_id, api_key), _LLM_STATUS_LIST, timeout
        )

    async def get_available_llms(
        self, user_id: UUID, api_key: str, *, timeout: float | None = None
    ) -> list[LLMStatus]:
        """Downloaded LLMs. They must be loaded before a session can use them."""
        return await self._call(
            "/get_available_llms", _auth(user_id, api_key), _LLM_STATUS_LIST, timeout
        )

    async def load_llm(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: UUID,
        *,
        timeout: float | None = None,
    ) -> LLMRunningStatus:
        body = _auth(user_id, api_key)
        body["llm_id"] = str(llm_id)
        return await self._call("/load_llm", body, _RUNNING_STATUS, timeout)

    async def load_llm_flex(
        self,
        user_id: UUID,
        api_key: str,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        *,
        timeout: float | None = None,
    ) -> LLMRunningStatus:
        """Load the best LLM passing `filter`, ranked by `preference`."""
        body = _auth(user_id, api_key)
        body["filter"] = _dump(filter)
        body["preference"] = _dump(preference)
        return await self._call("/load_llm_flex", body, _RUNNING_STATUS, timeout)

    async def unload_llm(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: str,
        *,
        timeout: float | None = None,
    ) -> LLMStatus:
        """Unload by uuid or model id."""
        body = _auth(user_id, api_key)
        body["llm_id"] = llm_id
        return await self._call("/unload_llm", body, _LLM_STATUS, timeout)

    async def download_llm(
        self,
        user_id: UUID,
        api_key: str,
        llm_registry_entry: LLMRegistryEntry,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Start a download. Returns the server's raw acknowledgement."""
        body = _auth(user_id, api_key)
        body["llm_registry_entry"] = llm_registry_entry.model_dump_json()
        return await self._post_json("/download_llm", body, timeout)

    async def bare_model(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: UUID,
        *,
        timeout: float | None = None,
    ) -> BareModelResponse:
        """Path to a model file for running with an external inference runtime."""
        body = _auth(user_id, api_key)
        body["llm_id"] = str(llm_id)
        return await self._call("/bare_model", body, _BARE_MODEL, timeout)

    async def bare_model_flex(
        self,
        user_id: UUID,
        api_key: str,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        *,
        timeout: float | None = None,
    ) -> BareModelResponse:
        body = _auth(user_id, api_key)
        body["filter"] = _dump(filter)
        body["preference"] = _dump(preference)
        return await self._call("/bare_model_flex", body, _BARE_MODEL, timeout)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        user_id: UUID,
        api_key: str,
        user_session_parameters: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> CreateSessionResponse:
        """Create a session on the best running LLM."""
        body = _auth(user_id, api_key)
        body["user_session_parameters"] = user_session_parameters
        return await self._call("/create_session", body, _CREATE_SESSION, timeout)

    async def create_session_id(
        self,
        user_id: UUID,
        api_key: str,
        llm_id: UUID,
        user_session_parameters: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> CreateSessionResponse:
        """Create a session on a specific running LLM."""
        body = _auth(user_id, api_key)
        body["llm_id"] = str(llm_id)
        body["user_session_parameters"] = user_session_parameters
        return await self._call("/create_session_id", body, _CREATE_SESSION, timeout)

    async def create_session_flex(
        self,
        user_id: UUID,
        api_key: str,
        filter: LLMFilter | None,
        preference: LLMPreference | None,
        user_session_parameters: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> CreateSessionResponse:
        """Create a session on a running LLM chosen by filter and preference."""
        body = _auth(user_id, api_key)
        body["filter"] = _dump(filter)
        body["preference"] = _dump(preference)
        body["user_session_parameters"] = user_session_parameters
        return await self._call(
            "/create_session_flex", body, _CREATE_SESSION, timeout
        )

    async def prompt_session_stream(
        self,
        user_id: UUID,
        api_key: str,
        session_id: UUID,
        llm_uuid: str,
        prompt: str,
        parameters: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> EventSource:
        """Start inference and return the open event stream.

        Pantry does no preprompting: `prompt` goes to the model as is.
        The caller owns the returned source and must close it.
        """
        body = _auth(user_id, api_key)
        body.update(
            session_id=str(session_id),
            llm_uuid=llm_uuid,
            prompt=prompt,
            parameters=parameters,
        )
        return await self.transport.open_stream(
            "/prompt_session_stream", body, timeout=timeout
        )

    async def interrupt_session(
        self,
        user_id: UUID,
        api_key: str,
        llm_uuid: str,
        session_id: UUID,
        *,
        timeout: float | None = None,
    ) -> LLMRunningStatus:
        """Cancel inference after the next token. Only the session owner may."""
        body = _auth(user_id, api_key)
        body["llm_uuid"] = llm_uuid
        body["session_id"] = str(session_id)
        return await self._call("/interrupt_session", body, _RUNNING_STATUS, timeout)
