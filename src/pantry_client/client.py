# src/pantry_client/client.py

"""High-level Pantry client.

PantryClient binds an identity, the permissions the server granted to it,
and a PantryAPI. Every capability-gated operation is checked locally before
anything is sent, so a missing capability never costs a round trip.
"""

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from .api import PantryAPI
from .config import PantryConfig
from .models import (
    LLMFilter,
    LLMPreference,
    LLMRegistryEntry,
    LLMRunningStatus,
    LLMStatus,
    PermissionRequest,
    UserRequestStatus,
)
from .observability.base import MetricsHook, NoOpMetricsHook
from .permissions import Capability, PermissionSet
from .session import SessionHandle
from .transport.base import Transport
from .transport.factory import create_transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientIdentity:
    """Credentials issued by the server at registration."""

    user_id: UUID
    api_key: str
    name: str = ""


class PantryClient:
    """A registered client of one Pantry server.

    Build one with `register` (new user) or `login` (stored credentials).
    The client owns its transport; close it with `aclose()` or use it as an
    async context manager.

    Example:
        >>> client, request = await PantryClient.register(
        ...     "my-app", PermissionSet.of(Capability.SESSION)
        ... )
        >>> await client.await_request(request.id)
        >>> async with await client.create_session() as session:
        ...     async with await session.prompt("Hello") as stream:
        ...         async for event in stream:
        ...             ...
    """

    def __init__(
        self,
        identity: ClientIdentity,
        permissions: PermissionSet,
        api: PantryAPI,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ):
        self._identity = identity
        self._permissions = permissions
        self._api = api
        self._metrics = metrics_hook
        logger.info("Pantry client ready for user %s", identity.user_id)

    @property
    def identity(self) -> ClientIdentity:
        return self._identity

    @property
    def permissions(self) -> PermissionSet:
        return self._permissions

    @property
    def api(self) -> PantryAPI:
        return self._api

    @property
    def metrics_hook(self) -> MetricsHook:
        return self._metrics

    def get_permissions(self) -> PermissionSet:
        return self._permissions

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    async def register(
        cls,
        name: str,
        permissions: PermissionSet,
        config: PantryConfig = PantryConfig(),
        metrics_hook: MetricsHook = NoOpMetricsHook(),
        *,
        timeout: float | None = None,
    ) -> tuple["PantryClient", UserRequestStatus]:
        """Register a new user and ask for `permissions`.

        The returned client holds whatever the server granted at
        registration (normally nothing). The returned request must be
        accepted by the system owner; `await_request` picks up the result.
        """
        transport = create_transport(config, metrics_hook)
        api = PantryAPI(transport)
        try:
            user = await api.register_user(name, timeout=timeout)
            identity = ClientIdentity(user.id, user.api_key, user.name or name)
            request = await api.request_permissions(
                identity.user_id, identity.api_key, permissions, timeout=timeout
            )
        except BaseException:
            await transport.aclose()
            raise

        logger.info("Registered user %s, permission request %s", user.id, request.id)
        return cls(identity, user.permissions, api, metrics_hook), request

    @classmethod
    def login(
        cls,
        user_id: UUID,
        api_key: str,
        permissions: PermissionSet = PermissionSet(),
        config: PantryConfig = PantryConfig(),
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> "PantryClient":
        """Rebuild a client from stored credentials. No request is made.

        Pass the permissions previously granted; the server remains the
        final authority on every call.
        """
        identity = ClientIdentity(user_id, api_key)
        transport = create_transport(config, metrics_hook)
        return cls.from_transport(identity, permissions, transport, metrics_hook)

    @classmethod
    def from_transport(
        cls,
        identity: ClientIdentity,
        permissions: PermissionSet,
        transport: Transport,
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> "PantryClient":
        return cls(identity, permissions, PantryAPI(transport), metrics_hook)

    def _auth(self) -> tuple[UUID, str]:
        return self._identity.user_id, self._identity.api_key

    # ------------------------------------------------------------------
    # Requests (never gated)
    # ------------------------------------------------------------------

    async def request_permissions(
        self, permissions: PermissionSet, *, timeout: float | None = None
    ) -> UserRequestStatus:
        return await self._api.request_permissions(
            *self._auth(), permissions, timeout=timeout
        )

    async def get_request_status(
        self, request_id: UUID, *, timeout: float | None = None
    ) -> UserRequestStatus:
        return await self._api.get_request_status(
            *self._auth(), request_id, timeout=timeout
        )

    async def await_request(
        self,
        request_id: UUID,
        timeout: float = 120.0,
        interval: float = 1.0,
    ) -> UserRequestStatus:
        """Poll a request until the system owner has handled it.

        If it was an accepted permission request, this client's permissions
        become the requested set.

        Raises:
            TimeoutError: If the request is still pending after `timeout` seconds.
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_result(lambda s: not s.complete),
                stop=stop_after_delay(timeout),
                wait=wait_fixed(interval),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
            ):
                with attempt:
                    status = await self.get_request_status(request_id)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(status)
        except RetryError as e:
            raise TimeoutError(
                f"Request {request_id} still pending after {timeout}s"
            ) from e

        if status.accepted and isinstance(status.request, PermissionRequest):
            self._permissions = status.request.requested_permissions
            logger.info("Permissions updated from request %s", request_id)
        return status

    async def request_download_llm(
        self, llm_registry_entry: LLMRegistryEntry, *, timeout: float | None = None
    ) -> UserRequestStatus:
        self._permissions.require(Capability.REQUEST_DOWNLOAD)
        return await self._api.request_download(
            *self._auth(), llm_registry_entry, timeout=timeout
        )

    async def request_load_llm(
        self, llm_id: UUID, *, timeout: float | None = None
    ) -> UserRequestStatus:
        self._permissions.require(Capability.REQUEST_LOAD)
        return await self._api.request_load(*self._auth(), llm_id, timeout=timeout)

    async def request_load_llm_flex(
        self,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        *,
        timeout: float | None = None,
    ) -> UserRequestStatus:
        self._permissions.require(Capability.REQUEST_LOAD)
        return await self._api.request_load_flex(
            *self._auth(), filter, preference, timeout=timeout
        )

    async def request_unload_llm(
        self, llm_id: UUID, *, timeout: float | None = None
    ) -> UserRequestStatus:
        self._permissions.require(Capability.REQUEST_UNLOAD)
        return await self._api.request_unload(*self._auth(), llm_id, timeout=timeout)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def get_available_llms(
        self, *, timeout: float | None = None
    ) -> list[LLMStatus]:
        self._permissions.require(Capability.VIEW_LLMS)
        return await self._api.get_available_llms(*self._auth(), timeout=timeout)

    async def get_running_llms(self, *, timeout: float | None = None) -> list[LLMStatus]:
        self._permissions.require(Capability.VIEW_LLMS)
        return await self._api.get_running_llms(*self._auth(), timeout=timeout)

    async def get_llm_status(
        self, llm_id: UUID, *, timeout: float | None = None
    ) -> LLMStatus:
        self._permissions.require(Capability.VIEW_LLMS)
        return await self._api.get_llm_status(*self._auth(), llm_id, timeout=timeout)

    async def load_llm(
        self, llm_id: UUID, *, timeout: float | None = None
    ) -> LLMRunningStatus:
        self._permissions.require(Capability.LOAD_LLM)
        return await self._api.load_llm(*self._auth(), llm_id, timeout=timeout)

    async def load_llm_flex(
        self,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        *,
        timeout: float | None = None,
    ) -> LLMRunningStatus:
        self._permissions.require(Capability.LOAD_LLM)
        return await self._api.load_llm_flex(
            *self._auth(), filter, preference, timeout=timeout
        )

    async def unload_llm(
        self, llm_id: UUID | str, *, timeout: float | None = None
    ) -> LLMStatus:
        """Unload by model uuid or model id."""
        self._permissions.require(Capability.UNLOAD_LLM)
        return await self._api.unload_llm(*self._auth(), str(llm_id), timeout=timeout)

    async def download_llm(
        self, llm_registry_entry: LLMRegistryEntry, *, timeout: float | None = None
    ) -> Any:
        self._permissions.require(Capability.DOWNLOAD_LLM)
        return await self._api.download_llm(
            *self._auth(), llm_registry_entry, timeout=timeout
        )

    async def bare_model(
        self, llm_id: UUID, *, timeout: float | None = None
    ) -> tuple[LLMStatus, str]:
        """Return a model and the path of its file for external inference."""
        self._permissions.require(Capability.BARE_MODEL)
        response = await self._api.bare_model(*self._auth(), llm_id, timeout=timeout)
        return response.model, response.path

    async def bare_model_flex(
        self,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        *,
        timeout: float | None = None,
    ) -> tuple[LLMStatus, str]:
        self._permissions.require(Capability.BARE_MODEL)
        response = await self._api.bare_model_flex(
            *self._auth(), filter, preference, timeout=timeout
        )
        return response.model, response.path

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> SessionHandle:
        """Create a session on the best running LLM. Returned OPEN."""
        session = SessionHandle(self, parameters=parameters)
        return await session.create(timeout=timeout)

    async def create_session_id(
        self,
        llm_id: UUID,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> SessionHandle:
        session = SessionHandle(self, llm_id=llm_id, parameters=parameters)
        return await session.create(timeout=timeout)

    async def create_session_flex(
        self,
        filter: LLMFilter | None = None,
        preference: LLMPreference | None = None,
        parameters: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> SessionHandle:
        """Create a session on a running LLM chosen by filter and preference."""
        session = SessionHandle(
            self,
            filter=filter or LLMFilter(),
            preference=preference,
            parameters=parameters,
        )
        return await session.create(timeout=timeout)

    async def aclose(self) -> None:
        await self._api.transport.aclose()

    async def __aenter__(self) -> "PantryClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
