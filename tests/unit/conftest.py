# tests/unit/conftest.py

import json
from collections.abc import Callable
from typing import Any
from uuid import UUID

import httpx
import pytest

from pantry_client.client import ClientIdentity, PantryClient
from pantry_client.observability.base import MetricsHook, NoOpMetricsHook
from pantry_client.permissions import PermissionSet
from pantry_client.transport.http import HttpTransport

USER_ID = UUID("1b4e28ba-2fa1-11d2-883f-0016d3cca427")
SESSION_ID = UUID("7d444840-9dc0-11d1-b245-5ffdce74fad2")
LLM_UUID = "0b2b6c9e-5c1f-4f39-9a53-2c3f1ad5e0a4"


@pytest.fixture
def identity() -> ClientIdentity:
    return ClientIdentity(user_id=USER_ID, api_key="test-key", name="tester")


@pytest.fixture
def llm_status() -> dict[str, Any]:
    """Minimal LLMStatus payload as the server sends it."""
    return {
        "id": "llama-2-7b",
        "uuid": LLM_UUID,
        "family_id": "llama",
        "organization": "meta",
        "name": "Llama 2 7B",
        "connector_type": "llmrs",
        "running": True,
    }


@pytest.fixture
def session_created(llm_status: dict[str, Any]) -> dict[str, Any]:
    return {
        "session_id": str(SESSION_ID),
        "llm_status": llm_status,
        "session_parameters": {"temperature": 0.7},
    }


@pytest.fixture
def sse() -> Callable[..., bytes]:
    """Encode inference events as SSE data frames."""

    def _encode(*events: dict[str, Any]) -> bytes:
        return b"".join(
            b"data: " + json.dumps({"event": event}).encode() + b"\n\n"
            for event in events
        )

    return _encode


@pytest.fixture
def make_client(identity: ClientIdentity) -> Callable[..., PantryClient]:
    """Build a client whose HTTP traffic goes to `handler`."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        permissions: PermissionSet = PermissionSet(perm_superuser=True),
        metrics_hook: MetricsHook = NoOpMetricsHook(),
    ) -> PantryClient:
        transport = HttpTransport(
            "http://pantry.test",
            http_transport=httpx.MockTransport(handler),
            metrics_hook=metrics_hook,
        )
        return PantryClient.from_transport(
            identity, permissions, transport, metrics_hook
        )

    return _make
