# tests/unit/permissions/test_permissions.py

from uuid import uuid4

import pytest
from pydantic import ValidationError

from pantry_client.errors import AuthorizationError
from pantry_client.models import UserInfo
from pantry_client.permissions import Capability, PermissionSet


class TestPermissionSet:
    def test_default_allows_nothing(self) -> None:
        permissions = PermissionSet()
        assert not any(permissions.allows(c) for c in Capability)

    def test_allows_granted_capability(self) -> None:
        permissions = PermissionSet(perm_session=True)
        assert permissions.allows(Capability.SESSION)
        assert not permissions.allows(Capability.LOAD_LLM)

    def test_superuser_allows_everything(self) -> None:
        permissions = PermissionSet(perm_superuser=True)
        assert all(permissions.allows(c) for c in Capability)

    def test_require_raises_with_capability(self) -> None:
        with pytest.raises(AuthorizationError, match="perm_view_llms") as exc_info:
            PermissionSet().require(Capability.VIEW_LLMS)
        assert exc_info.value.capability is Capability.VIEW_LLMS

    def test_of(self) -> None:
        permissions = PermissionSet.of(Capability.SESSION, Capability.VIEW_LLMS)
        assert permissions == PermissionSet(perm_session=True, perm_view_llms=True)

    def test_unknown_server_fields_ignored(self) -> None:
        permissions = PermissionSet.model_validate(
            {"perm_session": True, "perm_time_travel": True}
        )
        assert permissions == PermissionSet(perm_session=True)

    def test_immutable(self) -> None:
        permissions = PermissionSet()
        with pytest.raises(ValidationError):
            permissions.perm_superuser = True  # type: ignore[misc]

    def test_every_capability_is_a_field(self) -> None:
        assert {c.value for c in Capability} == set(PermissionSet.model_fields)

    def test_user_info_permissions(self) -> None:
        user = UserInfo(
            id=uuid4(), api_key="k", perm_session=True, perm_bare_model=True
        )
        assert user.permissions == PermissionSet.of(
            Capability.SESSION, Capability.BARE_MODEL
        )
