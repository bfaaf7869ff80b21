"""
Tests for CredentialManager
"""
import base64

import pytest
from pydantic import ValidationError

from conftest import MASTER_KEY
from secretgate.models import CreateCredentialRequest, CredentialKind
from secretgate.services.credentials import CredentialManager
from secretgate.services.crypto import KeyGenerationError


def request(**overrides):
    fields = {"name": "reporting", "owner_id": "alice"}
    fields.update(overrides)
    return CreateCredentialRequest(**fields)


class TestCreateCredential:
    """Test credential issuance"""

    @pytest.mark.asyncio
    async def test_returns_key_once(self, manager, credential_store):
        created = await manager.create_credential(request(description="nightly reports"))

        assert len(base64.b64decode(created.key)) == 48
        assert created.is_active is True
        assert created.kind == CredentialKind.USER
        assert created.description == "nightly reports"

        stored = await credential_store.get_by_id(created.id)
        assert stored.secret_value != created.key

        fetched = await manager.get_credential(created.id)
        assert not hasattr(fetched, "key")
        assert "key" not in fetched.model_dump(by_alias=True)

    @pytest.mark.asyncio
    async def test_key_validates(self, manager, credential_store):
        created = await manager.create_credential(request(allowed_resource_names=["Sales", " ", ""]))

        credential = await credential_store.validate_credential(created.key)
        assert credential.id == created.id
        assert created.allowed_resource_names == ["Sales"]

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, manager):
        with pytest.raises(ValueError, match="name is required"):
            await manager.create_credential(request(name="   "))

    @pytest.mark.asyncio
    async def test_blank_owner_rejected(self, manager):
        with pytest.raises(ValueError, match="Owner ID is required"):
            await manager.create_credential(request(owner_id="  "))

    def test_master_kind_cannot_be_issued(self):
        with pytest.raises(ValidationError):
            request(kind="master")

    @pytest.mark.asyncio
    async def test_collision_with_master_key(self, manager, cipher, monkeypatch):
        monkeypatch.setattr(cipher, "generate_key", lambda length=32: MASTER_KEY)

        with pytest.raises(KeyGenerationError):
            await manager.create_credential(request())

    def test_camel_case_request(self):
        parsed = CreateCredentialRequest.model_validate(
            {"name": "n", "ownerId": "o", "kind": "admin", "allowedResourceNames": ["Db1"]}
        )
        assert parsed.owner_id == "o"
        assert parsed.kind == CredentialKind.ADMIN
        assert parsed.allowed_resource_names == ["Db1"]


class TestCredentialQueries:
    """Test listing, revocation and deletion"""

    @pytest.mark.asyncio
    async def test_list_by_owner(self, manager):
        await manager.create_credential(request(name="a"))
        await manager.create_credential(request(name="b"))
        await manager.create_credential(request(name="c", owner_id="bob"))

        assert len(await manager.list_credentials()) == 3
        assert {c.name for c in await manager.list_credentials("alice")} == {"a", "b"}
        assert [c.name for c in await manager.list_credentials("bob")] == ["c"]

    @pytest.mark.asyncio
    async def test_get_missing(self, manager):
        assert await manager.get_credential("missing") is None

    @pytest.mark.asyncio
    async def test_revoke_then_delete(self, manager, credential_store):
        created = await manager.create_credential(request())

        assert await manager.revoke_credential(created.id) is True
        assert (await manager.get_credential(created.id)).is_active is False
        assert await credential_store.validate_credential(created.key) is None

        assert await manager.delete_credential(created.id) is True
        assert await manager.get_credential(created.id) is None


class TestMasterKey:
    """Test master key comparison"""

    def test_matches_only_master(self, manager):
        assert manager.is_master_key(MASTER_KEY) is True
        assert manager.is_master_key(MASTER_KEY + "x") is False
        assert manager.is_master_key("") is False
        assert manager.is_master_key(None) is False

    def test_no_master_configured(self, credential_store, cipher):
        manager = CredentialManager(credential_store, cipher, master_key="")
        assert manager.is_master_key("") is False
        assert manager.is_master_key("anything") is False
