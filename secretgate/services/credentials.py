"""
Credential management: issuing, listing, revoking and deleting API keys.

Keys are random 48-byte values, base64 encoded. The plaintext key is returned
exactly once, in the creation response; the store only ever holds ciphertext.
"""
import secrets
from typing import Optional

import structlog

from ..models import (
    CreateCredentialRequest,
    Credential,
    CredentialCreated,
    CredentialResponse,
    UsageLogEntry,
)
from .crypto import CipherService, KeyGenerationError
from .stores import CredentialStore

log = structlog.get_logger()


class CredentialManager:
    """Credential lifecycle operations on top of CredentialStore."""

    KEY_LENGTH = 48

    def __init__(self, store: CredentialStore, cipher: CipherService, master_key: str = ""):
        self._store = store
        self._cipher = cipher
        self._master_key = master_key or ""

    @property
    def store(self) -> CredentialStore:
        return self._store

    async def create_credential(self, request: CreateCredentialRequest) -> CredentialCreated:
        """
        Issue a new credential.

        Args:
            request: Name, owner, kind, expiry and optional resource allow-list

        Returns:
            Creation response including the plaintext key

        Raises:
            ValueError: If name or owner is blank
            KeyGenerationError: If the generated key equals the master key
        """
        if not request.name.strip():
            raise ValueError("Credential name is required")
        if not request.owner_id.strip():
            raise ValueError("Owner ID is required")

        key = self._cipher.generate_key(self.KEY_LENGTH)
        if self.is_master_key(key):
            raise KeyGenerationError("Generated key collides with the master key")

        saved = await self._store.save(
            Credential(
                name=request.name,
                secret_value=key,
                owner_id=request.owner_id,
                expiration_date=request.expiration_date,
                kind=request.kind,
                description=request.description,
                allowed_resource_names=request.allowed_resource_names,
            )
        )
        log.info(
            "credential.created",
            credential_id=saved.id,
            owner_id=saved.owner_id,
            kind=saved.kind.value,
            restricted=saved.is_resource_restricted,
        )
        return CredentialCreated.from_credential(saved, key=key)

    async def list_credentials(self, owner_id: Optional[str] = None) -> list[CredentialResponse]:
        if owner_id:
            credentials = await self._store.get_for_owner(owner_id)
        else:
            credentials = await self._store.get_all()
        return [CredentialResponse.from_credential(c) for c in credentials]

    async def get_credential(self, credential_id: str) -> Optional[CredentialResponse]:
        credential = await self._store.get_by_id(credential_id)
        if credential is None:
            return None
        return CredentialResponse.from_credential(credential)

    async def revoke_credential(self, credential_id: str) -> bool:
        return await self._store.revoke(credential_id)

    async def delete_credential(self, credential_id: str) -> bool:
        return await self._store.delete(credential_id)

    async def get_usage_logs(
        self,
        credential_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[UsageLogEntry]:
        return await self._store.get_usage_logs(credential_id=credential_id, owner_id=owner_id, limit=limit)

    def is_master_key(self, token: Optional[str]) -> bool:
        """Constant-time comparison against the master key; False when none is configured."""
        if not self._master_key or not token:
            return False
        return secrets.compare_digest(token.encode("utf-8"), self._master_key.encode("utf-8"))
