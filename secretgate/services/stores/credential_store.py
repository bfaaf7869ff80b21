"""
Credential persistence, validation and usage logging.

Credential keys are encrypted at rest. Because every encryption uses a fresh
nonce, a presented key can't be found by encrypting it and comparing
ciphertext; validation therefore falls back to decrypting every active
credential and comparing plaintext.
"""
import secrets
from typing import Optional

import structlog
from sqlalchemy import delete, func, select, update

from ..crypto import CipherService
from ...models import (
    Credential,
    CredentialKind,
    CredentialState,
    UsageLogEntry,
    as_utc,
    utcnow,
)
from .database import Database, SqlStore
from .records import CredentialRecord, UsageLogRecord

log = structlog.get_logger()


def _to_credential(record: CredentialRecord) -> Credential:
    return Credential(
        id=record.id,
        name=record.name,
        secret_value=record.secret_value,
        owner_id=record.owner_id,
        created_at=as_utc(record.created_at),
        expiration_date=as_utc(record.expiration_date),
        last_used=as_utc(record.last_used),
        state=CredentialState(record.state),
        kind=CredentialKind(record.kind),
        description=record.description or "",
        allowed_resource_names=record.allowed_resource_names or None,
    )


def _to_usage_entry(record: UsageLogRecord) -> UsageLogEntry:
    return UsageLogEntry(
        id=record.id,
        credential_id=record.credential_id,
        owner_id=record.owner_id,
        timestamp=as_utc(record.timestamp),
        resource=record.resource,
        method=record.method,
        source_ip=record.ip_address or "",
        user_agent=record.user_agent or "",
    )


def _matches(presented: str, candidate: Optional[str]) -> bool:
    if not candidate:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), candidate.encode("utf-8"))


_ACTIVE = CredentialRecord.state == CredentialState.ACTIVE.value


class CredentialStore(SqlStore):
    """SQLite-backed credential store with an append-only usage log."""

    tables = (CredentialRecord, UsageLogRecord)

    def __init__(self, database: Database, cipher: CipherService):
        super().__init__(database)
        self._cipher = cipher

    async def save(self, credential: Credential) -> Credential:
        """
        Persist a new credential, encrypting its key.

        Args:
            credential: Credential carrying the plaintext key

        Returns:
            The stored credential; its secret_value is the stored ciphertext
        """
        stored_value = self._cipher.encrypt(credential.secret_value)
        record = CredentialRecord(
            id=credential.id,
            name=credential.name,
            secret_value=stored_value,
            owner_id=credential.owner_id,
            created_at=as_utc(credential.created_at),
            expiration_date=as_utc(credential.expiration_date),
            last_used=as_utc(credential.last_used),
            state=credential.state.value,
            kind=credential.kind.value,
            description=credential.description,
            allowed_resource_names=list(credential.allowed_resource_names) if credential.allowed_resource_names else None,
        )
        async with self._session("save") as session:
            session.add(record)

        log.info("credential.saved", credential_id=record.id, owner_id=record.owner_id, kind=record.kind)
        return _to_credential(record)

    async def get_by_id(self, credential_id: str) -> Optional[Credential]:
        async with self._session("get_by_id") as session:
            record = await session.get(CredentialRecord, credential_id)
        return _to_credential(record) if record is not None else None

    async def get_all(self) -> list[Credential]:
        """All credentials, newest first."""
        async with self._session("get_all") as session:
            records = (
                await session.scalars(select(CredentialRecord).order_by(CredentialRecord.created_at.desc()))
            ).all()
        return [_to_credential(r) for r in records]

    async def get_for_owner(self, owner_id: str) -> list[Credential]:
        """Credentials belonging to one owner, newest first."""
        async with self._session("get_for_owner") as session:
            records = (
                await session.scalars(
                    select(CredentialRecord)
                    .where(CredentialRecord.owner_id == owner_id)
                    .order_by(CredentialRecord.created_at.desc())
                )
            ).all()
        return [_to_credential(r) for r in records]

    async def validate_credential(self, presented_token: str) -> Optional[Credential]:
        """
        Resolve a presented key to an active, unexpired credential.

        Lookup order, first match wins:
        1. stored value equals the token (legacy plaintext rows)
        2. stored value equals encrypt(token)
        3. decrypt each active stored value and compare plaintext

        An expired match is revoked on the spot and rejected. A successful
        match has its last_used stamped.

        Args:
            presented_token: Key presented by the caller

        Returns:
            The credential, or None if the key is unknown, inactive or expired
        """
        if not presented_token:
            return None

        credential = await self._find_active(presented_token)
        if credential is None:
            log.debug("credential.validation_failed", reason="no_match", token_length=len(presented_token))
            return None

        if credential.is_expired:
            log.info(
                "credential.expired",
                credential_id=credential.id,
                expiration_date=credential.expiration_date.isoformat(),
            )
            await self.revoke(credential.id)
            return None

        now = await self.touch_last_used(credential.id)
        return credential.model_copy(update={"last_used": now})

    async def _find_active(self, token: str) -> Optional[Credential]:
        async with self._session("validate") as session:
            record = (
                await session.scalars(
                    select(CredentialRecord).where(CredentialRecord.secret_value == token, _ACTIVE)
                )
            ).first()
            if record is not None:
                log.debug("credential.matched", strategy="direct", credential_id=record.id)
                return _to_credential(record)

            encrypted = self._cipher.encrypt(token)
            record = (
                await session.scalars(
                    select(CredentialRecord).where(CredentialRecord.secret_value == encrypted, _ACTIVE)
                )
            ).first()
            if record is not None:
                log.debug("credential.matched", strategy="encrypted", credential_id=record.id)
                return _to_credential(record)

            candidates = (await session.scalars(select(CredentialRecord).where(_ACTIVE))).all()

        for record in candidates:
            if _matches(token, self._cipher.decrypt(record.secret_value)):
                log.debug("credential.matched", strategy="decrypt_scan", credential_id=record.id)
                return _to_credential(record)
        return None

    async def revoke(self, credential_id: str) -> bool:
        """
        Soft-revoke: ACTIVE -> REVOKED.

        Returns:
            True if an active credential was revoked
        """
        async with self._session("revoke") as session:
            result = await session.execute(
                update(CredentialRecord)
                .where(CredentialRecord.id == credential_id, _ACTIVE)
                .values(state=CredentialState.REVOKED.value)
                .execution_options(synchronize_session=False)
            )
        revoked = result.rowcount > 0
        log.info("credential.revoked", credential_id=credential_id, revoked=revoked)
        return revoked

    async def delete(self, credential_id: str) -> bool:
        """
        Hard delete: usage logs first, then the credential itself.

        Returns:
            True if the credential existed
        """
        async with self._session("delete") as session:
            await session.execute(
                delete(UsageLogRecord)
                .where(UsageLogRecord.credential_id == credential_id)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(CredentialRecord)
                .where(CredentialRecord.id == credential_id)
                .execution_options(synchronize_session=False)
            )
        deleted = result.rowcount > 0
        log.info("credential.deleted", credential_id=credential_id, deleted=deleted)
        return deleted

    async def touch_last_used(self, credential_id: str):
        now = utcnow()
        async with self._session("touch_last_used") as session:
            await session.execute(
                update(CredentialRecord)
                .where(CredentialRecord.id == credential_id)
                .values(last_used=now)
                .execution_options(synchronize_session=False)
            )
        return now

    async def count_active(self) -> int:
        async with self._session("count_active") as session:
            return await session.scalar(select(func.count()).select_from(CredentialRecord).where(_ACTIVE))

    async def log_usage(self, entry: UsageLogEntry) -> None:
        """Append one usage record."""
        async with self._session("log_usage") as session:
            session.add(
                UsageLogRecord(
                    id=entry.id,
                    credential_id=entry.credential_id,
                    owner_id=entry.owner_id,
                    timestamp=as_utc(entry.timestamp),
                    resource=entry.resource,
                    method=entry.method,
                    ip_address=entry.source_ip,
                    user_agent=entry.user_agent,
                )
            )

    async def get_usage_logs(
        self,
        credential_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[UsageLogEntry]:
        """
        Most recent usage records for one credential or one owner.

        Args:
            credential_id: Filter by credential (exclusive with owner_id)
            owner_id: Filter by owner (exclusive with credential_id)
            limit: Maximum number of records

        Raises:
            ValueError: If not exactly one filter is given or limit is not positive
        """
        if (credential_id is None) == (owner_id is None):
            raise ValueError("Exactly one of credential_id or owner_id is required")
        if limit <= 0:
            raise ValueError("limit must be positive")

        if credential_id is not None:
            condition = UsageLogRecord.credential_id == credential_id
        else:
            condition = UsageLogRecord.owner_id == owner_id

        async with self._session("get_usage_logs") as session:
            records = (
                await session.scalars(
                    select(UsageLogRecord)
                    .where(condition)
                    .order_by(UsageLogRecord.timestamp.desc())
                    .limit(limit)
                )
            ).all()
        return [_to_usage_entry(r) for r in records]
