"""
Secret persistence with encryption at rest.

Values are encrypted on save and decrypted on read. Raw accessors exist for
rotation and migration, which work on ciphertext directly.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.sqlite import insert

from ..crypto import CipherService
from ...models import Secret, as_utc, utcnow
from .database import Database, SqlStore, StorageError
from .records import SecretRecord

log = structlog.get_logger()


def _to_secret(record: SecretRecord, value: str) -> Secret:
    return Secret(
        name=record.name,
        value=value,
        kind=record.kind,
        description=record.description,
        last_used=as_utc(record.last_used),
        created_on=as_utc(record.created_on),
    )


def _by_name(name: str):
    return SecretRecord.name == name


class SecretStore(SqlStore):
    """
    SQLite-backed store of named secrets.

    Names are unique case-insensitively; the casing given on first save is kept.
    """

    tables = (SecretRecord,)

    def __init__(self, database: Database, cipher: CipherService):
        super().__init__(database)
        self._cipher = cipher

    async def get_all(self) -> list[Secret]:
        """All secrets, decrypted, ordered by name."""
        async with self._session("get_all") as session:
            records = (await session.scalars(select(SecretRecord).order_by(SecretRecord.name))).all()
        return [_to_secret(r, self._cipher.decrypt(r.value)) for r in records]

    async def get_all_raw(self) -> list[Secret]:
        """All secrets with values exactly as stored."""
        async with self._session("get_all_raw") as session:
            records = (await session.scalars(select(SecretRecord).order_by(SecretRecord.name))).all()
        return [_to_secret(r, r.value) for r in records]

    async def get_by_name(self, name: str) -> Optional[Secret]:
        async with self._session("get_by_name") as session:
            record = (await session.scalars(select(SecretRecord).where(_by_name(name)))).first()
        if record is None:
            return None
        return _to_secret(record, self._cipher.decrypt(record.value))

    async def save(self, secret: Secret) -> Secret:
        """
        Insert or update a secret, encrypting its value.

        On update the original creation timestamp is preserved; on insert a
        new one is stamped.

        Args:
            secret: Secret with a plaintext value

        Returns:
            The secret as saved, with the plaintext value
        """
        saved = await self._upsert(secret, self._cipher.encrypt(secret.value), stamp_created=True)
        return saved.model_copy(update={"value": secret.value})

    async def save_raw_direct(self, secret: Secret) -> Secret:
        """
        Insert or update a secret without encrypting its value.

        Used only by rotation and migration, which supply ciphertext they
        have already produced and verified.
        """
        return await self._upsert(secret, secret.value, stamp_created=False)

    async def _upsert(self, secret: Secret, stored_value: str, stamp_created: bool) -> Secret:
        stmt = insert(SecretRecord).values(
            name=secret.name,
            value=stored_value,
            kind=secret.kind,
            description=secret.description,
            last_used=as_utc(secret.last_used),
            created_on=utcnow() if stamp_created else (as_utc(secret.created_on) or utcnow()),
        )
        # created_on and the stored casing of name are kept on conflict
        changes = {
            "value": stmt.excluded.value,
            "kind": stmt.excluded.kind,
            "description": stmt.excluded.description,
        }
        if secret.last_used is not None:
            changes["last_used"] = stmt.excluded.last_used
        stmt = stmt.on_conflict_do_update(index_elements=[SecretRecord.name], set_=changes)

        async with self._session("save") as session:
            record = (await session.scalars(stmt.returning(SecretRecord))).one()

        log.info("secret.saved", name=record.name, encrypted=self._cipher.is_encrypted(stored_value))
        return _to_secret(record, stored_value)

    async def delete(self, name: str) -> bool:
        async with self._session("delete") as session:
            result = await session.execute(
                delete(SecretRecord).where(_by_name(name)).execution_options(synchronize_session=False)
            )
        deleted = result.rowcount > 0
        log.info("secret.deleted", name=name, deleted=deleted)
        return deleted

    async def touch_last_used(self, name: str) -> Optional[datetime]:
        """Stamp last_used and return the stamp; failures are logged and give None."""
        stamp = utcnow()
        try:
            async with self._session("touch_last_used") as session:
                await session.execute(
                    update(SecretRecord)
                    .where(_by_name(name))
                    .values(last_used=stamp)
                    .execution_options(synchronize_session=False)
                )
        except StorageError as e:
            log.warning("secret.touch_failed", name=name, error=str(e))
            return None
        return stamp
