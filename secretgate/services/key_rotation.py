"""
Encryption key rotation and migration of legacy plaintext secrets.

Both operations work one secret at a time: each value is encrypted, verified
by decrypting it again, and only then written back with
SecretStore.save_raw_direct. A secret that fails at any step is counted and
left untouched; the batch carries on.

Rotation does not swap the key used by the running process. Other components
keep the cipher they were built with until the service is restarted with the
new passphrase in ENCRYPTION_KEY.
"""
from typing import Callable

import structlog

from ..models import CamelModel, Secret
from .crypto import CipherService
from .stores import SecretStore

log = structlog.get_logger()

RESTART_MESSAGE = (
    "Encryption key rotated. Restart the service with the new key set in ENCRYPTION_KEY; "
    "the running process still uses the old key."
)


class RotationReport(CamelModel):
    count: int = 0
    failures: int = 0
    skipped: int = 0
    message: str = ""


class KeyRotationService:
    """
    Bulk re-encryption of secrets.

    Args:
        secret_store: Store holding the secrets
        cipher: Cipher bound to the current key
        cipher_factory: Builds a cipher for a new passphrase
    """

    def __init__(
        self,
        secret_store: SecretStore,
        cipher: CipherService,
        cipher_factory: Callable[[str], CipherService] = CipherService,
    ):
        self._secrets = secret_store
        self._cipher = cipher
        self._cipher_factory = cipher_factory

    async def rotate_key(self, new_passphrase: str) -> RotationReport:
        """
        Re-encrypt every secret under a key derived from new_passphrase.

        Args:
            new_passphrase: Passphrase for the new key

        Returns:
            Report with rotated, failed and skipped counts

        Raises:
            ValueError: If new_passphrase is empty
            StorageError: If the secrets cannot be listed
        """
        if not new_passphrase:
            raise ValueError("New encryption key cannot be empty")

        log.info("rotation.started")
        new_cipher = self._cipher_factory(new_passphrase)
        report = RotationReport()

        for secret in await self._secrets.get_all():
            if not secret.value:
                log.warning("rotation.skipped", name=secret.name, reason="empty_value")
                report.skipped += 1
                continue
            if self._cipher.is_encrypted(secret.value):
                # decrypt() hands back ciphertext it could not open with the current key
                log.error("rotation.item_failed", name=secret.name, reason="undecryptable")
                report.failures += 1
                continue

            if await self._reencrypt(secret, new_cipher, operation="rotation"):
                report.count += 1
            else:
                report.failures += 1

        report.message = RESTART_MESSAGE
        self._log_outcome("rotation", report)
        return report

    async def migrate_unencrypted(self) -> RotationReport:
        """
        Encrypt legacy plaintext secrets under the current key.

        Values already carrying the marker are not written at all.

        Returns:
            Report with migrated, failed and skipped counts

        Raises:
            StorageError: If the secrets cannot be listed
        """
        log.info("migration.started")
        report = RotationReport()

        for secret in await self._secrets.get_all_raw():
            if self._cipher.is_encrypted(secret.value):
                continue
            if not secret.value:
                log.warning("migration.skipped", name=secret.name, reason="empty_value")
                report.skipped += 1
                continue

            if await self._reencrypt(secret, self._cipher, operation="migration"):
                report.count += 1
            else:
                report.failures += 1

        report.message = f"Migrated {report.count} secrets to encrypted format"
        self._log_outcome("migration", report)
        return report

    async def _reencrypt(self, secret: Secret, cipher: CipherService, operation: str) -> bool:
        try:
            encrypted = cipher.encrypt(secret.value)
            if cipher.decrypt(encrypted) != secret.value:
                log.error(f"{operation}.item_failed", name=secret.name, reason="verification_mismatch")
                return False
            await self._secrets.save_raw_direct(secret.model_copy(update={"value": encrypted}))
        except Exception as e:
            log.error(f"{operation}.item_failed", name=secret.name, reason="exception", error_type=type(e).__name__)
            return False
        return True

    @staticmethod
    def _log_outcome(operation: str, report: RotationReport) -> None:
        if report.failures:
            log.warning(
                f"{operation}.completed_with_failures",
                count=report.count,
                failures=report.failures,
                skipped=report.skipped,
            )
        else:
            log.info(f"{operation}.completed", count=report.count, skipped=report.skipped)
