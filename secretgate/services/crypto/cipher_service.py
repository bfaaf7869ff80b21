"""
Core Cipher Service for SecretGate

Implements the symmetric encryption used for everything persisted at rest:
- Passphrase-based key derivation (PBKDF2-HMAC-SHA256, fixed salt)
- AES-256-GCM encryption with a random nonce per call
- Marker-prefixed text envelope: "ENC:" + base64(nonce || ciphertext+tag)
- Secure random key generation

Values without the marker are treated as legacy plaintext. The marker is
assumed never to begin a legitimate plaintext secret.
"""

import base64
import binascii
import os
import secrets
from typing import Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

log = structlog.get_logger()


class CryptoError(Exception):
    """Base exception for cryptographic operations"""
    pass


class EncryptionError(CryptoError):
    """Raised when encryption fails"""
    pass


class KeyGenerationError(CryptoError):
    """Raised when a generated key collides with a configured passphrase"""
    pass


class CipherService:
    """
    Symmetric cipher bound to a single passphrase-derived key.

    One instance is built at startup from the configured passphrase and shared
    by every store. Key rotation builds a second, short-lived instance for the
    new passphrase.

    decrypt() never raises: malformed envelopes and wrong-key failures return
    the input unchanged so callers keep working with best-effort data.
    """

    MARKER = "ENC:"
    INSECURE_DEFAULT_PASSPHRASE = "DefaultInsecureKey_DoNotUseInProduction!"
    KDF_SALT = b"secretgate.salt"
    KDF_ITERATIONS = 10000
    KEY_LENGTH = 32   # AES-256
    NONCE_SIZE = 12   # 96-bit GCM nonce
    TAG_SIZE = 16
    DEFAULT_GENERATED_KEY_LENGTH = 32

    def __init__(self, passphrase: Optional[str] = None):
        """
        Initialize CipherService.

        Args:
            passphrase: Passphrase to derive the key from. When empty, the
                        insecure built-in default is used and a warning is logged.
        """
        if not passphrase:
            log.warning(
                "cipher.insecure_default_key",
                message="ENCRYPTION_KEY is not set; secrets are NOT securely encrypted. "
                        "Set ENCRYPTION_KEY before storing production data.",
            )
            passphrase = self.INSECURE_DEFAULT_PASSPHRASE
            self._insecure = True
        else:
            self._insecure = False

        self._passphrase = passphrase
        self._aead = AESGCM(self.derive_key(passphrase))

    @classmethod
    def derive_key(cls, passphrase: str) -> bytes:
        """
        Stretch a passphrase into a raw 32-byte key.

        Args:
            passphrase: Passphrase to derive from

        Returns:
            Raw key bytes
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=cls.KEY_LENGTH,
            salt=cls.KDF_SALT,
            iterations=cls.KDF_ITERATIONS,
        )
        return kdf.derive(passphrase.encode("utf-8"))

    @property
    def uses_insecure_default(self) -> bool:
        """True when running on the built-in fallback passphrase"""
        return self._insecure

    def is_encrypted(self, text: Optional[str]) -> bool:
        """Marker-prefix test only; performs no cryptography."""
        return bool(text) and text.startswith(self.MARKER)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string into a marker-prefixed envelope.

        Already-marked input is returned unchanged so repeated calls are
        idempotent. Empty input is returned unchanged.

        Args:
            plaintext: Text to encrypt

        Returns:
            "ENC:" + base64(nonce || ciphertext+tag)

        Raises:
            EncryptionError: If the cipher fails
        """
        if not plaintext:
            return plaintext

        if self.is_encrypted(plaintext):
            log.warning("cipher.encrypt_skipped", reason="already_encrypted")
            return plaintext

        try:
            nonce = os.urandom(self.NONCE_SIZE)
            sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        except Exception as e:
            log.error("cipher.encrypt_failed", error_type=type(e).__name__)
            raise EncryptionError(f"Encryption failed: {type(e).__name__}") from e

        return self.MARKER + base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """
        Decrypt a marker-prefixed envelope.

        Args:
            ciphertext: Stored value, encrypted or legacy plaintext

        Returns:
            The plaintext, or the input unchanged when it is unmarked or
            cannot be decrypted under this key
        """
        if not ciphertext or not self.is_encrypted(ciphertext):
            return ciphertext

        payload = ciphertext[len(self.MARKER):]
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            log.error("cipher.decrypt_failed", reason="invalid_base64")
            return ciphertext

        if len(raw) < self.NONCE_SIZE + self.TAG_SIZE:
            log.error("cipher.decrypt_failed", reason="too_short", length=len(raw))
            return ciphertext

        nonce, sealed = raw[:self.NONCE_SIZE], raw[self.NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, sealed, None).decode("utf-8")
        except InvalidTag:
            log.error("cipher.decrypt_failed", reason="authentication_failed")
            return ciphertext
        except UnicodeDecodeError:
            log.error("cipher.decrypt_failed", reason="invalid_utf8")
            return ciphertext
        except Exception as e:
            log.error("cipher.decrypt_failed", reason="unexpected", error_type=type(e).__name__)
            return ciphertext

    def generate_key(self, length: int = DEFAULT_GENERATED_KEY_LENGTH) -> str:
        """
        Generate a cryptographically secure random key.

        Args:
            length: Number of random bytes (default: 32)

        Returns:
            Base64-encoded key

        Raises:
            ValueError: If length is not positive
            KeyGenerationError: If the key equals this service's passphrase
        """
        if length <= 0:
            raise ValueError("Key length must be positive")

        key = base64.b64encode(secrets.token_bytes(length)).decode("ascii")
        if secrets.compare_digest(key.encode("utf-8"), self._passphrase.encode("utf-8")):
            raise KeyGenerationError("Generated key collides with the configured passphrase")
        return key
