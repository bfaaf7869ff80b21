"""
SecretGate Cryptographic Services Module

Provides the symmetric cipher used for data at rest:
- Passphrase key derivation
- Marker-prefixed AES-GCM encryption/decryption
- Secure key generation
"""

from .cipher_service import (
    CipherService,
    CryptoError,
    EncryptionError,
    KeyGenerationError,
)

__all__ = [
    "CipherService",
    "CryptoError",
    "EncryptionError",
    "KeyGenerationError",
]
