from .database import Database, StorageError
from .secret_store import SecretStore
from .credential_store import CredentialStore

__all__ = [
    "Database",
    "StorageError",
    "SecretStore",
    "CredentialStore",
]
