"""Request-scoped dependencies for the admin API."""
from fastapi import HTTPException, Request, status

from ..auth.gateway import MSG_INSUFFICIENT, Principal
from ..metrics import Metrics
from ..services.credentials import CredentialManager
from ..services.crypto import CipherService
from ..services.key_rotation import KeyRotationService
from ..services.stores import SecretStore


def require_admin(request: Request) -> Principal:
    """Admit only the master key or admin credentials."""
    principal = getattr(request.state, "principal", None)
    if principal is None or not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=MSG_INSUFFICIENT)
    return principal


def get_secret_store(request: Request) -> SecretStore:
    return request.app.state.secret_store


def get_credential_manager(request: Request) -> CredentialManager:
    return request.app.state.credential_manager


def get_rotation_service(request: Request) -> KeyRotationService:
    return request.app.state.rotation_service


def get_cipher(request: Request) -> CipherService:
    return request.app.state.cipher


def get_metrics(request: Request) -> Metrics:
    return request.app.state.metrics
