"""
Admin API for encryption key management.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Query
import structlog

from ..metrics import Metrics
from ..services.crypto import CipherService
from ..services.key_rotation import KeyRotationService, RotationReport
from .deps import get_cipher, get_metrics, get_rotation_service, require_admin
from .schemas import GeneratedKeyResponse, RotateKeyRequest

log = structlog.get_logger()

router = APIRouter(prefix="/v1/security", tags=["security"], dependencies=[Depends(require_admin)])


@router.post("/rotate-key", response_model=RotationReport, summary="Rotate encryption key")
async def rotate_key(
    body: RotateKeyRequest,
    rotation: KeyRotationService = Depends(get_rotation_service),
    metrics: Metrics = Depends(get_metrics),
) -> RotationReport:
    """
    Re-encrypt every secret under a key derived from newKey.

    The running service keeps using the old key; restart it with newKey in
    ENCRYPTION_KEY once this returns.
    """
    log.info("security.rotate_key_requested")
    try:
        report = await rotation.rotate_key(body.new_key)
    except Exception:
        metrics.record_key_operation("rotate", "error")
        raise
    metrics.record_key_operation("rotate", "partial" if report.failures else "ok", report)
    return report


@router.post("/migrate", response_model=RotationReport, summary="Encrypt legacy plaintext secrets")
async def migrate(
    rotation: KeyRotationService = Depends(get_rotation_service),
    metrics: Metrics = Depends(get_metrics),
) -> RotationReport:
    log.info("security.migrate_requested")
    try:
        report = await rotation.migrate_unencrypted()
    except Exception:
        metrics.record_key_operation("migrate", "error")
        raise
    metrics.record_key_operation("migrate", "partial" if report.failures else "ok", report)
    return report


@router.post("/generate-key", response_model=GeneratedKeyResponse, summary="Generate encryption key")
async def generate_key(
    length: Annotated[int, Query(ge=16, le=64)] = 32,
    cipher: CipherService = Depends(get_cipher),
    metrics: Metrics = Depends(get_metrics),
) -> GeneratedKeyResponse:
    """Generate a random key suitable for ENCRYPTION_KEY. length is in bytes."""
    key = cipher.generate_key(length)
    metrics.record_key_operation("generate", "ok")
    return GeneratedKeyResponse(
        key=key,
        length=length,
        message="Generated a new encryption key. Use it as ENCRYPTION_KEY or pass it to rotate-key.",
    )
