"""
Admin API for named secrets.
"""
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
import structlog

from ..models import Secret
from ..services.stores import SecretStore
from .deps import get_secret_store, require_admin
from .schemas import SECRET_NAME_MAX_LENGTH, SECRET_NAME_PATTERN, SecretSummary, SecretUpsertRequest

log = structlog.get_logger()

router = APIRouter(prefix="/v1/secrets", tags=["secrets"], dependencies=[Depends(require_admin)])

SecretName = Annotated[str, Path(pattern=SECRET_NAME_PATTERN, max_length=SECRET_NAME_MAX_LENGTH)]


@router.get("", response_model=List[SecretSummary], summary="List secrets")
async def list_secrets(store: SecretStore = Depends(get_secret_store)) -> List[SecretSummary]:
    """
    List stored secrets.

    Values are never included; fetch a single secret to see its value.
    """
    return [
        SecretSummary(
            name=s.name,
            kind=s.kind,
            description=s.description,
            last_used=s.last_used,
            created_on=s.created_on,
        )
        for s in await store.get_all_raw()
    ]


@router.get("/{name}", response_model=Secret, summary="Get secret")
async def get_secret(name: SecretName, store: SecretStore = Depends(get_secret_store)) -> Secret:
    secret = await store.get_by_name(name)
    if secret is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Secret not found")

    touched = await store.touch_last_used(secret.name)
    if touched is not None:
        secret = secret.model_copy(update={"last_used": touched})
    return secret


@router.put("/{name}", response_model=Secret, summary="Create or update secret")
async def put_secret(
    name: SecretName,
    body: SecretUpsertRequest,
    store: SecretStore = Depends(get_secret_store),
) -> Secret:
    """
    Create or overwrite a secret. The value is encrypted before it is stored.
    """
    saved = await store.save(Secret(name=name, value=body.value, kind=body.kind, description=body.description))
    log.info("secret.upserted", name=saved.name)
    return saved


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete secret")
async def delete_secret(name: SecretName, store: SecretStore = Depends(get_secret_store)) -> Response:
    if not await store.delete(name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Secret not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
