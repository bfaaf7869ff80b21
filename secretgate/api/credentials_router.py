"""
Admin API for credentials (API keys) and their usage logs.
"""
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..models import CreateCredentialRequest, CredentialCreated, CredentialResponse, UsageLogEntry
from ..services.credentials import CredentialManager
from .deps import get_credential_manager, require_admin
from .schemas import OperationResult

router = APIRouter(prefix="/v1", tags=["credentials"], dependencies=[Depends(require_admin)])

UsageLimit = Annotated[int, Query(ge=1, le=1000)]


@router.post(
    "/credentials",
    response_model=CredentialCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create credential",
)
async def create_credential(
    request: CreateCredentialRequest,
    manager: CredentialManager = Depends(get_credential_manager),
) -> CredentialCreated:
    """
    Issue a new API key.

    The response is the only place the key is ever shown.
    """
    try:
        return await manager.create_credential(request)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/credentials", response_model=List[CredentialResponse], summary="List credentials")
async def list_credentials(
    owner_id: Optional[str] = Query(None, alias="ownerId"),
    manager: CredentialManager = Depends(get_credential_manager),
) -> List[CredentialResponse]:
    return await manager.list_credentials(owner_id)


@router.get("/credentials/{credential_id}", response_model=CredentialResponse, summary="Get credential")
async def get_credential(
    credential_id: str,
    manager: CredentialManager = Depends(get_credential_manager),
) -> CredentialResponse:
    credential = await manager.get_credential(credential_id)
    if credential is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Credential not found")
    return credential


@router.post("/credentials/{credential_id}/revoke", response_model=OperationResult, summary="Revoke credential")
async def revoke_credential(
    credential_id: str,
    manager: CredentialManager = Depends(get_credential_manager),
) -> OperationResult:
    if await manager.revoke_credential(credential_id):
        return OperationResult(success=True, message=f"Credential {credential_id} revoked")
    return OperationResult(success=False, message=f"No active credential {credential_id}")


@router.delete("/credentials/{credential_id}", response_model=OperationResult, summary="Delete credential")
async def delete_credential(
    credential_id: str,
    manager: CredentialManager = Depends(get_credential_manager),
) -> OperationResult:
    """Permanently delete a credential together with its usage log."""
    if await manager.delete_credential(credential_id):
        return OperationResult(success=True, message=f"Credential {credential_id} deleted")
    return OperationResult(success=False, message=f"Credential {credential_id} not found")


@router.get(
    "/credentials/{credential_id}/usage",
    response_model=List[UsageLogEntry],
    summary="Credential usage log",
)
async def credential_usage(
    credential_id: str,
    limit: UsageLimit = 100,
    manager: CredentialManager = Depends(get_credential_manager),
) -> List[UsageLogEntry]:
    return await manager.get_usage_logs(credential_id=credential_id, limit=limit)


@router.get("/owners/{owner_id}/usage", response_model=List[UsageLogEntry], summary="Owner usage log")
async def owner_usage(
    owner_id: str,
    limit: UsageLimit = 100,
    manager: CredentialManager = Depends(get_credential_manager),
) -> List[UsageLogEntry]:
    return await manager.get_usage_logs(owner_id=owner_id, limit=limit)
