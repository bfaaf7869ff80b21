from fastapi import APIRouter

from .credentials_router import router as credentials_router
from .secrets_router import router as secrets_router
from .security_router import router as security_router

router = APIRouter()
router.include_router(secrets_router)
router.include_router(credentials_router)
router.include_router(security_router)
