"""
SecretGate - Trust and access layer for a tool-serving backend.

Features:
- Secrets and API keys encrypted at rest (AES-GCM)
- Authorization of every request, with per-credential capability and
  connection scoping on the JSON-RPC tool endpoint
- Encryption key rotation and migration of legacy plaintext secrets
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from .api.router import router
from .auth.gateway import AuthorizationGateway
from .config import Settings, get_settings
from .health import HealthChecker
from .logging import get_logger, setup_logging
from .metrics import Metrics
from .middleware import (
    AuthorizationMiddleware,
    CorrelationIdMiddleware,
    ErrorHandlerMiddleware,
    MetricsMiddleware,
)
from .services.credentials import CredentialManager
from .services.crypto import CipherService
from .services.key_rotation import KeyRotationService
from .services.stores import CredentialStore, Database, SecretStore

SERVICE_NAME = "secretgate"
VERSION = "0.1.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and wire every component from one Settings object.

    Args:
        settings: Explicit settings; defaults to the environment

    Returns:
        The configured FastAPI app. Components are on app.state.
    """
    settings = settings or get_settings()

    setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME, level=settings.LOG_LEVEL)
    logger = get_logger()

    metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
    database = Database(settings.database_url)
    cipher = CipherService(settings.ENCRYPTION_KEY)
    secret_store = SecretStore(database, cipher)
    credential_store = CredentialStore(database, cipher)
    credential_manager = CredentialManager(credential_store, cipher, master_key=settings.MASTER_API_KEY)
    rotation_service = KeyRotationService(secret_store, cipher)
    gateway = AuthorizationGateway(credential_manager, tool_path=settings.TOOL_ENDPOINT_PATH)

    data_dir = Path(settings.DATA_DIR)
    health_checker = HealthChecker(
        database,
        cipher,
        service_name=SERVICE_NAME,
        version=VERSION,
        data_dir=str(data_dir) if data_dir.is_dir() else "/",
    )

    app = FastAPI(
        title="SecretGate",
        version=VERSION,
        description="Encrypted secret and credential store with request authorization",
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.database = database
    app.state.cipher = cipher
    app.state.secret_store = secret_store
    app.state.credential_store = credential_store
    app.state.credential_manager = credential_manager
    app.state.rotation_service = rotation_service
    app.state.gateway = gateway

    # Last added runs first: correlation ID, error rendering, metrics, then authorization
    app.add_middleware(
        AuthorizationMiddleware,
        gateway=gateway,
        max_body_size=settings.MAX_BODY_SIZE,
        metrics=metrics,
    )
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)

    # Mount Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/health")
    async def health():
        """
        Liveness probe - basic health check.

        Returns 200 if service is running.
        """
        logger.debug("health_check_liveness")
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness probe - comprehensive health check.

        Returns:
            200: Service is ready to handle traffic
            503: Service is not ready
        """
        logger.debug("health_check_readiness")
        metrics.update_system_metrics()
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(content=result, status_code=status_code)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            tool_endpoint=settings.TOOL_ENDPOINT_PATH,
            master_key_configured=bool(settings.MASTER_API_KEY),
            insecure_encryption_key=cipher.uses_insecure_default,
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("service_stopping")
        metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)
        await database.dispose()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "secretgate.main:app",
        host="0.0.0.0",
        port=get_settings().SERVICE_PORT,
        reload=True,
    )
