"""Authorization middleware: runs the gateway in front of every route."""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ..auth.gateway import AuthDecision, AuthorizationGateway, AuthRequest

log = structlog.get_logger()

PUBLIC_PATHS = frozenset({"/health", "/health/ready", "/metrics"})


class PayloadTooLarge(Exception):
    pass


class AuthorizationMiddleware(BaseHTTPMiddleware):
    """
    Admits or rejects each request using AuthorizationGateway.

    The tool endpoint's body is read here to find a body-borne token and the
    JSON-RPC operation; the cached bytes are handed on so the route can read it again.
    Admitted requests carry request.state.principal and request.state.is_master.
    """

    def __init__(self, app, gateway: AuthorizationGateway, max_body_size: int = 1048576, metrics=None):
        super().__init__(app)
        self.gateway = gateway
        self.max_body_size = max_body_size
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in PUBLIC_PATHS or path.startswith("/metrics/"):
            return await call_next(request)

        body = None
        if self.gateway.inspects_body(request.method, path):
            try:
                body = await self._read_body(request)
            except PayloadTooLarge as e:
                log.warning("payload.too_large", size=str(e), max_size=self.max_body_size, path=path)
                return JSONResponse(
                    status_code=413,
                    content={
                        "error": "PayloadTooLarge",
                        "message": f"Request payload exceeds maximum size of {self.max_body_size} bytes",
                    },
                )
            except Exception as e:
                log.error("auth.body_read_failed", error=str(e), error_type=type(e).__name__, path=path)
                return self._reject(AuthDecision.failure())

        decision = await self.gateway.authorize(
            AuthRequest(
                method=request.method,
                path=path,
                headers=dict(request.headers),
                body=body,
                client_ip=request.client.host if request.client else "unknown",
            )
        )
        if self.metrics is not None:
            self.metrics.record_auth_decision(decision.state.value)

        if not decision.allowed:
            return self._reject(decision)

        request.state.principal = decision.principal
        request.state.is_master = decision.principal.is_master
        return await call_next(request)

    async def _read_body(self, request: Request) -> bytes:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            raise PayloadTooLarge(content_length)

        # Request.body caches the bytes, and call_next hands them to the route
        body = await request.body()
        if len(body) > self.max_body_size:
            raise PayloadTooLarge(str(len(body)))
        return body

    @staticmethod
    def _reject(decision: AuthDecision) -> JSONResponse:
        return JSONResponse(status_code=decision.status_code, content=decision.error.model_dump())
