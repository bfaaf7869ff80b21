"""
Request authorization for the tool endpoint and the admin API.

Every request moves through one state machine:

    START -> TOKEN_EXTRACTED -> CREDENTIAL_RESOLVED -> SCOPE_CHECKED -> ALLOWED
                  |                    |                    |
           UNAUTHENTICATED          DENIED               DENIED

with FAILED for anything unexpected. Each branch builds its AuthDecision
directly; nothing is raised across the gateway boundary.

Token sources, in order: "Authorization: Bearer <token>", the X-API-Key
header, and for POSTs to the tool endpoint the JSON-RPC field
params._meta.apiKey. The master key bypasses all scoping. User credentials
are restricted to USER_ALLOWED_OPERATIONS and, when they carry an allow-list,
to the named connections.
"""
from enum import Enum
from typing import Any, Optional

import orjson
import structlog
from pydantic import BaseModel, Field

from ..models import CredentialKind, UsageLogEntry
from ..services.credentials import CredentialManager

log = structlog.get_logger()

PROTOCOL_METHODS = frozenset({
    "initialize",
    "notifications/initialized",
    "ping",
    "tools/list",
})

READ_ONLY_TOOLS = frozenset({
    "ListConnections",
    "TestConnection",
    "Initialize",
    "GetTableMetadata",
    "GetDatabaseObjectsMetadata",
    "GetDatabaseObjectsByType",
    "GetSqlServerAgentJobs",
    "GetSqlServerAgentJobDetails",
    "GetSsisCatalogInfo",
    "GetAzureDevOpsInfo",
})

USER_ALLOWED_OPERATIONS = PROTOCOL_METHODS | READ_ONLY_TOOLS

RESOURCE_PARAM = "connectionName"

MSG_AUTH_REQUIRED = "Authentication required"
MSG_INVALID_FORMAT = "Invalid Authorization format"
MSG_INVALID_AUTH = "Invalid authentication"
MSG_INSUFFICIENT = "Insufficient permissions"
MSG_FAILURE = "Authorization failure"


class AuthState(str, Enum):
    START = "start"
    TOKEN_EXTRACTED = "token_extracted"
    CREDENTIAL_RESOLVED = "credential_resolved"
    SCOPE_CHECKED = "scope_checked"
    ALLOWED = "allowed"
    DENIED = "denied"
    UNAUTHENTICATED = "unauthenticated"
    FAILED = "failed"


class ErrorEnvelope(BaseModel):
    error: str
    message: str


class Principal(BaseModel):
    """The authenticated caller, attached to request.state.principal."""
    kind: CredentialKind
    name: str
    credential_id: Optional[str] = None
    owner_id: Optional[str] = None
    allowed_resource_names: Optional[list[str]] = None

    @property
    def is_master(self) -> bool:
        return self.kind == CredentialKind.MASTER

    @property
    def is_admin(self) -> bool:
        return self.kind in (CredentialKind.MASTER, CredentialKind.ADMIN)


MASTER_PRINCIPAL = Principal(kind=CredentialKind.MASTER, name="master")


class AuthDecision(BaseModel):
    state: AuthState
    status_code: int = 200
    principal: Optional[Principal] = None
    error: Optional[ErrorEnvelope] = None

    @property
    def allowed(self) -> bool:
        return self.state == AuthState.ALLOWED

    @classmethod
    def allow(cls, principal: Principal) -> "AuthDecision":
        return cls(state=AuthState.ALLOWED, principal=principal)

    @classmethod
    def unauthenticated(cls, message: str) -> "AuthDecision":
        return cls(
            state=AuthState.UNAUTHENTICATED,
            status_code=401,
            error=ErrorEnvelope(error="Unauthorized", message=message),
        )

    @classmethod
    def deny(cls, message: str) -> "AuthDecision":
        return cls(
            state=AuthState.DENIED,
            status_code=403,
            error=ErrorEnvelope(error="Forbidden", message=message),
        )

    @classmethod
    def failure(cls) -> "AuthDecision":
        return cls(
            state=AuthState.FAILED,
            status_code=500,
            error=ErrorEnvelope(error="InternalServerError", message=MSG_FAILURE),
        )


class AuthRequest(BaseModel):
    """The parts of an HTTP request the gateway looks at."""
    method: str
    path: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None
    client_ip: str = "unknown"

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


def parse_payload(body: Optional[bytes]) -> Optional[dict[str, Any]]:
    """JSON-RPC object from a request body; None when absent or unparsable."""
    if not body:
        return None
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        log.debug("auth.payload_unparsable", size=len(body))
        return None
    return payload if isinstance(payload, dict) else None


def _params(payload: dict[str, Any]) -> dict[str, Any]:
    params = payload.get("params")
    return params if isinstance(params, dict) else {}


def body_token(payload: Optional[dict[str, Any]]) -> Optional[str]:
    if payload is None:
        return None
    meta = _params(payload).get("_meta")
    if not isinstance(meta, dict):
        return None
    token = meta.get("apiKey")
    return token if isinstance(token, str) and token else None


def operation_name(payload: Optional[dict[str, Any]]) -> Optional[str]:
    """Top-level method, or the tool name for tools/call."""
    if payload is None:
        return None
    method = payload.get("method")
    if not isinstance(method, str):
        return None
    if method == "tools/call":
        name = _params(payload).get("name")
        return name if isinstance(name, str) else None
    return method


def resource_names(payload: Optional[dict[str, Any]]) -> list[str]:
    """Every non-empty connectionName in params and params.arguments."""
    if payload is None:
        return []
    params = _params(payload)
    candidates = [params.get(RESOURCE_PARAM)]
    arguments = params.get("arguments")
    if isinstance(arguments, dict):
        candidates.append(arguments.get(RESOURCE_PARAM))
    return [str(value) for value in candidates if value is not None and value != ""]


class AuthorizationGateway:
    """
    Decides whether a request may proceed.

    Args:
        credentials: Credential manager (store access and master-key check)
        tool_path: Path of the JSON-RPC tool endpoint
    """

    def __init__(self, credentials: CredentialManager, tool_path: str = "/mcp"):
        self._credentials = credentials
        self.tool_path = tool_path

    def inspects_body(self, method: str, path: str) -> bool:
        return method.upper() == "POST" and path == self.tool_path

    async def authorize(self, request: AuthRequest) -> AuthDecision:
        try:
            decision = await self._authorize(request)
        except Exception as e:
            log.error(
                "auth.failed",
                path=request.path,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return AuthDecision.failure()

        if decision.allowed:
            log.debug("auth.allowed", path=request.path, principal=decision.principal.kind.value)
        else:
            log.info(
                "auth.rejected",
                path=request.path,
                state=decision.state.value,
                status_code=decision.status_code,
                reason=decision.error.message,
            )
        return decision

    async def _authorize(self, request: AuthRequest) -> AuthDecision:
        on_tool_endpoint = self.inspects_body(request.method, request.path)
        payload = parse_payload(request.body) if on_tool_endpoint else None

        authorization = request.header("authorization")
        if authorization is not None:
            scheme, _, token = authorization.strip().partition(" ")
            token = token.strip()
            if scheme.lower() != "bearer" or not token:
                return AuthDecision.unauthenticated(MSG_INVALID_FORMAT)
        else:
            token = request.header("x-api-key") or body_token(payload)

        if not token:
            return AuthDecision.unauthenticated(MSG_AUTH_REQUIRED)

        if self._credentials.is_master_key(token):
            return AuthDecision.allow(MASTER_PRINCIPAL)

        credential = await self._credentials.store.validate_credential(token)
        if credential is None:
            return AuthDecision.deny(MSG_INVALID_AUTH)

        principal = Principal(
            kind=credential.kind,
            name=credential.name,
            credential_id=credential.id,
            owner_id=credential.owner_id,
            allowed_resource_names=credential.allowed_resource_names,
        )

        if credential.kind == CredentialKind.USER and on_tool_endpoint:
            operation = operation_name(payload)
            if operation not in USER_ALLOWED_OPERATIONS:
                log.info("auth.operation_denied", credential_id=credential.id, operation=operation)
                return AuthDecision.deny(MSG_INSUFFICIENT)

            for resource in resource_names(payload):
                if not credential.allows_resource(resource):
                    log.info("auth.resource_denied", credential_id=credential.id, resource=resource)
                    return AuthDecision.deny(f"Access to connection '{resource}' is not permitted")

        await self._credentials.store.log_usage(
            UsageLogEntry(
                credential_id=credential.id,
                owner_id=credential.owner_id,
                resource=request.path,
                method=request.method,
                source_ip=request.client_ip or "unknown",
                user_agent=request.header("user-agent") or "",
            )
        )
        return AuthDecision.allow(principal)
