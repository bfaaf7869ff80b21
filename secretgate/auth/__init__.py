from .gateway import (
    USER_ALLOWED_OPERATIONS,
    AuthDecision,
    AuthorizationGateway,
    AuthRequest,
    AuthState,
    ErrorEnvelope,
    Principal,
)

__all__ = [
    "USER_ALLOWED_OPERATIONS",
    "AuthDecision",
    "AuthorizationGateway",
    "AuthRequest",
    "AuthState",
    "ErrorEnvelope",
    "Principal",
]
