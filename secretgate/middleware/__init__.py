from .authorization import AuthorizationMiddleware
from .correlation import CorrelationIdMiddleware, get_correlation_id
from .error_handler import ErrorHandlerMiddleware
from .metrics import MetricsMiddleware

__all__ = [
    "AuthorizationMiddleware",
    "CorrelationIdMiddleware",
    "ErrorHandlerMiddleware",
    "MetricsMiddleware",
    "get_correlation_id",
]
