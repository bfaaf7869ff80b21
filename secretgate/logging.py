"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2025-11-18T04:30:00.123456Z",
    "level": "info",
    "service": "secretgate",
    "correlation_id": "uuid-v4",
    "event": "auth.denied",
    "module": "secretgate.auth.gateway",
    "function": "authorize",
    "line": 42,
    ...additional context...
}

Secret values, presented tokens and ciphertext are never passed to the logger;
log lengths, ids and names instead.
"""
import structlog
import logging
from typing import Any

_service_name = "secretgate"


def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add service name to all log entries."""
    event_dict["service"] = _service_name
    return event_dict


def setup_logging(json_output: bool = True, service_name: str = "secretgate", level: str = "INFO"):
    """
    Configure structured logging with standardized fields.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        service_name: Name of the service (for multi-service deployments).
        level: Minimum log level name.
    """
    global _service_name
    _service_name = service_name
    log_level = logging.getLevelName(level.upper())

    shared_processors = [
        # Add contextvars (includes correlation_id from middleware)
        structlog.contextvars.merge_contextvars,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging (SQLAlchemy, uvicorn) at the same level
    logging.basicConfig(
        format="%(message)s",
        level=log_level,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    # Silence uvicorn's default logging to avoid duplicate logs
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("uvicorn.access").handlers = []


def get_logger(name: str | None = None):
    """Get a configured structlog logger."""
    return structlog.get_logger(name)
