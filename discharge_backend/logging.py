"""
Discharge Portal - Structured Logging

structlog configuration shared by the API process and the scripts.
Every log entry carries the request ID bound by SecurityMiddleware, and
credential-bearing fields are masked before rendering.
"""

import logging
from typing import Any, Dict

import structlog


# Field names whose values must never reach a log sink in clear
_REDACTED_KEYS = ("password", "secret", "token", "authorization")


def _redact_credentials(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Mask credential-bearing values, keeping a short prefix for correlation."""
    for key in list(event_dict.keys()):
        if any(marker in key.lower() for marker in _REDACTED_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 8:
                event_dict[key] = value[:4] + "***"
            elif value is not None:
                event_dict[key] = "***"
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog for the process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON lines for production, console output otherwise
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [structlog.dev.ConsoleRenderer(colors=False)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_request_context(**values: Any) -> None:
    """Bind values (request_id, tenant_id, ...) to every log entry of this request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
