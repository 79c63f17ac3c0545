"""
Structured Logging
==================
structlog configuration for services embedding the security core.

Every event dict passes through the sanitizer before it is rendered, so
secrets handed to a logger by mistake never reach the log stream.

Usage:
    from crm_security.logging import setup_logging

    setup_logging(service_name="cre-crm")
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, MutableMapping

import structlog

from ..sanitizer import redact

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
service_name_var: ContextVar[str] = ContextVar("service_name", default="unknown")

# Keys structlog manages itself; never redacted
_RESERVED_KEYS = {"event", "level", "timestamp", "logger", "exc_info"}


def add_request_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Bind service/request/user context variables into the event."""
    event_dict.setdefault("service", service_name_var.get())
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    user_id = user_id_var.get()
    if user_id:
        event_dict.setdefault("user_id", user_id)
    return event_dict


def redact_event(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Run the sanitizer over every non-reserved key of the event."""
    payload: Dict[str, Any] = {
        k: v for k, v in event_dict.items() if k not in _RESERVED_KEYS
    }
    cleaned = redact(payload)
    for key in _RESERVED_KEYS:
        if key in event_dict:
            cleaned[key] = event_dict[key]
    if isinstance(cleaned.get("event"), str):
        cleaned["event"] = redact(cleaned["event"])
    return cleaned


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> logging.Logger:
    """
    Configure structlog and the stdlib root logger.

    Args:
        service_name: Name of the service (e.g., "cre-crm")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to render JSON (for production)

    Returns:
        Configured root logger
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_request_context,
            redact_event,
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "logging_configured", service=service_name, level=level.upper()
    )
    return root_logger
