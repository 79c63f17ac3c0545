"""
Security Core Logging
=====================
Structured, redacting logging for services embedding the security core.
"""

from .structured import (
    setup_logging,
    add_request_context,
    redact_event,
    request_id_var,
    user_id_var,
    service_name_var,
)

__all__ = [
    "setup_logging",
    "add_request_context",
    "redact_event",
    "request_id_var",
    "user_id_var",
    "service_name_var",
]
