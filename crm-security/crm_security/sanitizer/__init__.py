"""
Sanitizer
=========
Redacts sensitive field names and PII-shaped substrings from records before
they are logged or hashed.
"""

from .masking import (
    REDACTION_MARKER,
    mask_credit_card,
    mask_ssn,
    mask_email,
    mask_phone,
    mask_patterns,
    mask_contact_patterns,
)
from .redactor import DEFAULT_SENSITIVE_FIELDS, is_sensitive_key, redact, scrub_text

__all__ = [
    # Masking
    "REDACTION_MARKER",
    "mask_credit_card",
    "mask_ssn",
    "mask_email",
    "mask_phone",
    "mask_patterns",
    "mask_contact_patterns",
    # Redaction
    "DEFAULT_SENSITIVE_FIELDS",
    "is_sensitive_key",
    "redact",
    "scrub_text",
]
