"""
Record Redaction
================
Recursive redaction of sensitive fields from arbitrary nested records.

Runs before anything is logged or hashed, so that the persisted (redacted)
form is the only form that ever reaches a hash.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Tuple
from uuid import UUID

import structlog

from ..errors import SanitizationFailure
from .masking import REDACTION_MARKER, mask_contact_patterns, mask_patterns

logger = structlog.get_logger(__name__)

DEFAULT_SENSITIVE_FIELDS: Tuple[str, ...] = (
    "password", "newPassword", "oldPassword", "currentPassword",
    "token", "refreshToken", "accessToken",
    "apiKey", "api_key", "secret",
    "mfaSecret", "mfaCode", "verificationCode", "otp",
    "ssn", "creditCard", "cardNumber", "cvv", "pin",
    "authorization", "privateKey",
)

# Keys whose string values are also scanned for emails and phone numbers
CONTACT_FIELD_HINTS: Tuple[str, ...] = ("email", "phone", "mobile")

MAX_DEPTH = 32


def _normalize(fields: Iterable[str]) -> Tuple[str, ...]:
    return tuple(f.lower() for f in fields)


def is_sensitive_key(key: Any, sensitive_fields: Optional[Iterable[str]] = None) -> bool:
    """Case-insensitive substring match of a key against the sensitive list."""
    lowered = str(key).lower()
    fields = _normalize(sensitive_fields or DEFAULT_SENSITIVE_FIELDS)
    return any(field in lowered for field in fields)


def scrub_text(value: Any) -> Any:
    """
    Replace a string that cannot be encoded as UTF-8 (lone surrogates) with
    ``[REDACTED]``. Other values are returned unchanged.
    """
    if isinstance(value, str) and not _encodable(value, None):
        return REDACTION_MARKER
    return value


def _encodable(value: str, key: Optional[str]) -> bool:
    try:
        _ensure_utf8(value, key)
    except SanitizationFailure as e:
        logger.debug("sanitizer_unencodable_string", field=e.field, error=e.message)
        return False
    return True


def _ensure_utf8(value: str, key: Optional[str]) -> None:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise SanitizationFailure("String is not encodable as UTF-8", field=key, cause=e) from e


def redact(record: Any, sensitive_fields: Optional[Iterable[str]] = None) -> Any:
    """
    Return a redacted copy of ``record``.

    - Keys matching a sensitive field name (case-insensitive, substring)
      are replaced with ``[REDACTED]``.
    - String values are masked for card numbers and SSNs; values under
      email/phone keys are masked for contact details too.
    - Values that cannot be safely serialized, and strings that cannot be
      encoded as UTF-8, are replaced with ``[REDACTED]`` instead of raising.

    The input is never mutated.

    Args:
        record: Any JSON-like value (dict, list, str, number, ...)
        sensitive_fields: Field names to redact (defaults to
            DEFAULT_SENSITIVE_FIELDS)

    Returns:
        A JSON-serializable, redacted copy
    """
    fields = _normalize(sensitive_fields or DEFAULT_SENSITIVE_FIELDS)
    return _redact_value(record, fields, None, 0)


def _redact_value(value: Any, fields: Tuple[str, ...], key: Optional[str], depth: int) -> Any:
    if depth > MAX_DEPTH:
        logger.debug("sanitizer_max_depth_exceeded", field=key)
        return REDACTION_MARKER

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if not _encodable(value, key):
            return REDACTION_MARKER
        masked = mask_patterns(value)
        if key is not None and any(hint in key.lower() for hint in CONTACT_FIELD_HINTS):
            masked = mask_contact_patterns(masked)
        return masked

    if isinstance(value, dict):
        result = {}
        for k, v in value.items():
            name = scrub_text(str(k))
            if any(field in name.lower() for field in fields):
                result[name] = REDACTION_MARKER
            else:
                result[name] = _redact_value(v, fields, name, depth + 1)
        return result

    if isinstance(value, (list, tuple, set, frozenset)):
        return [_redact_value(item, fields, key, depth + 1) for item in value]

    if isinstance(value, Enum):
        return _redact_value(value.value, fields, key, depth + 1)

    try:
        return _coerce_scalar(value, key)
    except SanitizationFailure as e:
        logger.debug("sanitizer_unserializable_value", field=e.field, error=e.message)
        return REDACTION_MARKER


def _coerce_scalar(value: Any, key: Optional[str]) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    # Unknown objects (bytes, file handles, ORM instances, ...) are never
    # serialized into the audit trail
    raise SanitizationFailure(f"Cannot serialize {type(value).__name__}", field=key)
