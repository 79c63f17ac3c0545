"""
PII Masking
===========
Pattern-based masking of PII-shaped substrings. Masks preserve the shape of
the original value while hiding everything but the last four digits.
"""

import re

REDACTION_MARKER = "[REDACTED]"

CREDIT_CARD_PATTERN = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
SSN_PATTERN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
NINE_DIGIT_PATTERN = re.compile(r"\b\d{9}\b")
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(r"(?<!\w)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")


def mask_credit_card(value: str) -> str:
    """
    Mask a card number, keeping the last 4 digits.

    "4532-1234-5678-9010" -> "****-****-****-9010"
    "4532123456789010"    -> "************9010"
    """
    if not value or not isinstance(value, str):
        return value

    cleaned = re.sub(r"\s", "", value)
    if len(cleaned) < 13 or len(cleaned) > 19:
        return REDACTION_MARKER

    last4 = cleaned[-4:]
    if "-" in value:
        return f"****-****-****-{last4}"
    return "*" * (len(cleaned) - 4) + last4


def mask_ssn(value: str) -> str:
    """
    Mask an SSN / tax id, keeping the last 4 digits.

    "123-45-6789" -> "***-**-6789"
    "123456789"   -> "*****6789"
    """
    if not value or not isinstance(value, str):
        return value

    cleaned = re.sub(r"\D", "", value)
    if len(cleaned) != 9:
        return REDACTION_MARKER

    last4 = cleaned[-4:]
    if "-" in value:
        return f"***-**-{last4}"
    return "*****" + last4


def mask_email(value: str) -> str:
    """Mask an email address: "john.doe@example.com" -> "j***@example.com"."""
    if not value or not isinstance(value, str) or "@" not in value:
        return REDACTION_MARKER

    local_part, _, domain = value.partition("@")
    if not local_part or not domain:
        return REDACTION_MARKER
    return f"{local_part[0]}***@{domain}"


def mask_phone(value: str) -> str:
    """Mask a phone number: "555-123-4567" -> "***-***-4567"."""
    if not value or not isinstance(value, str):
        return value

    cleaned = re.sub(r"\D", "", value)
    if len(cleaned) < 7 or len(cleaned) > 15:
        return REDACTION_MARKER

    last4 = cleaned[-4:]
    international = value.strip().startswith("+")
    dashed = "-" in value

    if international and dashed:
        return f"+* ***-***-{last4}"
    if dashed:
        return f"***-***-{last4}"
    return "*" * (len(cleaned) - 4) + last4


def mask_patterns(text: str) -> str:
    """
    Mask card numbers and SSNs found anywhere inside a string.

    Args:
        text: Arbitrary text (log message, free-form field value)

    Returns:
        Text with card numbers and SSN-shaped runs masked
    """
    if not text or not isinstance(text, str):
        return text

    masked = CREDIT_CARD_PATTERN.sub(lambda m: mask_credit_card(m.group(0)), text)
    masked = SSN_PATTERN.sub(lambda m: mask_ssn(m.group(0)), masked)
    masked = NINE_DIGIT_PATTERN.sub(lambda m: mask_ssn(m.group(0)), masked)
    return masked


def mask_contact_patterns(text: str) -> str:
    """Mask email addresses and phone numbers found inside a string."""
    if not text or not isinstance(text, str):
        return text

    masked = EMAIL_PATTERN.sub(lambda m: mask_email(m.group(0)), text)
    masked = PHONE_PATTERN.sub(lambda m: mask_phone(m.group(0)), masked)
    return masked
