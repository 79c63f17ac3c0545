"""
Request Fingerprints
====================
Signature of a request for duplicate detection: who sent it and what
they sent.
"""

import hashlib
from typing import Optional, Union


def body_digest(body: Union[bytes, str, None]) -> str:
    """First 16 hex chars of the SHA-256 of the request body."""
    if body is None:
        body = b""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hashlib.sha256(body).hexdigest()[:16]


def request_signature(ip: Optional[str], user_agent: Optional[str], body: Union[bytes, str, None]) -> str:
    """
    Build the duplicate-detection signature.

    ``sha256(ip + "-" + user_agent + "-" + body_digest(body))``
    """
    raw = f"{ip or ''}-{user_agent or ''}-{body_digest(body)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
