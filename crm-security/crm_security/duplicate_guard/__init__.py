"""
Duplicate Request Guard
=======================
Short-window duplicate/replay request detection.
"""

from .fingerprint import body_digest, request_signature
from .guard import DuplicateRequestGuard
from .middleware import DuplicateRequestMiddleware, DUPLICATE_MESSAGE

__all__ = [
    "body_digest",
    "request_signature",
    "DuplicateRequestGuard",
    "DuplicateRequestMiddleware",
    "DUPLICATE_MESSAGE",
]
