"""
Security Core Errors
====================
Exception taxonomy shared by the audit trail, lockout tracker and stores.
"""

from typing import Optional


class SecurityCoreError(Exception):
    """Base exception for all security core errors."""

    def __init__(self, message: str, component: str = "security-core", cause: Optional[Exception] = None):
        self.message = message
        self.component = component
        self.cause = cause
        super().__init__(f"[{component}] {message}")


class ChainRecoveryError(SecurityCoreError):
    """Raised when a prior audit segment cannot be read or parsed."""

    def __init__(self, message: str, segment: Optional[str] = None, cause: Optional[Exception] = None):
        self.segment = segment
        super().__init__(message, component="audit-chain", cause=cause)


class FastStoreUnavailable(SecurityCoreError):
    """Raised when the ephemeral KV store cannot be reached."""

    def __init__(self, message: str = "Fast store unavailable", cause: Optional[Exception] = None):
        super().__init__(message, component="fast-store", cause=cause)


class DurableStoreError(SecurityCoreError):
    """Base class for durable account store failures."""

    def __init__(self, message: str, user_id: Optional[str] = None, cause: Optional[Exception] = None):
        self.user_id = user_id
        super().__init__(message, component="durable-store", cause=cause)


class DurableReadFailure(DurableStoreError):
    """Raised when the durable store cannot be read."""
    pass


class DurableWriteFailure(DurableStoreError):
    """
    Raised when a write that establishes a security boundary fails.

    Callers decide whether to retry or reject the request; the error is
    recoverable for that single request.
    """
    pass


class SanitizationFailure(SecurityCoreError):
    """Raised internally when a value cannot be safely serialized."""

    def __init__(self, message: str, field: Optional[str] = None, cause: Optional[Exception] = None):
        self.field = field
        super().__init__(message, component="sanitizer", cause=cause)


class AuditPersistFailure(SecurityCoreError):
    """Raised internally when an audit entry cannot be written to its sink."""

    def __init__(self, message: str, stream: str = "audit", cause: Optional[Exception] = None):
        self.stream = stream
        super().__init__(message, component="audit-sink", cause=cause)
