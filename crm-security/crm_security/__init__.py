"""
CRM Security Core
=================
Security state shared by the CRM services: hash-chained audit trail,
login lockout and duplicate request guard.
"""

__version__ = "0.1.0"

# Errors
from crm_security.errors import (
    SecurityCoreError,
    ChainRecoveryError,
    FastStoreUnavailable,
    DurableStoreError,
    DurableReadFailure,
    DurableWriteFailure,
    SanitizationFailure,
    AuditPersistFailure,
)

# Config
from crm_security.config import LockoutConfig, DuplicateGuardConfig, AuditConfig

# Sanitizer
from crm_security.sanitizer import redact, REDACTION_MARKER, DEFAULT_SENSITIVE_FIELDS

# Logging
from crm_security.logging import setup_logging

# Audit
from crm_security.audit import (
    AuditEventType,
    AuditEntry,
    Actor,
    RequestSnapshot,
    ResponseSnapshot,
    ChainState,
    HashChainAuditTrail,
    SecurityEventClassifier,
    AuditSink,
    MemorySink,
    RotatingFileSink,
    AuditTrailMiddleware,
    GENESIS_HASH,
)

# Stores
from crm_security.kv import FastKVStore, InMemoryKVStore, RedisKVStore
from crm_security.database import AccountDatabase
from crm_security.accounts import (
    AccountStore,
    AccountLoginState,
    InMemoryAccountStore,
    SQLAlchemyAccountStore,
)

# Lockout
from crm_security.lockout import (
    LockoutTracker,
    LoginGuard,
    FailureResult,
    LockStatus,
    LoginOutcome,
    DualBackedCounter,
)

# Duplicate guard
from crm_security.duplicate_guard import (
    DuplicateRequestGuard,
    DuplicateRequestMiddleware,
    request_signature,
)

# FastAPI wiring
from crm_security.integration import build_audit_trail, setup_security

__all__ = [
    "__version__",
    # Errors
    "SecurityCoreError",
    "ChainRecoveryError",
    "FastStoreUnavailable",
    "DurableStoreError",
    "DurableReadFailure",
    "DurableWriteFailure",
    "SanitizationFailure",
    "AuditPersistFailure",
    # Config
    "LockoutConfig",
    "DuplicateGuardConfig",
    "AuditConfig",
    # Sanitizer
    "redact",
    "REDACTION_MARKER",
    "DEFAULT_SENSITIVE_FIELDS",
    # Logging
    "setup_logging",
    # Audit
    "AuditEventType",
    "AuditEntry",
    "Actor",
    "RequestSnapshot",
    "ResponseSnapshot",
    "ChainState",
    "HashChainAuditTrail",
    "SecurityEventClassifier",
    "AuditSink",
    "MemorySink",
    "RotatingFileSink",
    "AuditTrailMiddleware",
    "GENESIS_HASH",
    # Stores
    "FastKVStore",
    "InMemoryKVStore",
    "RedisKVStore",
    "AccountDatabase",
    "AccountStore",
    "AccountLoginState",
    "InMemoryAccountStore",
    "SQLAlchemyAccountStore",
    # Lockout
    "LockoutTracker",
    "LoginGuard",
    "FailureResult",
    "LockStatus",
    "LoginOutcome",
    "DualBackedCounter",
    # Duplicate guard
    "DuplicateRequestGuard",
    "DuplicateRequestMiddleware",
    "request_signature",
    # FastAPI wiring
    "build_audit_trail",
    "setup_security",
]
