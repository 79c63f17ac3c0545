"""
Audit Trail
===========
Tamper-evident, hash-chained audit logging with recovery from rotated
segments.

Usage:
    from crm_security.audit import HashChainAuditTrail, RotatingFileSink, AuditEventType

    trail = HashChainAuditTrail(RotatingFileSink("./logs"), log_dir="./logs")
    await trail.record(AuditEventType.PASSWORD_CHANGE, {"userId": 7}, actor=user)
"""

from .event_types import AuditEventType, CRITICAL_EVENT_TYPES, SECURITY_EVENT_TYPES, normalize_event_type
from .models import Actor, AuditEntry, RequestSnapshot, ResponseSnapshot
from .hashing import GENESIS_HASH, GENESIS_SOURCE, canonical_serialize, compute_entry_hash, verify_entries
from .chain import ChainState
from .segments import list_segments, read_segment, recover_last_hash, iter_segment_entries, verify_segment
from .sink import AuditSink, MemorySink, RotatingFileSink, SinkRecord
from .classifier import (
    ClassificationRule,
    DEFAULT_RULES,
    SecurityEventClassifier,
    SEVERITY_INFO,
    SEVERITY_WARN,
    SEVERITY_ERROR,
)
from .trail import HashChainAuditTrail, AUDIT_MESSAGE
from .middleware import AuditTrailMiddleware

__all__ = [
    # Event types
    "AuditEventType",
    "CRITICAL_EVENT_TYPES",
    "SECURITY_EVENT_TYPES",
    "normalize_event_type",
    # Models
    "Actor",
    "AuditEntry",
    "RequestSnapshot",
    "ResponseSnapshot",
    # Hashing
    "GENESIS_HASH",
    "GENESIS_SOURCE",
    "canonical_serialize",
    "compute_entry_hash",
    "verify_entries",
    # Chain and segments
    "ChainState",
    "list_segments",
    "read_segment",
    "recover_last_hash",
    "iter_segment_entries",
    "verify_segment",
    # Sinks
    "AuditSink",
    "MemorySink",
    "RotatingFileSink",
    "SinkRecord",
    # Classification
    "ClassificationRule",
    "DEFAULT_RULES",
    "SecurityEventClassifier",
    "SEVERITY_INFO",
    "SEVERITY_WARN",
    "SEVERITY_ERROR",
    # Trail
    "HashChainAuditTrail",
    "AUDIT_MESSAGE",
    "AuditTrailMiddleware",
]
