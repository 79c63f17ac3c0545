"""
FastAPI Integration
===================
One-call wiring of the security core into a FastAPI application.
"""

from typing import Optional

import structlog
from fastapi import FastAPI

from .audit import AuditTrailMiddleware, HashChainAuditTrail, RotatingFileSink, SecurityEventClassifier
from .config import AuditConfig
from .duplicate_guard import DuplicateRequestGuard, DuplicateRequestMiddleware

logger = structlog.get_logger(__name__)


def build_audit_trail(config: Optional[AuditConfig] = None) -> HashChainAuditTrail:
    """
    Create a file-backed audit trail from configuration.

    The trail recovers its chain head from the same directory the sink
    writes to.
    """
    config = config or AuditConfig()
    sink = RotatingFileSink(
        config.log_dir,
        retention_days=config.retention_days,
        default_retention_days=config.default_retention_days,
        service_name=config.service_name,
    )
    classifier = SecurityEventClassifier(excluded_prefixes=sorted(config.excluded_prefixes))
    return HashChainAuditTrail(sink, log_dir=config.log_dir, classifier=classifier)


def setup_security(
    app: FastAPI,
    trail: Optional[HashChainAuditTrail] = None,
    guard: Optional[DuplicateRequestGuard] = None,
    reject_duplicates: bool = True,
    trust_forwarded: bool = False,
) -> HashChainAuditTrail:
    """
    Install the audit trail and duplicate guard middleware.

    Args:
        app: FastAPI application instance
        trail: Audit trail (file-backed from AuditConfig if omitted)
        guard: Duplicate guard (configured from the environment if omitted)
        reject_duplicates: Answer duplicates with 429 instead of only flagging them
        trust_forwarded: Read the client IP from X-Forwarded-For/X-Real-IP

    Returns:
        The installed trail, also stored on ``app.state.audit_trail``

    Example:
        from crm_security.integration import setup_security

        app = FastAPI()
        setup_security(app)
    """
    trail = trail if trail is not None else build_audit_trail()
    guard = guard if guard is not None else DuplicateRequestGuard()

    # Added last runs first: rejected duplicates still reach the audit trail
    app.add_middleware(
        DuplicateRequestMiddleware,
        guard=guard,
        reject=reject_duplicates,
        trail=trail,
        trust_forwarded=trust_forwarded,
    )
    app.add_middleware(AuditTrailMiddleware, trail=trail, trust_forwarded=trust_forwarded)

    app.state.audit_trail = trail
    app.state.duplicate_guard = guard

    logger.info("security_core_installed", duplicate_guard=guard.enabled, reject_duplicates=reject_duplicates)
    return trail
