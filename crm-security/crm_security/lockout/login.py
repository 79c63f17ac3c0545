"""
Login Guard
===========
Runs a password check between the lockout check and the outcome report,
so a locked account never reaches password verification.
"""

import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from ..audit import AuditEventType, HashChainAuditTrail
from .tracker import LockoutTracker

logger = structlog.get_logger(__name__)

Verifier = Callable[[], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class LoginOutcome:
    """Result of a guarded login attempt."""
    success: bool
    locked: bool = False
    attempts_remaining: Optional[int] = None
    locked_until: Optional[datetime] = None


class LoginGuard:
    """
    Guarded login flow.

    Usage:
        guard = LoginGuard(tracker, trail)
        outcome = await guard.attempt(user.id, email, lambda: check_password(user, password), ip=ip)
        if outcome.locked:
            raise HTTPException(423, "Account locked")
    """

    def __init__(self, tracker: LockoutTracker, trail: Optional[HashChainAuditTrail] = None):
        self.tracker = tracker
        self.trail = trail

    async def attempt(
        self,
        user_id,
        email: Optional[str],
        verify: Verifier,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginOutcome:
        """
        Check the lock, verify credentials, record the outcome.

        Args:
            user_id: Account id
            email: Email used at login
            verify: Sync or async callable returning True for valid credentials
            ip: Client IP
            user_agent: Client user agent

        Raises:
            DurableWriteFailure: Propagated from record_failure
        """
        actor = {"id": user_id, "email": email, "role": None}

        status = await self.tracker.is_locked(user_id, email)
        if status.is_locked:
            logger.warning("login_blocked", user_id=str(user_id), source=status.source, ip=ip)
            self._audit(AuditEventType.LOGIN_BLOCKED, actor, ip, False, {"source": status.source})
            return LoginOutcome(success=False, locked=True, attempts_remaining=0, locked_until=status.locked_until)

        result = verify()
        if inspect.isawaitable(result):
            result = await result

        if result:
            await self.tracker.record_success(user_id, email)
            self._audit(AuditEventType.USER_LOGIN, actor, ip, True, {"userAgent": user_agent})
            return LoginOutcome(success=True, attempts_remaining=self.tracker.config.max_attempts)

        failure = await self.tracker.record_failure(user_id, email, ip=ip, user_agent=user_agent)
        self._audit(
            AuditEventType.LOGIN_FAILED,
            actor,
            ip,
            False,
            {"attemptsRemaining": failure.attempts_remaining, "userAgent": user_agent},
        )
        if failure.locked:
            self._audit(AuditEventType.ACCOUNT_LOCKED, actor, ip, False, {
                "lockedUntil": failure.locked_until.isoformat() if failure.locked_until else None,
            })

        return LoginOutcome(
            success=False,
            locked=failure.locked,
            attempts_remaining=failure.attempts_remaining,
            locked_until=failure.locked_until,
        )

    def _audit(self, event_type, actor: Any, ip: Optional[str], success: bool, metadata) -> None:
        # Login latency does not wait on audit I/O
        if self.trail is None:
            return
        self.trail.run_in_background(
            self.trail.log_auth_event, event_type, actor, ip=ip, success=success, metadata=metadata
        )
