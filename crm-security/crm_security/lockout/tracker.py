"""
Lockout Tracker
===============
Login-attempt and account-lockout state machine.

An account is locked iff its durable ``lock_until`` is in the future or a
fast lock marker exists. Attempt counts alone never block a login; they
only decide when to escalate to a lock.

Callers must check ``is_locked`` BEFORE verifying a password, then report
the outcome with ``record_failure`` / ``record_success``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import structlog

from ..accounts import AccountStore
from ..config import LockoutConfig
from ..errors import DurableWriteFailure
from ..kv import FastKVStore
from .backends import DurableCounterBackend, FastCounterBackend, LoginIdentifier, utc_now
from .counter import DualBackedCounter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FailureResult:
    """Outcome of recording a failed login."""
    locked: bool
    attempts_remaining: int
    fast_count: Optional[int] = None
    durable_count: Optional[int] = None
    degraded: bool = False
    locked_until: Optional[datetime] = None


@dataclass(frozen=True)
class LockStatus:
    """Lock state of an account."""
    is_locked: bool
    locked_until: Optional[datetime] = None
    source: Optional[str] = None  # "durable", "fast", "memory" or None
    attempts: int = 0


class LockoutTracker:
    """
    Dual-backed lockout tracker.

    Usage:
        tracker = LockoutTracker(RedisKVStore.from_url(url), SQLAlchemyAccountStore(factory))

        status = await tracker.is_locked(user.id, email)
        if status.is_locked:
            ...  # reject without checking the password
    """

    def __init__(
        self,
        fast_store: FastKVStore,
        account_store: AccountStore,
        config: Optional[LockoutConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or LockoutConfig()
        self._clock = clock
        self.counter = DualBackedCounter(
            FastCounterBackend(fast_store, self.config, clock),
            DurableCounterBackend(account_store, self.config, clock),
        )
        # Last-resort lock memory for when both stores are unreachable
        self._lock_memo: Dict[str, datetime] = {}

    def _memo_lock(self, user_id: str) -> Optional[datetime]:
        until = self._lock_memo.get(user_id)
        if until is None:
            return None
        if until <= self._clock():
            del self._lock_memo[user_id]
            return None
        return until

    def _remember_lock(self, user_id: str, until: datetime) -> None:
        """Store a lock in the memo, dropping expired locks and, over the cap, the soonest to expire."""
        now = self._clock()
        for expired in [uid for uid, memo_until in self._lock_memo.items() if memo_until <= now]:
            del self._lock_memo[expired]
        self._lock_memo[user_id] = until
        while len(self._lock_memo) > self.config.memo_max_entries:
            del self._lock_memo[min(self._lock_memo, key=self._lock_memo.get)]

    @property
    def memo_size(self) -> int:
        return len(self._lock_memo)

    async def record_failure(
        self,
        user_id,
        email: Optional[str],
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> FailureResult:
        """
        Record a failed login and lock the account at the threshold.

        Args:
            user_id: Account id
            email: Email used at login
            ip: Client IP (logged)
            user_agent: Client user agent (logged)

        Returns:
            FailureResult with the remaining attempts

        Raises:
            DurableWriteFailure: If the escalating lock cannot be persisted,
                or no store could record the failure
        """
        identifier = LoginIdentifier(str(user_id), email)
        reading = await self.counter.increment(identifier)
        attempts = reading.effective

        logger.warning(
            "failed_login_attempt",
            user_id=identifier.user_id,
            email=email,
            ip=ip,
            user_agent=user_agent,
            attempts=attempts,
            fast_count=reading.fast,
            durable_count=reading.durable,
        )

        if reading.unavailable:
            # Nothing counted this failure; the caller must not treat it as recorded
            raise DurableWriteFailure(
                "No store could record the failed login attempt",
                user_id=identifier.user_id,
            )

        if attempts < self.config.max_attempts:
            return FailureResult(
                locked=False,
                attempts_remaining=self.config.max_attempts - attempts,
                fast_count=reading.fast,
                durable_count=reading.durable,
                degraded=reading.degraded,
            )

        until = self._clock() + timedelta(seconds=self.config.lockout_duration)
        self._remember_lock(identifier.user_id, until)
        logger.warning(
            "account_locked",
            user_id=identifier.user_id,
            email=email,
            ip=ip,
            attempts=attempts,
            locked_until=until.isoformat(),
        )
        await self.counter.lock(identifier, until)

        return FailureResult(
            locked=True,
            attempts_remaining=0,
            fast_count=reading.fast,
            durable_count=reading.durable,
            degraded=reading.degraded,
            locked_until=until,
        )

    async def record_success(self, user_id, email: Optional[str]) -> None:
        """Reset attempt counts after a successful login."""
        identifier = LoginIdentifier(str(user_id), email)
        await self.counter.reset(identifier)
        self._lock_memo.pop(identifier.user_id, None)
        logger.info("login_attempts_reset", user_id=identifier.user_id)

    async def is_locked(self, user_id, email: Optional[str]) -> LockStatus:
        """
        Check whether an account is locked.

        The durable store is consulted first, then the fast lock marker.
        Only when a store failed is the process-local memo used.
        """
        identifier = LoginIdentifier(str(user_id), email)
        until, source, failed = await self.counter.get_lock(identifier)
        attempts = await self.counter.get_count(identifier)

        if until is not None:
            return LockStatus(is_locked=True, locked_until=until, source=source, attempts=attempts)

        if failed:
            memo = self._memo_lock(identifier.user_id)
            if memo is not None:
                return LockStatus(is_locked=True, locked_until=memo, source="memory", attempts=attempts)

        return LockStatus(is_locked=False, attempts=attempts)
