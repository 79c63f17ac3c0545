"""
Counter Backends
================
The two stores behind the login-attempt counter:

- ``FastCounterBackend``: TTL'd counters and lock markers in the fast KV
  store. Best-effort; raises ``FastStoreUnavailable``.
- ``DurableCounterBackend``: ``loginAttempts`` / ``lockUntil`` on the
  account record. Authoritative; raises ``DurableStoreError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog

from ..accounts import AccountStore
from ..config import LockoutConfig
from ..kv import FastKVStore

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LoginIdentifier:
    """A login subject: the account id and the email typed at login."""
    user_id: str
    email: Optional[str] = None

    @property
    def normalized_email(self) -> Optional[str]:
        return self.email.strip().lower() if self.email else None


class CounterBackend(ABC):
    """Failed-attempt counter plus lock timestamp for one store."""

    name = "backend"

    @abstractmethod
    async def increment(self, identifier: LoginIdentifier) -> int:
        """Record one failure and return the resulting attempt count."""

    @abstractmethod
    async def get_count(self, identifier: LoginIdentifier) -> int:
        """Current attempt count within the window."""

    @abstractmethod
    async def reset(self, identifier: LoginIdentifier) -> None:
        """Clear attempt counts."""

    @abstractmethod
    async def set_lock(self, identifier: LoginIdentifier, until: datetime) -> None:
        """Lock the identifier until the given time."""

    @abstractmethod
    async def get_lock(self, identifier: LoginIdentifier) -> Optional[datetime]:
        """Return the lock expiry if currently locked, else None."""

    @abstractmethod
    async def clear_lock(self, identifier: LoginIdentifier) -> None:
        """Remove a lock."""


class FastCounterBackend(CounterBackend):
    """
    Counters in the fast KV store.

    Keys:
        {prefix}:login:fail:{user_id}
        {prefix}:login:fail:email:{email}
        {prefix}:lock:user:{user_id}
        {prefix}:lock:email:{email}
    """

    name = "fast"

    def __init__(
        self,
        store: FastKVStore,
        config: Optional[LockoutConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config or LockoutConfig()
        self._clock = clock

    def fail_keys(self, identifier: LoginIdentifier) -> List[str]:
        prefix = self.config.key_prefix
        keys = [f"{prefix}:login:fail:{identifier.user_id}"]
        if identifier.normalized_email:
            keys.append(f"{prefix}:login:fail:email:{identifier.normalized_email}")
        return keys

    def lock_keys(self, identifier: LoginIdentifier) -> List[str]:
        prefix = self.config.key_prefix
        keys = [f"{prefix}:lock:user:{identifier.user_id}"]
        if identifier.normalized_email:
            keys.append(f"{prefix}:lock:email:{identifier.normalized_email}")
        return keys

    async def increment(self, identifier: LoginIdentifier) -> int:
        counts = [
            await self.store.incr_with_expire(key, self.config.attempt_window)
            for key in self.fail_keys(identifier)
        ]
        return max(counts)

    async def get_count(self, identifier: LoginIdentifier) -> int:
        counts = [int(await self.store.get(key) or 0) for key in self.fail_keys(identifier)]
        return max(counts)

    async def reset(self, identifier: LoginIdentifier) -> None:
        await self.store.delete(*self.fail_keys(identifier))

    async def set_lock(self, identifier: LoginIdentifier, until: datetime) -> None:
        seconds = max(1, int((until - self._clock()).total_seconds()))
        for key in self.lock_keys(identifier):
            await self.store.set_with_ttl(key, "locked", seconds)

    async def get_lock(self, identifier: LoginIdentifier) -> Optional[datetime]:
        locked_until = None
        for key in self.lock_keys(identifier):
            ttl = await self.store.ttl(key)
            if ttl == -1:
                # Marker without TTL: treat as a full lockout from now
                ttl = self.config.lockout_duration
            if ttl > 0:
                candidate = self._clock() + timedelta(seconds=ttl)
                locked_until = max(locked_until, candidate) if locked_until else candidate
        return locked_until

    async def clear_lock(self, identifier: LoginIdentifier) -> None:
        await self.store.delete(*self.lock_keys(identifier))


class DurableCounterBackend(CounterBackend):
    """
    Counters on the durable account record.

    The count restarts at 1 when the previous failure is older than the
    attempt window or the previous lock has elapsed. Updates are plain
    read-modify-write; a lost update under concurrency only shifts the
    count by one, which the threshold tolerates.
    """

    name = "durable"

    def __init__(
        self,
        store: AccountStore,
        config: Optional[LockoutConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config or LockoutConfig()
        self._clock = clock

    def _window_expired(self, state, now: datetime) -> bool:
        if state.last_failed_login is None:
            return True
        if state.lock_until is not None and state.lock_until <= now:
            return True
        return now - state.last_failed_login > timedelta(seconds=self.config.attempt_window)

    async def increment(self, identifier: LoginIdentifier) -> int:
        state = await self.store.get_login_state(identifier.user_id)
        if state is None:
            logger.debug("durable_counter_unknown_account", user_id=identifier.user_id)
            return 0

        now = self._clock()
        if self._window_expired(state, now):
            state.login_attempts = 1
            if state.lock_until is not None and state.lock_until <= now:
                state.lock_until = None
        else:
            state.login_attempts += 1
        state.last_failed_login = now

        await self.store.save_login_state(state)
        return state.login_attempts

    async def get_count(self, identifier: LoginIdentifier) -> int:
        state = await self.store.get_login_state(identifier.user_id)
        if state is None or self._window_expired(state, self._clock()):
            return 0
        return state.login_attempts

    async def reset(self, identifier: LoginIdentifier) -> None:
        state = await self.store.get_login_state(identifier.user_id)
        if state is None:
            return
        state.login_attempts = 0
        # Only time clears an active lock
        if state.lock_until is not None and state.lock_until <= self._clock():
            state.lock_until = None
        await self.store.save_login_state(state)

    async def set_lock(self, identifier: LoginIdentifier, until: datetime) -> None:
        state = await self.store.get_login_state(identifier.user_id)
        if state is None:
            logger.debug("durable_lock_unknown_account", user_id=identifier.user_id)
            return
        state.lock_until = until
        state.login_attempts = self.config.max_attempts
        await self.store.save_login_state(state)

    async def get_lock(self, identifier: LoginIdentifier) -> Optional[datetime]:
        state = await self.store.get_login_state(identifier.user_id)
        if state is not None and state.is_locked(self._clock()):
            return state.lock_until
        return None

    async def clear_lock(self, identifier: LoginIdentifier) -> None:
        state = await self.store.get_login_state(identifier.user_id)
        if state is None or state.lock_until is None:
            return
        state.lock_until = None
        await self.store.save_login_state(state)
