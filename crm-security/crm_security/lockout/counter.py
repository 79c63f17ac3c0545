"""
Dual-Backed Counter
===================
Composes the fast and durable counter backends.

Fast-store failures are absorbed (the durable store alone stays correct);
durable failures on reads are absorbed and reported, durable failures on
lock writes propagate.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

import structlog

from ..errors import DurableStoreError, DurableWriteFailure, FastStoreUnavailable
from .backends import CounterBackend, LoginIdentifier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CounterReading:
    """
    Counts reported by each backend after an increment.

    None means the backend could not be reached.
    """
    fast: Optional[int]
    durable: Optional[int]

    @property
    def effective(self) -> int:
        counts = [c for c in (self.fast, self.durable) if c is not None]
        return max(counts) if counts else 0

    @property
    def degraded(self) -> bool:
        return self.fast is None or self.durable is None

    @property
    def unavailable(self) -> bool:
        return self.fast is None and self.durable is None


class DualBackedCounter:
    """Failed-login counter over a fast and a durable backend."""

    def __init__(self, fast: CounterBackend, durable: CounterBackend):
        self.fast = fast
        self.durable = durable

    async def increment(self, identifier: LoginIdentifier) -> CounterReading:
        """Increment both backends; an unreachable backend reads as None."""
        try:
            fast_count: Optional[int] = await self.fast.increment(identifier)
        except FastStoreUnavailable as e:
            logger.warning("fast_counter_unavailable", user_id=identifier.user_id, error=e.message)
            fast_count = None

        try:
            durable_count: Optional[int] = await self.durable.increment(identifier)
        except DurableStoreError as e:
            logger.warning("durable_counter_unavailable", user_id=identifier.user_id, error=e.message)
            durable_count = None

        return CounterReading(fast=fast_count, durable=durable_count)

    async def lock(self, identifier: LoginIdentifier, until: datetime) -> None:
        """
        Lock in both backends and clear the fast counters.

        The fast marker is attempted first, so a durable failure still
        leaves the fastest possible lock in place.

        Raises:
            DurableWriteFailure: If the durable lock cannot be written
        """
        try:
            await self.fast.set_lock(identifier, until)
            await self.fast.reset(identifier)
        except FastStoreUnavailable as e:
            logger.warning("fast_lock_unavailable", user_id=identifier.user_id, error=e.message)

        try:
            await self.durable.set_lock(identifier, until)
        except DurableStoreError as e:
            logger.error("durable_lock_failed", user_id=identifier.user_id, error=e.message)
            if isinstance(e, DurableWriteFailure):
                raise
            raise DurableWriteFailure(
                f"Failed to persist lock: {e.message}",
                user_id=identifier.user_id,
                cause=e,
            ) from e

    async def reset(self, identifier: LoginIdentifier) -> None:
        """Clear counts and the fast lock marker; the durable lock only if elapsed."""
        try:
            await self.fast.reset(identifier)
            await self.fast.clear_lock(identifier)
        except FastStoreUnavailable as e:
            logger.warning("fast_reset_unavailable", user_id=identifier.user_id, error=e.message)

        try:
            await self.durable.reset(identifier)
        except DurableStoreError as e:
            logger.warning("durable_reset_failed", user_id=identifier.user_id, error=e.message)

    async def get_lock(self, identifier: LoginIdentifier) -> Tuple[Optional[datetime], Optional[str], bool]:
        """
        Look up an active lock, durable first.

        Returns:
            Tuple of (locked_until, source, any_backend_failed)
        """
        failed = False

        try:
            until = await self.durable.get_lock(identifier)
            if until is not None:
                return until, self.durable.name, failed
        except DurableStoreError as e:
            logger.warning("durable_lock_check_failed", user_id=identifier.user_id, error=e.message)
            failed = True

        try:
            until = await self.fast.get_lock(identifier)
            if until is not None:
                return until, self.fast.name, failed
        except FastStoreUnavailable as e:
            logger.warning("fast_lock_check_unavailable", user_id=identifier.user_id, error=e.message)
            failed = True

        return None, None, failed

    async def get_count(self, identifier: LoginIdentifier) -> int:
        """Informational attempt count from the fast backend (0 if unreachable)."""
        try:
            return await self.fast.get_count(identifier)
        except FastStoreUnavailable:
            return 0
