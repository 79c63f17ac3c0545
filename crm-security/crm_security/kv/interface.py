"""
Fast KV Store Interface
=======================
Contract for the ephemeral, TTL-capable store used as the fast path of the
lockout tracker.

Implementations raise ``FastStoreUnavailable`` when the store cannot be
reached; callers treat the store as best-effort.
"""

from abc import ABC, abstractmethod
from typing import Optional


class FastKVStore(ABC):
    """Ephemeral key/value store with per-key TTLs."""

    @property
    def available(self) -> bool:
        """False while the store is known to be unreachable."""
        return True

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value, or None if the key is missing or expired."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Increment an integer counter and return the new value."""

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        """Set a key's TTL. Returns False if the key does not exist."""

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """
        Remaining TTL in seconds.

        Returns:
            -2 if the key does not exist, -1 if it has no TTL
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """True if the key exists and has not expired."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, seconds: int) -> None:
        """Set a value that expires after ``seconds``."""

    async def incr_with_expire(self, key: str, seconds: int) -> int:
        """
        Increment a counter and (re)set its TTL.

        Implementations should do this in one round trip; this default is
        two separate calls.
        """
        count = await self.incr(key)
        await self.expire(key, seconds)
        return count

    async def close(self) -> None:
        return None
