"""
In-Memory KV Store
==================
Process-local fast store for development and testing.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from .interface import FastKVStore


class InMemoryKVStore(FastKVStore):
    """
    Dict-backed fast store with lazy expiry.

    For development and testing only.
    Use RedisKVStore in production.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        item = self._data.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return item

    async def get(self, key: str) -> Optional[str]:
        item = self._live(key)
        return item[0] if item else None

    async def incr(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            value, expires_at = 0, None
        else:
            value, expires_at = int(item[0]), item[1]
        value += 1
        self._data[key] = (str(value), expires_at)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        item = self._live(key)
        if item is None:
            return False
        self._data[key] = (item[0], self._clock() + seconds)
        return True

    async def ttl(self, key: str) -> int:
        item = self._live(key)
        if item is None:
            return -2
        if item[1] is None:
            return -1
        return max(0, int(round(item[1] - self._clock())))

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def set_with_ttl(self, key: str, value: str, seconds: int) -> None:
        self._data[key] = (str(value), self._clock() + seconds)

    async def incr_with_expire(self, key: str, seconds: int) -> int:
        count = await self.incr(key)
        await self.expire(key, seconds)
        return count
