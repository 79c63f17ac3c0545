"""
Redis KV Store
==============
Redis-backed fast store (redis.asyncio).

After a connection error the store marks itself unavailable and, for the
retry interval, raises ``FastStoreUnavailable`` immediately instead of
waiting on Redis timeouts for every call.
"""

import time
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..config import FAST_STORE_RETRY_INTERVAL_SECONDS, REDIS_URL
from ..errors import FastStoreUnavailable
from .interface import FastKVStore

logger = structlog.get_logger(__name__)


class RedisKVStore(FastKVStore):
    """
    Fast store backed by Redis.

    Usage:
        store = RedisKVStore.from_url("redis://localhost:6379/0")
        await store.incr_with_expire("auth:login:fail:42", 1800)
    """

    def __init__(
        self,
        redis_client,
        retry_interval: float = FAST_STORE_RETRY_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            redis_client: Async Redis client (decode_responses=True)
            retry_interval: Seconds to skip Redis after a connection error
            clock: Monotonic time source
        """
        self.redis = redis_client
        self.retry_interval = retry_interval
        self._clock = clock
        self._healthy = True
        self._last_failure = 0.0

    @classmethod
    def from_url(cls, url: str = REDIS_URL, **kwargs) -> "RedisKVStore":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=kwargs.pop("socket_timeout", 2.0),
            socket_connect_timeout=kwargs.pop("socket_connect_timeout", 2.0),
        )
        return cls(client, **kwargs)

    @property
    def available(self) -> bool:
        if self._healthy:
            return True
        return self._clock() - self._last_failure >= self.retry_interval

    async def _call(self, operation: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        if not self.available:
            raise FastStoreUnavailable(f"Redis unavailable, skipping {operation}")

        try:
            result = await fn()
        except (RedisError, OSError) as e:
            if self._healthy:
                logger.warning("fast_store_unavailable", operation=operation, error=str(e))
            self._healthy = False
            self._last_failure = self._clock()
            raise FastStoreUnavailable(f"Redis {operation} failed: {e}", cause=e) from e

        if not self._healthy:
            logger.info("fast_store_recovered", operation=operation)
            self._healthy = True
        return result

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", lambda: self.redis.get(key))

    async def incr(self, key: str) -> int:
        return int(await self._call("incr", lambda: self.redis.incr(key)))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._call("expire", lambda: self.redis.expire(key, int(seconds))))

    async def ttl(self, key: str) -> int:
        return int(await self._call("ttl", lambda: self.redis.ttl(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", lambda: self.redis.exists(key)))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._call("delete", lambda: self.redis.delete(*keys)))

    async def set_with_ttl(self, key: str, value: str, seconds: int) -> None:
        await self._call("setex", lambda: self.redis.setex(key, int(seconds), value))

    async def incr_with_expire(self, key: str, seconds: int) -> int:
        """INCR and EXPIRE in a single MULTI/EXEC round trip."""

        async def run():
            pipe = self.redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, int(seconds))
            return await pipe.execute()

        count, _ = await self._call("incr_with_expire", run)
        return int(count)

    async def close(self) -> None:
        await self.redis.aclose()
