"""
Fast KV Store
=============
Ephemeral TTL store used as the fast path of the lockout tracker.
"""

from .interface import FastKVStore
from .memory import InMemoryKVStore
from .redis_store import RedisKVStore

__all__ = [
    "FastKVStore",
    "InMemoryKVStore",
    "RedisKVStore",
]
