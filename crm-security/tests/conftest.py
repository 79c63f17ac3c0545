"""
Shared fixtures for crm-security tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from crm_security.errors import DurableReadFailure, DurableWriteFailure, FastStoreUnavailable
from crm_security.accounts import InMemoryAccountStore
from crm_security.audit import MemorySink
from crm_security.kv import InMemoryKVStore


class FakeClock:
    """Controllable clock; returns aware UTC datetimes."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class TickClock:
    """Controllable monotonic clock returning floats."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DownKVStore(InMemoryKVStore):
    """Fast store that is unreachable."""

    async def get(self, key):
        raise FastStoreUnavailable()

    async def incr(self, key):
        raise FastStoreUnavailable()

    async def expire(self, key, seconds):
        raise FastStoreUnavailable()

    async def ttl(self, key):
        raise FastStoreUnavailable()

    async def exists(self, key):
        raise FastStoreUnavailable()

    async def delete(self, *keys):
        raise FastStoreUnavailable()

    async def set_with_ttl(self, key, value, seconds):
        raise FastStoreUnavailable()

    async def incr_with_expire(self, key, seconds):
        raise FastStoreUnavailable()


class BlockingSink(MemorySink):
    """Memory sink whose writes wait until ``release`` is called."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    def release(self) -> None:
        self.gate.set()

    async def write(self, stream, level, message, fields):
        await self.gate.wait()
        await super().write(stream, level, message, fields)


class FlakyAccountStore(InMemoryAccountStore):
    """Account store whose reads and writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.reads_fail = False
        self.writes_fail = False

    async def get_login_state(self, user_id):
        if self.reads_fail:
            raise DurableReadFailure("database down", user_id=str(user_id))
        return await super().get_login_state(user_id)

    async def save_login_state(self, state):
        if self.writes_fail:
            raise DurableWriteFailure("database down", user_id=state.user_id)
        await super().save_login_state(state)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store(clock):
    return InMemoryKVStore(clock=clock.timestamp)


@pytest.fixture
def account_store():
    store = FlakyAccountStore()
    store.add_account("42", "user@example.com", role="broker")
    return store


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / "logs"
    path.mkdir()
    return path
