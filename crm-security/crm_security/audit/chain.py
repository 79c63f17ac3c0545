"""
Chain State
===========
The single mutable "last hash" pointer of an audit chain.
"""

import asyncio

from .hashing import GENESIS_HASH, GENESIS_SOURCE, is_sha256_hex


class ChainState:
    """
    Head of a hash chain, owned by exactly one audit trail.

    All extension goes through ``lock``: reading ``last_hash``, computing
    the next hash and advancing must happen while it is held, otherwise two
    concurrent records can link to the same predecessor and fork the chain.
    """

    def __init__(self, last_hash: str = GENESIS_HASH, source: str = GENESIS_SOURCE):
        self._last_hash = last_hash
        self._source = source
        self._appended = 0
        self._lock = asyncio.Lock()

    @property
    def last_hash(self) -> str:
        return self._last_hash

    @property
    def source(self) -> str:
        """Segment filename (or GENESIS) the head was recovered from."""
        return self._source

    @property
    def appended(self) -> int:
        """Entries appended by this process."""
        return self._appended

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def _require_lock(self) -> None:
        if not self._lock.locked():
            raise RuntimeError("Chain state mutated outside its lock")

    def advance(self, new_hash: str) -> None:
        """Move the head to a newly appended entry. Caller holds ``lock``."""
        self._require_lock()
        if not is_sha256_hex(new_hash):
            raise ValueError("Chain hash must be a hex SHA-256 digest")
        self._last_hash = new_hash
        self._appended += 1

    def reset(self, last_hash: str, source: str) -> None:
        """Adopt a recovered head. Caller holds ``lock``."""
        self._require_lock()
        self._last_hash = last_hash
        self._source = source
        self._appended = 0

    def __repr__(self) -> str:
        return f"ChainState(last_hash={self._last_hash[:16]}..., source={self._source!r})"
