"""
Duplicate Request Guard
=======================
Short-window duplicate/replay detection over request signatures.

The map is process-local: instances behind a load balancer do not share
it, so a duplicate routed to another instance is not detected.
"""

import threading
import time
from typing import Callable, Dict, Optional

import structlog

from ..config import DuplicateGuardConfig

logger = structlog.get_logger(__name__)


class DuplicateRequestGuard:
    """
    Bounded in-memory map of signature -> last seen time.

    Usage:
        guard = DuplicateRequestGuard(window=2.0)
        if guard.check_and_record(signature):
            ...  # duplicate within the window
    """

    def __init__(
        self,
        window: Optional[float] = None,
        max_entries: Optional[int] = None,
        sweep_horizon: Optional[float] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
        config: Optional[DuplicateGuardConfig] = None,
    ):
        config = config or DuplicateGuardConfig()
        self.window = window if window is not None else config.window
        self.max_entries = max_entries if max_entries is not None else config.max_entries
        self.sweep_horizon = sweep_horizon if sweep_horizon is not None else config.sweep_horizon
        self.enabled = enabled if enabled is not None else config.enabled
        self._clock = clock
        # Insertion order is first-seen order: re-recorded signatures move to
        # the end, so the oldest entries are always at the front
        self._seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Number of remembered signatures."""
        return len(self._seen)

    def check_and_record(self, signature: str) -> bool:
        """
        Check a signature and record it if new.

        A duplicate does not refresh the stored time, so a client retrying
        in a tight loop is let through once per window.

        Args:
            signature: Request fingerprint

        Returns:
            True if the same signature was seen less than ``window`` ago
        """
        if not self.enabled:
            return False

        with self._lock:
            now = self._clock()
            last_seen = self._seen.get(signature)
            if last_seen is not None and now - last_seen < self.window:
                logger.warning("duplicate_request_detected", signature=signature[:12])
                return True

            self._seen.pop(signature, None)
            self._seen[signature] = now
            if len(self._seen) > self.max_entries:
                self._sweep(now)
            return False

    def _sweep(self, now: float) -> None:
        """
        Drop entries older than the sweep horizon. Caller holds the lock.

        Stops at the first entry inside the horizon, so a map full of fresh
        entries costs one comparison.
        """
        removed = 0
        while self._seen:
            oldest = next(iter(self._seen))
            if now - self._seen[oldest] <= self.sweep_horizon:
                break
            del self._seen[oldest]
            removed += 1
        if removed:
            logger.info("duplicate_guard_swept", removed=removed, remaining=len(self._seen))

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
