"""
Login Lockout
=============
Dual-backed (fast cache + durable store) failed-login tracking and
account lockout.
"""

from .backends import (
    LoginIdentifier,
    CounterBackend,
    FastCounterBackend,
    DurableCounterBackend,
)
from .counter import CounterReading, DualBackedCounter
from .tracker import FailureResult, LockStatus, LockoutTracker
from .login import LoginGuard, LoginOutcome

__all__ = [
    "LoginIdentifier",
    "CounterBackend",
    "FastCounterBackend",
    "DurableCounterBackend",
    "CounterReading",
    "DualBackedCounter",
    "FailureResult",
    "LockStatus",
    "LockoutTracker",
    "LoginGuard",
    "LoginOutcome",
]
