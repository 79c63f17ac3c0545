"""
Account Store
=============
Durable (authoritative) account login state.
"""

from .models import AccountLoginState, AccountRecord, UserAccount, ensure_utc
from .interface import AccountStore
from .memory import InMemoryAccountStore
from .sqlalchemy_store import SQLAlchemyAccountStore

__all__ = [
    "AccountLoginState",
    "AccountRecord",
    "UserAccount",
    "ensure_utc",
    "AccountStore",
    "InMemoryAccountStore",
    "SQLAlchemyAccountStore",
]
