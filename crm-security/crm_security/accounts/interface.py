"""
Account Store Interface
=======================
Contract for the durable, authoritative store of account login state.

Implementations raise ``DurableReadFailure`` / ``DurableWriteFailure``.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import AccountLoginState, AccountRecord


class AccountStore(ABC):
    """Durable account login-state store."""

    @abstractmethod
    async def get_login_state(self, user_id: str) -> Optional[AccountLoginState]:
        """Load login state, or None if the account does not exist."""

    @abstractmethod
    async def save_login_state(self, state: AccountLoginState) -> None:
        """Persist login state for an existing account."""

    @abstractmethod
    async def find_by_identifier(self, email: str) -> Optional[AccountRecord]:
        """Resolve a login identifier (email, case-insensitive) to an account."""
