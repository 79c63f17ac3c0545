"""
In-Memory Account Store
=======================
Dict-backed account store for development and testing.
"""

from dataclasses import replace
from typing import Dict, Optional

from ..errors import DurableWriteFailure
from .interface import AccountStore
from .models import AccountLoginState, AccountRecord


class InMemoryAccountStore(AccountStore):
    """
    Process-local account store.

    For development and testing only.
    Use SQLAlchemyAccountStore in production.
    """

    def __init__(self):
        self._accounts: Dict[str, AccountRecord] = {}
        self._states: Dict[str, AccountLoginState] = {}

    def add_account(self, user_id: str, email: str, role: Optional[str] = None) -> AccountRecord:
        record = AccountRecord(user_id=str(user_id), email=email, role=role)
        self._accounts[record.user_id] = record
        self._states[record.user_id] = AccountLoginState(user_id=record.user_id)
        return record

    async def get_login_state(self, user_id: str) -> Optional[AccountLoginState]:
        state = self._states.get(str(user_id))
        # Copies, so callers cannot mutate stored state without saving it
        return replace(state) if state else None

    async def save_login_state(self, state: AccountLoginState) -> None:
        if state.user_id not in self._accounts:
            raise DurableWriteFailure(f"Unknown account {state.user_id}", user_id=state.user_id)
        self._states[state.user_id] = replace(state)

    async def find_by_identifier(self, email: str) -> Optional[AccountRecord]:
        needle = email.strip().lower()
        for record in self._accounts.values():
            if record.email.lower() == needle:
                return record
        return None
