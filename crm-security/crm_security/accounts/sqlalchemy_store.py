"""
SQLAlchemy Account Store
========================
Durable account store on the ``users`` table.

Transient database errors (``OperationalError``: dropped connections,
lock timeouts) are retried with exponential backoff; anything else is
wrapped in ``DurableReadFailure`` / ``DurableWriteFailure``.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import DurableReadFailure, DurableWriteFailure
from .interface import AccountStore
from .models import AccountLoginState, AccountRecord, UserAccount, ensure_utc

logger = structlog.get_logger(__name__)


def _log_retry(retry_state) -> None:
    logger.warning(
        "durable_store_retry",
        operation=retry_state.fn.__name__ if retry_state.fn else None,
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


transient_retry = retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, max=1),
    before_sleep=_log_retry,
    reraise=True,
)


class SQLAlchemyAccountStore(AccountStore):
    """
    Account store backed by SQLAlchemy (async).

    Usage:
        db = AccountDatabase.from_url("postgresql+asyncpg://...")
        store = SQLAlchemyAccountStore(db.session_factory)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_login_state(self, user_id: str) -> Optional[AccountLoginState]:
        try:
            return await self._get_login_state(str(user_id))
        except SQLAlchemyError as e:
            logger.error("durable_read_failed", user_id=str(user_id), error=str(e))
            raise DurableReadFailure(f"Failed to read login state: {e}", user_id=str(user_id), cause=e) from e

    @transient_retry
    async def _get_login_state(self, user_id: str) -> Optional[AccountLoginState]:
        async with self.session_factory() as session:
            account = await session.get(UserAccount, user_id)
            return account.to_login_state() if account else None

    async def save_login_state(self, state: AccountLoginState) -> None:
        try:
            await self._save_login_state(state)
        except SQLAlchemyError as e:
            logger.error("durable_write_failed", user_id=state.user_id, error=str(e))
            raise DurableWriteFailure(f"Failed to save login state: {e}", user_id=state.user_id, cause=e) from e

    @transient_retry
    async def _save_login_state(self, state: AccountLoginState) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                account = await session.get(UserAccount, state.user_id)
                if account is None:
                    raise DurableWriteFailure(f"Unknown account {state.user_id}", user_id=state.user_id)
                account.login_attempts = state.login_attempts
                account.lock_until = ensure_utc(state.lock_until)
                account.last_failed_login = ensure_utc(state.last_failed_login)

    async def find_by_identifier(self, email: str) -> Optional[AccountRecord]:
        try:
            return await self._find_by_identifier(email.strip().lower())
        except SQLAlchemyError as e:
            logger.error("durable_read_failed", identifier="email", error=str(e))
            raise DurableReadFailure(f"Failed to resolve account: {e}", cause=e) from e

    @transient_retry
    async def _find_by_identifier(self, email: str) -> Optional[AccountRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserAccount).where(func.lower(UserAccount.email) == email)
            )
            account = result.scalar_one_or_none()
            return account.to_record() if account else None
