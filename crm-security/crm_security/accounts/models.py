"""
Account Models
==============
Login-state view of a user account, and its SQLAlchemy mapping.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


def ensure_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as some drivers return them) as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class AccountLoginState:
    """Durable login-attempt state of one account."""
    user_id: str
    login_attempts: int = 0
    lock_until: Optional[datetime] = None
    last_failed_login: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now


@dataclass(frozen=True)
class AccountRecord:
    """Identity fields needed to resolve a login identifier."""
    user_id: str
    email: str
    role: Optional[str] = None


class UserAccount(Base):
    """
    Login-state columns of the ``users`` table.

    Only the columns the security core reads or writes are mapped.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    login_attempts: Mapped[int] = mapped_column("loginAttempts", Integer, default=0, nullable=False)
    lock_until: Mapped[Optional[datetime]] = mapped_column("lockUntil", DateTime(timezone=True), nullable=True)
    last_failed_login: Mapped[Optional[datetime]] = mapped_column(
        "lastFailedLogin", DateTime(timezone=True), nullable=True
    )

    def to_login_state(self) -> AccountLoginState:
        return AccountLoginState(
            user_id=self.id,
            login_attempts=self.login_attempts or 0,
            lock_until=ensure_utc(self.lock_until),
            last_failed_login=ensure_utc(self.last_failed_login),
        )

    def to_record(self) -> AccountRecord:
        return AccountRecord(user_id=self.id, email=self.email, role=self.role)
