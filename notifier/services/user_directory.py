"""User lookups used by mention resolution, query watches and inbound mail."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from notifier.db.models import User, UserEmailAddress


class UserDirectory(Protocol):
    def find_by_name(self, name: str) -> User | None: ...

    def find_by_email(self, email: str) -> User | None: ...

    def all(self) -> list[User]: ...


class DbUserDirectory:
    """Database-backed directory. Only active users are visible."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_name(self, name: str) -> User | None:
        if not name:
            return None
        return self.db.scalar(
            select(User).where(
                func.lower(User.username) == name.strip().lower(),
                User.is_active.is_(True),
            )
        )

    def find_by_email(self, email: str) -> User | None:
        """Match the primary address first, then alternates (case-insensitive)."""
        normalized = (email or "").strip().lower()
        if not normalized:
            return None

        user = self.db.scalar(
            select(User).where(
                func.lower(User.email) == normalized,
                User.is_active.is_(True),
            )
        )
        if user is not None:
            return user

        return self.db.scalar(
            select(User)
            .join(UserEmailAddress, UserEmailAddress.user_id == User.id)
            .where(
                func.lower(UserEmailAddress.email) == normalized,
                User.is_active.is_(True),
            )
        )

    def all(self) -> list[User]:
        return list(
            self.db.scalars(
                select(User).where(User.is_active.is_(True)).order_by(User.username)
            )
        )
