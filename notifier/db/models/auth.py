"""User directory ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notifier.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


group_memberships = Table(
    "group_memberships",
    Base.metadata,
    Column("group_id", Uuid, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    """
    A person (or system account) that can watch work items.

    `email` is the delivery address; alternate addresses only take part
    in "already reached" suppression and inbound mail matching.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    is_system: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    alternate_emails: Mapped[list["UserEmailAddress"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
    groups: Mapped[list["Group"]] = relationship(
        secondary=group_memberships,
        back_populates="members",
    )

    @property
    def all_emails(self) -> set[str]:
        """Primary plus alternate addresses, lower-cased."""
        emails = {entry.email.lower() for entry in self.alternate_emails}
        if self.email:
            emails.add(self.email.lower())
        return emails

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class UserEmailAddress(Base):
    """Additional address owned by a user."""

    __tablename__ = "user_email_addresses"
    __table_args__ = (
        Index("idx_user_email_addresses_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)

    user: Mapped["User"] = relationship(back_populates="alternate_emails")


class Group(Base):
    """Named set of users; only used as a role-assignment target."""

    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    members: Mapped[list["User"]] = relationship(
        secondary=group_memberships,
        back_populates="groups",
    )
