"""Work item, watch and visit ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notifier.db.base import Base
from notifier.db.enums import ChangeKind

if TYPE_CHECKING:
    from notifier.db.models import NamedQuery, User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid_str() -> str:
    return str(uuid.uuid4())


class Project(Base):
    """Scope of work items and of project-level saved queries."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Url/mail safe; embedded in reply addresses
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    work_items: Mapped[list["WorkItem"]] = relationship(back_populates="project")
    named_queries: Mapped[list["NamedQuery"]] = relationship(
        back_populates="project",
        order_by="NamedQuery.position",
        cascade="all, delete-orphan",
    )


class WorkItem(Base):
    """
    A tracked entity (issue).

    Persistence of the item and its history belongs to the surrounding
    application; the notification engine only reads it and writes watches.
    """

    __tablename__ = "work_items"
    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_work_items_project_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    submitter_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    submitted_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    item_uuid: Mapped[str] = mapped_column(
        "uuid", String(36), default=_new_uuid_str, nullable=False
    )
    # Explicit Message-ID/References value; generated from uuid when unset
    threading_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    project: Mapped["Project | None"] = relationship(back_populates="work_items")
    submitter: Mapped["User | None"] = relationship()
    watches: Mapped[list["WorkItemWatch"]] = relationship(
        back_populates="work_item",
        cascade="all, delete-orphan",
    )
    comments: Mapped[list["WorkItemComment"]] = relationship(
        back_populates="work_item",
        cascade="all, delete-orphan",
    )
    changes: Mapped[list["WorkItemChange"]] = relationship(
        back_populates="work_item",
        cascade="all, delete-orphan",
    )

    @property
    def number_and_title(self) -> str:
        return f"#{self.number}: {self.title}"


class WorkItemWatch(Base):
    """
    Watch state of a user on a work item.

    `watching=False` is a stored decision ("asked and declined"), which is
    different from having no row at all.
    """

    __tablename__ = "work_item_watches"
    __table_args__ = (
        UniqueConstraint("work_item_id", "user_id", name="uq_work_item_watches_item_user"),
        Index("idx_work_item_watches_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    work_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    watching: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    work_item: Mapped["WorkItem"] = relationship(back_populates="watches")
    user: Mapped["User"] = relationship()


class WorkItemVisit(Base):
    """Last time a user viewed a work item."""

    __tablename__ = "work_item_visits"
    __table_args__ = (
        UniqueConstraint("work_item_id", "user_id", name="uq_work_item_visits_item_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    work_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    visited_at: Mapped[datetime] = mapped_column(nullable=False)


class WorkItemComment(Base):
    """Comment on a work item."""

    __tablename__ = "work_item_comments"
    __table_args__ = (
        Index("idx_work_item_comments_item", "work_item_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    work_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    work_item: Mapped["WorkItem"] = relationship(back_populates="comments")
    user: Mapped["User | None"] = relationship()


class WorkItemChange(Base):
    """Recorded change (state, fields, description, cross reference, ...)."""

    __tablename__ = "work_item_changes"
    __table_args__ = (
        Index("idx_work_item_changes_item", "work_item_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    work_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Optional markdown comment entered together with the change
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    work_item: Mapped["WorkItem"] = relationship(back_populates="changes")
    user: Mapped["User | None"] = relationship()

    @property
    def change_kind(self) -> ChangeKind:
        return ChangeKind(self.kind)
