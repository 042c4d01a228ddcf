"""Saved query ORM models (named queries and per-user query settings)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
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

if TYPE_CHECKING:
    from notifier.db.models import Project, User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NamedQuery(Base):
    """
    Shared saved query.

    project_id NULL = global (instance-wide) query. Position is the
    declared order inside its scope.
    """

    __tablename__ = "named_queries"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_named_queries_project_name"),
        Index("idx_named_queries_project_position", "project_id", "position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    query: Mapped[str] = mapped_column(Text, nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    project: Mapped["Project | None"] = relationship(back_populates="named_queries")


class QuerySetting(Base):
    """
    A user's saved queries and watch subscriptions for one scope.

    project_id NULL = the user's global setting.

    user_queries:        [{"name": ..., "query": ...}] personal queries
    user_query_watches:  {personal query name: bool}
    query_watches:       {named query name: bool}

    True subscribes (watch), False excludes (unwatch). Key order is the
    declared evaluation order.
    """

    __tablename__ = "query_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="uq_query_settings_user_project"),
        Index("idx_query_settings_project", "project_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True
    )
    user_queries: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    user_query_watches: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    query_watches: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship()
    project: Mapped["Project | None"] = relationship()

    def find_user_query(self, name: str) -> str | None:
        """Return the query string of a personal query, or None."""
        for entry in self.user_queries or []:
            if entry.get("name") == name:
                return entry.get("query") or ""
        return None
