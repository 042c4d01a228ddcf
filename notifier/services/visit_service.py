"""Work item visit tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from notifier.db.models import User, WorkItem, WorkItemVisit


class VisitTracker(Protocol):
    def last_visit(self, user: User, work_item: WorkItem) -> datetime | None: ...


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DbVisitTracker:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _get(self, user: User, work_item: WorkItem) -> WorkItemVisit | None:
        return self.db.scalar(
            select(WorkItemVisit).where(
                WorkItemVisit.work_item_id == work_item.id,
                WorkItemVisit.user_id == user.id,
            )
        )

    def last_visit(self, user: User, work_item: WorkItem) -> datetime | None:
        """Return the last visit time (UTC) or None if never visited."""
        visit = self._get(user, work_item)
        if visit is None:
            return None
        return as_utc(visit.visited_at)

    def record_visit(
        self, user: User, work_item: WorkItem, visited_at: datetime | None = None
    ) -> WorkItemVisit:
        """Upsert the visit timestamp. Flushes, does not commit."""
        when = as_utc(visited_at) if visited_at else datetime.now(timezone.utc)
        visit = self._get(user, work_item)
        if visit is None:
            visit = WorkItemVisit(work_item_id=work_item.id, user_id=user.id, visited_at=when)
            self.db.add(visit)
        else:
            visit.visited_at = when
        self.db.flush()
        return visit
