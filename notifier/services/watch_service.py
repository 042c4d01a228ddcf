"""Watch state store for (work item, user) pairs.

Writes are flushed, never committed: the caller owns the transaction.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from notifier.core.structured_logging import build_log_context
from notifier.db.models import User, WorkItem, WorkItemWatch

logger = logging.getLogger(__name__)


def get_watch(work_item: WorkItem, user_id: UUID) -> WorkItemWatch | None:
    """Return the watch record of a user on an item, if any."""
    for watch in work_item.watches:
        if watch.user_id == user_id:
            return watch
    return None


def set_watch(db: Session, work_item: WorkItem, user: User, watching: bool) -> WorkItemWatch:
    """
    Create or update the watch flag of a user on a work item.

    No-op when the stored value already matches. A watch is never deleted;
    `watching=False` is kept as an explicit decision.
    """
    watch = get_watch(work_item, user.id)
    if watch is not None:
        if watch.watching == watching:
            return watch
        watch.watching = watching
    else:
        watch = WorkItemWatch(user_id=user.id, user=user, watching=watching)
        work_item.watches.append(watch)

    db.flush()
    logger.debug(
        "Work item watch set to %s",
        watching,
        extra=build_log_context(work_item_id=str(work_item.id), user_id=str(user.id)),
    )
    return watch


def list_watches(work_item: WorkItem, *, watching: bool | None = None) -> list[WorkItemWatch]:
    """List watches of an item, optionally filtered by flag."""
    if watching is None:
        return list(work_item.watches)
    return [watch for watch in work_item.watches if watch.watching == watching]


def is_watching(work_item: WorkItem, user_id: UUID) -> bool:
    watch = get_watch(work_item, user_id)
    return watch is not None and watch.watching
