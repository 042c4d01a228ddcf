"""Inbound unsubscribe handling.

Notification footers point readers at a per-item unsubscribe address
(see mail_address_service). Mail sent there by a known user stops that
user's watch on the item.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from notifier.core.structured_logging import build_log_context
from notifier.db.models import Project, WorkItem
from notifier.services import mail_address_service, watch_service
from notifier.services.user_directory import DbUserDirectory, UserDirectory

logger = logging.getLogger(__name__)


def find_work_item(db: Session, project_key: str, number: int) -> WorkItem | None:
    return db.scalar(
        select(WorkItem)
        .join(Project, Project.id == WorkItem.project_id)
        .where(func.lower(Project.key) == project_key.lower(), WorkItem.number == number)
    )


def process_unsubscribe_email(
    db: Session,
    *,
    to_address: str,
    from_address: str,
    users: UserDirectory | None = None,
) -> bool:
    """
    Stop the sender watching the work item encoded in `to_address`.

    Returns False (and changes nothing) when the address is not an
    unsubscribe address, the work item is unknown or the sender is not a
    known user. Flushes, does not commit.
    """
    address = mail_address_service.parse_work_item_address(to_address)
    if address is None or not address.unsubscribe:
        logger.info("Ignoring inbound mail to a non-unsubscribe address")
        return False

    work_item = find_work_item(db, address.project_key, address.number)
    if work_item is None:
        logger.info(
            "Ignoring unsubscribe for unknown work item %s-%s",
            address.project_key,
            address.number,
        )
        return False

    directory = users or DbUserDirectory(db)
    user = directory.find_by_email(from_address)
    if user is None:
        logger.info(
            "Ignoring unsubscribe from unknown sender",
            extra=build_log_context(work_item_id=str(work_item.id)),
        )
        return False

    watch_service.set_watch(db, work_item, user, False)
    logger.info(
        "User unsubscribed from work item",
        extra=build_log_context(work_item_id=str(work_item.id), user_id=str(user.id)),
    )
    return True
