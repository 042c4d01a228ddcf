"""Reply, unsubscribe and threading addresses for work item notifications.

With MAIL_INBOX_ADDRESS = "issues@example.com" and work item FOO-12:

    reply:        issues+FOO-12@example.com
    unsubscribe:  issues+FOO-12-unsubscribe@example.com
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from notifier.core.config import settings
from notifier.db.models import WorkItem

UNSUBSCRIBE_SUFFIX = "-unsubscribe"


@dataclass(frozen=True)
class WorkItemAddress:
    """Decoded plus-address of an inbound message."""

    project_key: str
    number: int
    unsubscribe: bool


def _item_token(work_item: WorkItem) -> str | None:
    if work_item.project is None:
        return None
    return f"{work_item.project.key}-{work_item.number}"


def reply_address(work_item: WorkItem) -> str | None:
    """Address that routes replies back to the work item, or None if no inbox is configured."""
    parts = settings.mail_inbox_parts
    token = _item_token(work_item)
    if parts is None or token is None:
        return None
    local, domain = parts
    return f"{local}+{token}@{domain}"


def unsubscribe_address(work_item: WorkItem) -> str | None:
    """Address that stops watching the work item when mailed, or None."""
    parts = settings.mail_inbox_parts
    token = _item_token(work_item)
    if parts is None or token is None:
        return None
    local, domain = parts
    return f"{local}+{token}{UNSUBSCRIBE_SUFFIX}@{domain}"


def thread_reference(work_item: WorkItem) -> str:
    """Stable threading key shared by every notification of the item."""
    if work_item.threading_reference:
        return work_item.threading_reference
    return f"{work_item.item_uuid}@{settings.MAIL_THREADING_DOMAIN}"


def parse_work_item_address(address: str | None) -> WorkItemAddress | None:
    """Decode a reply/unsubscribe address; None when it does not belong to the inbox."""
    parts = settings.mail_inbox_parts
    if parts is None or not address:
        return None
    local, domain = parts

    pattern = re.compile(
        rf"^{re.escape(local)}\+(?P<key>.+)-(?P<number>\d+)(?P<unsubscribe>{UNSUBSCRIBE_SUFFIX})?@{re.escape(domain)}$",
        re.IGNORECASE,
    )
    match = pattern.match(address.strip())
    if not match:
        return None
    return WorkItemAddress(
        project_key=match.group("key"),
        number=int(match.group("number")),
        unsubscribe=bool(match.group("unsubscribe")),
    )
