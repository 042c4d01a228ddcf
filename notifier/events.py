"""Work item domain events consumed by the notification engine.

Events form a closed set of variants identified by `EventKind`. Code that
branches on the variant does so through tables keyed by `EventKind`, so a
new kind without a policy entry fails loudly instead of falling through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar

from notifier.db.enums import CHANGE_ACTIVITY, ChangeKind
from notifier.db.models import Group, User, WorkItem, WorkItemChange, WorkItemComment


class EventKind(str, Enum):
    """Discriminator of work item event variants."""

    OPENED = "opened"
    COMMENTED = "commented"
    CHANGED = "changed"


@dataclass(kw_only=True)
class WorkItemEvent:
    """
    Fields shared by all variants.

    actor: acting user, None for system-generated events.
    new_groups / new_users: roles newly assigned by this event
    (role name -> group, role name -> users).
    """

    kind: ClassVar[EventKind]

    actor: User | None
    occurred_at: datetime
    new_groups: dict[str, Group] = field(default_factory=dict)
    new_users: dict[str, list[User]] = field(default_factory=dict)

    @property
    def markdown(self) -> str | None:
        return None

    @property
    def notified_email_addresses(self) -> frozenset[str]:
        """Addresses already reached outside of this engine (e.g. by reply-to)."""
        return frozenset()

    def permalink_target(self, work_item: WorkItem) -> object:
        return work_item

    def activity(self, work_item: WorkItem) -> str:
        raise NotImplementedError


@dataclass(kw_only=True)
class WorkItemOpened(WorkItemEvent):
    kind: ClassVar[EventKind] = EventKind.OPENED

    description: str | None = None

    @property
    def markdown(self) -> str | None:
        return self.description

    def activity(self, work_item: WorkItem) -> str:
        return f"opened work item {work_item.number_and_title}"


@dataclass(kw_only=True)
class WorkItemCommented(WorkItemEvent):
    kind: ClassVar[EventKind] = EventKind.COMMENTED

    comment: WorkItemComment
    reached_addresses: frozenset[str] = frozenset()

    @property
    def markdown(self) -> str | None:
        return self.comment.content

    @property
    def notified_email_addresses(self) -> frozenset[str]:
        return frozenset(address.lower() for address in self.reached_addresses)

    def permalink_target(self, work_item: WorkItem) -> object:
        return self.comment

    def activity(self, work_item: WorkItem) -> str:
        return f"commented on work item {work_item.number_and_title}"


@dataclass(kw_only=True)
class WorkItemChanged(WorkItemEvent):
    kind: ClassVar[EventKind] = EventKind.CHANGED

    change: WorkItemChange

    @property
    def change_kind(self) -> ChangeKind:
        return self.change.change_kind

    @property
    def markdown(self) -> str | None:
        # A description edit carries the new text; other changes their comment.
        if self.change_kind is ChangeKind.DESCRIPTION:
            return self.change.new_value
        return self.change.comment

    def permalink_target(self, work_item: WorkItem) -> object:
        return self.change

    def activity(self, work_item: WorkItem) -> str:
        return f"{CHANGE_ACTIVITY[self.change_kind]} work item {work_item.number_and_title}"
