"""SQLAlchemy ORM models."""

from notifier.db.models.auth import Group, User, UserEmailAddress, group_memberships
from notifier.db.models.jobs import Job
from notifier.db.models.queries import NamedQuery, QuerySetting
from notifier.db.models.work_items import (
    Project,
    WorkItem,
    WorkItemChange,
    WorkItemComment,
    WorkItemVisit,
    WorkItemWatch,
)

__all__ = [
    "Group",
    "Job",
    "NamedQuery",
    "Project",
    "QuerySetting",
    "User",
    "UserEmailAddress",
    "WorkItem",
    "WorkItemChange",
    "WorkItemComment",
    "WorkItemVisit",
    "WorkItemWatch",
    "group_memberships",
]
