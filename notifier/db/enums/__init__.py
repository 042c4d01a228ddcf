"""Enum definitions for application constants."""

from notifier.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from notifier.db.enums.work_items import CHANGE_ACTIVITY, ChangeKind

__all__ = [
    "CHANGE_ACTIVITY",
    "ChangeKind",
    "DEFAULT_JOB_STATUS",
    "JobStatus",
    "JobType",
]
