"""Work item enums."""

from enum import Enum


class ChangeKind(str, Enum):
    """Kind of change recorded in a work item's history."""

    STATE = "state"
    TITLE = "title"
    DESCRIPTION = "description"
    FIELDS = "fields"
    MILESTONE = "milestone"
    REFERENCED_FROM_CODE_COMMENT = "referenced_from_code_comment"
    REFERENCED_FROM_WORK_ITEM = "referenced_from_work_item"
    REFERENCED_FROM_PULL_REQUEST = "referenced_from_pull_request"

    @property
    def is_cross_reference(self) -> bool:
        """Automatic cross-reference created from somewhere else."""
        return self in {
            ChangeKind.REFERENCED_FROM_CODE_COMMENT,
            ChangeKind.REFERENCED_FROM_WORK_ITEM,
            ChangeKind.REFERENCED_FROM_PULL_REQUEST,
        }


CHANGE_ACTIVITY = {
    ChangeKind.STATE: "changed state of",
    ChangeKind.TITLE: "changed title of",
    ChangeKind.DESCRIPTION: "changed description of",
    ChangeKind.FIELDS: "changed fields of",
    ChangeKind.MILESTONE: "changed milestone of",
    ChangeKind.REFERENCED_FROM_CODE_COMMENT: "referenced from code comment",
    ChangeKind.REFERENCED_FROM_WORK_ITEM: "referenced from other work item",
    ChangeKind.REFERENCED_FROM_PULL_REQUEST: "referenced from pull request",
}
