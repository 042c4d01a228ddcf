"""Watch schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class WatchRead(BaseModel):
    """Watch state of one user on a work item."""

    id: UUID
    work_item_id: UUID
    user_id: UUID
    watching: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WatchUpdate(BaseModel):
    watching: bool
