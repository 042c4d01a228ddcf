"""Work item watch endpoints (internal)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from notifier.core.deps import get_db, verify_internal_secret
from notifier.db.models import User, WorkItem
from notifier.schemas.watch import WatchRead, WatchUpdate
from notifier.services import watch_service

router = APIRouter(
    prefix="/work-items",
    tags=["watches"],
    dependencies=[Depends(verify_internal_secret)],
)


def _get_work_item_or_404(db: Session, work_item_id: UUID) -> WorkItem:
    work_item = db.get(WorkItem, work_item_id)
    if not work_item:
        raise HTTPException(status_code=404, detail="Work item not found")
    return work_item


@router.get("/{work_item_id}/watches", response_model=list[WatchRead])
def list_watches(work_item_id: UUID, db: Session = Depends(get_db)):
    """List all watch records of a work item, watching or not."""
    work_item = _get_work_item_or_404(db, work_item_id)
    return watch_service.list_watches(work_item)


@router.put("/{work_item_id}/watches/{user_id}", response_model=WatchRead)
def set_watch(
    work_item_id: UUID,
    user_id: UUID,
    data: WatchUpdate,
    db: Session = Depends(get_db),
):
    """Explicitly watch or unwatch a work item for a user."""
    work_item = _get_work_item_or_404(db, work_item_id)
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    watch = watch_service.set_watch(db, work_item, user, data.watching)
    db.commit()
    db.refresh(watch)
    return watch
