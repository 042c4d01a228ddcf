"""Inbound unsubscribe email endpoint (called by the mail gateway)."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from notifier.core.deps import get_db, verify_internal_secret
from notifier.schemas.inbound_email import UnsubscribeEmailRequest, UnsubscribeEmailResponse
from notifier.services import unsubscribe_service

router = APIRouter(
    prefix="/email",
    tags=["email"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/inbound/unsubscribe", response_model=UnsubscribeEmailResponse)
def unsubscribe_inbound(data: UnsubscribeEmailRequest, db: Session = Depends(get_db)):
    """Process a message sent to a work item's unsubscribe address."""
    processed = unsubscribe_service.process_unsubscribe_email(
        db,
        to_address=data.to_address,
        from_address=data.from_address,
    )
    if processed:
        db.commit()
    return UnsubscribeEmailResponse(processed=processed)
