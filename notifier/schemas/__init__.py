"""Pydantic schemas for API request/response models."""

from notifier.schemas.inbound_email import UnsubscribeEmailRequest, UnsubscribeEmailResponse
from notifier.schemas.watch import WatchRead, WatchUpdate

__all__ = [
    "UnsubscribeEmailRequest",
    "UnsubscribeEmailResponse",
    "WatchRead",
    "WatchUpdate",
]
