"""Inbound email schemas."""

from pydantic import BaseModel, Field


class UnsubscribeEmailRequest(BaseModel):
    """Envelope of a message delivered to an unsubscribe address."""

    to_address: str = Field(..., min_length=3, max_length=320)
    from_address: str = Field(..., min_length=3, max_length=320)


class UnsubscribeEmailResponse(BaseModel):
    processed: bool
