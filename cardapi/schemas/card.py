"""
Pydantic schemas for Card endpoints.

The payment token is write-only: it is accepted on creation and never
returned in any response.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, field_validator

from cardapi.database import as_utc


class CardCreateRequest(BaseModel):
    """Request body for POST /cards. Content rules live in Card.issue()."""
    brand: str
    last4: str
    token: str
    nickname: str | None = None


class CardResponse(BaseModel):
    """Public representation of a card (no payment token)."""
    id: uuid.UUID
    brand: str
    last4: str
    nickname: str
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def created_at_in_utc(cls, value: datetime) -> datetime:
        # SQLite hands timestamps back without tzinfo; they are stored in UTC
        return as_utc(value)
