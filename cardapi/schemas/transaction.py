"""
Pydantic schemas for Transaction endpoints.

Amounts travel as decimals with two places (serialized as strings, e.g.
"2000000.00") so no float rounding ever touches money.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from cardapi.config import settings
from cardapi.database import as_utc
from cardapi.models.transaction import TransactionStatus


class TransactionCreateRequest(BaseModel):
    """Request body for POST /transactions."""
    card_id: uuid.UUID
    amount: Decimal
    currency: str = Field(
        default=settings.DEFAULT_CURRENCY,
        description="3-letter currency code",
    )
    description: str | None = Field(None, max_length=255)

    @field_validator("currency", mode="before")
    @classmethod
    def blank_currency_uses_default(cls, value):
        """An explicit null or blank currency falls back to the default."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return settings.DEFAULT_CURRENCY
        return value


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: uuid.UUID
    card_id: uuid.UUID
    amount: Decimal
    currency: str
    description: str
    status: TransactionStatus
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def created_at_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)
