"""
Card model — a payment card registered by a user.

The card itself is never stored: the client supplies an opaque payment
token (issued by a tokenization provider) plus display data (brand, last
four digits, optional nickname). The token is globally unique.

Lifecycle:
  - Created only through Card.issue(), which validates every field
  - Owned exclusively by owner_id
  - "Deleted" by disable(): is_active flips to False and the row stays, so
    past transactions keep a valid card reference
  - No other field changes after creation
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from cardapi.database import Base
from cardapi.exceptions import ValidationError


class Card(Base):
    __tablename__ = "cards"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Visa, Mastercard, ...
    brand: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # Last four digits in plaintext for display ("ending in 4242")
    last4: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
    )

    # Provider token/alias. Never a real card number.
    token: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )

    nickname: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    @classmethod
    def issue(
        cls,
        owner_id: uuid.UUID | None,
        brand: str | None,
        last4: str | None,
        token: str | None,
        nickname: str | None = None,
    ) -> "Card":
        """
        Validate input and build a new active card.

        Raises:
            ValidationError: If the owner is missing, brand or token is
                blank, or last4 is not exactly four characters.
        """
        if owner_id is None:
            raise ValidationError("owner_id", "Owner is required")
        if not brand or not brand.strip():
            raise ValidationError("brand", "Brand is required")
        last4 = (last4 or "").strip()
        if len(last4) != 4:
            raise ValidationError("last4", "last4 must be exactly 4 characters")
        if not token or not token.strip():
            raise ValidationError("token", "Token is required")

        return cls(
            id=uuid.uuid4(),
            owner_id=owner_id,
            brand=brand.strip(),
            last4=last4,
            token=token.strip(),
            nickname=(nickname or "").strip(),
            is_active=True,
            created_at=datetime.now(timezone.utc),
        )

    def disable(self) -> None:
        self.is_active = False
