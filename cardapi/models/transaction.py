"""
Transaction model — a payment made with one of the owner's cards.

Key fields:
  - card_id: The card charged
  - owner_id: Copied from the card when the transaction is recorded, so
    history queries filter on the transaction row alone and a later change
    to the card cannot re-home the transaction
  - amount_cents: Always positive, stored as integer cents; `amount` exposes
    it as a Decimal with exactly two places
  - currency: ISO-style 3-letter code, upper-cased
  - status: "approved", "declined" or "reversed"

Status machine:
    approved ──reverse()──> reversed
    declined   (terminal)
    reversed   (terminal)
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

from sqlalchemy import String, BigInteger, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cardapi.database import Base
from cardapi.exceptions import InvalidStateError, ValidationError


CENT = Decimal("0.01")

# Largest amount whose cent value fits a signed 64-bit BIGINT column
MAX_AMOUNT = Decimal(2**63 - 1).scaleb(-2)


class TransactionStatus(str, enum.Enum):
    """Inherits from str so values serialize naturally to JSON."""
    APPROVED = "approved"
    DECLINED = "declined"
    REVERSED = "reversed"


def round_amount(amount) -> Decimal:
    """
    Convert an amount to a Decimal rounded to cents (banker's rounding).

    Raises:
        ValidationError: If the value is not a finite number, or is too
            large to round to cents.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("amount", "Amount must be a number")
    if not value.is_finite():
        raise ValidationError("amount", "Amount must be a number")
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_EVEN)
    except InvalidOperation:
        # More digits than the decimal context can hold at two places
        raise ValidationError("amount", "Amount is too large")


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_positive_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cards.id"),
        nullable=False,
        index=True,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus),
        nullable=False,
    )

    # Indexed for date-range history queries
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_cents).scaleb(-2)

    @classmethod
    def record(
        cls,
        owner_id: uuid.UUID | None,
        card_id: uuid.UUID | None,
        amount,
        currency: str | None,
        description: str | None,
        status: TransactionStatus,
    ) -> "Transaction":
        """
        Validate input and build a new transaction.

        The amount is rounded to cents before the positivity check, so an
        input like 0.001 is rejected rather than stored as zero.

        Raises:
            ValidationError: On a missing owner/card, a non-positive or
                unstorably large amount, or a currency that is not three
                letters.
        """
        if owner_id is None:
            raise ValidationError("owner_id", "Owner is required")
        if card_id is None:
            raise ValidationError("card_id", "Card is required")

        rounded = round_amount(amount)
        if rounded <= 0:
            raise ValidationError("amount", "Amount must be greater than 0")
        if rounded > MAX_AMOUNT:
            raise ValidationError("amount", "Amount is too large")

        currency = (currency or "").strip().upper()
        if not currency:
            raise ValidationError("currency", "Currency is required")
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency", "Currency must be a 3-letter code")

        return cls(
            id=uuid.uuid4(),
            owner_id=owner_id,
            card_id=card_id,
            amount_cents=int(rounded.scaleb(2)),
            currency=currency,
            description=(description or "").strip(),
            status=status,
            created_at=datetime.now(timezone.utc),
        )

    def reverse(self) -> None:
        """Move an approved transaction to reversed."""
        if self.status != TransactionStatus.APPROVED:
            raise InvalidStateError("Only approved transactions can be reversed")
        self.status = TransactionStatus.REVERSED
