"""
Transaction service — card payments, history, and reversals.

Creating a transaction:
  1. Load the referenced card
       missing            -> CardNotFoundError
       someone else's     -> ForbiddenError
       disabled           -> CardNotFoundError
  2. Classify the amount with the approval policy
  3. Build the row with Transaction.record() (validation, rounding,
     currency normalization); owner_id is copied from the card
  4. Persist it, approved or declined; declined payments stay in the
     history as an audit trail

Approval policy:
  There is no payment-network integration. CeilingApprovalPolicy approves
  anything at or below a fixed ceiling and declines the rest. Any object
  with a matching decide() can be injected instead.

History queries filter on Transaction.owner_id, so a caller can never see
rows for a card they don't own, even by guessing a card id.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardapi.database import as_utc
from cardapi.exceptions import CardNotFoundError, TransactionNotFoundError
from cardapi.models.transaction import Transaction, TransactionStatus, round_amount
from cardapi.services.card_service import get_owned_card
from cardapi.services.ownership import assert_owned


logger = logging.getLogger("cardapi.transactions")


# ---------------------------------------------------------------------------
# Approval policy
# ---------------------------------------------------------------------------

class ApprovalPolicy(Protocol):
    def decide(self, amount: Decimal, currency: str) -> TransactionStatus: ...


class CeilingApprovalPolicy:
    """Approve amounts <= ceiling, decline anything above it."""

    def __init__(self, ceiling: Decimal = Decimal("2000000")):
        self.ceiling = Decimal(ceiling)

    def decide(self, amount: Decimal, currency: str) -> TransactionStatus:
        if amount <= self.ceiling:
            return TransactionStatus.APPROVED
        return TransactionStatus.DECLINED


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def create_transaction(
    db: AsyncSession,
    owner_id: uuid.UUID,
    card_id: uuid.UUID,
    amount,
    currency: str,
    description: str | None,
    policy: ApprovalPolicy,
) -> Transaction:
    """
    Record a payment against one of the owner's active cards.

    Raises:
        CardNotFoundError: If the card doesn't exist or is disabled.
        ForbiddenError: If the card belongs to someone else.
        ValidationError: If amount or currency is invalid.
    """
    card = await get_owned_card(db, owner_id, card_id)
    if not card.is_active:
        raise CardNotFoundError(card_id)

    rounded = round_amount(amount)
    status = policy.decide(rounded, (currency or "").strip().upper())

    txn = Transaction.record(
        owner_id=card.owner_id,
        card_id=card.id,
        amount=rounded,
        currency=currency,
        description=description,
        status=status,
    )
    db.add(txn)
    await db.flush()

    logger.info(
        "Transaction %s on card %s: %s %s %s",
        txn.id, card.id, txn.amount, txn.currency, txn.status.value,
    )
    return txn


async def reverse_transaction(
    db: AsyncSession,
    owner_id: uuid.UUID,
    transaction_id: uuid.UUID,
) -> Transaction:
    """
    Reverse an approved transaction.

    Raises:
        TransactionNotFoundError: If the transaction doesn't exist.
        ForbiddenError: If it belongs to someone else.
        InvalidStateError: If it is not currently approved.
    """
    txn = await get_transaction(db, owner_id, transaction_id)
    txn.reverse()
    await db.flush()
    logger.info("Transaction %s reversed by user %s", txn.id, owner_id)
    return txn


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_transaction(
    db: AsyncSession,
    owner_id: uuid.UUID,
    transaction_id: uuid.UUID,
) -> Transaction:
    """
    Get a single transaction, verifying ownership.

    Raises:
        TransactionNotFoundError: If the transaction doesn't exist.
        ForbiddenError: If it belongs to someone else.
    """
    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    assert_owned(txn, owner_id)
    return txn


async def list_transactions(
    db: AsyncSession,
    owner_id: uuid.UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Transaction]:
    """
    List the owner's transactions, newest first.

    Args:
        start: Optional inclusive lower bound on created_at.
        end: Optional inclusive upper bound on created_at.
            Naive bounds are interpreted as UTC.
    """
    query = (
        select(Transaction)
        .where(Transaction.owner_id == owner_id)
        .order_by(Transaction.created_at.desc())
    )
    if start is not None:
        query = query.where(Transaction.created_at >= as_utc(start))
    if end is not None:
        query = query.where(Transaction.created_at <= as_utc(end))

    result = await db.execute(query)
    return list(result.scalars().all())


async def list_card_transactions(
    db: AsyncSession,
    owner_id: uuid.UUID,
    card_id: uuid.UUID,
) -> list[Transaction]:
    """
    List transactions made with one of the owner's cards, newest first.

    Disabled cards are allowed so their history stays reachable.

    Raises:
        CardNotFoundError: If the card doesn't exist.
        ForbiddenError: If the card belongs to someone else.
    """
    await get_owned_card(db, owner_id, card_id)

    result = await db.execute(
        select(Transaction)
        .where(Transaction.owner_id == owner_id)
        .where(Transaction.card_id == card_id)
        .order_by(Transaction.created_at.desc())
    )
    return list(result.scalars().all())
