"""
Card service — register, list, and disable a user's payment cards.

Cards are scoped to their owner:
  - Listing only ever queries the caller's own active cards
  - Deleting checks ownership before anything else is revealed

Delete is idempotent. The order of checks is:
  1. Card does not exist                      -> silent no-op
  2. Card belongs to someone else             -> ForbiddenError
  3. Card is already disabled                 -> silent no-op
  4. Otherwise                                -> card.disable()
Ownership comes before the "already disabled" check so another user's
card gives the same answer whether it is active or not.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardapi.exceptions import CardNotFoundError, DuplicateCardTokenError
from cardapi.models.card import Card
from cardapi.services.ownership import assert_owned


logger = logging.getLogger("cardapi.cards")


async def list_cards(db: AsyncSession, owner_id: uuid.UUID) -> list[Card]:
    """Return the owner's active cards, newest first."""
    result = await db.execute(
        select(Card)
        .where(Card.owner_id == owner_id)
        .where(Card.is_active.is_(True))
        .order_by(Card.created_at.desc())
    )
    return list(result.scalars().all())


async def create_card(
    db: AsyncSession,
    owner_id: uuid.UUID,
    brand: str,
    last4: str,
    token: str,
    nickname: str | None = None,
) -> Card:
    """
    Register a new card for the owner.

    Raises:
        ValidationError: If any field fails Card.issue() validation.
        DuplicateCardTokenError: If the payment token is already registered
            (by anyone, active or not).
    """
    card = Card.issue(owner_id, brand, last4, token, nickname)

    existing = await db.execute(select(Card.id).where(Card.token == card.token))
    if existing.scalar_one_or_none() is not None:
        raise DuplicateCardTokenError()

    db.add(card)
    await db.flush()
    logger.info("Card %s registered for user %s", card.id, owner_id)
    return card


async def get_owned_card(
    db: AsyncSession,
    owner_id: uuid.UUID,
    card_id: uuid.UUID,
) -> Card:
    """
    Load a card and verify the caller owns it. Disabled cards are included.

    Raises:
        CardNotFoundError: If the card doesn't exist.
        ForbiddenError: If the card belongs to someone else.
    """
    result = await db.execute(select(Card).where(Card.id == card_id))
    card = result.scalar_one_or_none()
    if card is None:
        raise CardNotFoundError(card_id)
    assert_owned(card, owner_id)
    return card


async def delete_card(
    db: AsyncSession,
    owner_id: uuid.UUID,
    card_id: uuid.UUID,
) -> None:
    """
    Soft-delete a card (see module docstring for the idempotence rules).

    Raises:
        ForbiddenError: If the card belongs to someone else.
    """
    result = await db.execute(select(Card).where(Card.id == card_id))
    card = result.scalar_one_or_none()
    if card is None:
        return

    assert_owned(card, owner_id)

    if not card.is_active:
        return

    card.disable()
    await db.flush()
    logger.info("Card %s disabled by user %s", card.id, owner_id)
