"""
Cards router — register, list and remove the caller's payment cards.

Endpoints:
  GET    /cards                     — List active cards (newest first)
  POST   /cards                     — Register a card
  DELETE /cards/{card_id}           — Disable a card (idempotent)
  GET    /cards/{card_id}/transactions — Transactions made with a card

The payment token is accepted on creation and never returned.
"""

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cardapi.database import get_db
from cardapi.dependencies import get_current_user
from cardapi.models.user import User
from cardapi.schemas.card import CardCreateRequest, CardResponse
from cardapi.schemas.transaction import TransactionResponse
from cardapi.services import card_service, transaction_service

router = APIRouter()


@router.get(
    "",
    response_model=list[CardResponse],
    summary="List my cards",
)
async def list_cards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await card_service.list_cards(db, owner_id=user.id)


@router.post(
    "",
    response_model=CardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a card",
)
async def create_card(
    request: CardCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Register a tokenized card.

    - **brand**: Required (e.g. "Visa")
    - **last4**: Exactly four characters
    - **token**: Provider token, unique across all users
    - **nickname**: Optional label
    """
    return await card_service.create_card(
        db=db,
        owner_id=user.id,
        brand=request.brand,
        last4=request.last4,
        token=request.token,
        nickname=request.nickname,
    )


@router.delete(
    "/{card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a card",
)
async def delete_card(
    card_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Disable a card. Removing a card that is already removed (or never
    existed) succeeds; removing someone else's card returns 403.
    """
    await card_service.delete_card(db, owner_id=user.id, card_id=card_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{card_id}/transactions",
    response_model=list[TransactionResponse],
    summary="List transactions for a card",
)
async def list_card_transactions(
    card_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.list_card_transactions(
        db, owner_id=user.id, card_id=card_id
    )
