"""
Transactions router — pay with a card, browse history, reverse payments.

Endpoints:
  POST /transactions                    — Pay with one of my cards
  GET  /transactions?from=&to=          — My transactions (newest first)
  GET  /transactions/{id}               — A single transaction
  POST /transactions/{id}/reverse       — Reverse an approved transaction
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cardapi.database import get_db
from cardapi.dependencies import get_approval_policy, get_current_user
from cardapi.models.user import User
from cardapi.schemas.transaction import TransactionCreateRequest, TransactionResponse
from cardapi.services import transaction_service
from cardapi.services.transaction_service import ApprovalPolicy

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pay with a card",
)
async def create_transaction(
    request: TransactionCreateRequest,
    user: User = Depends(get_current_user),
    policy: ApprovalPolicy = Depends(get_approval_policy),
    db: AsyncSession = Depends(get_db),
):
    """
    Charge one of your active cards.

    The response status is "approved" or "declined"; declined payments are
    recorded too. Amounts are rounded to two decimal places.
    """
    return await transaction_service.create_transaction(
        db=db,
        owner_id=user.id,
        card_id=request.card_id,
        amount=request.amount,
        currency=request.currency,
        description=request.description,
        policy=policy,
    )


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List my transactions",
)
async def list_transactions(
    start: datetime | None = Query(None, alias="from", description="Inclusive lower bound (ISO-8601)"),
    end: datetime | None = Query(None, alias="to", description="Inclusive upper bound (ISO-8601)"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.list_transactions(
        db, owner_id=user.id, start=start, end=end
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transaction(
        db, owner_id=user.id, transaction_id=transaction_id
    )


@router.post(
    "/{transaction_id}/reverse",
    response_model=TransactionResponse,
    summary="Reverse an approved transaction",
)
async def reverse_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Only approved transactions can be reversed, and only once."""
    return await transaction_service.reverse_transaction(
        db, owner_id=user.id, transaction_id=transaction_id
    )
