"""Transaction API routes."""

from fastapi import APIRouter, Depends, Query

from sentinel.api.deps import get_transaction_service
from sentinel.schemas.transaction import TransactionCreate, TransactionResponse
from sentinel.services.transaction_service import TransactionService

router = APIRouter()


@router.post("", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    data: TransactionCreate,
    service: TransactionService = Depends(get_transaction_service),
):
    """Create a transaction: classify it, save it and queue its alert check."""
    return await service.create_transaction(data.user_id, data.description, data.amount)


@router.get("", response_model=list[TransactionResponse])
async def list_transactions(
    user_id: str = Query(..., alias="userId", min_length=1),
    category: str | None = None,
    service: TransactionService = Depends(get_transaction_service),
):
    """List a user's transactions, optionally for one category."""
    return await service.list_transactions(user_id, category)


@router.delete("/{transaction_id}", status_code=204)
async def delete_transaction(
    transaction_id: str,
    user_id: str = Query(..., alias="userId", min_length=1),
    service: TransactionService = Depends(get_transaction_service),
):
    """Delete one of the user's transactions."""
    await service.delete_transaction(transaction_id, user_id)
