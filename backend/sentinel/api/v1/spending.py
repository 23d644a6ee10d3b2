"""Spending summary API route."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from sentinel.api.deps import get_transaction_service
from sentinel.services.transaction_service import TransactionService

router = APIRouter()


@router.get("", response_model=dict[str, float])
async def spending_summary(
    user_id: str = Query(..., alias="userId", min_length=1),
    service: TransactionService = Depends(get_transaction_service),
):
    """Total spent per category for a user."""
    summary: dict[str, Decimal] = await service.get_spending_summary(user_id)
    return {category: float(total) for category, total in summary.items()}
