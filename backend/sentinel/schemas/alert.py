"""Alert job payload and alert event schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from sentinel.models.base import utcnow
from sentinel.schemas.base import CamelModel


class AlertJob(CamelModel):
    """Queue payload for a "transaction was created" event."""

    user_id: str
    transaction_id: str
    category: str
    amount: float = Field(gt=0)


class AlertEvent(CamelModel):
    user_id: str
    category: str
    threshold: Decimal
    total_spent: Decimal
    message: str
    triggered_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def breach(
        cls, user_id: str, category: str, threshold: Decimal, total_spent: Decimal
    ) -> "AlertEvent":
        return cls(
            user_id=user_id,
            category=category,
            threshold=threshold,
            total_spent=total_spent,
            message=(
                f"Alert: You've exceeded your {category} budget! "
                f"Spent: ${total_spent:.2f}, Limit: ${threshold:.2f}"
            ),
        )
