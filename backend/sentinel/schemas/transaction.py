"""Transaction schemas for request/response validation."""

from datetime import datetime

from pydantic import Field, field_validator

from sentinel.schemas.base import CamelModel, Money


class TransactionCreate(CamelModel):
    user_id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    amount: Money

    @field_validator("user_id", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class TransactionResponse(CamelModel):
    id: str
    user_id: str
    description: str
    amount: float
    category: str
    confidence: float
    created_at: datetime
