"""Alert rule schemas."""

from datetime import datetime

from pydantic import Field, field_validator, model_validator

from sentinel.core.categories import ALLOWED_CATEGORIES
from sentinel.schemas.base import CamelModel, Money


class AlertRuleCreate(CamelModel):
    user_id: str = Field(min_length=1)
    category: str
    threshold: Money

    @field_validator("category")
    @classmethod
    def _allowed_category(cls, value: str) -> str:
        if value not in ALLOWED_CATEGORIES:
            raise ValueError(
                f"Invalid category. Allowed categories: {', '.join(ALLOWED_CATEGORIES)}"
            )
        return value


class AlertRuleUpdate(CamelModel):
    threshold: Money | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _at_least_one_field(self) -> "AlertRuleUpdate":
        if self.threshold is None and self.is_active is None:
            raise ValueError("At least one field must be provided: threshold or isActive")
        return self


class AlertRuleResponse(CamelModel):
    id: str
    user_id: str
    category: str
    threshold: float
    is_active: bool
    created_at: datetime
    updated_at: datetime
