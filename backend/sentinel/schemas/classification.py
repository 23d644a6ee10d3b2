"""Classification schemas."""

from pydantic import BaseModel, Field, field_validator

from sentinel.core.categories import ALLOWED_CATEGORIES


class ClassificationResult(BaseModel):
    category: str
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        if value not in ALLOWED_CATEGORIES:
            raise ValueError(f"unknown category {value!r}")
        return value
