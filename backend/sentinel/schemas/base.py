"""Shared pydantic configuration: snake_case in Python, camelCase on the wire."""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Matches the Numeric(12, 2) money columns
Money = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
