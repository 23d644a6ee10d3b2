"""SQLAlchemy models."""

from sentinel.models.alert_rule import AlertRule
from sentinel.models.base import Base
from sentinel.models.transaction import Transaction
from sentinel.models.user import User

__all__ = [
    "Base",
    "User",
    "Transaction",
    "AlertRule",
]
