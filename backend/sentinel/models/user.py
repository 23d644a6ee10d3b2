"""User model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sentinel.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Children are removed by the database (ON DELETE CASCADE)
    transactions = relationship(
        "Transaction", back_populates="user", passive_deletes=True, lazy="select"
    )
    alert_rules = relationship(
        "AlertRule", back_populates="user", passive_deletes=True, lazy="select"
    )
