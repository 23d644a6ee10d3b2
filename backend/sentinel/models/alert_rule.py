"""Alert rule model."""

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sentinel.models.base import Base, TimestampMixin


class AlertRule(Base, TimestampMixin):
    """A spending ceiling for one (user, category) pair.

    At most one rule exists per pair; the database enforces it through
    ``uq_alert_rules_user_category``.
    """

    __tablename__ = "alert_rules"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    threshold: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="alert_rules")

    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_alert_rules_user_category"),
        CheckConstraint("threshold > 0", name="ck_alert_rules_threshold_positive"),
    )
