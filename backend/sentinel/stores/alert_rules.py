"""Alert rule persistence."""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.core.exceptions import ConflictError, NotFoundError, PersistenceError
from sentinel.models.alert_rule import AlertRule

UNIQUE_RULE_CONSTRAINT = "uq_alert_rules_user_category"


def is_duplicate_rule(error: IntegrityError) -> bool:
    """True when ``error`` is a violation of the one-rule-per-(user, category) constraint."""
    message = str(error.orig)
    # PostgreSQL names the constraint, SQLite lists its columns
    return UNIQUE_RULE_CONSTRAINT in message or (
        "UNIQUE constraint failed" in message and "alert_rules.category" in message
    )


class AlertRuleStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_id: str, category: str, threshold: Decimal) -> AlertRule:
        """Insert a rule; a second rule for the same (user, category) is rejected.

        Other integrity failures (unknown user, threshold check) are not
        duplicates and surface as ``PersistenceError``.
        """
        rule = AlertRule(user_id=user_id, category=category, threshold=threshold, is_active=True)
        self.db.add(rule)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            if is_duplicate_rule(e):
                raise ConflictError(f"AlertRule for {category}") from e
            raise PersistenceError(f"Could not save alert rule: {e.orig}") from e
        return rule

    async def get(self, rule_id: str) -> AlertRule | None:
        return await self.db.get(AlertRule, rule_id)

    async def find_by_user(self, user_id: str) -> list[AlertRule]:
        result = await self.db.execute(
            select(AlertRule)
            .where(AlertRule.user_id == user_id)
            .order_by(AlertRule.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_active_by_user(self, user_id: str) -> list[AlertRule]:
        result = await self.db.execute(
            select(AlertRule)
            .where(AlertRule.user_id == user_id, AlertRule.is_active.is_(True))
            .order_by(AlertRule.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_by_user_and_category(self, user_id: str, category: str) -> AlertRule | None:
        # Point lookup on uq_alert_rules_user_category
        result = await self.db.execute(
            select(AlertRule).where(
                AlertRule.user_id == user_id,
                AlertRule.category == category,
            )
        )
        return result.scalar_one_or_none()

    async def update(
        self,
        rule_id: str,
        threshold: Decimal | None = None,
        is_active: bool | None = None,
    ) -> AlertRule:
        rule = await self._get_or_raise(rule_id)
        if threshold is not None:
            rule.threshold = threshold
        if is_active is not None:
            rule.is_active = is_active
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise PersistenceError(f"Could not update alert rule: {e.orig}") from e
        return rule

    async def delete(self, rule_id: str) -> AlertRule:
        rule = await self._get_or_raise(rule_id)
        await self.db.delete(rule)
        await self.db.flush()
        return rule

    async def _get_or_raise(self, rule_id: str) -> AlertRule:
        rule = await self.db.get(AlertRule, rule_id)
        if not rule:
            raise NotFoundError("AlertRule")
        return rule
