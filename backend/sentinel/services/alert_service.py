"""Alert rule management and threshold evaluation.

The evaluation half is what the alert worker runs for every dequeued job.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.models.alert_rule import AlertRule
from sentinel.schemas.alert import AlertEvent
from sentinel.schemas.alert_rule import AlertRuleCreate, AlertRuleUpdate
from sentinel.stores.alert_rules import AlertRuleStore
from sentinel.stores.transactions import TransactionStore
from sentinel.stores.users import UserStore

logger = structlog.get_logger()


class AlertService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.rules = AlertRuleStore(db)
        self.transactions = TransactionStore(db)
        self.users = UserStore(db)

    # ── Rule management ────────────────────────────────

    async def create_alert_rule(self, data: AlertRuleCreate) -> AlertRule:
        await self.users.ensure_user(data.user_id)
        rule = await self.rules.create(data.user_id, data.category, data.threshold)
        await self.db.commit()
        logger.info(
            "alert_rule_created",
            rule_id=rule.id,
            user_id=rule.user_id,
            category=rule.category,
            threshold=str(rule.threshold),
        )
        return rule

    async def get_user_alert_rules(self, user_id: str) -> list[AlertRule]:
        return await self.rules.find_by_user(user_id)

    async def get_active_alert_rules(self, user_id: str) -> list[AlertRule]:
        return await self.rules.find_active_by_user(user_id)

    async def update_alert_rule(self, rule_id: str, data: AlertRuleUpdate) -> AlertRule:
        rule = await self.rules.update(rule_id, threshold=data.threshold, is_active=data.is_active)
        await self.db.commit()
        logger.info("alert_rule_updated", rule_id=rule_id, **data.model_dump(exclude_none=True, mode="json"))
        return rule

    async def toggle_alert_rule(self, rule_id: str, is_active: bool) -> AlertRule:
        return await self.update_alert_rule(rule_id, AlertRuleUpdate(is_active=is_active))

    async def delete_alert_rule(self, rule_id: str) -> AlertRule:
        rule = await self.rules.delete(rule_id)
        await self.db.commit()
        logger.info("alert_rule_deleted", rule_id=rule_id)
        return rule

    # ── Evaluation ─────────────────────────────────────

    async def check_and_trigger_alert(self, user_id: str, category: str) -> AlertEvent | None:
        """Decide whether (user, category) is over its threshold.

        The total is recomputed from every stored transaction on each call, so
        the decision does not depend on the order jobs are evaluated in.
        Store errors propagate so the job is retried.
        """
        rule = await self.rules.find_by_user_and_category(user_id, category)
        if rule is None or not rule.is_active:
            logger.info("alert_rule_not_active", user_id=user_id, category=category)
            return None

        total_spent = await self.transactions.total_by_category(user_id, category)
        if total_spent <= rule.threshold:
            return None

        event = AlertEvent.breach(
            user_id=user_id,
            category=category,
            threshold=rule.threshold,
            total_spent=total_spent,
        )
        # Delivery (email, chat, ...) is not done here; the event is logged and returned
        logger.warning(
            "alert_triggered",
            user_id=user_id,
            category=category,
            threshold=str(rule.threshold),
            total_spent=str(total_spent),
            message=event.message,
        )
        return event
