"""Alert rule management and threshold evaluation tests."""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from sentinel.core.exceptions import ConflictError, ErrorKind, NotFoundError, PersistenceError
from sentinel.schemas.alert_rule import AlertRuleCreate, AlertRuleUpdate
from sentinel.services.alert_service import AlertService
from sentinel.stores.alert_rules import AlertRuleStore
from sentinel.stores.transactions import TransactionStore
from sentinel.stores.users import UserStore


async def _spend(db, user_id: str, category: str, *amounts) -> None:
    await UserStore(db).ensure_user(user_id)
    store = TransactionStore(db)
    for amount in amounts:
        await store.create(user_id, f"{category} purchase", Decimal(str(amount)), category, 0.9)
    await db.commit()


async def _rule(db, user_id: str, category: str, threshold, is_active: bool = True):
    service = AlertService(db)
    rule = await service.create_alert_rule(
        AlertRuleCreate(user_id=user_id, category=category, threshold=Decimal(str(threshold)))
    )
    if not is_active:
        rule = await service.toggle_alert_rule(rule.id, False)
    return rule


@pytest.mark.asyncio
async def test_threshold_breach_emits_alert(db):
    await _rule(db, "u1", "Food", 100)
    await _spend(db, "u1", "Food", 5, 15, 85)

    event = await AlertService(db).check_and_trigger_alert("u1", "Food")

    assert event is not None
    assert event.user_id == "u1"
    assert event.category == "Food"
    assert event.threshold == Decimal("100")
    assert event.total_spent == Decimal("105")
    assert event.message == (
        "Alert: You've exceeded your Food budget! Spent: $105.00, Limit: $100.00"
    )


@pytest.mark.asyncio
async def test_missing_rule_means_no_alert(db):
    await _spend(db, "u1", "Transport", 500)
    assert await AlertService(db).check_and_trigger_alert("u1", "Transport") is None


@pytest.mark.asyncio
async def test_inactive_rule_means_no_alert(db):
    await _rule(db, "u2", "Food", 50, is_active=False)
    await _spend(db, "u2", "Food", 80)

    assert await AlertService(db).check_and_trigger_alert("u2", "Food") is None


@pytest.mark.asyncio
async def test_spend_equal_to_threshold_does_not_alert(db):
    await _rule(db, "u1", "Utilities", 60)
    await _spend(db, "u1", "Utilities", 20, 40)
    assert await AlertService(db).check_and_trigger_alert("u1", "Utilities") is None


@pytest.mark.asyncio
async def test_evaluation_is_idempotent(db):
    await _rule(db, "u1", "Food", 100)
    await _spend(db, "u1", "Food", 70, 40)
    service = AlertService(db)

    first = await service.check_and_trigger_alert("u1", "Food")
    second = await service.check_and_trigger_alert("u1", "Food")

    assert first is not None and second is not None
    assert (first.total_spent, first.message) == (second.total_spent, second.message)


@pytest.mark.asyncio
async def test_crossing_threshold_flips_decision(db):
    await _rule(db, "u1", "Entertainment", 50)
    await _spend(db, "u1", "Entertainment", 30)
    service = AlertService(db)
    assert await service.check_and_trigger_alert("u1", "Entertainment") is None

    await _spend(db, "u1", "Entertainment", 25)

    event = await service.check_and_trigger_alert("u1", "Entertainment")
    assert event is not None
    assert event.total_spent == Decimal("55")


@pytest.mark.asyncio
async def test_other_users_and_categories_do_not_count(db):
    await _rule(db, "u1", "Food", 100)
    await _spend(db, "u1", "Food", 60)
    await _spend(db, "u1", "Shopping", 500)
    await _spend(db, "u2", "Food", 500)

    assert await AlertService(db).check_and_trigger_alert("u1", "Food") is None


@pytest.mark.asyncio
async def test_second_rule_for_same_pair_is_rejected(db):
    await _rule(db, "u1", "Food", 100)

    with pytest.raises(ConflictError) as exc_info:
        await _rule(db, "u1", "Food", 200)

    assert exc_info.value.kind is ErrorKind.CONFLICT
    rules = await AlertService(db).get_user_alert_rules("u1")
    assert len(rules) == 1
    assert rules[0].threshold == Decimal("100")


@pytest.mark.asyncio
async def test_rule_for_unknown_user_is_not_a_conflict(db):
    with pytest.raises(PersistenceError) as exc_info:
        await AlertRuleStore(db).create("ghost", "Food", Decimal("100"))

    assert exc_info.value.kind is ErrorKind.PERSISTENCE


@pytest.mark.asyncio
async def test_threshold_check_violation_is_not_a_conflict(db):
    await UserStore(db).ensure_user("u1")

    with pytest.raises(PersistenceError):
        await AlertRuleStore(db).create("u1", "Food", Decimal("-1"))

    assert await AlertService(db).get_user_alert_rules("u1") == []


@pytest.mark.asyncio
async def test_point_lookup_by_user_and_category(db):
    await _rule(db, "u1", "Food", 100)
    await _rule(db, "u1", "Transport", 40)
    store = AlertRuleStore(db)

    rule = await store.find_by_user_and_category("u1", "Transport")
    assert rule.threshold == Decimal("40")
    assert await store.find_by_user_and_category("u1", "Utilities") is None
    assert await store.find_by_user_and_category("u2", "Food") is None


@pytest.mark.asyncio
async def test_partial_update(db):
    rule = await _rule(db, "u1", "Food", 100)
    service = AlertService(db)

    updated = await service.update_alert_rule(rule.id, AlertRuleUpdate(threshold=Decimal("150")))
    assert updated.threshold == Decimal("150")
    assert updated.is_active is True

    updated = await service.update_alert_rule(rule.id, AlertRuleUpdate(is_active=False))
    assert updated.threshold == Decimal("150")
    assert updated.is_active is False

    assert await service.get_active_alert_rules("u1") == []


@pytest.mark.asyncio
async def test_update_and_delete_unknown_rule(db):
    service = AlertService(db)
    with pytest.raises(NotFoundError):
        await service.update_alert_rule("nope", AlertRuleUpdate(threshold=Decimal("1")))
    with pytest.raises(NotFoundError):
        await service.delete_alert_rule("nope")


@pytest.mark.asyncio
async def test_delete_rule(db):
    rule = await _rule(db, "u1", "Food", 100)
    service = AlertService(db)

    await service.delete_alert_rule(rule.id)

    assert await service.get_user_alert_rules("u1") == []


def test_rule_input_validation():
    with pytest.raises(PydanticValidationError):
        AlertRuleCreate(user_id="u1", category="Travel", threshold=Decimal("10"))
    with pytest.raises(PydanticValidationError):
        AlertRuleCreate(user_id="u1", category="Food", threshold=Decimal("0"))
    with pytest.raises(PydanticValidationError):
        AlertRuleUpdate()
    with pytest.raises(PydanticValidationError):
        AlertRuleUpdate(threshold=Decimal("-1"))


@pytest.mark.parametrize("threshold", [Decimal("0.001"), Decimal("99.999"), Decimal("10000000000.00")])
def test_threshold_must_fit_money_column(threshold):
    with pytest.raises(PydanticValidationError):
        AlertRuleCreate(user_id="u1", category="Food", threshold=threshold)
    with pytest.raises(PydanticValidationError):
        AlertRuleUpdate(threshold=threshold)
