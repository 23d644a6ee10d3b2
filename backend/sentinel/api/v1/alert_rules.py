"""Alert rule API routes."""

from fastapi import APIRouter, Depends, Query

from sentinel.api.deps import get_alert_service
from sentinel.schemas.alert_rule import AlertRuleCreate, AlertRuleResponse, AlertRuleUpdate
from sentinel.services.alert_service import AlertService

router = APIRouter()


@router.post("", response_model=AlertRuleResponse, status_code=201)
async def create_alert_rule(
    data: AlertRuleCreate,
    service: AlertService = Depends(get_alert_service),
):
    """Create a spending threshold for one (user, category) pair."""
    return await service.create_alert_rule(data)


@router.get("", response_model=list[AlertRuleResponse])
async def list_alert_rules(
    user_id: str = Query(..., alias="userId", min_length=1),
    active_only: bool = Query(False, alias="activeOnly"),
    service: AlertService = Depends(get_alert_service),
):
    """List a user's alert rules."""
    if active_only:
        return await service.get_active_alert_rules(user_id)
    return await service.get_user_alert_rules(user_id)


@router.patch("/{rule_id}", response_model=AlertRuleResponse)
async def update_alert_rule(
    rule_id: str,
    data: AlertRuleUpdate,
    service: AlertService = Depends(get_alert_service),
):
    """Change the threshold and/or the active flag of a rule."""
    return await service.update_alert_rule(rule_id, data)


@router.delete("/{rule_id}", status_code=204)
async def delete_alert_rule(
    rule_id: str,
    service: AlertService = Depends(get_alert_service),
):
    """Delete an alert rule."""
    await service.delete_alert_rule(rule_id)
