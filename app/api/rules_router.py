"""API routes for automation rule management."""
from fastapi import APIRouter, Depends, HTTPException
from ..automation.models import AutomationRule, RuleCreate, RuleUpdate
from ..automation.service import AutomationService
from ..auth.api_key import verify_api_key
from ..dependencies import get_automation_service
from .schemas import RuleListResponse

router = APIRouter(prefix="/v1/rules", tags=["rules"], dependencies=[Depends(verify_api_key)])


@router.post("", response_model=AutomationRule, status_code=201)
async def create_rule(rule: RuleCreate, service: AutomationService = Depends(get_automation_service)):
    """Create a new automation rule."""
    return service.create_rule(rule)


@router.get("", response_model=RuleListResponse)
async def list_rules(service: AutomationService = Depends(get_automation_service)):
    """List all automation rules in evaluation order."""
    rules = service.get_rules()
    return RuleListResponse(total=len(rules), rules=rules)


@router.get("/{rule_id}", response_model=AutomationRule)
async def get_rule(rule_id: str, service: AutomationService = Depends(get_automation_service)):
    """Get a specific rule by ID."""
    rule = service.get_rule(rule_id)
    if not rule:
        raise HTTPException(404, detail=f"Rule {rule_id} not found")
    return rule


@router.patch("/{rule_id}", response_model=AutomationRule)
async def update_rule(
    rule_id: str,
    updates: RuleUpdate,
    service: AutomationService = Depends(get_automation_service)
):
    """Apply a partial update to an existing rule."""
    rule = service.update_rule(rule_id, updates)
    if not rule:
        raise HTTPException(404, detail=f"Rule {rule_id} not found")
    return rule


@router.post("/{rule_id}/enable", response_model=AutomationRule)
async def enable_rule(rule_id: str, service: AutomationService = Depends(get_automation_service)):
    rule = service.set_rule_enabled(rule_id, True)
    if not rule:
        raise HTTPException(404, detail=f"Rule {rule_id} not found")
    return rule


@router.post("/{rule_id}/disable", response_model=AutomationRule)
async def disable_rule(rule_id: str, service: AutomationService = Depends(get_automation_service)):
    rule = service.set_rule_enabled(rule_id, False)
    if not rule:
        raise HTTPException(404, detail=f"Rule {rule_id} not found")
    return rule


@router.delete("/{rule_id}", status_code=204)
async def delete_rule(rule_id: str, service: AutomationService = Depends(get_automation_service)):
    """Delete a rule."""
    if not service.delete_rule(rule_id):
        raise HTTPException(404, detail=f"Rule {rule_id} not found")
    return None
