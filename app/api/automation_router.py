"""API routes for manually running rules against one issue or pull request."""
from fastapi import APIRouter, Depends, Path
from ..automation.models import ResourceType
from ..automation.service import AutomationService
from ..auth.api_key import verify_api_key
from ..dependencies import get_automation_service
from .schemas import ExecutionResponse

router = APIRouter(prefix="/v1/automation", tags=["automation"], dependencies=[Depends(verify_api_key)])


@router.post("/issues/{owner}/{repo}/{number}", response_model=ExecutionResponse)
async def run_issue_rules(
    owner: str,
    repo: str,
    number: int = Path(..., ge=1),
    service: AutomationService = Depends(get_automation_service)
):
    """Evaluate every enabled issue rule against one issue and run matching actions."""
    results = await service.execute_rules_for_issue(owner, repo, number)
    return ExecutionResponse(
        resource_type=ResourceType.ISSUE, owner=owner, repo=repo, number=number, results=results
    )


@router.post("/pulls/{owner}/{repo}/{number}", response_model=ExecutionResponse)
async def run_pull_request_rules(
    owner: str,
    repo: str,
    number: int = Path(..., ge=1),
    service: AutomationService = Depends(get_automation_service)
):
    """Evaluate every enabled pull request rule against one pull request."""
    results = await service.execute_rules_for_pull_request(owner, repo, number)
    return ExecutionResponse(
        resource_type=ResourceType.PULL_REQUEST, owner=owner, repo=repo, number=number, results=results
    )
