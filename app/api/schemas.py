from pydantic import BaseModel, Field
from typing import List
from ..automation.models import AutomationRule, ResourceType, RuleExecutionResult

class RuleListResponse(BaseModel):
    total: int
    rules: List[AutomationRule]

class ExecutionResponse(BaseModel):
    resource_type: ResourceType
    owner: str
    repo: str
    number: int
    results: List[RuleExecutionResult] = Field(default_factory=list)

class WebhookResponse(BaseModel):
    event: str
    action: str | None = None
    status: str
    delivery_id: str | None = None
    execution: ExecutionResponse | None = None
