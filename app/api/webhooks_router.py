"""GitHub webhook receiver."""
import hashlib
import hmac
from typing import Any

import orjson
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from ..automation.models import ResourceType
from ..automation.service import AutomationService
from ..config import Settings, get_settings
from ..dependencies import get_automation_service, get_metrics
from ..metrics import Metrics
from .schemas import ExecutionResponse, WebhookResponse

log = structlog.get_logger()

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"

_ISSUE_EVENTS = {"issues", "issue_comment"}
_PULL_REQUEST_EVENTS = {"pull_request", "pull_request_review"}
_KNOWN_EVENTS = {"ping"} | _ISSUE_EVENTS | _PULL_REQUEST_EVENTS


def sign_payload(payload: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 value for a payload."""
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(payload, secret), signature)


def _target(event: str, payload: dict[str, Any]) -> tuple[ResourceType, str, str, int]:
    """Resolve the resource a webhook delivery refers to.

    Raises:
        HTTPException: If the payload lacks the repository or resource number
    """
    try:
        owner, repo = payload["repository"]["full_name"].split("/", 1)
        if event in _ISSUE_EVENTS:
            issue = payload["issue"]
            # Comments on pull requests arrive as issue_comment events
            kind = ResourceType.PULL_REQUEST if issue.get("pull_request") else ResourceType.ISSUE
            number = int(issue["number"])
        else:
            kind = ResourceType.PULL_REQUEST
            number = int(payload["pull_request"]["number"])
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise HTTPException(400, detail=f"Malformed {event} payload: {e}") from e
    return kind, owner, repo, number


@router.post("/github", response_model=WebhookResponse)
async def receive_github_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    service: AutomationService = Depends(get_automation_service),
    metrics: Metrics = Depends(get_metrics),
):
    """Verify a GitHub delivery and run the rules for the resource it concerns."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > settings.MAX_WEBHOOK_SIZE:
        raise HTTPException(413, detail="Webhook payload too large")

    body = await request.body()
    if len(body) > settings.MAX_WEBHOOK_SIZE:
        raise HTTPException(413, detail="Webhook payload too large")

    if settings.GITHUB_WEBHOOK_SECRET and not verify_signature(
        body, request.headers.get(SIGNATURE_HEADER), settings.GITHUB_WEBHOOK_SECRET
    ):
        log.warning("webhook.invalid_signature")
        raise HTTPException(401, detail="Invalid signature")

    event = request.headers.get(EVENT_HEADER)
    if not event:
        raise HTTPException(400, detail="Missing X-GitHub-Event header")
    delivery_id = request.headers.get(DELIVERY_HEADER)

    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise HTTPException(400, detail=f"Invalid JSON payload: {e}") from e
    if not isinstance(payload, dict):
        raise HTTPException(400, detail="Webhook payload must be a JSON object")

    # Header values are caller controlled; keep the label set bounded
    metrics.record_webhook(event if event in _KNOWN_EVENTS else "other")
    action = payload.get("action")

    if event == "ping":
        log.info("webhook.ping", zen=payload.get("zen"))
        return WebhookResponse(event=event, status="pong", delivery_id=delivery_id)

    if event not in _ISSUE_EVENTS | _PULL_REQUEST_EVENTS:
        log.info("webhook.ignored", event=event, action=action)
        return WebhookResponse(event=event, action=action, status="ignored", delivery_id=delivery_id)

    kind, owner, repo, number = _target(event, payload)
    log.info("webhook.received", event=event, action=action, owner=owner, repo=repo, number=number)

    if kind == ResourceType.ISSUE:
        results = await service.execute_rules_for_issue(owner, repo, number)
    else:
        results = await service.execute_rules_for_pull_request(owner, repo, number)

    return WebhookResponse(
        event=event,
        action=action,
        status="processed",
        delivery_id=delivery_id,
        execution=ExecutionResponse(
            resource_type=kind, owner=owner, repo=repo, number=number, results=results
        ),
    )
