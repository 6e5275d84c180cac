"""Tests for the GitHub webhook receiver."""
import json

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from app.api.webhooks_router import sign_payload, verify_signature
from app.automation.backends import InMemoryRuleBackend
from app.automation.service import AutomationService
from app.automation.store import RuleStore
from app.config import Settings, get_settings
from app.dependencies import get_automation_service, get_metrics
from app.main import app
from app.metrics import Metrics
from conftest import issue_payload, pull_request_payload

SECRET = "webhook-secret"

ISSUE_RULE = {
    "name": "Label crash reports",
    "resource_type": "issue",
    "created_by": "maintainer",
    "conditions": {"type": "title_contains", "value": "bug"},
    "actions": [{"type": "add_label", "label": "bug"}],
}
PR_RULE = {**ISSUE_RULE, "name": "Label pulls", "resource_type": "pull_request", "conditions": {"operator": "and"}}


@pytest.fixture
def service(github):
    service = AutomationService(RuleStore(InMemoryRuleBackend()), github)
    service.create_rule(ISSUE_RULE)
    service.create_rule(PR_RULE)
    app.dependency_overrides[get_automation_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: Settings(GITHUB_WEBHOOK_SECRET=SECRET, MAX_WEBHOOK_SIZE=4096)
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def client(service):
    return TestClient(app)


def deliver(client, event: str, payload: dict, secret: str | None = SECRET, signature: str | None = None):
    body = json.dumps(payload).encode()
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "delivery-1",
    }
    if signature is not None:
        headers["X-Hub-Signature-256"] = signature
    elif secret:
        headers["X-Hub-Signature-256"] = sign_payload(body, secret)
    return client.post("/v1/webhooks/github", content=body, headers=headers)


REPOSITORY = {"full_name": "acme/widgets"}


def test_signature_helpers():
    body = b'{"zen": "Keep it logically awesome."}'
    signature = sign_payload(body, SECRET)

    assert signature.startswith("sha256=")
    assert verify_signature(body, signature, SECRET) is True
    assert verify_signature(body, signature, "other") is False
    assert verify_signature(body, None, SECRET) is False


def test_ping_is_acknowledged(client):
    r = deliver(client, "ping", {"zen": "Design for failure.", "repository": REPOSITORY})

    assert r.status_code == 200
    assert r.json()["status"] == "pong"
    assert r.json()["delivery_id"] == "delivery-1"


def test_bad_signature_is_rejected(client, github):
    github.issues[1] = issue_payload(1, title="bug")

    r = deliver(client, "issues", {"action": "opened", "issue": {"number": 1}, "repository": REPOSITORY},
                signature="sha256=deadbeef")

    assert r.status_code == 401
    assert r.json()["error"] == "HTTPException"
    assert github.calls == []


def test_missing_signature_is_rejected(client):
    r = deliver(client, "ping", {"zen": "x"}, secret=None)
    assert r.status_code == 401


def test_signature_not_required_without_secret(client, github):
    app.dependency_overrides[get_settings] = lambda: Settings(GITHUB_WEBHOOK_SECRET=None)
    github.issues[1] = issue_payload(1, title="bug")

    r = deliver(client, "issues", {"action": "opened", "issue": {"number": 1}, "repository": REPOSITORY}, secret=None)

    assert r.status_code == 200
    assert r.json()["status"] == "processed"


def test_issue_event_runs_issue_rules(client, github):
    """Test an issues delivery runs issue rules against the referenced issue."""
    github.issues[1] = issue_payload(1, title="Found a bug")

    r = deliver(client, "issues", {"action": "opened", "issue": {"number": 1}, "repository": REPOSITORY})

    assert r.status_code == 200
    data = r.json()
    assert data["event"] == "issues"
    assert data["action"] == "opened"
    assert data["execution"]["resource_type"] == "issue"
    assert [res["rule_name"] for res in data["execution"]["results"]] == ["Label crash reports"]
    assert github.called("add_labels")[0][1] == ("acme", "widgets", 1, ["bug"])


def test_issue_comment_on_issue_runs_issue_rules(client, github):
    github.issues[2] = issue_payload(2, title="nothing to see")

    r = deliver(client, "issue_comment", {
        "action": "created",
        "issue": {"number": 2},
        "comment": {"body": "ping"},
        "repository": REPOSITORY,
    })

    assert r.json()["execution"]["resource_type"] == "issue"
    assert r.json()["execution"]["results"][0]["matched"] is False


def test_issue_comment_on_pull_request_runs_pull_request_rules(client, github):
    github.pulls[7] = pull_request_payload(7)

    r = deliver(client, "issue_comment", {
        "action": "created",
        "issue": {"number": 7, "pull_request": {"url": "https://api.github.com/repos/acme/widgets/pulls/7"}},
        "repository": REPOSITORY,
    })

    assert r.json()["execution"]["resource_type"] == "pull_request"
    assert github.called("get_pull_request")
    assert not github.called("get_issue")


@pytest.mark.parametrize("event", ["pull_request", "pull_request_review"])
def test_pull_request_events_run_pull_request_rules(client, github, event):
    github.pulls[7] = pull_request_payload(7)

    r = deliver(client, event, {"action": "opened", "pull_request": {"number": 7}, "repository": REPOSITORY})

    assert r.status_code == 200
    results = r.json()["execution"]["results"]
    assert [res["rule_name"] for res in results] == ["Label pulls"]
    assert results[0]["matched"] is True


def test_unhandled_event_is_ignored(client, github):
    r = deliver(client, "star", {"action": "created", "repository": REPOSITORY})

    assert r.status_code == 200
    assert r.json()["status"] == "ignored"
    assert github.calls == []


def test_malformed_payload_returns_400(client):
    r = deliver(client, "issues", {"action": "opened", "repository": REPOSITORY})
    assert r.status_code == 400


def test_missing_event_header_returns_400(client):
    body = b"{}"
    r = client.post(
        "/v1/webhooks/github",
        content=body,
        headers={"X-Hub-Signature-256": sign_payload(body, SECRET)},
    )
    assert r.status_code == 400


def test_oversized_payload_returns_413(client, github):
    r = deliver(client, "issues", {"issue": {"number": 1}, "repository": REPOSITORY, "padding": "x" * 5000})

    assert r.status_code == 413
    assert github.calls == []


def test_unknown_resource_returns_502(client):
    r = deliver(client, "issues", {"action": "opened", "issue": {"number": 999}, "repository": REPOSITORY})

    assert r.status_code == 502
    assert r.json()["error"] == "ResourceFetchError"


def test_unknown_events_share_one_metric_label(client):
    metrics = Metrics(registry=CollectorRegistry())
    app.dependency_overrides[get_metrics] = lambda: metrics

    deliver(client, "star", {"action": "created", "repository": REPOSITORY})
    deliver(client, "made-up-event-1", {})
    deliver(client, "ping", {"zen": "Keep it logically awesome."})

    def received(event):
        return metrics.registry.get_sample_value("automation_webhooks_received_total", {"event": event})

    assert received("other") == 2
    assert received("ping") == 1
    assert received("star") is None
