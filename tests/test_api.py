"""
End-to-end tests of the HTTP surface with faked GitHub and Discord
"""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from main import app
from src.services.database_service import DatabaseService
from src.services.event_router import EventRouter
from src.services.issue_service import IssueService
from src.services.query_cache import QueryCache
from src.services.shared_services import Services
from src.services.sync_engine import SyncEngine
from src.services.webhook_reconciler import WebhookReconciler
from tests.fakes import FakeGitHubClient, RecordingSink, make_issue_payload


def signed_headers(body: bytes, event_type: str, delivery_id: str = "d-1") -> dict:
    digest = hmac.new(settings.GITHUB_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return {
        "X-GitHub-Event": event_type,
        "X-GitHub-Delivery": delivery_id,
        "X-Hub-Signature-256": f"sha256={digest}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def github():
    client = FakeGitHubClient(owner=settings.GITHUB_OWNER)
    client.add_repository(1, "acme/widgets", issues=[
        make_issue_payload(101, 1, "open"),
        make_issue_payload(102, 2, "closed"),
        make_issue_payload(103, 3, "open", pull_request=True),
    ])
    return client


@pytest.fixture
def services(github, sink):
    database = DatabaseService()
    cache = QueryCache(ttl_seconds=settings.ISSUE_CACHE_TTL_SECONDS)
    engine = SyncEngine(github, database, cache, batch_size=3)
    return Services(
        settings=settings,
        database=database,
        github_client=github,
        notifications=sink,
        cache=cache,
        event_router=EventRouter(database, sink, default_channel_id="default-channel"),
        reconciler=WebhookReconciler(
            github, database, settings.webhook_url, settings.GITHUB_WEBHOOK_SECRET, settings.webhook_events,
            default_channel_id="default-channel",
        ),
        sync_engine=engine,
        issues=IssueService(github, database, cache, engine),
    )


@pytest.fixture
def client(services):
    app.state.services = services
    with TestClient(app) as test_client:
        yield test_client
    app.state.services = None


class TestWebhookEndpoint:
    """POST /webhooks/github"""

    def test_signed_push_is_dispatched(self, client, sink):
        body = json.dumps({
            "ref": "refs/heads/main",
            "commits": [{"id": "abc1234def", "message": "Ship it"}],
            "repository": {"full_name": "acme/widgets"},
        }).encode()

        response = client.post("/webhooks/github", content=body, headers=signed_headers(body, "push"))

        assert response.status_code == 200
        assert response.json()["status"] == "dispatched"
        assert len(sink.sent) == 1

    def test_missing_signature_is_unauthenticated(self, client, services, sink):
        body = b'{"ref": "refs/heads/main"}'
        headers = signed_headers(body, "push")
        del headers["X-Hub-Signature-256"]

        response = client.post("/webhooks/github", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json() == {
            "success": False, "error": "Missing webhook signature", "category": "unauthenticated",
        }
        assert sink.sent == []

    def test_tampered_body_is_rejected_before_routing(self, client, services):
        body = b'{"ref": "refs/heads/main"}'
        headers = signed_headers(body, "push")

        response = client.post("/webhooks/github", content=body + b" ", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid webhook signature"

    def test_ping_accepted_without_signature(self, client):
        response = client.post(
            "/webhooks/github",
            content=b'{"zen": "Design for failure.", "hook_id": 5}',
            headers={"X-GitHub-Event": "ping", "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "pong"

    def test_missing_event_header(self, client):
        response = client.post("/webhooks/github", content=b"{}")

        assert response.status_code == 400
        assert response.json()["category"] == "validation_error"

    def test_invalid_json(self, client):
        body = b"not json"
        response = client.post("/webhooks/github", content=body, headers=signed_headers(body, "push"))

        assert response.status_code == 400

    def test_duplicate_delivery_acknowledged(self, client, sink):
        body = b'{"ref": "refs/heads/main", "repository": {"full_name": "acme/widgets"}}'
        headers = signed_headers(body, "push", delivery_id="same")

        client.post("/webhooks/github", content=body, headers=headers)
        response = client.post("/webhooks/github", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert len(sink.sent) == 1

    def test_test_endpoint_disabled_without_debug(self, client):
        response = client.post("/webhooks/github/test")

        assert response.status_code == 404

    def test_test_endpoint_routes_sample_push(self, client, sink, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", True)

        response = client.post("/webhooks/github/test")

        assert response.status_code == 200
        assert response.json()["status"] == "dispatched"
        assert sink.sent[0][1].title.startswith("New Commits to")


class TestRepositoryEndpoints:
    """Sync and watch commands"""

    def test_sync_repositories(self, client):
        response = client.post("/repositories/sync")

        assert response.status_code == 200
        assert response.json()["data"]["total"] == 1
        assert response.json()["data"]["synced"] == 1

    def test_watch_bare_name(self, client, github):
        response = client.post("/repositories/widgets/watch", json={"channel_id": "c-42"})

        assert response.status_code == 200
        assert response.json()["data"]["action"] == "created"
        assert len(github.hooks["acme/widgets"]) == 1

        status = client.get("/repositories/acme/widgets/webhook").json()["data"]
        assert status["exists"] is True
        assert status["channel_id"] == "c-42"

    def test_watch_missing_repository(self, client):
        response = client.post("/repositories/ghost/watch")

        assert response.status_code == 404
        assert response.json()["error"] == "Repository 'acme/ghost' does not exist"

    def test_watch_without_permission(self, client, github):
        github.fail("list_hooks", "acme/widgets", 403, 4000)

        response = client.post("/repositories/widgets/watch")

        assert response.status_code == 403
        assert response.json()["category"] == "permission_denied"

    def test_unwatch(self, client, github):
        client.post("/repositories/widgets/watch")

        response = client.delete("/repositories/widgets/watch")

        assert response.status_code == 200
        assert response.json()["data"]["action"] == "deleted"
        assert github.hooks["acme/widgets"] == []

    def test_delete_repository(self, client, github, services):
        client.post("/repositories/sync")

        response = client.delete("/repositories/acme/widgets")

        assert response.status_code == 200
        assert response.json()["data"]["local_record_deleted"] is True
        assert "acme/widgets" not in github.repositories


class TestIssueEndpoints:
    """Issue sync and listing"""

    def test_issue_sync_requires_repositories(self, client):
        response = client.post("/issues/sync")

        assert response.status_code == 400
        assert "sync repositories first" in response.json()["error"]

    def test_issue_sync(self, client):
        client.post("/repositories/sync")

        response = client.post("/issues/sync")

        assert response.status_code == 200
        assert response.json()["data"]["total"] == 2

    def test_list_issues(self, client):
        client.post("/repositories/sync")

        response = client.get("/issues", params={"repo": "widgets", "state": "all", "per_page": 1})

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["total"] == 2
        assert len(body["data"]) == 1
        assert body["pagination"] == {"page": 1, "per_page": 1, "total_pages": 2, "has_more": True}

    def test_list_issues_label_and_since_filters(self, client):
        client.post("/repositories/sync")

        bugs = client.get("/issues", params={
            "repo": "widgets", "state": "all", "labels": "bug,ui", "since": "2024-01-15T00:00:00Z",
        }).json()
        other = client.get("/issues", params={"repo": "widgets", "state": "all", "labels": "ui"}).json()
        later = client.get("/issues", params={"repo": "widgets", "state": "all", "since": "2025-01-01T00:00:00Z"}).json()

        assert bugs["total"] == 2
        assert other["total"] == 0
        assert later["total"] == 0
        assert bugs["failed_repositories"] == []

    def test_list_issues_invalid_since(self, client):
        response = client.get("/issues", params={"since": "yesterday"})

        assert response.status_code == 400
        assert response.json()["category"] == "validation_error"

    def test_list_issues_validation(self, client):
        response = client.get("/issues", params={"per_page": 500})

        assert response.status_code == 400
        assert response.json()["category"] == "validation_error"

    def test_get_issue_on_demand(self, client):
        response = client.get("/issues/2", params={"repo": "acme/widgets"})

        assert response.status_code == 200
        assert response.json()["data"]["state"] == "closed"

    def test_get_issue_not_found(self, client):
        response = client.get("/issues/42", params={"repo": "widgets"})

        assert response.status_code == 404
        assert "Issue #42 not found" in response.json()["error"]

    def test_create_issue(self, client, github):
        response = client.post("/issues", json={"repo": "widgets", "title": "Broken build", "labels": ["ci"]})

        assert response.status_code == 201
        assert response.json()["data"]["title"] == "Broken build"
        assert github.calls_to("create_issue")


class TestHealthEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"]["database"] is True
