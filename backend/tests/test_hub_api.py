"""
API tests for the hub routers.
Mounts the routers on a test app backed by an in-memory store.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI, APIRouter
from fastapi.testclient import TestClient

from routes import work_items, users, reminders, notifications, intake
from routes.responses import http_error
from services.correspondence_hub import CorrespondenceHub
from services.hub_errors import PersistenceError
from services.state_store import InMemoryStateStore


@pytest.fixture
def client():
    hub = CorrespondenceHub(InMemoryStateStore())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await hub.load(seed_demo_data=True)
        yield

    work_items.set_hub(hub)
    users.set_hub(hub)
    reminders.set_hub(hub)
    notifications.set_hub(hub)
    intake.set_dependencies(hub)

    app = FastAPI(lifespan=lifespan)
    api_router = APIRouter(prefix="/api")
    for module in (work_items, users, reminders, notifications, intake):
        api_router.include_router(module.router)
    app.include_router(api_router)
    with TestClient(app) as test_client:
        yield test_client


class TestWorkItemEndpoints:
    """Test snapshots and command endpoints."""

    def test_list(self, client):
        resp = client.get("/api/work-items")
        assert resp.status_code == 200
        assert resp.json()["total"] == 3

    def test_list_filtered(self, client):
        resp = client.get("/api/work-items", params={"status": "DETECTED"})
        assert [i["id"] for i in resp.json()["work_items"]] == ["email-2"]

    def test_list_invalid_status(self, client):
        resp = client.get("/api/work-items", params={"status": "BOGUS"})
        assert resp.status_code == 422

    def test_get_with_allowed_actions(self, client):
        resp = client.get("/api/work-items/email-3")
        assert resp.status_code == 200
        assert "approve" in resp.json()["allowed_actions"]

    def test_get_unknown(self, client):
        assert client.get("/api/work-items/nope").status_code == 404

    def test_queue_counts(self, client):
        resp = client.get("/api/work-items/queue/counts")
        assert resp.json()["by_status"]["DETECTED"] == 1

    def test_approve(self, client):
        resp = client.post("/api/work-items/email-3/approve", json={"actor_id": "super-1", "comments": "Good"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["item"]["status"] == "APPROVED"

    def test_reject_without_comments_is_422(self, client):
        resp = client.post("/api/work-items/email-3/reject", json={"actor_id": "super-1"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "ValidationError"

    def test_wrong_role_is_422(self, client):
        resp = client.post("/api/work-items/email-3/approve", json={"actor_id": "worker-1"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["details"]["required_role"] == "SUPERVISOR"

    def test_illegal_transition_is_409(self, client):
        resp = client.post("/api/work-items/email-2/archive", json={"actor_id": "boss-1"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["details"]["current_status"] == "DETECTED"

    def test_start_submit(self, client):
        assert client.post("/api/work-items/email-1/start", json={"actor_id": "worker-1"}).status_code == 200
        resp = client.post(
            "/api/work-items/email-1/submit-report",
            json={"actor_id": "worker-1", "report_content": "Transfers validated."},
        )
        assert resp.json()["item"]["status"] == "PENDING_APPROVAL"

    def test_reassign_and_forward(self, client):
        resp = client.post("/api/work-items/email-2/reassign", json={"actor_id": "super-1", "worker_id": "worker-2"})
        assert resp.json()["item"]["assigned_worker_id"] == "worker-2"
        resp = client.post("/api/work-items/email-2/forward", json={"actor_id": "boss-1", "recipient": "Magola"})
        assert resp.json()["item"]["history"][-1]["action"] == "Forwarded to Magola"

    def test_redispatch(self, client):
        resp = client.post("/api/work-items/email-2/redispatch", json={"actor_id": "boss-1"})
        assert resp.json()["item"]["assigned_worker_id"] == "worker-1"

    def test_set_reminder_and_sweep(self, client):
        due = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        resp = client.post("/api/work-items/email-1/reminders", json={"actor_id": "boss-1", "due_at": due})
        assert resp.status_code == 200
        assert resp.json()["reminder"]["target_user_id"] == "worker-1"
        reminder_id = resp.json()["reminder"]["id"]
        assert client.get(f"/api/reminders/{reminder_id}").json()["email_id"] == "email-1"
        assert client.get("/api/reminders/nope").status_code == 404

        swept = client.post("/api/reminders/sweep").json()
        assert swept["fired"] == 1
        assert client.post("/api/reminders/sweep").json()["fired"] == 0
        assert client.get("/api/reminders").json()["reminders"][0]["processed"] is True


class TestUserEndpoints:

    def test_list_users(self, client):
        body = client.get("/api/users").json()
        assert body["total"] == 6
        assert "roster_version" in body

    def test_create_user(self, client):
        resp = client.post("/api/users", json={"name": "Grace", "role": "WORKER", "actor_id": "boss-1"})
        assert resp.status_code == 200
        assert resp.json()["user"]["status"] == "Available"

    def test_delete_user_unassigns(self, client):
        resp = client.delete("/api/users/worker-1", params={"actor_id": "boss-1"})
        assert resp.status_code == 200
        assert resp.json()["count"] == 2
        items = client.get("/api/work-items", params={"assigned_worker_id": "worker-1"}).json()
        assert items["total"] == 0

    def test_self_delete_is_422(self, client):
        resp = client.delete("/api/users/boss-1", params={"actor_id": "boss-1"})
        assert resp.status_code == 422

    def test_set_status(self, client):
        resp = client.put("/api/users/worker-2/status", json={"status": "Available"})
        assert resp.json()["user"]["status"] == "Available"

    def test_unknown_user_is_404(self, client):
        assert client.get("/api/users/ghost").status_code == 404


class TestNotificationEndpoints:

    def test_feed_and_read_all(self, client):
        client.post("/api/intake/ingest", json=[{"id": "a", "subject": "x"}, {"id": "b", "subject": "y"}])
        feed = client.get("/api/notifications", params={"viewer_id": "boss-1"}).json()
        assert feed["unread"] >= 1

        resp = client.post("/api/notifications/read-all", params={"viewer_id": "boss-1"})
        assert resp.status_code == 200
        assert client.get("/api/notifications", params={"viewer_id": "boss-1"}).json()["unread"] == 0

    def test_mark_read(self, client):
        client.post("/api/intake/ingest", json={"id": "a", "subject": "Payment"})
        feed = client.get("/api/notifications", params={"viewer_id": "worker-1"}).json()
        notification_id = feed["notifications"][0]["id"]
        assert client.post(f"/api/notifications/{notification_id}/read").status_code == 200
        assert client.post("/api/notifications/unknown/read").status_code == 404


class TestIntakeEndpoints:

    def test_ingest_single_record(self, client):
        resp = client.post("/api/intake/ingest", json={"id": "wh-1", "subject": "Loan application review"})
        assert resp.json()["created"] == 1
        assert client.get("/api/work-items/wh-1").json()["priority"] == "HIGH"

    def test_trigger_without_poller(self, client):
        assert client.post("/api/intake/trigger").status_code == 400

    def test_status(self, client):
        body = client.get("/api/intake/status").json()
        assert body["polling"] is None
        assert body["dedup_window"] == 3

    def test_seen(self, client):
        assert client.get("/api/intake/seen/email-1").json() == {"message_id": "email-1", "seen": True}
        assert client.get("/api/intake/seen/wh-9").json()["seen"] is False


class TestErrorMapping:

    def test_store_failure_is_503(self):
        assert http_error(PersistenceError("disk full", "work_items")).status_code == 503


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
