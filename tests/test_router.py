"""Tests for the webhook and stats API routes."""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from redistributor.main import create_app
from redistributor.store.memory import InMemoryConfigurationStore
from redistributor.webhooks.delivery import DeliveryExecutor
from redistributor.webhooks.errors import ConfigurationStoreError
from redistributor.webhooks.models import Destination
from redistributor.webhooks.outcome_log import InMemoryOutcomeLog, SQLiteOutcomeLog


class RecordingDestinations:
    """Transport handler answering 200 except for the archive host, which hangs."""

    def __init__(self):
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "archive.example.com":
            await asyncio.sleep(5)
        return httpx.Response(200)


class BrokenStore(InMemoryConfigurationStore):
    """Store whose reads fail the way a locked database does."""

    async def get_endpoint_by_slug(self, slug):
        raise sqlite3.OperationalError("database is locked")

    async def list_endpoints(self):
        raise ConfigurationStoreError("list_endpoints", sqlite3.OperationalError("database is locked"))


@pytest.fixture
def destinations():
    return RecordingDestinations()


@pytest.fixture
def client(settings, crm_store, destinations):
    app = create_app(
        settings=settings,
        store=crm_store,
        outcome_log=InMemoryOutcomeLog(),
        executor=DeliveryExecutor.from_settings(settings, transport=httpx.MockTransport(destinations)),
        configure_logging=False,
    )
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Inbound Webhook Routes
# ============================================================================

class TestWebhookRoutes:
    """Tests for /api/webhook."""

    def test_default_ready(self, client):
        response = client.get("/api/webhook")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_endpoint_ready(self, client):
        response = client.get("/api/webhook/crm")

        assert response.status_code == 200
        data = response.json()
        assert data["endpoint"]["id"] == "ep-crm"
        assert data["endpoint"]["slug"] == "crm"

    def test_ready_unknown_slug_404(self, client):
        assert client.get("/api/webhook/billing").status_code == 404

    def test_ready_inactive_reports_metadata(self, client):
        """Inactive endpoints still describe themselves; only delivery is refused."""
        response = client.get("/api/webhook/orders")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "inactive"
        assert "inactive" in data["message"]
        assert data["endpoint"]["id"] == "ep-orders"
        assert data["endpoint"]["name"] == "Orders"
        assert data["endpoint"]["active"] is False

    def test_partial_delivery_returns_200(self, client, destinations):
        response = client.post(
            "/api/webhook/crm",
            json={"id": 1},
            headers={"X-Webhook-Source": "shopify", "Authorization": "Bearer secret"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["endpoint"] == {"id": "ep-crm", "slug": "crm", "name": "CRM", "description": None}
        assert data["message"] == "Webhook received and processed for endpoint 'crm'"

        summary = data["redistribution"]
        assert (summary["attempted"], summary["successful"], summary["failed"]) == (3, 2, 1)
        assert [r["destination_name"] for r in summary["results"]] == ["Sales", "Support", "Archive"]
        assert summary["results"][2]["error_kind"] == "timeout"

        assert len(destinations.requests) == 3
        forwarded = destinations.requests[0]
        assert forwarded.headers["x-original-source"] == "shopify"
        assert "authorization" not in forwarded.headers

    def test_body_forwarded_verbatim(self, client, destinations):
        raw = b'{"b": 2,   "a": 1}'
        client.post("/api/webhook/crm", content=raw, headers={"Content-Type": "application/json"})

        assert {r.content for r in destinations.requests} == {raw}

    def test_default_route_without_destinations(self, client, destinations):
        response = client.post("/api/webhook", json={"ping": True})

        assert response.status_code == 200
        data = response.json()
        assert data["endpoint"] == {
            "id": None,
            "slug": "default",
            "name": "Default",
            "description": "Built-in route for destinations without an endpoint binding",
        }
        assert data["redistribution"]["attempted"] == 0
        assert destinations.requests == []

    def test_default_route_trailing_slash(self, client, crm_store, destinations):
        """/api/webhook/ is served directly rather than redirected."""
        crm_store.add_destination(Destination(
            id="dst-catchall", name="Catch-all", url="https://all.example.com/hook",
        ))

        response = client.post("/api/webhook/", json={"ping": True})

        assert response.status_code == 200
        assert response.history == []
        assert response.json()["redistribution"]["attempted"] == 1
        assert len(destinations.requests) == 1
        assert client.get("/api/webhook/").json()["status"] == "active"

    def test_unknown_slug_404(self, client, destinations):
        response = client.post("/api/webhook/billing", json={})

        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["success"] is False
        assert detail["error"] == "not_found"
        assert destinations.requests == []

    def test_inactive_slug_410(self, client, destinations):
        response = client.post("/api/webhook/orders", json={})

        assert response.status_code == 410
        assert response.json()["detail"]["error"] == "inactive"
        assert destinations.requests == []

    def test_invalid_json_400(self, client, destinations):
        response = client.post(
            "/api/webhook/crm", content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert destinations.requests == []

    def test_empty_body_forwarded_as_empty_object(self, client, destinations):
        response = client.post("/api/webhook/crm")

        assert response.status_code == 200
        assert {r.content for r in destinations.requests} == {b"{}"}

    def test_store_failure_503(self, settings):
        app = create_app(settings=settings, store=BrokenStore(), configure_logging=False)

        with TestClient(app) as client:
            response = client.post("/api/webhook/crm", json={})

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "configuration_store_unavailable"


# ============================================================================
# Stats Routes
# ============================================================================

class TestStatsRoutes:
    """Tests for /api/stats."""

    def test_endpoint_stats(self, client):
        response = client.get("/api/stats/endpoints")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        slugs = [entry["endpoint"]["slug"] for entry in data["data"]]
        assert slugs == ["default", "crm", "orders"]
        crm = data["data"][1]
        assert crm["destinations"] == {"total": 3, "active": 3, "inactive": 0}

    def test_endpoint_stats_store_failure(self, settings):
        app = create_app(settings=settings, store=BrokenStore(), configure_logging=False)

        with TestClient(app) as client:
            assert client.get("/api/stats/endpoints").status_code == 503

    def test_usage(self, client):
        client.post("/api/webhook/crm", json={})
        client.post("/api/webhook/orders", json={})

        data = client.get("/api/stats/usage").json()

        assert data["total_events"] == 1
        assert data["deliveries_attempted"] == 3
        assert data["deliveries_failed"] == 1
        assert data["routing_rejections"] == 1
        assert data["endpoints"]["crm"]["deliveries_successful"] == 2

    def test_recent_outcomes(self, client):
        event_id = client.post("/api/webhook/crm", json={}).json()["event_id"]

        recent = client.get("/api/stats/outcomes/recent", params={"limit": 5}).json()

        assert len(recent) == 1
        assert recent[0]["event_id"] == event_id
        assert recent[0]["status"] == "partial"

    def test_recent_outcomes_limit_validated(self, client):
        assert client.get("/api/stats/outcomes/recent", params={"limit": 0}).status_code == 422

    def test_recent_outcomes_log_unreadable_503(self, settings, crm_store, destinations, tmp_path):
        """A broken outcome log fails stats reads with 503 but never blocks delivery."""
        db_path = tmp_path / "logs.db"
        app = create_app(
            settings=settings,
            store=crm_store,
            outcome_log=SQLiteOutcomeLog(db_path),
            executor=DeliveryExecutor.from_settings(settings, transport=httpx.MockTransport(destinations)),
            configure_logging=False,
        )
        with sqlite3.connect(db_path) as conn:
            conn.execute("DROP TABLE webhook_logs")

        with TestClient(app) as client:
            recent = client.get("/api/stats/outcomes/recent")
            delivered = client.post("/api/webhook/crm", json={})

        assert recent.status_code == 503
        detail = recent.json()["detail"]
        assert detail["success"] is False
        assert detail["error"] == "outcome_log_unavailable"
        assert delivered.status_code == 200
        assert delivered.json()["redistribution"]["attempted"] == 3

    def test_outcome_stats(self, client):
        client.post("/api/webhook/crm", json={})

        response = client.get("/api/stats/outcomes/stats", params={"range": "all"})

        assert response.status_code == 200
        data = response.json()
        assert data["range"] == "all"
        assert data["endpoint"] is None
        assert (data["total"], data["partial"]) == (1, 1)
        assert data["deliveries_attempted"] == 3
        assert data["deliveries_failed"] == 1
        assert [e["endpoint_slug"] for e in data["endpoints"]] == ["crm"]

    def test_outcome_stats_filters(self, client):
        client.post("/api/webhook/crm", json={})

        other = client.get("/api/stats/outcomes/stats", params={"endpoint": "billing"}).json()

        assert other["range"] == "24h"
        assert other["total"] == 0
        assert client.get("/api/stats/outcomes/stats", params={"range": "90d"}).status_code == 422

    def test_endpoint_outcomes(self, client):
        event_id = client.post("/api/webhook/crm", json={}).json()["event_id"]

        errors = client.get("/api/stats/outcomes/endpoint/crm", params={"status": "error"}).json()
        successes = client.get("/api/stats/outcomes/endpoint/crm", params={"status": "success"}).json()

        assert [r["event_id"] for r in errors] == [event_id]
        assert successes == []
        assert client.get(
            "/api/stats/outcomes/endpoint/crm", params={"status": "pending"}
        ).status_code == 422

    def test_outcome_detail(self, client):
        event_id = client.post("/api/webhook/crm", json={}).json()["event_id"]

        response = client.get(f"/api/stats/outcomes/{event_id}")

        assert response.status_code == 200
        assert response.json()["event_id"] == event_id
        assert response.json()["endpoint_slug"] == "crm"
        assert client.get("/api/stats/outcomes/missing").status_code == 404

    def test_outcomes_in_range(self, client):
        event_id = client.post("/api/webhook/crm", json={}).json()["event_id"]
        now = datetime.now(timezone.utc)
        hour_ago = (now - timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
        hour_ahead = (now + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ")

        found = client.get("/api/stats/outcomes/range", params={"start": hour_ago, "end": hour_ahead})
        reversed_bounds = client.get(
            "/api/stats/outcomes/range", params={"start": hour_ahead, "end": hour_ago}
        )

        assert found.status_code == 200
        assert [r["event_id"] for r in found.json()] == [event_id]
        assert reversed_bounds.status_code == 400

    def test_probe_destination(self, client, destinations):
        response = client.post("/api/stats/destinations/dst-sales/probe")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert destinations.requests[0].method == "GET"

    def test_probe_unknown_destination(self, client):
        assert client.post("/api/stats/destinations/nope/probe").status_code == 404
