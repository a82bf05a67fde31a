"""HTTP surface tests through the ASGI app"""

import re

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from tickets.infrastructure import GeoIPClient

TICKET_ID = re.compile(r"^TK-\d{4}-\d{3,}$")

NEW_TICKET = {
    "title": "Connection drops at night",
    "description": "The connection drops every night around 11pm for ten minutes.",
    "category": "instability",
    "priority": "high",
}


@pytest.fixture
def app(database):
    from main import create_app

    application = create_app()
    application.state.geoip_client = None
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def accounts(create_user):
    return {
        "admin": await create_user("Admin One", "admin@example.com", role="admin"),
        "tech": await create_user("Tech One", "tech@example.com", role="technician"),
        "john": await create_user("John Smith", "john@example.com"),
        "mary": await create_user("Mary Johnson", "mary@example.com"),
    }


@pytest.fixture
def auth(client, accounts):
    """Returns Authorization headers for a seeded account."""
    cache = {}

    async def headers(name: str) -> dict:
        if name not in cache:
            response = await client.post(
                "/api/users/login",
                json={"email": f"{name}@example.com", "password": "secret123"},
            )
            assert response.status_code == 200, response.text
            cache[name] = {"Authorization": f"Bearer {response.json()['access_token']}"}
        return cache[name]

    return headers


class TestServiceEndpoints:

    async def test_root_and_health(self, client):
        assert (await client.get("/")).json()["service"] == "ISP Ticket Service"
        health = await client.get("/health")
        assert health.status_code == 200
        assert health.json()["checks"]["geoip"] == "disabled"

    async def test_correlation_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Correlation-ID": "req-123"})
        assert response.headers["X-Correlation-ID"] == "req-123"
        assert "X-Response-Time" in response.headers

    async def test_metrics_snapshot_counts_requests(self, client):
        await client.get("/health")
        snapshot = (await client.get("/metrics")).json()

        labels = [s["labels"] for s in snapshot["http_requests_total"]["samples"]]
        assert {"method": "GET", "path": "/health", "status_code": "200"} in labels

    async def test_unknown_paths_share_one_series(self, client):
        for i in range(25):
            assert (await client.get(f"/scan/{i}")).status_code == 404
        snapshot = (await client.get("/metrics")).json()

        for name in ("http_requests_total", "http_request_duration_seconds"):
            not_found = [
                s for s in snapshot[name]["samples"] if s["labels"]["status_code"] == "404"
            ]
            assert [s["labels"]["path"] for s in not_found] == ["<unmatched>"]
        counts = [
            s["value"] for s in snapshot["http_requests_total"]["samples"]
            if s["labels"]["status_code"] == "404"
        ]
        assert counts == [25]


class TestUsersAPI:

    async def test_customer_self_registration(self, client):
        payload = {"name": "New Customer", "email": "New@Example.com", "password": "secret123"}
        response = await client.post("/api/users", json=payload)

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "new@example.com"
        assert body["role"] == "customer"
        assert "password" not in body and "password_hash" not in body

        duplicate = await client.post("/api/users", json=payload)
        assert duplicate.status_code == 400
        assert duplicate.json()["message"] == "Email already registered"

    async def test_staff_accounts_need_an_admin(self, client, auth):
        payload = {"name": "Tech Two", "email": "tech2@example.com", "password": "secret123", "role": "technician"}

        assert (await client.post("/api/users", json=payload)).status_code == 403
        assert (await client.post("/api/users", json=payload, headers=await auth("tech"))).status_code == 403

        response = await client.post("/api/users", json=payload, headers=await auth("admin"))
        assert response.status_code == 201
        assert response.json()["role"] == "technician"

    async def test_invalid_registration(self, client):
        response = await client.post("/api/users", json={"name": "Al", "email": "nope", "password": "123"})

        assert response.status_code == 400
        errors = response.json()["errors"]
        assert any(e.startswith("name") for e in errors)
        assert any(e.startswith("email") for e in errors)
        assert any(e.startswith("password") for e in errors)

    async def test_login_failures(self, client, accounts):
        wrong = await client.post("/api/users/login", json={"email": "john@example.com", "password": "bad"})
        unknown = await client.post("/api/users/login", json={"email": "who@example.com", "password": "x"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["message"] == "Invalid credentials"
        assert wrong.headers["WWW-Authenticate"] == "Bearer"

    async def test_login_returns_profile(self, client, accounts):
        response = await client.post(
            "/api/users/login", json={"email": "JOHN@example.com", "password": "secret123"}
        )
        body = response.json()

        assert response.status_code == 200
        assert body["token_type"] == "bearer"
        assert body["user"]["id"] == accounts["john"].id
        assert body["user"]["last_login"] is not None

    async def test_admin_manages_users(self, client, auth, accounts):
        john = accounts["john"].id

        listing = await client.get("/api/users", headers=await auth("admin"))
        assert listing.status_code == 200
        assert [u["name"] for u in listing.json()] == ["Admin One", "John Smith", "Mary Johnson", "Tech One"]
        assert (await client.get("/api/users", headers=await auth("tech"))).status_code == 403

        disabled = await client.put(f"/api/users/{john}", json={"is_active": False}, headers=await auth("admin"))
        assert disabled.status_code == 200
        assert disabled.json()["is_active"] is False

        login = await client.post("/api/users/login", json={"email": "john@example.com", "password": "secret123"})
        assert login.status_code == 401
        assert login.json()["message"] == "Account is disabled"

    async def test_get_user(self, client, auth, accounts):
        headers = await auth("mary")
        response = await client.get(f"/api/users/{accounts['tech'].id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["role"] == "technician"

        assert (await client.get("/api/users/not-a-uuid", headers=headers)).status_code == 404
        assert (await client.get(f"/api/users/{accounts['tech'].id}")).status_code == 401


class TestTicketsAPI:

    async def test_requires_authentication(self, client):
        response = await client.post("/api/tickets", json=NEW_TICKET)
        assert response.status_code == 401

        bad_token = await client.get("/api/tickets", headers={"Authorization": "Bearer junk"})
        assert bad_token.status_code == 401

    async def test_create_ticket(self, client, auth, accounts):
        response = await client.post(
            "/api/tickets",
            json=NEW_TICKET,
            headers={**await auth("john"), "X-Forwarded-For": "187.54.123.45, 10.0.0.1"},
        )

        assert response.status_code == 201
        ticket = response.json()
        assert TICKET_ID.match(ticket["ticket_id"])
        assert ticket["ticket_id"].endswith("-001")
        assert ticket["status"] == "open"
        assert ticket["requester_id"] == accounts["john"].id
        assert ticket["client_ip"] == "187.54.123.45"
        assert ticket["client_location"] is None
        assert ticket["is_overdue"] is False
        assert [h["status"] for h in ticket["history"]] == ["open"]

    async def test_forwarded_header_ignored_from_untrusted_peer(self, app, auth):
        headers = {**await auth("john"), "X-Forwarded-For": "8.8.8.8"}
        transport = ASGITransport(app=app, client=("203.0.113.9", 4000))
        async with AsyncClient(transport=transport, base_url="http://test") as direct:
            response = await direct.post("/api/tickets", json=NEW_TICKET, headers=headers)

        assert response.status_code == 201
        assert response.json()["client_ip"] == "203.0.113.9"

    async def test_create_validation(self, client, auth):
        response = await client.post(
            "/api/tickets",
            json={**NEW_TICKET, "title": "Hi", "category": "billing"},
            headers=await auth("john"),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation error"
        assert any(e.startswith("title") for e in body["errors"])
        assert any(e.startswith("category") for e in body["errors"])
        assert "correlation_id" in body

    async def test_lifecycle(self, client, auth, accounts):
        created = (await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))).json()
        ticket_id = created["ticket_id"]

        forbidden = await client.put(
            f"/api/tickets/{ticket_id}", json={"status": "closed"}, headers=await auth("john")
        )
        assert forbidden.status_code == 403

        updated = await client.put(
            f"/api/tickets/{ticket_id}",
            json={"status": "in_progress", "assignee_id": accounts["tech"].id, "comment": "On my way"},
            headers=await auth("tech"),
        )
        assert updated.status_code == 200
        body = updated.json()
        assert body["status"] == "in_progress"
        assert body["assignee_id"] == accounts["tech"].id
        assert len(body["history"]) == 3
        assert body["history"][1]["comment"] == "On my way"

        resolved = await client.put(
            f"/api/tickets/{ticket_id}", json={"status": "resolved"}, headers=await auth("tech")
        )
        assert resolved.json()["resolved_at"] is not None

        by_uuid = await client.get(f"/api/tickets/{created['id']}", headers=await auth("john"))
        assert by_uuid.status_code == 200
        assert by_uuid.json()["status"] == "resolved"

    async def test_update_validation(self, client, auth):
        created = (await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))).json()
        url = f"/api/tickets/{created['ticket_id']}"
        headers = await auth("tech")

        assert (await client.put(url, json={}, headers=headers)).status_code == 400
        assert (await client.put(url, json={"status": "pending"}, headers=headers)).status_code == 400
        assert (await client.put(url, json={"assignee_id": "abc"}, headers=headers)).status_code == 400

    async def test_assignee_must_be_staff(self, client, auth, accounts):
        created = (await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))).json()

        response = await client.put(
            f"/api/tickets/{created['ticket_id']}",
            json={"assignee_id": accounts["mary"].id},
            headers=await auth("tech"),
        )
        assert response.status_code == 400
        assert response.json()["errors"] == ["assignee_id: must reference an active technician or admin"]

    async def test_customers_only_see_their_tickets(self, client, auth):
        johns = (await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))).json()
        await client.post("/api/tickets", json={**NEW_TICKET, "priority": "low"}, headers=await auth("mary"))

        mine = await client.get("/api/tickets", headers=await auth("john"))
        assert [t["ticket_id"] for t in mine.json()] == [johns["ticket_id"]]

        everyone = await client.get("/api/tickets", headers=await auth("tech"))
        assert len(everyone.json()) == 2
        low = await client.get("/api/tickets", params={"priority": "low"}, headers=await auth("tech"))
        assert [t["priority"] for t in low.json()] == ["low"]

        other = await client.get(f"/api/tickets/{johns['ticket_id']}", headers=await auth("mary"))
        assert other.status_code == 403

    async def test_missing_ticket(self, client, auth):
        response = await client.get("/api/tickets/TK-2024-999", headers=await auth("tech"))
        assert response.status_code == 404
        assert response.json()["message"] == "Ticket with id 'TK-2024-999' not found"

    async def test_delete(self, client, auth):
        created = (await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))).json()
        url = f"/api/tickets/{created['ticket_id']}"

        assert (await client.delete(url, headers=await auth("tech"))).status_code == 403

        response = await client.delete(url, headers=await auth("admin"))
        assert response.status_code == 200
        assert response.json() == {"message": "Ticket deleted", "ticket_id": created["ticket_id"]}

        assert (await client.get("/api/tickets", headers=await auth("admin"))).json() == []
        hidden = await client.get("/api/tickets", params={"include_deleted": "true"}, headers=await auth("admin"))
        assert hidden.json()[0]["is_active"] is False
        assert (await client.delete(url, headers=await auth("admin"))).status_code == 400

    async def test_metrics_summary(self, client, auth):
        await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))

        assert (await client.get("/api/tickets/metrics/summary", headers=await auth("john"))).status_code == 403
        summary = (await client.get("/api/tickets/metrics/summary", headers=await auth("tech"))).json()
        assert summary["total_tickets"] == 1
        assert summary["open_tickets"] == 1
        assert summary["overdue_sla"] == 0

    async def test_ticket_creation_is_counted(self, client, auth, app):
        await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))
        assert app.state.metrics.tickets_total.value(status="open") == 1


class TestDashboardAPI:

    async def test_dashboard(self, client, auth):
        await client.post("/api/tickets", json=NEW_TICKET, headers=await auth("john"))

        assert (await client.get("/api/dashboard", headers=await auth("john"))).status_code == 403

        response = await client.get("/api/dashboard", params={"days": 7}, headers=await auth("admin"))
        assert response.status_code == 200
        body = response.json()
        assert body["period"]["days"] == 7
        assert body["tickets"]["total"] == 1
        assert body["tickets"]["by_priority"]["high"] == 1
        assert body["users"]["by_role"] == {"customer": 2, "technician": 1, "admin": 1}
        assert set(body) == {"period", "tickets", "users", "sla", "performance"}

    async def test_days_must_be_positive(self, client, auth):
        response = await client.get("/api/dashboard", params={"days": 0}, headers=await auth("admin"))
        assert response.status_code == 400


IP_API_SUCCESS = {"status": "success", "country": "Brazil", "regionName": "Bahia", "city": "Salvador"}


def mock_geoip(ipify_status=200) -> GeoIPClient:
    def handler(request):
        if request.url.host == "api.ipify.org":
            return httpx.Response(ipify_status, json={"ip": "187.54.123.45"})
        return httpx.Response(200, json=IP_API_SUCCESS)

    return GeoIPClient(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestGeoIPAPI:

    async def test_unconfigured_is_unavailable(self, client, auth):
        response = await client.get("/api/external/geoip/client-ip", headers=await auth("john"))
        assert response.status_code == 503

    async def test_endpoints(self, client, auth, app):
        app.state.geoip_client = mock_geoip()
        headers = await auth("tech")

        assert (await client.get("/api/external/geoip/test", headers=headers)).json()["status"] == "success"
        assert (await client.get("/api/external/geoip/client-ip", headers=headers)).json()["ip"] == "187.54.123.45"

        info = await client.get("/api/external/geoip/ip-info/8.8.8.8", headers=headers)
        assert info.status_code == 200
        assert info.json()["info"]["city"] == "Salvador"

        own = await client.get("/api/external/geoip/ip-info", headers=headers)
        assert own.json()["ip"] == "187.54.123.45"

    async def test_connectivity_failure(self, client, auth, app):
        app.state.geoip_client = mock_geoip(ipify_status=503)
        response = await client.get("/api/external/geoip/test", headers=await auth("admin"))
        assert response.status_code == 503

    async def test_ip_info_is_staff_only(self, client, auth, app):
        app.state.geoip_client = mock_geoip()
        response = await client.get("/api/external/geoip/ip-info/8.8.8.8", headers=await auth("john"))
        assert response.status_code == 403
