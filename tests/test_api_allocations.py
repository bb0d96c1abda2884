"""HTTP tests for auth, allocation and reporting routes."""

from unittest.mock import MagicMock

import pytest

from allocation_admin.reporting import routes as reporting_routes
from allocation_admin.reporting.client import ReportingApiClient

ALLOCATION = {
    "name": "Fall Release",
    "start_date": "2024-09-01T00:00:00Z",
    "end_date": "2024-09-30T00:00:00Z",
    "order_discount_type": "percentage",
    "order_discount_amount": 15,
    "products": [{"product_id": "p1", "name": "Syrah 2020", "price": 38}],
}


class TestAuth:
    def test_login(self, client, admin):
        resp = client.post("/auth/login", json={"email": "ADMIN@example.com", "password": "secret123"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] is True
        assert body["data"]["token"]
        assert body["data"]["user"]["role"] == "admin"

    def test_login_wrong_password(self, client, admin):
        resp = client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
        assert resp.status_code == 401
        assert resp.get_json()["status"] is False

    @pytest.mark.parametrize("body,status", [
        (["admin@example.com"], 422),
        ({"email": 5, "password": "secret123"}, 400),
        ({"email": "admin@example.com", "password": ["secret123"]}, 400),
    ])
    def test_login_malformed_body(self, client, admin, body, status):
        resp = client.post("/auth/login", json=body)
        assert resp.status_code == status
        assert resp.get_json()["status"] is False

    def test_me(self, client, auth_headers):
        resp = client.get("/auth/me", headers=auth_headers)
        assert resp.get_json()["data"]["user"]["email"] == "admin@example.com"

    def test_token_required(self, client):
        assert client.get("/allocations").status_code == 401


class TestAllocations:
    def test_create_and_get(self, client, auth_headers):
        resp = client.post("/allocations", json=ALLOCATION, headers=auth_headers)
        assert resp.status_code == 201
        created = resp.get_json()["data"]
        assert created["status"] == "draft"
        assert created["allocation_products"][0]["product_id"] == "p1"

        resp = client.get(f"/allocations/{created['id']}", headers=auth_headers)
        assert resp.get_json()["data"]["name"] == "Fall Release"

    def test_create_validation_error(self, client, auth_headers):
        resp = client.post("/allocations", json={"name": "x"}, headers=auth_headers)
        assert resp.status_code == 422
        assert resp.get_json()["message"] == "missing required fields"

    @pytest.mark.parametrize("body", [[1, 2], "text", {**ALLOCATION, "name": 5}, {**ALLOCATION, "products": {"p1": {}}}])
    def test_create_malformed_body(self, client, auth_headers, body):
        resp = client.post("/allocations", json=body, headers=auth_headers)
        assert resp.status_code == 422
        assert resp.get_json()["status"] is False

    def test_update_malformed_body(self, client, auth_headers, allocation):
        resp = client.put(f"/allocations/{allocation.id}", json=["scheduled"], headers=auth_headers)
        assert resp.status_code == 422
        resp = client.put(f"/allocations/{allocation.id}", json={"description": ["x"]}, headers=auth_headers)
        assert resp.status_code == 422

    def test_viewer_cannot_create(self, client, viewer_headers):
        resp = client.post("/allocations", json=ALLOCATION, headers=viewer_headers)
        assert resp.status_code == 403

    def test_list_filters(self, client, auth_headers, make_allocation):
        make_allocation(name="A", status="active")
        make_allocation(name="B")
        resp = client.get("/allocations?status=active", headers=auth_headers)
        data = resp.get_json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["name"] == "A"

        assert client.get("/allocations?status=bogus", headers=auth_headers).status_code == 400

    def test_update(self, client, auth_headers, allocation):
        resp = client.put(f"/allocations/{allocation.id}", json={"status": "scheduled"}, headers=auth_headers)
        assert resp.get_json()["data"]["status"] == "scheduled"

    def test_not_found(self, client, auth_headers):
        resp = client.get("/allocations/999", headers=auth_headers)
        assert resp.status_code == 404

    def test_delete_with_tiers_conflicts(self, client, auth_headers, allocation, make_tier):
        make_tier(allocation)
        resp = client.delete(f"/allocations/{allocation.id}", headers=auth_headers)
        assert resp.status_code == 409

    def test_overview(self, client, auth_headers, allocation):
        resp = client.get(f"/allocations/{allocation.id}/overview", headers=auth_headers)
        data = resp.get_json()["data"]
        assert data["days_total"] == 10
        assert data["type_summary"] == {"tierCount": 0, "totalCustomers": 0}
        assert data["configuration"]["requirements"] == {"cartMin": 2, "cartMax": 12, "minAmount": 100.0}


class TestAllocationProducts:
    def test_attach_update_remove(self, client, auth_headers, allocation):
        base = f"/allocations/{allocation.id}/products"
        resp = client.post(base, json={"product_id": "p3", "name": "Rosé", "price": 22}, headers=auth_headers)
        assert resp.status_code == 201

        resp = client.put(f"{base}/p3", json={"maxPurchase": 2}, headers=auth_headers)
        assert resp.get_json()["data"]["max_purchase"] == 2

        assert client.delete(f"{base}/p3", headers=auth_headers).status_code == 200
        ids = [p["product_id"] for p in client.get(base, headers=auth_headers).get_json()["data"]["items"]]
        assert ids == ["p1", "p2"]


class TestReporting:
    def test_catalogue(self, client, auth_headers):
        items = client.get("/reporting/endpoints", headers=auth_headers).get_json()["data"]["items"]
        assert {"name": "clubs", "label": "Get All Clubs", "path": "/clubs", "method": "GET", "parameters": []} in items

    def test_unknown_endpoint(self, client, auth_headers):
        assert client.get("/reporting/nope", headers=auth_headers).status_code == 404

    @pytest.fixture
    def upstream(self, monkeypatch):
        session = MagicMock()
        monkeypatch.setattr(
            reporting_routes, "create_api_client",
            lambda: ReportingApiClient("tok", base_url="https://reporting.test", session=session),
        )
        return session

    def test_call(self, client, auth_headers, upstream):
        upstream.get.return_value = MagicMock(
            ok=True, status_code=200, headers={"Content-Type": "application/json"},
            json=MagicMock(return_value={"id": "c1"}),
        )
        resp = client.get("/reporting/customer?id=c1", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["result"] == {"id": "c1"}

    def test_missing_parameter(self, client, auth_headers, upstream):
        resp = client.get("/reporting/customer", headers=auth_headers)
        assert resp.status_code == 422
        upstream.get.assert_not_called()

    def test_upstream_error_envelope(self, client, auth_headers, upstream):
        upstream.get.return_value = MagicMock(
            ok=False, status_code=503, reason="Service Unavailable", headers={"Content-Type": "text/html"},
        )
        resp = client.get("/reporting/clubs", headers=auth_headers)
        assert resp.status_code == 503
        assert resp.get_json()["data"]["upstream"] == {
            "status": 503,
            "statusText": "Service Unavailable",
            "message": "API request failed: Service Unavailable",
        }

    def test_upstream_auth_failure_is_not_passed_through(self, client, auth_headers, upstream):
        upstream.get.return_value = MagicMock(
            ok=False, status_code=401, reason="Unauthorized", headers={"Content-Type": "text/html"},
        )
        resp = client.get("/reporting/clubs", headers=auth_headers)
        assert resp.status_code == 502
        assert resp.get_json()["data"]["upstream"]["status"] == 401
        # the operator's own session is still valid
        assert client.get("/auth/me", headers=auth_headers).status_code == 200
