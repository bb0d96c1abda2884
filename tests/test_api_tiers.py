"""HTTP tests for tier creation, overrides and customer export."""

from io import BytesIO

import pandas as pd
import pytest

TIER = {
    "name": "Gold",
    "level": 1,
    "access_start": "2024-01-01T00:00:00Z",
    "access_end": "2024-01-05T00:00:00Z",
}


@pytest.fixture
def create(client, auth_headers, allocation):
    def post(**overrides):
        body = {**TIER, **overrides}
        return client.post(f"/allocations/{allocation.id}/tiers", json=body, headers=auth_headers)

    return post


class TestCreateTier:
    def test_full_payload(self, create):
        resp = create(
            overrides={"requirements": {"cartMin": 3}, "shipping": {"method": "Express"}},
            sources=[
                {"source": "tag", "items": [{"id": "vip", "name": "VIP", "count": 150}]},
                {"source": "group", "items": [{"id": "g1", "name": "Members", "count": 2}]},
            ],
            productOverrides={"p1": {"overridePrice": 40, "maxPurchase": 2}},
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["tier"]["customer_count"] == 152
        assert data["assigned_customers"] == 5
        assert data["tier"]["overrides"]["requirements"] == {"cartMin": 3}
        assert data["tier"]["overrides"]["has_product_overrides"] is True

    def test_missing_fields(self, create):
        resp = create(name="")
        assert resp.status_code == 422
        assert resp.get_json()["message"] == "missing required fields"

    def test_duplicate_level(self, create):
        assert create().status_code == 201
        resp = create(name="Platinum")
        assert resp.status_code == 409
        assert resp.get_json()["data"]["level"] == 1

    def test_bad_sources(self, create):
        assert create(sources=[{"source": "segment", "items": []}]).status_code == 422

    def test_bad_product_overrides(self, create):
        assert create(productOverrides=["p1"]).status_code == 422
        assert create(productOverrides={"p1": 40}).status_code == 422

    @pytest.mark.parametrize("overrides", [
        {"name": 5},
        {"name": ["Gold"]},
        {"overrides": {"shipping": {"method": {"carrier": "UPS"}}}},
        {"sources": [{"source": "tag", "items": "vip"}]},
    ])
    def test_malformed_fields(self, create, overrides):
        resp = create(**overrides)
        assert resp.status_code == 422
        assert resp.get_json()["status"] is False

    def test_non_object_body(self, client, auth_headers, allocation):
        resp = client.post(f"/allocations/{allocation.id}/tiers", json=[1, 2], headers=auth_headers)
        assert resp.status_code == 422
        assert resp.get_json()["message"] == "body must be a JSON object"

    def test_list_ordered(self, client, auth_headers, allocation, create):
        create(name="Bronze", level=3)
        create(name="Gold", level=1)
        resp = client.get(f"/allocations/{allocation.id}/tiers", headers=auth_headers)
        assert [t["name"] for t in resp.get_json()["data"]["items"]] == ["Gold", "Bronze"]


class TestEstimate:
    def test_raw_and_exact(self, client, auth_headers, allocation):
        resp = client.post(
            f"/allocations/{allocation.id}/tiers/estimate",
            json={"sources": [
                {"source": "tag", "items": [{"id": "vip", "count": 3}]},
                {"source": "group", "items": [{"id": "g1", "count": 2}]},
                {"source": "search", "items": ["c8"]},
            ]},
            headers=auth_headers,
        )
        data = resp.get_json()["data"]
        assert data["estimated_customers"] == 6
        assert data["exact_customers"] == 5
        assert data["unresolved_items"] == 1

    def test_exact_can_be_skipped(self, client, auth_headers, allocation):
        resp = client.post(f"/allocations/{allocation.id}/tiers/estimate?exact=false",
                           json={"sources": []}, headers=auth_headers)
        assert "exact_customers" not in resp.get_json()["data"]


class TestTierRoutes:
    @pytest.fixture
    def tier_id(self, create):
        resp = create(sources=[{"source": "tag", "items": [{"id": "vip", "count": 3}]}])
        return resp.get_json()["data"]["tier"]["id"]

    def test_get_includes_effective_config(self, client, auth_headers, tier_id):
        data = client.get(f"/tiers/{tier_id}", headers=auth_headers).get_json()["data"]
        assert data["effective"]["discounts"]["display"] == "10%"

    def test_update(self, client, auth_headers, tier_id):
        resp = client.put(f"/tiers/{tier_id}", json={"name": "Gold+", "overrides": {"discounts": {"amount": 20}}},
                          headers=auth_headers)
        assert resp.status_code == 200
        data = client.get(f"/tiers/{tier_id}", headers=auth_headers).get_json()["data"]
        assert data["name"] == "Gold+"
        assert data["effective"]["discounts"]["display"] == "20%"

    def test_product_overrides(self, client, auth_headers, tier_id):
        url = f"/tiers/{tier_id}/product-overrides"
        resp = client.put(f"{url}/p2", json={"minPurchase": 2}, headers=auth_headers)
        assert resp.get_json()["data"]["minPurchase"] == 2

        rows = client.get(url, headers=auth_headers).get_json()["data"]
        assert rows["p2"]["allowWishRequests"] is None

        products = client.get(f"/tiers/{tier_id}/effective-products", headers=auth_headers).get_json()["data"]["items"]
        p2 = next(p for p in products if p["productId"] == "p2")
        assert p2["allowWishRequests"] is True

        resp = client.put(url, json={"productOverrides": {}}, headers=auth_headers)
        assert resp.status_code == 200
        rows = client.get(url, headers=auth_headers).get_json()["data"]
        assert set(rows) == {"api_time"}

    def test_update_rejects_non_object_body(self, client, auth_headers, tier_id):
        resp = client.put(f"/tiers/{tier_id}", json=["Gold+"], headers=auth_headers)
        assert resp.status_code == 422
        resp = client.put(f"/tiers/{tier_id}", json={"name": 7}, headers=auth_headers)
        assert resp.status_code == 422
        data = client.get(f"/tiers/{tier_id}", headers=auth_headers).get_json()["data"]
        assert data["name"] == "Gold"

    def test_rejected_update_leaves_tier_untouched(self, client, auth_headers, tier_id):
        resp = client.put(f"/tiers/{tier_id}", json={"name": "Renamed", "level": 0}, headers=auth_headers)
        assert resp.status_code == 422
        # a later successful write on the same tier must not carry the rejected rename
        resp = client.put(f"/tiers/{tier_id}/product-overrides/p1", json={"minPurchase": 1}, headers=auth_headers)
        assert resp.status_code == 200
        data = client.get(f"/tiers/{tier_id}", headers=auth_headers).get_json()["data"]
        assert data["name"] == "Gold"
        assert data["level"] == 1

    def test_unknown_product_override(self, client, auth_headers, tier_id):
        resp = client.put(f"/tiers/{tier_id}/product-overrides/p404", json={"minPurchase": 1}, headers=auth_headers)
        assert resp.status_code == 422

    def test_customers_and_export(self, client, auth_headers, tier_id):
        rows = client.get(f"/tiers/{tier_id}/customers", headers=auth_headers).get_json()["data"]["items"]
        assert sorted(r["customer_id"] for r in rows) == ["c1", "c2", "c3"]

        resp = client.get(f"/tiers/{tier_id}/customers/export", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        df = pd.read_excel(BytesIO(resp.data))
        assert sorted(df["customer_id"]) == ["c1", "c2", "c3"]

    def test_delete(self, client, auth_headers, tier_id):
        assert client.delete(f"/tiers/{tier_id}", headers=auth_headers).status_code == 200
        assert client.get(f"/tiers/{tier_id}", headers=auth_headers).status_code == 404
        rows = client.get(f"/tiers/{tier_id}/product-overrides", headers=auth_headers).get_json()["data"]
        assert set(rows) == {"api_time"}
