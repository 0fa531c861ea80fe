"""
HTTP surface: sync push / pull, full product resync, cancellations.
"""

import dataclasses
from decimal import Decimal

from sqlalchemy import select

from possync.api.routes import sync as sync_routes
from possync.models import Product, Sale


def _sale_change(product_id, quantity=2, **payload):
    body = {
        "total": 18 * quantity,
        "payment_type": "efectivo",
        "items": [{"productId": product_id, "quantity": quantity, "unitPrice": 18}],
    }
    body.update(payload)
    return {"entityName": "sales", "operation": "CREATE", "payload": body}


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestTenantResolution:
    def test_missing_header(self, client, seed):
        resp = client.post("/sync/push", json={"changes": []})
        assert resp.status_code == 422

    def test_unknown_business(self, client, seed):
        resp = client.post("/sync/push", json={"changes": []}, headers={"X-Business-Id": "9999"})
        assert resp.status_code == 404

    def test_inactive_business(self, client, seed):
        resp = client.get("/sync/pull", headers={"X-Business-Id": str(seed["inactive_business"])})
        assert resp.status_code == 403

    def test_user_of_other_business(self, client, seed, tenant_headers):
        headers = {**tenant_headers, "X-User-Id": str(seed["outsider"])}
        resp = client.post("/sync/push", json={"changes": []}, headers=headers)
        assert resp.status_code == 403


class TestSyncPush:
    def test_agua_scenario(self, app, client, seed, tenant_headers):
        with app.state.session_factory() as db:
            new_id = max(db.scalars(select(Product.id)).all()) + 1
        changes = [
            {"entityName": "products", "operation": "CREATE", "payload": {"name": "Agua 1L", "price": 15, "stock": 60}},
            {
                "entityName": "sales",
                "operation": "CREATE",
                "payload": {
                    "total": 15,
                    "payment_type": "efectivo",
                    "items": [{"product_id": new_id, "quantity": 1, "unit_price": 15, "subtotal": 15}],
                },
            },
        ]

        resp = client.post("/sync/push", json={"changes": changes}, headers=tenant_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Sync processed"
        assert body["results"]["success"] == 2
        assert body["results"]["failed"] == 0
        with app.state.session_factory() as db:
            assert db.get(Product, new_id).stock == 59
            sales = db.scalars(select(Sale)).all()
            assert [s.payment_method for s in sales] == ["cash"]

    def test_failures_are_reported_with_200(self, client, seed, tenant_headers):
        changes = [
            {"entityName": "categories", "operation": "CREATE", "payload": {"name": "Bebidas"}},
            {"entityName": "categories", "operation": "MERGE", "payload": {"name": "Botanas"}},
        ]

        resp = client.post("/sync/push", json={"changes": changes}, headers=tenant_headers)

        assert resp.status_code == 200
        results = resp.json()["results"]
        assert (results["success"], results["failed"]) == (1, 1)
        assert results["errors"][0]["operation"] == changes[1]
        assert results["errors"][0]["error"] == "Unknown operation: MERGE"

    def test_duplicate_sale_over_http(self, app, client, seed, tenant_headers):
        change = _sale_change(seed["coca"], clientSaleId="reg1-0042")

        first = client.post("/sync/push", json={"changes": [change]}, headers=tenant_headers).json()
        second = client.post("/sync/push", json={"changes": [change]}, headers=tenant_headers).json()

        assert second["results"]["applied"][0]["duplicate"] is True
        assert second["results"]["applied"][0]["id"] == first["results"]["applied"][0]["id"]
        with app.state.session_factory() as db:
            assert db.get(Product, seed["coca"]).stock == 46

    def test_acting_user_header(self, app, client, seed, tenant_headers):
        headers = {**tenant_headers, "X-User-Id": str(seed["cashier"])}

        resp = client.post("/sync/push", json={"changes": [_sale_change(seed["sabritas"], 1)]}, headers=headers)

        sale_id = resp.json()["results"]["applied"][0]["id"]
        with app.state.session_factory() as db:
            assert db.get(Sale, sale_id).user_id == seed["cashier"]

    def test_changes_must_be_a_list(self, client, seed, tenant_headers):
        resp = client.post("/sync/push", json={"changes": {"entityName": "products"}}, headers=tenant_headers)
        assert resp.status_code == 422

    def test_batch_size_limit(self, client, seed, tenant_headers, monkeypatch):
        monkeypatch.setattr(sync_routes, "settings", dataclasses.replace(sync_routes.settings, sync_max_batch_size=2))
        changes = [{"entityName": "categories", "operation": "CREATE", "payload": {"name": f"C{i}"}} for i in range(3)]

        resp = client.post("/sync/push", json={"changes": changes}, headers=tenant_headers)

        assert resp.status_code == 400

    def test_events_are_published(self, client, seed, tenant_headers, events):
        client.post("/sync/push", json={"changes": [_sale_change(seed["coca"])]}, headers=tenant_headers)

        assert [(business_id, event) for business_id, event, _ in events] == [(seed["business"], "sale:created")]


class TestSyncPull:
    def test_snapshot_is_tenant_scoped(self, client, seed, tenant_headers):
        resp = client.get("/sync/pull", headers=tenant_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert [p["name"] for p in body["products"]] == ["Coca-Cola 600ml", "Sabritas 45g"]
        assert Decimal(body["products"][1]["price"]) == Decimal("17.50")
        assert [u["name"] for u in body["users"]] == ["Rosa"]
        assert "pin" not in body["users"][0]
        assert body["categories"] == []
        assert body["timestamp"].endswith("Z")


class TestFullProductSync:
    def test_full_sync(self, app, client, seed, events):
        payload = {
            "businessId": seed["business"],
            "products": [
                {"id": 100, "name": "Agua 1L", "price": 15, "stock": 60},
                {"id": 101, "name": "Tortillas 1kg", "price": 24, "stock": 30},
                {"id": 102, "name": "Huevo 12pz", "price": 42},
            ],
        }

        resp = client.post("/sync/products/full", json=payload)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "3 products synchronized", "count": 3, "errors": []}
        with app.state.session_factory() as db:
            ids = db.scalars(
                select(Product.id).where(Product.business_id == seed["business"], Product.active.is_(True))
            ).all()
            assert sorted(ids) == [100, 101, 102]
            assert db.get(Product, seed["other_product"]) is not None
        assert events[-1] == (seed["business"], "products:resynced", {"count": 3})

    def test_unknown_business(self, client, seed):
        resp = client.post("/sync/products/full", json={"businessId": 9999, "products": []})
        assert resp.status_code == 404

    def test_inactive_business(self, client, seed):
        resp = client.post("/sync/products/full", json={"businessId": seed["inactive_business"], "products": []})
        assert resp.status_code == 403


class TestCancellationEndpoints:
    def _push_sale(self, client, seed, tenant_headers):
        resp = client.post("/sync/push", json={"changes": [_sale_change(seed["coca"])]}, headers=tenant_headers)
        return resp.json()["results"]["applied"][0]["id"]

    def test_cancel_and_refund(self, app, client, seed, tenant_headers, events):
        sale_id = self._push_sale(client, seed, tenant_headers)

        resp = client.post(
            "/cancellations",
            json={"sale_id": sale_id, "reason_code": "02", "requires_refund": True, "refund_method": "cash"},
            headers=tenant_headers,
        )

        assert resp.status_code == 201
        cancellation = resp.json()
        assert cancellation["products_reintegrated"] == 1
        assert cancellation["refund_status"] == "pending"
        assert Decimal(cancellation["refund_amount"]) == Decimal("36")
        assert events[-1] == (seed["business"], "sale:cancelled", {"id": sale_id})
        with app.state.session_factory() as db:
            assert db.get(Product, seed["coca"]).stock == 48

        resp = client.post(f"/cancellations/{cancellation['id']}/refund", json={"method": "cash"}, headers=tenant_headers)
        assert resp.status_code == 200
        assert resp.json()["cancellation_id"] == cancellation["id"]

        resp = client.post(f"/cancellations/{cancellation['id']}/refund", json={"method": "cash"}, headers=tenant_headers)
        assert resp.status_code == 409

    def test_cancel_twice(self, client, seed, tenant_headers):
        sale_id = self._push_sale(client, seed, tenant_headers)
        body = {"sale_id": sale_id, "reason_code": "02"}

        assert client.post("/cancellations", json=body, headers=tenant_headers).status_code == 201
        resp = client.post("/cancellations", json=body, headers=tenant_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Sale already cancelled"

    def test_invalid_refund_method(self, client, seed, tenant_headers):
        sale_id = self._push_sale(client, seed, tenant_headers)
        body = {"sale_id": sale_id, "reason_code": "02", "requires_refund": True, "refund_method": "bitcoin"}

        resp = client.post("/cancellations", json=body, headers=tenant_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid refund method: bitcoin"

    def test_unknown_sale(self, client, seed, tenant_headers):
        resp = client.post("/cancellations", json={"sale_id": 9999, "reason_code": "02"}, headers=tenant_headers)
        assert resp.status_code == 404

    def test_sale_of_other_tenant(self, client, seed, tenant_headers):
        sale_id = self._push_sale(client, seed, tenant_headers)
        headers = {"X-Business-Id": str(seed["other_business"])}

        resp = client.post("/cancellations", json={"sale_id": sale_id, "reason_code": "02"}, headers=headers)

        assert resp.status_code == 404

    def test_unknown_cancellation_refund(self, client, seed, tenant_headers):
        resp = client.post("/cancellations/9999/refund", json={"method": "cash"}, headers=tenant_headers)
        assert resp.status_code == 404
