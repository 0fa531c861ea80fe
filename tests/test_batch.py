"""
Batch orchestration of pushed changes.

Verifies:
- Entries are applied in submission order, each committed on its own
- A failing entry is reported and never aborts the rest of the batch
- A failing sale leaves no header, items or stock change behind
- Notifications follow commits and never break the batch
"""

from sqlalchemy import func, select

from possync.models import Category, Product, Sale, SaleItem, StockMovement
from possync.services.batch import apply_batch


def _next_product_id(db_session):
    return (db_session.scalar(select(func.max(Product.id))) or 0) + 1


def _count(db_session, model):
    return db_session.scalar(select(func.count(model.id)))


class TestAgua1LScenario:
    """Product create followed by a sale of that product."""

    def test_create_then_sell(self, db_session, business_a):
        new_id = _next_product_id(db_session)
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

        result = apply_batch(db_session, business_a.id, changes)

        assert (result.success, result.failed) == (2, 0)
        assert result.applied[0].id == new_id
        assert db_session.get(Product, new_id).stock == 59
        sales = db_session.scalars(select(Sale)).all()
        assert len(sales) == 1
        assert sales[0].payment_method == "cash"

    def test_out_of_order_sale_fails_alone(self, db_session, business_a):
        new_id = _next_product_id(db_session)
        changes = [
            {
                "entityName": "sales",
                "operation": "CREATE",
                "payload": {"total": 15, "items": [{"product_id": new_id, "quantity": 1, "unit_price": 15}]},
            },
            {"entityName": "products", "operation": "CREATE", "payload": {"name": "Agua 1L", "price": 15, "stock": 60}},
        ]

        result = apply_batch(db_session, business_a.id, changes)

        assert (result.success, result.failed) == (1, 1)
        assert result.errors[0]["operation"] == changes[0]
        assert "unknown product" in result.errors[0]["error"]
        assert db_session.get(Product, new_id).stock == 60
        assert _count(db_session, Sale) == 0


class TestPartialFailure:
    def test_malformed_third_record(self, db_session, business_a, make_product):
        product_id = make_product(business_a, stock=10).id
        changes = [
            {"entityName": "categories", "operation": "CREATE", "payload": {"name": "Bebidas"}},
            {"entityName": "categories", "operation": "CREATE", "payload": {"name": "Botanas"}},
            {"entityName": "categories", "payload": {"name": "Sin operacion"}},
            {"entityName": "products", "operation": "UPDATE", "payload": {"id": product_id, "stock": 25}},
            {"entityName": "categories", "operation": "CREATE", "payload": '{"name": "Lacteos"}'},
        ]

        result = apply_batch(db_session, business_a.id, changes)

        assert (result.success, result.failed) == (4, 1)
        assert result.errors == [{"operation": changes[2], "error": result.errors[0]["error"]}]
        assert [change.index for change in result.applied] == [0, 1, 3, 4]
        names = db_session.scalars(select(Category.name).order_by(Category.id)).all()
        assert names == ["Bebidas", "Botanas", "Lacteos"]
        assert db_session.get(Product, product_id).stock == 25

    def test_earlier_commits_survive_later_failure(self, db_session, business_a):
        changes = [
            {"entityName": "categories", "operation": "CREATE", "payload": {"name": "Bebidas"}},
            {"entityName": "categories", "operation": "UPDATE", "payload": {"id": 999, "name": "Nada"}},
            "garbage",
        ]

        result = apply_batch(db_session, business_a.id, changes)

        assert (result.success, result.failed) == (1, 2)
        assert result.errors[1]["operation"] == "garbage"
        assert _count(db_session, Category) == 1

    def test_failing_sale_leaves_nothing_behind(self, db_session, business_a, make_product):
        product_id = make_product(business_a, stock=48).id
        changes = [
            {
                "entityName": "sales",
                "operation": "CREATE",
                "payload": {
                    "total": 54,
                    "clientSaleId": "reg1-0007",
                    "items": [
                        {"product_id": product_id, "quantity": 2, "unit_price": 18},
                        {"product_id": 424242, "quantity": 1, "unit_price": 18},
                    ],
                },
            }
        ]

        result = apply_batch(db_session, business_a.id, changes)

        assert result.failed == 1
        assert _count(db_session, Sale) == 0
        assert _count(db_session, SaleItem) == 0
        assert _count(db_session, StockMovement) == 0
        assert db_session.get(Product, product_id).stock == 48


class TestSalesInBatch:
    def test_resubmitted_sale_is_reported_as_duplicate(self, db_session, business_a, make_product):
        product_id = make_product(business_a, stock=48).id
        sale = {
            "entityName": "sales",
            "operation": "CREATE",
            "payload": {
                "total": 36,
                "clientSaleId": "reg1-0042",
                "items": [{"product_id": product_id, "quantity": 2, "unit_price": 18}],
            },
        }

        first = apply_batch(db_session, business_a.id, [sale])
        second = apply_batch(db_session, business_a.id, [sale])

        assert second.success == 1
        assert second.applied[0].duplicate
        assert second.applied[0].id == first.applied[0].id
        assert db_session.get(Product, product_id).stock == 46

    def test_acting_user_is_recorded(self, db_session, business_a, cashier_a, make_product):
        product_id = make_product(business_a).id
        sale = {
            "entityName": "sales",
            "operation": "CREATE",
            "payload": {"total": 18, "items": [{"product_id": product_id, "quantity": 1, "unit_price": 18}]},
        }

        result = apply_batch(db_session, business_a.id, [sale], user_id=cashier_a.id)

        assert db_session.get(Sale, result.applied[0].id).user_id == cashier_a.id

    def test_sale_without_items_goes_through_generic_path(self, db_session, business_a):
        sale = {"entityName": "sales", "operation": "CREATE", "payload": {"total": 10, "payment_type": "bitcoin"}}

        result = apply_batch(db_session, business_a.id, [sale])

        assert result.success == 1
        assert result.applied[0].items_count is None
        assert db_session.get(Sale, result.applied[0].id).payment_method == "other"


class TestBatchNotifications:
    def test_events_follow_commits(self, db_session, business_a, make_product, hub, events):
        product_id = make_product(business_a).id
        changes = [
            {"entityName": "products", "operation": "UPDATE", "payload": {"id": product_id, "price": 19}},
            {"entityName": "products", "operation": "UPDATE", "payload": {"id": 424242, "price": 19}},
            {
                "entityName": "sales",
                "operation": "CREATE",
                "payload": {"total": 19, "items": [{"product_id": product_id, "quantity": 1, "unit_price": 19}]},
            },
        ]

        result = apply_batch(db_session, business_a.id, changes, notifier=hub)

        assert [event for _, event, _ in events] == ["product:updated", "sale:created"]
        assert events[0] == (business_a.id, "product:updated", {"id": product_id})
        assert events[1][2] == {"id": result.applied[1].id, "items_count": 1}

    def test_duplicate_sale_is_not_announced(self, db_session, business_a, make_product, hub, events):
        product_id = make_product(business_a).id
        sale = {
            "entityName": "sales",
            "operation": "CREATE",
            "payload": {
                "total": 18,
                "clientSaleId": "reg1-0100",
                "items": [{"product_id": product_id, "quantity": 1, "unit_price": 18}],
            },
        }

        apply_batch(db_session, business_a.id, [sale, sale], notifier=hub)

        assert [event for _, event, _ in events] == ["sale:created"]

    def test_failing_subscriber_does_not_break_batch(self, db_session, business_a, hub, events):
        def broken(business_id, event, data):
            raise RuntimeError("socket closed")

        hub.subscribe(business_a.id, broken)
        changes = [
            {"entityName": "categories", "operation": "CREATE", "payload": {"name": "Bebidas"}},
            {"entityName": "categories", "operation": "CREATE", "payload": {"name": "Botanas"}},
        ]

        result = apply_batch(db_session, business_a.id, changes, notifier=hub)

        assert (result.success, result.failed) == (2, 0)
        assert len(events) == 2

    def test_result_as_dict(self, db_session, business_a):
        result = apply_batch(
            db_session,
            business_a.id,
            [{"entityName": "categories", "operation": "create", "payload": {"name": "Bebidas"}}],
        )

        body = result.as_dict()
        assert body["success"] == 1
        assert body["failed"] == 0
        assert body["errors"] == []
        assert body["applied"][0]["entity_name"] == "categories"
        assert body["applied"][0]["operation"] == "CREATE"
