"""
Pytest fixtures for the sync service tests.

Service tests run against an in-memory SQLite engine with a fresh schema per
test. API tests build a full application with ``create_app`` and seed it
through the application's own session factory.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from possync.db.database import Base, build_session_factory, create_db_engine
from possync.main import create_app
from possync.models import Business, Product, User
from possync.services.notifications import WILDCARD, NotificationHub


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    session = build_session_factory(engine)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def business_a(db_session):
    """First tenant."""
    business = Business(name="Abarrotes Lupita", slug="lupita", active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope="function")
def business_b(db_session):
    """Second tenant."""
    business = Business(name="Miscelanea Don Beto", slug="don-beto", active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope="function")
def cashier_a(db_session, business_a):
    user = User(business_id=business_a.id, name="Rosa", role="cashier", active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope="function")
def make_product(db_session):
    """Factory for committed products owned by a given business."""

    def _make(business, name="Coca-Cola 600ml", stock=48, price="18.00", **extra):
        product = Product(
            business_id=business.id,
            name=name,
            price=Decimal(price),
            stock=stock,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope="function")
def hub():
    return NotificationHub()


@pytest.fixture(scope="function")
def events(hub):
    """Every event published on ``hub``, as (business_id, event, data) tuples."""
    received = []
    hub.subscribe(WILDCARD, lambda business_id, event, data: received.append((business_id, event, data)))
    return received


# =============================================================================
# API
# =============================================================================


@pytest.fixture(scope="function")
def app(hub):
    app = create_app("sqlite://", notifier=hub)
    Base.metadata.create_all(app.state.engine)
    return app


@pytest.fixture(scope="function")
def client(app):
    return TestClient(app)


@pytest.fixture(scope="function")
def seed(app):
    """
    Seed two active tenants, one inactive tenant, a cashier and products.

    Returns plain ids so no session stays open across requests.
    """
    with app.state.session_factory() as db:
        lupita = Business(name="Abarrotes Lupita", slug="lupita", active=True)
        beto = Business(name="Miscelanea Don Beto", slug="don-beto", active=True)
        closed = Business(name="Tienda Cerrada", slug="cerrada", active=False)
        db.add_all([lupita, beto, closed])
        db.flush()

        cashier = User(business_id=lupita.id, name="Rosa", role="cashier", active=True)
        outsider = User(business_id=beto.id, name="Beto", role="owner", active=True)
        coca = Product(business_id=lupita.id, name="Coca-Cola 600ml", price=Decimal("18.00"), stock=48)
        sabritas = Product(business_id=lupita.id, name="Sabritas 45g", price=Decimal("17.50"), stock=20)
        beto_product = Product(business_id=beto.id, name="Pan Bimbo", price=Decimal("45.00"), stock=10)
        db.add_all([cashier, outsider, coca, sabritas, beto_product])
        db.flush()

        ids = {
            "business": lupita.id,
            "other_business": beto.id,
            "inactive_business": closed.id,
            "cashier": cashier.id,
            "outsider": outsider.id,
            "coca": coca.id,
            "sabritas": sabritas.id,
            "other_product": beto_product.id,
        }
        db.commit()
    return ids


@pytest.fixture(scope="function")
def tenant_headers(seed):
    return {"X-Business-Id": str(seed["business"])}
