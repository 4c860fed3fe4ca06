"""
Pytest fixtures for shop ledger backend tests.

Provides test database setup, tenant fixtures, items with seeded stock, and
a test client with auth helpers.
"""

import pytest
from sqlalchemy.exc import OperationalError

from shopledger import create_app
from shopledger.config import TestConfig
from shopledger.extensions import db
from shopledger.models import Organization, Shop, User
from shopledger.services import catalog_service
from shopledger.services.auth_service import hash_password

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Corner Shop", code="CORNER", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Market Stall", code="STALL", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def shop_a(db_session, org_a):
    shop = Shop(org_id=org_a.id, name="Shop A1")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_a2(db_session, org_a):
    """Second shop in Organization A."""
    shop = Shop(org_id=org_a.id, name="Shop A2")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_b(db_session, org_b):
    shop = Shop(org_id=org_b.id, name="Shop B1")
    db_session.add(shop)
    db_session.commit()
    return shop


def _make_user(db_session, org, username):
    user = User(
        org_id=org.id,
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, org_a):
    return _make_user(db_session, org_a, "user_a")


@pytest.fixture(scope='function')
def user_b(db_session, org_b):
    return _make_user(db_session, org_b, "user_b")


def make_item(org, shop, name="Widget", *, stock=0, price=500, cost=300, sku=None, threshold=None):
    """Create an item through the catalog so its stock is seeded via the ledger."""
    patch = {"name": name, "unit_price_cents": price, "cost_price_cents": cost, "sku": sku}
    if threshold is not None:
        patch["low_stock_threshold"] = threshold
    return catalog_service.create_item(org_id=org.id, shop_id=shop.id, patch=patch, initial_stock=stock)


@pytest.fixture(scope='function')
def item_factory(db_session):
    return make_item


@pytest.fixture(scope='function')
def widget(db_session, org_a, shop_a):
    """Item in Shop A with 10 in stock."""
    return make_item(org_a, shop_a, "Widget", stock=10, price=500, sku="W-1")


@pytest.fixture(scope='function')
def gadget(db_session, org_a, shop_a):
    """Item in Shop A with 5 in stock."""
    return make_item(org_a, shop_a, "Gadget", stock=5, price=1200, sku="G-1")


@pytest.fixture(scope='function')
def foreign_item(db_session, org_b, shop_b):
    """Item in Organization B."""
    return make_item(org_b, shop_b, "Foreign", stock=7, sku="F-1")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_a(client, user_a):
    return auth_headers(get_auth_token(client, user_a.username))


@pytest.fixture(scope='function')
def headers_b(client, user_b):
    return auth_headers(get_auth_token(client, user_b.username))


def break_stock_updates(monkeypatch, module, *, item_id=None, times=None):
    """
    Make module.apply_stock_delta raise a lock error.

    Only updates of item_id fail when it is given, and only the first `times`
    of them when that is given. Retry backoff is disabled.
    """
    real = module.apply_stock_delta
    remaining = [times]

    def apply_stock_delta(item, delta):
        if item_id is None or item.id == item_id:
            if remaining[0] is None or remaining[0] > 0:
                if remaining[0] is not None:
                    remaining[0] -= 1
                raise OperationalError("UPDATE items", {}, Exception("database is locked"))
        return real(item, delta)

    monkeypatch.setattr(module, "apply_stock_delta", apply_stock_delta)
    monkeypatch.setattr("shopledger.services.concurrency.time.sleep", lambda _seconds: None)
