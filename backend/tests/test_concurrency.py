# Overview: Pytest coverage for concurrent writers against a shared database file.

"""
Concurrency tests.

The in-memory database used elsewhere shares one connection, so these tests
run against a file database where every thread gets its own connection and
session. Writers race on the same item; the stock counter must never go
negative and must always match the ledger.
"""

import threading

import pytest

from shopledger import create_app
from shopledger.config import TestConfig
from shopledger.extensions import db
from shopledger.models import Item, Organization, Sale, Shop
from shopledger.schemas import SaleLineRequest
from shopledger.services.catalog_service import create_item
from shopledger.services.ledger_service import find_ledger_drift, ledger_balance
from shopledger.services.movement_service import record_movement
from shopledger.services.sales_service import record_sale
from shopledger.validation import InsufficientStockError


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ledger.sqlite3'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}
        DB_RETRY_ATTEMPTS = 5

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    """Org, shop and one item with 10 in stock. Returns plain ids."""
    with file_app.app_context():
        org = Organization(name="Race Org", code="RACE")
        db.session.add(org)
        db.session.commit()
        shop = Shop(org_id=org.id, name="Race Shop")
        db.session.add(shop)
        db.session.commit()
        item = create_item(org_id=org.id, shop_id=shop.id, patch={"name": "Scarce"}, initial_stock=10)
        return {"org_id": org.id, "shop_id": shop.id, "item_id": item.id}


def _race(file_app, count, work):
    """Run work() in count threads released at the same moment; collect outcomes."""
    barrier = threading.Barrier(count)
    outcomes = []
    lock = threading.Lock()

    def runner():
        with file_app.app_context():
            barrier.wait()
            try:
                work()
                outcome = "ok"
            except InsufficientStockError:
                outcome = "insufficient"
            with lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=runner) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


class TestConcurrentWriters:
    def test_two_outs_cannot_both_succeed(self, file_app, seeded):
        outcomes = _race(
            file_app,
            2,
            lambda: record_movement(org_id=seeded["org_id"], item_id=seeded["item_id"], kind="out", quantity=6),
        )

        assert sorted(outcomes) == ["insufficient", "ok"]
        with file_app.app_context():
            assert db.session.get(Item, seeded["item_id"]).current_stock == 4
            assert ledger_balance(seeded["item_id"]) == 4

    def test_many_sales_never_oversell(self, file_app, seeded):
        outcomes = _race(
            file_app,
            12,
            lambda: record_sale(
                org_id=seeded["org_id"],
                shop_id=seeded["shop_id"],
                lines=[SaleLineRequest(seeded["item_id"], 1, 100)],
            ),
        )

        assert outcomes.count("ok") == 10
        assert outcomes.count("insufficient") == 2
        with file_app.app_context():
            assert db.session.get(Item, seeded["item_id"]).current_stock == 0
            assert db.session.query(Sale).count() == 10
            assert find_ledger_drift() == []

    def test_mixed_in_and_out_stay_consistent(self, file_app, seeded):
        def work_in():
            record_movement(org_id=seeded["org_id"], item_id=seeded["item_id"], kind="in", quantity=2)

        def work_out():
            record_movement(org_id=seeded["org_id"], item_id=seeded["item_id"], kind="out", quantity=3)

        flip = iter([work_in, work_out] * 5)
        flip_lock = threading.Lock()

        def work():
            with flip_lock:
                chosen = next(flip)
            chosen()

        _race(file_app, 10, work)

        with file_app.app_context():
            item = db.session.get(Item, seeded["item_id"])
            assert item.current_stock >= 0
            assert item.current_stock == ledger_balance(item.id)
