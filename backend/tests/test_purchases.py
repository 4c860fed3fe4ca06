# Overview: Pytest coverage for the purchase transaction engine.

import pytest
from sqlalchemy import update

from shopledger.models import Item, Purchase, PurchaseLine, StockLedgerEntry
from shopledger.schemas import PurchaseLineRequest
from shopledger.services import purchase_service
from shopledger.services.catalog_service import archive_item
from shopledger.services.ledger_service import find_ledger_drift, ledger_balance
from shopledger.services.purchase_service import (
    get_purchase,
    list_purchases,
    record_purchase,
    record_purchase_or_replay,
)
from shopledger.validation import MAX_QUANTITY, MAX_STOCK, NotFoundError, StoreUnavailableError, ValidationError

from conftest import break_stock_updates


class TestRecordPurchase:
    def test_purchase_increments_stock(self, db_session, org_a, shop_a, widget, gadget):
        purchase = record_purchase(
            org_id=org_a.id,
            shop_id=shop_a.id,
            lines=[PurchaseLineRequest(widget.id, 20, 250), PurchaseLineRequest(gadget.id, 5, 700)],
            notes="Supplier delivery",
        )

        assert purchase.total_amount_cents == 20 * 250 + 5 * 700
        assert db_session.get(Item, widget.id).current_stock == 30
        assert db_session.get(Item, gadget.id).current_stock == 10
        assert [line.unit_cost_cents for line in purchase.lines] == [250, 700]

    def test_ledger_entries(self, db_session, org_a, shop_a, widget):
        purchase = record_purchase(
            org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 4, 250)]
        )

        entry = db_session.query(StockLedgerEntry).filter_by(purchase_id=purchase.id).one()
        assert entry.kind == "in"
        assert entry.signed_quantity == 4
        assert entry.balance_after == 14
        assert entry.reason == f"Purchase #{purchase.id}"
        assert purchase.lines[0].ledger_entry_id == entry.id
        assert ledger_balance(widget.id) == 14

    def test_purchase_into_empty_item(self, db_session, org_a, shop_a, item_factory):
        empty = item_factory(org_a, shop_a, "Fresh", stock=0)

        record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(empty.id, 3, 100)])

        assert db_session.get(Item, empty.id).current_stock == 3
        assert ledger_balance(empty.id) == 3

    def test_unknown_item_writes_nothing(self, db_session, org_a, shop_a, widget):
        with pytest.raises(NotFoundError):
            record_purchase(
                org_id=org_a.id,
                shop_id=shop_a.id,
                lines=[PurchaseLineRequest(widget.id, 1, 100), PurchaseLineRequest(99999, 1, 100)],
            )

        assert db_session.query(Purchase).count() == 0
        assert db_session.query(PurchaseLine).count() == 0
        assert db_session.get(Item, widget.id).current_stock == 10

    def test_negative_cost_is_rejected(self, db_session, org_a, shop_a, widget):
        with pytest.raises(ValidationError):
            record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 1, -5)])

    def test_archived_item_is_rejected(self, db_session, org_a, shop_a, widget):
        archive_item(org_id=org_a.id, item_id=widget.id)

        with pytest.raises(ValidationError):
            record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 1, 100)])

    def test_other_org_shop_is_not_found(self, db_session, org_a, shop_b, foreign_item):
        with pytest.raises(NotFoundError):
            record_purchase(
                org_id=org_a.id, shop_id=shop_b.id, lines=[PurchaseLineRequest(foreign_item.id, 1, 100)]
            )

        assert db_session.get(Item, foreign_item.id).current_stock == 7

    def test_idempotent_replay(self, db_session, org_a, shop_a, widget):
        lines = [PurchaseLineRequest(widget.id, 5, 100)]
        first = record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=lines, idempotency_key="po-1")
        second = record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=lines, idempotency_key="po-1")

        assert first.id == second.id
        assert db_session.get(Item, widget.id).current_stock == 15

    def test_replay_is_flagged_as_not_created(self, db_session, org_a, shop_a, widget):
        lines = [PurchaseLineRequest(widget.id, 5, 100)]

        _, first_created = record_purchase_or_replay(
            org_id=org_a.id, shop_id=shop_a.id, lines=lines, idempotency_key="po-2"
        )
        _, second_created = record_purchase_or_replay(
            org_id=org_a.id, shop_id=shop_a.id, lines=lines, idempotency_key="po-2"
        )

        assert (first_created, second_created) == (True, False)


class TestPurchaseLimits:
    def test_oversized_quantity_is_rejected(self, db_session, org_a, shop_a, widget):
        with pytest.raises(ValidationError):
            record_purchase(
                org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, MAX_QUANTITY + 1, 100)]
            )

        assert db_session.query(Purchase).count() == 0
        assert db_session.get(Item, widget.id).current_stock == 10

    def test_stock_ceiling(self, db_session, org_a, shop_a, widget):
        db_session.execute(update(Item).where(Item.id == widget.id).values(current_stock=MAX_STOCK - 10))
        db_session.commit()
        entries = db_session.query(StockLedgerEntry).count()

        with pytest.raises(ValidationError):
            record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 11, 100)])

        assert db_session.query(Purchase).count() == 0
        assert db_session.query(StockLedgerEntry).count() == entries
        assert db_session.get(Item, widget.id).current_stock == MAX_STOCK - 10

        record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 10, 100)])
        assert db_session.get(Item, widget.id).current_stock == MAX_STOCK

    def test_repeated_max_purchases_stop_at_ceiling(self, db_session, org_a, shop_a, widget):
        db_session.execute(
            update(Item).where(Item.id == widget.id).values(current_stock=MAX_STOCK - MAX_QUANTITY - 1)
        )
        db_session.commit()
        lines = [PurchaseLineRequest(widget.id, MAX_QUANTITY, 1)]

        record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=lines)
        with pytest.raises(ValidationError):
            record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=lines)

        assert db_session.query(Purchase).count() == 1
        assert db_session.get(Item, widget.id).current_stock == MAX_STOCK - 1


class TestPurchaseWriteFailures:
    def test_lock_error_on_second_line_writes_nothing(self, monkeypatch, db_session, org_a, shop_a, widget, gadget):
        entries = db_session.query(StockLedgerEntry).count()
        break_stock_updates(monkeypatch, purchase_service, item_id=gadget.id)

        with pytest.raises(StoreUnavailableError):
            record_purchase(
                org_id=org_a.id,
                shop_id=shop_a.id,
                lines=[PurchaseLineRequest(widget.id, 20, 250), PurchaseLineRequest(gadget.id, 5, 700)],
            )

        assert db_session.query(Purchase).count() == 0
        assert db_session.query(PurchaseLine).count() == 0
        assert db_session.query(StockLedgerEntry).count() == entries
        assert db_session.get(Item, widget.id).current_stock == 10
        assert db_session.get(Item, gadget.id).current_stock == 5
        assert find_ledger_drift() == []

    def test_transient_lock_error_is_retried(self, monkeypatch, db_session, org_a, shop_a, widget, gadget):
        break_stock_updates(monkeypatch, purchase_service, item_id=gadget.id, times=2)

        record_purchase(
            org_id=org_a.id,
            shop_id=shop_a.id,
            lines=[PurchaseLineRequest(widget.id, 20, 250), PurchaseLineRequest(gadget.id, 5, 700)],
        )

        assert db_session.query(Purchase).count() == 1
        assert db_session.get(Item, widget.id).current_stock == 30
        assert db_session.get(Item, gadget.id).current_stock == 10
        assert find_ledger_drift() == []


class TestPurchaseQueries:
    def test_get_purchase_other_org(self, db_session, org_a, org_b, shop_a, widget):
        purchase = record_purchase(
            org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 1, 100)]
        )

        assert get_purchase(org_a.id, purchase.id).id == purchase.id
        with pytest.raises(NotFoundError):
            get_purchase(org_b.id, purchase.id)

    def test_list_purchases_by_shop(self, db_session, org_a, shop_a, shop_a2, widget, item_factory):
        other = item_factory(org_a, shop_a2, "Other", stock=0)
        record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(widget.id, 1, 100)])
        record_purchase(org_id=org_a.id, shop_id=shop_a2.id, lines=[PurchaseLineRequest(other.id, 1, 100)])

        assert len(list_purchases(org_a.id)) == 2
        assert [p.shop_id for p in list_purchases(org_a.id, shop_a2.id)] == [shop_a2.id]
