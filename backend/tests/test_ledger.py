# Overview: Pytest coverage for ledger reconstruction and drift detection.

import pytest
from sqlalchemy import update

from shopledger.models import Item
from shopledger.schemas import PurchaseLineRequest, SaleLineRequest
from shopledger.services.ledger_service import find_ledger_drift, ledger_balance, list_ledger_entries, reconcile_item
from shopledger.services.movement_service import record_movement
from shopledger.services.purchase_service import record_purchase
from shopledger.services.sales_service import record_sale
from shopledger.validation import InsufficientStockError


def _tamper(db_session, item_id, stock):
    db_session.execute(update(Item).where(Item.id == item_id).values(current_stock=stock))
    db_session.commit()


class TestLedgerReconstruction:
    def test_mixed_operations_reconcile(self, db_session, org_a, shop_a, widget, gadget):
        record_movement(org_id=org_a.id, item_id=widget.id, kind="in", quantity=5)
        record_sale(
            org_id=org_a.id,
            shop_id=shop_a.id,
            lines=[SaleLineRequest(widget.id, 3, 500), SaleLineRequest(gadget.id, 2, 1200)],
        )
        record_purchase(org_id=org_a.id, shop_id=shop_a.id, lines=[PurchaseLineRequest(gadget.id, 10, 600)])
        record_movement(org_id=org_a.id, item_id=gadget.id, kind="adjustment", quantity=-1)

        with pytest.raises(InsufficientStockError):
            record_movement(org_id=org_a.id, item_id=widget.id, kind="out", quantity=1000)

        for item_id, expected in [(widget.id, 12), (gadget.id, 12)]:
            item = db_session.get(Item, item_id)
            assert item.current_stock == expected
            assert ledger_balance(item_id) == expected
            assert reconcile_item(item).is_consistent

        assert find_ledger_drift(org_a.id) == []

    def test_empty_item_is_consistent(self, db_session, org_a, shop_a, item_factory):
        item = item_factory(org_a, shop_a, "Nothing", stock=0)

        result = reconcile_item(item)
        assert result.entry_count == 0
        assert result.is_consistent


class TestLedgerDrift:
    def test_tampered_counter_is_reported(self, db_session, org_a, widget, gadget):
        _tamper(db_session, widget.id, 42)

        drift = find_ledger_drift(org_a.id)

        assert [r.item_id for r in drift] == [widget.id]
        assert drift[0].current_stock == 42
        assert drift[0].ledger_sum == 10
        assert drift[0].to_dict()["is_consistent"] is False

    def test_drift_scan_is_org_scoped(self, db_session, org_a, org_b, widget, foreign_item):
        _tamper(db_session, foreign_item.id, 0)

        assert find_ledger_drift(org_a.id) == []
        assert [r.item_id for r in find_ledger_drift(org_b.id)] == [foreign_item.id]
        assert [r.item_id for r in find_ledger_drift()] == [foreign_item.id]


class TestListLedgerEntries:
    def test_empty_scope(self, db_session, widget):
        assert list_ledger_entries(shop_ids=set()) == []

    def test_filters_by_item(self, db_session, org_a, shop_a, widget, gadget):
        entries = list_ledger_entries(shop_ids={shop_a.id}, item_id=gadget.id)
        assert [e.item_id for e in entries] == [gadget.id]
