# Overview: Service-layer operations for the stock ledger; append-only writes and reconciliation reads.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import Item, Shop, StockLedgerEntry
"""
Stock Ledger Invariants (authoritative)

- Append-only: entries are inserted, never updated. They disappear only when
  their whole shop is deleted.
- Every entry is written inside the same DB transaction as the
  Item.current_stock change it explains.
- For every item: SUM(signed_quantity) == Item.current_stock, and the newest
  entry's balance_after == Item.current_stock.
- Ordering within an item is commit order, i.e. ascending id.
"""


def append_ledger_entry(
    *,
    item: Item,
    kind: str,
    signed_quantity: int,
    balance_after: int,
    reason: str | None = None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
    actor_user_id: int | None = None,
) -> StockLedgerEntry:
    """
    Append one ledger entry to the current transaction.

    No commit here: the caller owns the unit of work.
    """
    entry = StockLedgerEntry(
        item_id=item.id,
        shop_id=item.shop_id,
        kind=kind,
        signed_quantity=signed_quantity,
        balance_after=balance_after,
        reason=reason,
        sale_id=sale_id,
        purchase_id=purchase_id,
        actor_user_id=actor_user_id,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def ledger_balance(item_id: int) -> int:
    """Stock level reconstructed from the ledger alone."""
    total = db.session.query(
        func.coalesce(func.sum(StockLedgerEntry.signed_quantity), 0)
    ).filter(StockLedgerEntry.item_id == item_id).scalar()
    return int(total or 0)


def list_ledger_entries(
    *,
    shop_ids: set[int],
    item_id: int | None = None,
    limit: int = 50,
) -> list[StockLedgerEntry]:
    """Newest first; restricted to the given (already tenant-validated) shops."""
    if not shop_ids:
        return []
    q = db.session.query(StockLedgerEntry).filter(StockLedgerEntry.shop_id.in_(shop_ids))
    if item_id is not None:
        q = q.filter(StockLedgerEntry.item_id == item_id)
    return q.order_by(StockLedgerEntry.id.desc()).limit(limit).all()


@dataclass
class ReconciliationResult:
    item_id: int
    current_stock: int
    ledger_sum: int
    last_balance_after: int | None
    entry_count: int

    @property
    def is_consistent(self) -> bool:
        if self.ledger_sum != self.current_stock:
            return False
        if self.entry_count == 0:
            return self.current_stock == 0
        return self.last_balance_after == self.current_stock

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "current_stock": self.current_stock,
            "ledger_sum": self.ledger_sum,
            "last_balance_after": self.last_balance_after,
            "entry_count": self.entry_count,
            "is_consistent": self.is_consistent,
        }


def reconcile_item(item: Item) -> ReconciliationResult:
    """Compare an item's counter with its ledger."""
    last = (
        db.session.query(StockLedgerEntry)
        .filter_by(item_id=item.id)
        .order_by(StockLedgerEntry.id.desc())
        .first()
    )
    count = db.session.query(func.count(StockLedgerEntry.id)).filter_by(item_id=item.id).scalar()
    return ReconciliationResult(
        item_id=item.id,
        current_stock=item.current_stock,
        ledger_sum=ledger_balance(item.id),
        last_balance_after=last.balance_after if last else None,
        entry_count=int(count or 0),
    )


def find_ledger_drift(org_id: int | None = None) -> list[ReconciliationResult]:
    """
    Items whose counter disagrees with their ledger.

    Scans every item (optionally one organization). Used by the
    `flask ledger verify` command.
    """
    q = db.session.query(Item)
    if org_id is not None:
        q = q.join(Shop, Shop.id == Item.shop_id).filter(Shop.org_id == org_id)

    drift = []
    for item in q.order_by(Item.id.asc()).all():
        result = reconcile_item(item)
        if not result.is_consistent:
            drift.append(result)
    return drift
