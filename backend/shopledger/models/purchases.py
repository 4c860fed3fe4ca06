from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z

class Purchase(db.Model):
    """
    Purchase (stock received from a supplier) header.

    Mirror of Sale: recorded atomically with its lines, the stock increments
    and one ledger entry per line.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "idempotency_key", name="uq_purchases_shop_idempotency_key"),
        db.Index("ix_purchases_shop_date", "shop_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    idempotency_key = db.Column(db.String(128), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("purchases", lazy=True))

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "total_amount_cents": self.total_amount_cents,
            "purchase_date": to_utc_z(self.purchase_date),
            "notes": self.notes,
            "idempotency_key": self.idempotency_key,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items_count": len(self.lines),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data

class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("stock_ledger.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("lines", lazy=True, order_by="PurchaseLine.id"))
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "ledger_entry_id": self.ledger_entry_id,
            "created_at": to_utc_z(self.created_at),
        }
