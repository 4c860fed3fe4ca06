from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z

class Sale(db.Model):
    """
    Sale header. Recorded atomically with its lines, the stock decrements and
    one ledger entry per line; never partially present.

    total_amount_cents is derived from the lines at record time and is not
    recomputed when catalog prices change later.
    """
    __tablename__ = "sales"
    __table_args__ = (
        # Replaying an idempotency key within a shop returns the original sale
        db.UniqueConstraint("shop_id", "idempotency_key", name="uq_sales_shop_idempotency_key"),
        db.Index("ix_sales_shop_date", "shop_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    idempotency_key = db.Column(db.String(128), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "total_amount_cents": self.total_amount_cents,
            "sale_date": to_utc_z(self.sale_date),
            "notes": self.notes,
            "idempotency_key": self.idempotency_key,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items_count": len(self.lines),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data

class SaleLine(db.Model):
    """Individual line on a sale; unit price is the price charged, not the catalog price."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Ledger entry written for this line
    ledger_entry_id = db.Column(db.Integer, db.ForeignKey("stock_ledger.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "ledger_entry_id": self.ledger_entry_id,
            "created_at": to_utc_z(self.created_at),
        }
