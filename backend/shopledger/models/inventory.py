from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z

# Ledger entry kinds
KIND_IN = "in"
KIND_OUT = "out"
KIND_ADJUSTMENT = "adjustment"
LEDGER_KINDS = (KIND_IN, KIND_OUT, KIND_ADJUSTMENT)


class Item(db.Model):
    """
    Stockable product owned by one shop.

    STOCK DESIGN DECISION:
    Item.current_stock is the authoritative on-hand counter, maintained
    incrementally. It is written only by catalog_service.apply_stock_delta,
    always in the same DB transaction as the StockLedgerEntry that explains
    the change, so SUM(stock_ledger.signed_quantity) == current_stock.

    - current_stock >= 0 is enforced by the engines and by a CHECK constraint
    - Prices are captured in cents; sales/purchases snapshot them per line
    - Items are archived (is_active=False), never hard-deleted on their own
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "sku", name="uq_items_shop_sku"),
        db.CheckConstraint("current_stock >= 0", name="ck_items_current_stock_nonneg"),
        db.Index("ix_items_shop_name", "shop_id", "name"),
        db.Index("ix_items_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    # Optional; unique within a shop when present
    sku = db.Column(db.String(64), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} shop_id={self.shop_id} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "current_stock": self.current_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLedgerEntry(db.Model):
    """
    Immutable record of one stock movement.

    Rows are inserted only by the movement, sale and purchase engines and are
    never updated. balance_after is the item's current_stock right after the
    entry was applied.
    """
    __tablename__ = "stock_ledger"
    __table_args__ = (
        db.CheckConstraint("kind IN ('in', 'out', 'adjustment')", name="ck_stock_ledger_kind"),
        db.CheckConstraint("signed_quantity <> 0", name="ck_stock_ledger_nonzero"),
        db.Index("ix_stock_ledger_item_created", "item_id", "created_at"),
        db.Index("ix_stock_ledger_shop_created", "shop_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    # Denormalized for shop-scoped listings
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)

    kind = db.Column(db.String(16), nullable=False, index=True)
    signed_quantity = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=True, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id", ondelete="CASCADE"), nullable=True, index=True)

    actor_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    item = db.relationship("Item", backref=db.backref("ledger_entries", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "shop_id": self.shop_id,
            "kind": self.kind,
            "signed_quantity": self.signed_quantity,
            "balance_after": self.balance_after,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "purchase_id": self.purchase_id,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }
