# Overview: Service-layer operations for the item catalog; owns the only writer of Item.current_stock.

"""
Item Catalog Service

MULTI-TENANT: every lookup is scoped through the item's shop to an
organization. Items outside the caller's organization are reported as
missing.

Stock changes never go through the metadata helpers in this module:
apply_stock_delta() is the single primitive the movement, sale and purchase
engines use, and each of them pairs it with a ledger entry in the same
transaction.
"""
from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Item
from ..models.inventory import KIND_IN
from ..validation import MAX_STOCK, ConflictError, InsufficientStockError, ValidationError, check_quantity
from .concurrency import begin_write_transaction, run_with_retry
from .ledger_service import append_ledger_entry
from .tenant_service import require_item_in_org, require_shop_in_org, resolve_shop_scope

logger = logging.getLogger(__name__)

ITEM_MUTABLE_FIELDS = {
    "name",
    "description",
    "sku",
    "unit_price_cents",
    "cost_price_cents",
    "low_stock_threshold",
}

INITIAL_STOCK_REASON = "Initial stock"


def apply_item_patch(item: Item, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_MUTABLE_FIELDS:
            continue
        setattr(item, k, v)


def _ensure_sku_free(shop_id: int, sku: str | None, exclude_item_id: int | None = None) -> None:
    if sku is None:
        return
    q = db.session.query(Item.id).filter(Item.shop_id == shop_id, Item.sku == sku)
    if exclude_item_id is not None:
        q = q.filter(Item.id != exclude_item_id)
    if q.first() is not None:
        raise ConflictError("SKU already exists for this shop.")


def _default_threshold() -> int:
    return int(current_app.config.get("LOW_STOCK_DEFAULT_THRESHOLD", 5))


def get_item(org_id: int, item_id: int) -> Item:
    """Raises NotFoundError if the item is missing or outside the organization."""
    return require_item_in_org(item_id, org_id)


def list_items(org_id: int, shop_id: int | None = None, include_archived: bool = False) -> list[Item]:
    shop_ids = resolve_shop_scope(org_id, shop_id)
    if not shop_ids:
        return []

    q = db.session.query(Item).filter(Item.shop_id.in_(shop_ids))
    if not include_archived:
        q = q.filter(Item.is_active.is_(True))
    return q.order_by(Item.name.asc(), Item.id.asc()).all()


def list_low_stock_items(org_id: int, shop_id: int | None = None) -> list[Item]:
    """Active items at or below their threshold, emptiest first."""
    shop_ids = resolve_shop_scope(org_id, shop_id)
    if not shop_ids:
        return []

    return (
        db.session.query(Item)
        .filter(
            Item.shop_id.in_(shop_ids),
            Item.is_active.is_(True),
            Item.current_stock <= Item.low_stock_threshold,
        )
        .order_by(Item.current_stock.asc(), Item.name.asc(), Item.id.asc())
        .all()
    )


def apply_stock_delta(item: Item, delta: int) -> int:
    """
    Atomically move item.current_stock by delta inside the caller's transaction.

    Emits a single conditional UPDATE; the stock check and the write are the
    same statement, so two writers can never both pass the check against the
    same starting value. Returns the new stock level.

    Raises:
        InsufficientStockError if the update would drive stock below zero
        ValidationError if the update would push stock above MAX_STOCK
    """
    result = db.session.execute(
        update(Item)
        .where(
            Item.id == item.id,
            Item.current_stock + delta >= 0,
            Item.current_stock + delta <= MAX_STOCK,
        )
        .values(
            current_stock=Item.current_stock + delta,
            version_id=Item.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        db.session.refresh(item)
        if item.current_stock + delta > MAX_STOCK:
            logger.warning(
                "Rejected stock change for item %s: stock=%s delta=%s exceeds %s",
                item.id, item.current_stock, delta, MAX_STOCK,
            )
            raise ValidationError(f"Stock for {item.name} cannot exceed {MAX_STOCK}")
        logger.warning(
            "Rejected stock change for item %s: stock=%s delta=%s",
            item.id, item.current_stock, delta,
        )
        raise InsufficientStockError(
            item_id=item.id,
            item_name=item.name,
            current_stock=item.current_stock,
            requested_quantity=abs(delta),
        )

    db.session.refresh(item)
    return item.current_stock


def create_item(
    *,
    org_id: int,
    shop_id: int,
    patch: dict,
    initial_stock: int = 0,
    actor_user_id: int | None = None,
) -> Item:
    """
    Create an item, seeding its stock through the ledger.

    A positive initial_stock is recorded as an 'in' entry so the ledger sum
    matches current_stock from the first row.

    Raises:
        NotFoundError: shop outside the organization
        ConflictError: SKU already used in the shop
        ValidationError: negative or oversized initial stock
    """
    if initial_stock < 0:
        raise ValidationError("initial_stock must be >= 0")
    check_quantity(initial_stock, "initial_stock")

    def _op():
        begin_write_transaction()
        shop = require_shop_in_org(shop_id, org_id)
        _ensure_sku_free(shop.id, patch.get("sku"))

        item = Item(shop_id=shop.id, current_stock=0, low_stock_threshold=_default_threshold())
        apply_item_patch(item, patch)
        db.session.add(item)
        db.session.flush()  # ensure item.id exists before the ledger append

        if initial_stock > 0:
            balance = apply_stock_delta(item, initial_stock)
            append_ledger_entry(
                item=item,
                kind=KIND_IN,
                signed_quantity=initial_stock,
                balance_after=balance,
                reason=INITIAL_STOCK_REASON,
                actor_user_id=actor_user_id,
            )

        db.session.commit()
        logger.info("Created item %s in shop %s with stock %s", item.id, shop.id, initial_stock)
        return item

    return run_with_retry(_op)


def update_item_metadata(*, org_id: int, item_id: int, patch: dict) -> Item:
    """
    Update descriptive and pricing fields. Never touches current_stock.

    Raises:
        ValidationError: patch tries to set current_stock
        ConflictError: new SKU already used in the shop
    """
    if "current_stock" in patch:
        raise ValidationError("current_stock can only change through stock transactions")

    def _op():
        item = require_item_in_org(item_id, org_id)
        if "sku" in patch and patch["sku"] != item.sku:
            _ensure_sku_free(item.shop_id, patch["sku"], exclude_item_id=item.id)

        apply_item_patch(item, patch)
        db.session.commit()
        return item

    return run_with_retry(_op)


def archive_item(*, org_id: int, item_id: int) -> Item:
    """
    Soft-delete an item.

    History (ledger entries, sale and purchase lines) is preserved. Archived
    items no longer accept stock transactions.
    """
    def _op():
        item = require_item_in_org(item_id, org_id)
        if item.is_active:
            item.is_active = False
            logger.info("Archived item %s", item.id)
        db.session.commit()
        return item

    return run_with_retry(_op)


def ensure_item_active(item: Item) -> None:
    if not item.is_active:
        raise ValidationError(f"Item {item.id} is archived")
