from __future__ import annotations

import logging

from ..extensions import db
from ..models import Item, Purchase, PurchaseLine, Sale, SaleLine, Shop, StockLedgerEntry
from ..validation import ConflictError, ValidationError
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .tenant_service import get_org_shops, require_shop_in_org

logger = logging.getLogger(__name__)

MAX_SHOP_NAME = 120


def _clean_name(name: str | None) -> str:
    if name is None or not str(name).strip():
        raise ValidationError("Shop name is required")
    name = str(name).strip()
    if len(name) > MAX_SHOP_NAME:
        raise ValidationError(f"name exceeds max length {MAX_SHOP_NAME}")
    return name


def _ensure_name_free(org_id: int, name: str, exclude_shop_id: int | None = None) -> None:
    q = db.session.query(Shop.id).filter(Shop.org_id == org_id, Shop.name == name)
    if exclude_shop_id is not None:
        q = q.filter(Shop.id != exclude_shop_id)
    if q.first() is not None:
        raise ConflictError("A shop with this name already exists.")


def list_shops(org_id: int) -> list[Shop]:
    return get_org_shops(org_id)


def create_shop(org_id: int, name: str, description: str | None = None) -> Shop:
    name = _clean_name(name)

    def _op():
        _ensure_name_free(org_id, name)
        shop = Shop(org_id=org_id, name=name, description=description)
        db.session.add(shop)
        db.session.commit()
        logger.info("Created shop %s for org %s", shop.id, org_id)
        return shop

    return run_with_retry(_op)


def update_shop(
    org_id: int,
    shop_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> Shop:
    if name is not None:
        name = _clean_name(name)

    def _op():
        shop = require_shop_in_org(shop_id, org_id)
        shop = lock_for_update(db.session.query(Shop).filter_by(id=shop.id)).first()

        if name is not None and name != shop.name:
            _ensure_name_free(org_id, name, exclude_shop_id=shop.id)
            shop.name = name
        if description is not None:
            shop.description = description
        if is_active is not None:
            shop.is_active = is_active

        db.session.commit()
        return shop

    return run_with_retry(_op)


def delete_shop(org_id: int, shop_id: int) -> dict:
    """
    Delete a shop and everything recorded under it in one transaction.

    Rows are removed children first so the result is the same whether or not
    the database enforces ON DELETE CASCADE (SQLite does not by default).
    Returns per-table counts of removed rows.
    """
    def _op():
        begin_write_transaction()
        shop = require_shop_in_org(shop_id, org_id)

        sale_ids = db.session.query(Sale.id).filter(Sale.shop_id == shop.id)
        purchase_ids = db.session.query(Purchase.id).filter(Purchase.shop_id == shop.id)

        removed = {
            "sale_lines": db.session.query(SaleLine)
            .filter(SaleLine.sale_id.in_(sale_ids.scalar_subquery()))
            .delete(synchronize_session=False),
            "purchase_lines": db.session.query(PurchaseLine)
            .filter(PurchaseLine.purchase_id.in_(purchase_ids.scalar_subquery()))
            .delete(synchronize_session=False),
            "ledger_entries": db.session.query(StockLedgerEntry)
            .filter(StockLedgerEntry.shop_id == shop.id)
            .delete(synchronize_session=False),
            "sales": db.session.query(Sale).filter(Sale.shop_id == shop.id).delete(synchronize_session=False),
            "purchases": db.session.query(Purchase)
            .filter(Purchase.shop_id == shop.id)
            .delete(synchronize_session=False),
            "items": db.session.query(Item).filter(Item.shop_id == shop.id).delete(synchronize_session=False),
        }

        removed["shops"] = db.session.query(Shop).filter(Shop.id == shop.id).delete(synchronize_session=False)
        db.session.commit()
        logger.info("Deleted shop %s (org %s): %s", shop_id, org_id, removed)
        return removed

    return run_with_retry(_op)
