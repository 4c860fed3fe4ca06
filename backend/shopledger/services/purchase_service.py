# Overview: Purchase engine; receives stock for several items in one all-or-nothing transaction.

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Item, Purchase, PurchaseLine
from ..models.inventory import KIND_IN
from ..schemas import PurchaseLineRequest
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, check_quantity
from .catalog_service import apply_stock_delta, ensure_item_active
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import append_ledger_entry
from .tenant_service import require_shop_in_org, resolve_shop_scope

logger = logging.getLogger(__name__)


def _find_replay(shop_id: int, idempotency_key: str | None) -> Purchase | None:
    if idempotency_key is None:
        return None
    return db.session.query(Purchase).filter_by(shop_id=shop_id, idempotency_key=idempotency_key).first()


def record_purchase_or_replay(
    *,
    org_id: int,
    shop_id: int,
    lines: Sequence[PurchaseLineRequest],
    notes: str | None = None,
    purchase_date: datetime | None = None,
    idempotency_key: str | None = None,
    actor_user_id: int | None = None,
) -> tuple[Purchase, bool]:
    """
    Record a purchase and increment stock for every line.
    Returns (purchase, created); created is False for an idempotent replay.

    No sufficiency check: purchases only add stock. The header, lines,
    increments and 'in' ledger entries commit together.

    Raises:
        ValidationError: no lines, bad quantity or cost, archived item, or
            stock that would exceed MAX_STOCK
        NotFoundError: shop or item outside the organization or shop
    """
    if not lines:
        raise ValidationError("At least one item is required")
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError("quantity must be > 0")
        check_quantity(line.quantity)
        if line.unit_cost_cents < 0:
            raise ValidationError("unit_cost_cents must be >= 0")

    def _op():
        begin_write_transaction()
        shop = require_shop_in_org(shop_id, org_id)

        replay = _find_replay(shop.id, idempotency_key)
        if replay is not None:
            db.session.rollback()
            logger.info("Idempotent replay of purchase %s (key=%s)", replay.id, idempotency_key)
            return replay, False

        item_ids = sorted({line.item_id for line in lines})
        items = {
            item.id: item
            for item in lock_for_update(db.session.query(Item).filter(Item.id.in_(item_ids))).all()
        }
        for item_id in item_ids:
            item = items.get(item_id)
            if item is None or item.shop_id != shop.id:
                raise NotFoundError(f"Item {item_id} not found in this shop")
            ensure_item_active(item)

        purchase = Purchase(
            shop_id=shop.id,
            total_amount_cents=sum(line.line_total_cents for line in lines),
            purchase_date=purchase_date or utcnow(),
            notes=notes,
            idempotency_key=idempotency_key,
            created_by_user_id=actor_user_id,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in lines:
            item = items[line.item_id]
            balance = apply_stock_delta(item, line.quantity)
            entry = append_ledger_entry(
                item=item,
                kind=KIND_IN,
                signed_quantity=line.quantity,
                balance_after=balance,
                reason=f"Purchase #{purchase.id}",
                purchase_id=purchase.id,
                actor_user_id=actor_user_id,
            )
            db.session.add(
                PurchaseLine(
                    purchase_id=purchase.id,
                    item_id=item.id,
                    quantity=line.quantity,
                    unit_cost_cents=line.unit_cost_cents,
                    line_total_cents=line.line_total_cents,
                    ledger_entry_id=entry.id,
                )
            )

        db.session.commit()
        logger.info(
            "Recorded purchase %s in shop %s: %s lines, total %s cents",
            purchase.id, shop.id, len(lines), purchase.total_amount_cents,
        )
        return purchase, True

    try:
        return run_with_retry(_op)
    except IntegrityError:
        replay = _find_replay(shop_id, idempotency_key)
        if replay is None:
            raise
        return replay, False


def record_purchase(*, org_id: int, shop_id: int, lines: Sequence[PurchaseLineRequest], **options) -> Purchase:
    """record_purchase_or_replay() for callers that do not care whether the purchase is new."""
    purchase, _ = record_purchase_or_replay(org_id=org_id, shop_id=shop_id, lines=lines, **options)
    return purchase


def get_purchase(org_id: int, purchase_id: int) -> Purchase:
    purchase = db.session.query(Purchase).filter_by(id=purchase_id).first()
    if purchase is None or purchase.shop_id not in resolve_shop_scope(org_id):
        raise NotFoundError("Purchase not found")
    return purchase


def list_purchases(org_id: int, shop_id: int | None = None, limit: int = 50) -> list[Purchase]:
    shop_ids = resolve_shop_scope(org_id, shop_id)
    if not shop_ids:
        return []
    return (
        db.session.query(Purchase)
        .filter(Purchase.shop_id.in_(shop_ids))
        .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .limit(limit)
        .all()
    )
