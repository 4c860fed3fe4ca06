"""
Sales Service: multi-line sales recorded all-or-nothing

A sale writes a header, one line per requested item, one conditional stock
decrement per line and one 'out' ledger entry per line. All of it lives in a
single transaction; a failure anywhere leaves no trace.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Item, Sale, SaleLine
from ..models.inventory import KIND_OUT
from ..schemas import SaleLineRequest
from ..time_utils import utcnow
from ..validation import InsufficientStockError, NotFoundError, ValidationError, check_quantity
from .catalog_service import apply_stock_delta, ensure_item_active
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import append_ledger_entry
from .tenant_service import require_shop_in_org, resolve_shop_scope

logger = logging.getLogger(__name__)


def _check_lines(lines: Sequence[SaleLineRequest]) -> None:
    if not lines:
        raise ValidationError("At least one item is required")
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError("quantity must be > 0")
        check_quantity(line.quantity)
        if line.unit_price_cents < 0:
            raise ValidationError("unit_price_cents must be >= 0")


def _find_replay(shop_id: int, idempotency_key: str | None) -> Sale | None:
    if idempotency_key is None:
        return None
    return db.session.query(Sale).filter_by(shop_id=shop_id, idempotency_key=idempotency_key).first()


def _load_items(shop_id: int, lines: Sequence[SaleLineRequest]) -> dict[int, Item]:
    """Lock every referenced item; all must be active items of this shop."""
    item_ids = sorted({line.item_id for line in lines})
    items = {
        item.id: item
        for item in lock_for_update(
            db.session.query(Item).filter(Item.id.in_(item_ids)).order_by(Item.id.asc())
        ).all()
    }
    for item_id in item_ids:
        item = items.get(item_id)
        if item is None or item.shop_id != shop_id:
            raise NotFoundError(f"Item {item_id} not found in this shop")
        ensure_item_active(item)
    return items


def _validate_on_hand(lines: Sequence[SaleLineRequest], items: dict[int, Item]) -> None:
    """Repeated items are checked against their combined quantity, in request order."""
    requested: dict[int, int] = {}
    for line in lines:
        requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity

    for item_id, qty in requested.items():
        item = items[item_id]
        if item.current_stock < qty:
            logger.warning(
                "Rejected sale: item %s has %s, %s requested",
                item.id, item.current_stock, qty,
            )
            raise InsufficientStockError(
                item_id=item.id,
                item_name=item.name,
                current_stock=item.current_stock,
                requested_quantity=qty,
            )


def record_sale_or_replay(
    *,
    org_id: int,
    shop_id: int,
    lines: Sequence[SaleLineRequest],
    notes: str | None = None,
    sale_date: datetime | None = None,
    idempotency_key: str | None = None,
    actor_user_id: int | None = None,
) -> tuple[Sale, bool]:
    """
    Record a sale and decrement stock for every line.

    Totals use the caller's unit prices, which are snapshotted on the lines.
    Reusing an idempotency_key within the shop returns the original sale.
    Returns (sale, created); created is False for a replay.

    Raises:
        ValidationError: no lines, bad quantity or price, archived item
        NotFoundError: shop or item outside the organization or shop
        InsufficientStockError: the first item whose stock cannot cover it
    """
    _check_lines(lines)

    def _op():
        begin_write_transaction()
        shop = require_shop_in_org(shop_id, org_id)

        replay = _find_replay(shop.id, idempotency_key)
        if replay is not None:
            db.session.rollback()
            logger.info("Idempotent replay of sale %s (key=%s)", replay.id, idempotency_key)
            return replay, False

        items = _load_items(shop.id, lines)
        _validate_on_hand(lines, items)

        sale = Sale(
            shop_id=shop.id,
            total_amount_cents=sum(line.line_total_cents for line in lines),
            sale_date=sale_date or utcnow(),
            notes=notes,
            idempotency_key=idempotency_key,
            created_by_user_id=actor_user_id,
        )
        db.session.add(sale)
        db.session.flush()  # sale.id is needed for the ledger reason

        for line in lines:
            item = items[line.item_id]
            balance = apply_stock_delta(item, -line.quantity)
            entry = append_ledger_entry(
                item=item,
                kind=KIND_OUT,
                signed_quantity=-line.quantity,
                balance_after=balance,
                reason=f"Sale #{sale.id}",
                sale_id=sale.id,
                actor_user_id=actor_user_id,
            )
            db.session.add(
                SaleLine(
                    sale_id=sale.id,
                    item_id=item.id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                    ledger_entry_id=entry.id,
                )
            )

        db.session.commit()
        logger.info(
            "Recorded sale %s in shop %s: %s lines, total %s cents",
            sale.id, shop.id, len(lines), sale.total_amount_cents,
        )
        return sale, True

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # A concurrent request with the same key committed first
        replay = _find_replay(shop_id, idempotency_key)
        if replay is None:
            raise
        return replay, False


def record_sale(*, org_id: int, shop_id: int, lines: Sequence[SaleLineRequest], **options) -> Sale:
    """record_sale_or_replay() for callers that do not care whether the sale is new."""
    sale, _ = record_sale_or_replay(org_id=org_id, shop_id=shop_id, lines=lines, **options)
    return sale


def get_sale(org_id: int, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None or sale.shop_id not in resolve_shop_scope(org_id):
        raise NotFoundError("Sale not found")
    return sale


def list_sales(org_id: int, shop_id: int | None = None, limit: int = 50) -> list[Sale]:
    shop_ids = resolve_shop_scope(org_id, shop_id)
    if not shop_ids:
        return []
    return (
        db.session.query(Sale)
        .filter(Sale.shop_id.in_(shop_ids))
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )
