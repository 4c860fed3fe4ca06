# Overview: Stock movement engine; applies one in/out/adjustment delta together with its ledger entry.

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import Item, StockLedgerEntry
from ..models.inventory import KIND_ADJUSTMENT, KIND_IN, KIND_OUT, LEDGER_KINDS
from ..validation import InsufficientStockError, ValidationError, check_quantity
from .catalog_service import apply_stock_delta, ensure_item_active
from .concurrency import begin_write_transaction, run_with_retry
from .ledger_service import append_ledger_entry, list_ledger_entries
from .tenant_service import require_item_in_org, resolve_shop_scope

logger = logging.getLogger(__name__)


@dataclass
class MovementResult:
    item: Item
    ledger_entry: StockLedgerEntry

    def to_dict(self) -> dict:
        return {
            "item": self.item.to_dict(),
            "transaction": self.ledger_entry.to_dict(),
        }


def signed_delta(kind: str, quantity: int) -> int:
    """
    in -> +|q|, out -> -|q|, adjustment -> q as given.

    The sign of an in/out quantity is ignored here; boundary schemas reject
    negative in/out quantities before they reach the engine.
    """
    if kind == KIND_IN:
        return abs(quantity)
    if kind == KIND_OUT:
        return -abs(quantity)
    if kind == KIND_ADJUSTMENT:
        return quantity
    raise ValidationError("Valid transaction type is required (in, out, adjustment)")


def record_movement(
    *,
    org_id: int,
    item_id: int,
    kind: str,
    quantity: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> MovementResult:
    """
    Apply one stock movement atomically.

    The counter update and the ledger entry commit together or not at all.
    A rejected movement leaves neither the item nor the ledger changed.

    Raises:
        NotFoundError: item missing or outside the organization
        ValidationError: unknown kind, zero or oversized quantity, archived
            item, or stock that would exceed MAX_STOCK
        InsufficientStockError: the movement would make stock negative
    """
    if kind not in LEDGER_KINDS:
        raise ValidationError("Valid transaction type is required (in, out, adjustment)")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")
    check_quantity(quantity)
    delta = signed_delta(kind, quantity)

    def _op():
        begin_write_transaction()
        item = require_item_in_org(item_id, org_id, lock=True)
        ensure_item_active(item)

        if item.current_stock + delta < 0:
            logger.warning(
                "Rejected %s of %s for item %s: only %s in stock",
                kind, abs(delta), item.id, item.current_stock,
            )
            raise InsufficientStockError(
                item_id=item.id,
                item_name=item.name,
                current_stock=item.current_stock,
                requested_quantity=abs(delta),
            )

        balance = apply_stock_delta(item, delta)
        entry = append_ledger_entry(
            item=item,
            kind=kind,
            signed_quantity=delta,
            balance_after=balance,
            reason=reason,
            actor_user_id=actor_user_id,
        )

        db.session.commit()
        logger.info("Recorded %s movement %+d for item %s, stock now %s", kind, delta, item.id, balance)
        return MovementResult(item=item, ledger_entry=entry)

    return run_with_retry(_op)


def list_movements(
    *,
    org_id: int,
    shop_id: int | None = None,
    item_id: int | None = None,
    limit: int = 50,
) -> list[StockLedgerEntry]:
    """Recent ledger entries for the organization, newest first."""
    if item_id is not None:
        item = require_item_in_org(item_id, org_id)
        if shop_id is not None and item.shop_id != shop_id:
            return []
        return list_ledger_entries(shop_ids={item.shop_id}, item_id=item.id, limit=limit)

    return list_ledger_entries(shop_ids=resolve_shop_scope(org_id, shop_id), limit=limit)
