# Overview: Typed request bodies for the stock-changing operations.

"""
Request schemas for movements, sales and purchases.

Request bodies arrive as untyped JSON. Each stock-changing operation parses
its body exactly once, here, into a frozen dataclass; services receive only
these typed values and never look at raw payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from shopledger.models.inventory import KIND_ADJUSTMENT, LEDGER_KINDS
from shopledger.time_utils import normalize_business_time
from shopledger.validation import MAX_PRICE_CENTS, ValidationError, check_quantity, coerce_int

MAX_LINES = 200
MAX_TEXT = 255
MAX_IDEMPOTENCY_KEY = 128


def _require_dict(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _reject_unknown(payload: dict, allowed: set[str]) -> None:
    for key in payload:
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")


def _required_id(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    value = coerce_int(payload[key], key)
    if value <= 0:
        raise ValidationError(f"{key} must be a positive integer")
    return value


def _optional_text(payload: dict, key: str, max_length: int | None = MAX_TEXT) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    text = raw.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def _optional_date(payload: dict, key: str) -> datetime | None:
    raw = payload.get(key)
    if raw is None:
        return None
    try:
        return normalize_business_time(raw, field=key)
    except ValueError as e:
        raise ValidationError(str(e))


def _idempotency_key(data: dict, header_value: str | None) -> str | None:
    if header_value is not None:
        data = {**data, "idempotency_key": header_value}
    return _optional_text(data, "idempotency_key", MAX_IDEMPOTENCY_KEY)


def _money(raw: Any, name: str) -> int:
    if raw is None:
        raise ValidationError(f"{name} is required")
    value = coerce_int(raw, name)
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")
    return value


@dataclass(frozen=True)
class MovementRequest:
    item_id: int
    kind: str
    quantity: int
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "MovementRequest":
        data = _require_dict(payload)
        _reject_unknown(data, {"item_id", "transaction_type", "kind", "quantity", "reason"})

        item_id = _required_id(data, "item_id")

        # "transaction_type" is the mobile client's name for the kind
        kind = data.get("kind", data.get("transaction_type"))
        if kind not in LEDGER_KINDS:
            raise ValidationError("Valid transaction type is required (in, out, adjustment)")

        if data.get("quantity") is None:
            raise ValidationError("quantity is required")
        quantity = coerce_int(data["quantity"], "quantity")
        if quantity == 0:
            raise ValidationError("quantity must be non-zero")
        if kind != KIND_ADJUSTMENT and quantity < 0:
            raise ValidationError(f"quantity must be > 0 for '{kind}' (use 'adjustment' for signed changes)")
        check_quantity(quantity)

        return cls(item_id=item_id, kind=kind, quantity=quantity, reason=_optional_text(data, "reason"))


@dataclass(frozen=True)
class SaleLineRequest:
    item_id: int
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class PurchaseLineRequest:
    item_id: int
    quantity: int
    unit_cost_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_cost_cents


def _parse_lines(data: dict, price_key: str, build) -> tuple:
    raw_lines = data.get("items", data.get("lines"))
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one item is required")
    if len(raw_lines) > MAX_LINES:
        raise ValidationError(f"A single transaction cannot exceed {MAX_LINES} lines")

    lines = []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {index} must be an object")
        _reject_unknown(raw, {"item_id", "quantity", price_key})
        item_id = _required_id(raw, "item_id")
        if raw.get("quantity") is None:
            raise ValidationError(f"Line {index}: quantity is required")
        quantity = coerce_int(raw["quantity"], "quantity")
        if quantity <= 0:
            raise ValidationError(f"Line {index}: quantity must be > 0")
        check_quantity(quantity, f"Line {index}: quantity")
        lines.append(build(item_id, quantity, _money(raw.get(price_key), price_key)))
    return tuple(lines)


@dataclass(frozen=True)
class SaleRequest:
    shop_id: int
    lines: tuple[SaleLineRequest, ...]
    notes: str | None = None
    sale_date: datetime | None = None
    idempotency_key: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, idempotency_key: str | None = None) -> "SaleRequest":
        data = _require_dict(payload)
        _reject_unknown(data, {"shop_id", "items", "lines", "notes", "sale_date", "idempotency_key"})
        return cls(
            shop_id=_required_id(data, "shop_id"),
            lines=_parse_lines(
                data,
                "unit_price_cents",
                lambda item_id, qty, price: SaleLineRequest(item_id, qty, price),
            ),
            notes=_optional_text(data, "notes", max_length=None),
            sale_date=_optional_date(data, "sale_date"),
            idempotency_key=_idempotency_key(data, idempotency_key),
        )


@dataclass(frozen=True)
class PurchaseRequest:
    shop_id: int
    lines: tuple[PurchaseLineRequest, ...]
    notes: str | None = None
    purchase_date: datetime | None = None
    idempotency_key: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, idempotency_key: str | None = None) -> "PurchaseRequest":
        data = _require_dict(payload)
        _reject_unknown(data, {"shop_id", "items", "lines", "notes", "purchase_date", "idempotency_key"})
        return cls(
            shop_id=_required_id(data, "shop_id"),
            lines=_parse_lines(
                data,
                "unit_cost_cents",
                lambda item_id, qty, cost: PurchaseLineRequest(item_id, qty, cost),
            ),
            notes=_optional_text(data, "notes", max_length=None),
            purchase_date=_optional_date(data, "purchase_date"),
            idempotency_key=_idempotency_key(data, idempotency_key),
        )
