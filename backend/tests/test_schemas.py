# Overview: Pytest coverage for request body parsing.

from datetime import timedelta

import pytest

from shopledger.schemas import MovementRequest, PurchaseRequest, SaleRequest
from shopledger.time_utils import utcnow
from shopledger.validation import MAX_QUANTITY, ValidationError


class TestMovementRequest:
    def test_mobile_field_names(self):
        req = MovementRequest.from_payload(
            {"item_id": 3, "transaction_type": "out", "quantity": 2, "reason": "  Breakage  "}
        )

        assert req == MovementRequest(item_id=3, kind="out", quantity=2, reason="Breakage")

    def test_kind_alias(self):
        req = MovementRequest.from_payload({"item_id": 3, "kind": "adjustment", "quantity": -4})
        assert (req.kind, req.quantity) == ("adjustment", -4)

    def test_largest_quantity_is_accepted(self):
        req = MovementRequest.from_payload({"item_id": 3, "transaction_type": "in", "quantity": MAX_QUANTITY})
        assert req.quantity == MAX_QUANTITY

    def test_numeric_strings_are_accepted(self):
        req = MovementRequest.from_payload({"item_id": "3", "transaction_type": "in", "quantity": "7"})
        assert (req.item_id, req.quantity) == (3, 7)

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"transaction_type": "in", "quantity": 1},
        {"item_id": 1, "transaction_type": "restock", "quantity": 1},
        {"item_id": 1, "transaction_type": "in"},
        {"item_id": 1, "transaction_type": "in", "quantity": 0},
        {"item_id": 1, "transaction_type": "in", "quantity": 1.5},
        {"item_id": 1, "transaction_type": "in", "quantity": True},
        {"item_id": 1, "transaction_type": "out", "quantity": -2},
        {"item_id": 0, "transaction_type": "in", "quantity": 1},
        {"item_id": 1, "transaction_type": "in", "quantity": 1, "current_stock": 5},
        {"item_id": 1, "transaction_type": "in", "quantity": 10**20},
        {"item_id": 1, "transaction_type": "adjustment", "quantity": -(MAX_QUANTITY + 1)},
    ])
    def test_rejected_payloads(self, payload):
        with pytest.raises(ValidationError):
            MovementRequest.from_payload(payload)


class TestSaleRequest:
    def test_parses_lines_and_total(self):
        req = SaleRequest.from_payload({
            "shop_id": 1,
            "items": [
                {"item_id": 1, "quantity": 2, "unit_price_cents": 500},
                {"item_id": 2, "quantity": 1, "unit_price_cents": 1200},
            ],
            "notes": "Cash",
        })

        assert req.shop_id == 1
        assert len(req.lines) == 2
        assert sum(line.line_total_cents for line in req.lines) == 2200
        assert req.notes == "Cash"
        assert req.sale_date is None

    def test_header_idempotency_key_wins(self):
        req = SaleRequest.from_payload(
            {"shop_id": 1, "lines": [{"item_id": 1, "quantity": 1, "unit_price_cents": 0}], "idempotency_key": "body"},
            idempotency_key="header",
        )
        assert req.idempotency_key == "header"

    def test_sale_date_is_normalized(self):
        req = SaleRequest.from_payload({
            "shop_id": 1,
            "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 100}],
            "sale_date": "2024-03-01T10:00:00+02:00",
        })
        assert req.sale_date.isoformat() == "2024-03-01T08:00:00"

    def test_future_sale_date_is_rejected(self):
        future = (utcnow() + timedelta(days=1)).isoformat() + "Z"
        with pytest.raises(ValidationError):
            SaleRequest.from_payload({
                "shop_id": 1,
                "items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 100}],
                "sale_date": future,
            })

    @pytest.mark.parametrize("lines", [
        [],
        "nope",
        [{"item_id": 1, "quantity": 0, "unit_price_cents": 100}],
        [{"item_id": 1, "quantity": 1, "unit_price_cents": -1}],
        [{"item_id": 1, "quantity": 1}],
        [{"item_id": 1, "quantity": 1, "unit_price_cents": "9.99"}],
        [{"item_id": 1, "quantity": 1, "unit_price_cents": 100, "discount": 5}],
        [{"item_id": 1, "quantity": MAX_QUANTITY + 1, "unit_price_cents": 100}],
    ])
    def test_rejected_lines(self, lines):
        with pytest.raises(ValidationError):
            SaleRequest.from_payload({"shop_id": 1, "items": lines})

    def test_missing_shop(self):
        with pytest.raises(ValidationError):
            SaleRequest.from_payload({"items": [{"item_id": 1, "quantity": 1, "unit_price_cents": 100}]})


class TestPurchaseRequest:
    def test_parses_cost_lines(self):
        req = PurchaseRequest.from_payload({
            "shop_id": 4,
            "items": [{"item_id": 1, "quantity": 10, "unit_cost_cents": 250}],
        })

        assert req.lines[0].unit_cost_cents == 250
        assert req.lines[0].line_total_cents == 2500

    def test_price_key_is_not_accepted(self):
        with pytest.raises(ValidationError):
            PurchaseRequest.from_payload({
                "shop_id": 4,
                "items": [{"item_id": 1, "quantity": 10, "unit_price_cents": 250}],
            })
