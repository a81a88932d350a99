# Overview: Pytest coverage for inbound reconciliation and purchase ledger immutability.

"""
Inbound Reconciliation Tests

- confirmed order -> ledger with received quantities and actual prices
- second reconciliation fails with AlreadyCompletedError, one ledger per order
- invalid receipt lines fail before any write
- ledger rows are append-only
"""

from datetime import timedelta

import pytest

from ordering.errors import (
    AlreadyCompletedError,
    ImmutableRecordError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ordering.models import Product, PurchaseLedger, PurchaseLedgerItem, PurchaseOrder
from ordering.services import inbound_service, purchase_order_service
from ordering.services.aggregation_service import ProductAggregation, SupplierAggregation
from ordering.services.inbound_service import ReceivedItem, parse_received_items

from conftest import ACTOR


RECEIVER = "clerk-cho"


def _placed_order(quantity=8):
    bucket = SupplierAggregation(
        supplier_id="111-11-11111",
        supplier_name="Fresh Farm",
        products=(ProductAggregation(
            product_id="P-TOFU", name="Tofu", spec="300g", category="daily-fresh",
            supplier_id="111-11-11111", placed_quantity=quantity,
        ),),
    )
    return purchase_order_service.generate_purchase_order(bucket, "daily-fresh", actor=ACTOR)


@pytest.fixture
def confirmed_order(db_session, tofu, open_window):
    order = _placed_order()
    purchase_order_service.confirm_purchase_order(order.order_number, actor=ACTOR)
    return order


class TestParseReceivedItems:
    def test_accepts_dicts_and_values(self):
        items = parse_received_items([
            {"product_id": "P-1", "received_quantity": 0, "actual_unit_price": 10},
            ReceivedItem("P-2", 3, 20),
        ])
        assert [i.product_id for i in items] == ["P-1", "P-2"]
        assert items[0].received_quantity == 0

    @pytest.mark.parametrize("price", [0, -5, None, 12.5, "1200"])
    def test_bad_price(self, price):
        with pytest.raises(ValidationError):
            parse_received_items([{"product_id": "P-1", "received_quantity": 1, "actual_unit_price": price}])

    @pytest.mark.parametrize("quantity", [-1, None, 1.5])
    def test_bad_quantity(self, quantity):
        with pytest.raises(ValidationError):
            parse_received_items([{"product_id": "P-1", "received_quantity": quantity, "actual_unit_price": 10}])

    def test_duplicate_product(self):
        with pytest.raises(ValidationError):
            parse_received_items([ReceivedItem("P-1", 1, 10), ReceivedItem("P-1", 2, 10)])

    def test_empty(self):
        with pytest.raises(ValidationError):
            parse_received_items([])


class TestReconcile:
    def test_receipt_creates_ledger_and_completes_order(self, db_session, confirmed_order, day_start):
        ledger = inbound_service.reconcile(
            confirmed_order.order_number,
            [{"product_id": "P-TOFU", "received_quantity": 7, "actual_unit_price": 1200}],
            received_by=RECEIVER,
            notes="one box damaged",
        )
        assert len(ledger.items) == 1
        line = ledger.items[0]
        assert line.quantity == 7
        assert line.unit_price == 1200
        assert line.line_total == 8400
        assert line.ordered_quantity == 8
        assert line.category == "daily-fresh"
        assert ledger.total_amount == 8400
        assert ledger.received_by == RECEIVER
        assert ledger.ledger_number.startswith("PL-")

        order = purchase_order_service.get_purchase_order(confirmed_order.order_number)
        assert order.status == "completed"
        assert order.completed_at is not None
        assert order.purchase_ledger_number == ledger.ledger_number
        assert inbound_service.get_ledger_for_order(order.order_number).id == ledger.id

    def test_catalog_price_follows_actual_price(self, db_session, confirmed_order):
        inbound_service.reconcile(
            confirmed_order.order_number,
            [ReceivedItem("P-TOFU", 7, 1200)],
            received_by=RECEIVER,
        )
        assert db_session.query(Product).filter_by(product_id="P-TOFU").one().purchase_price == 1200

    def test_second_receipt_is_rejected(self, db_session, confirmed_order):
        items = [ReceivedItem("P-TOFU", 7, 1200)]
        first = inbound_service.reconcile(confirmed_order.order_number, items, received_by=RECEIVER)
        with pytest.raises(AlreadyCompletedError) as exc:
            inbound_service.reconcile(confirmed_order.order_number, items, received_by=RECEIVER)
        assert exc.value.payload["purchase_ledger_number"] == first.ledger_number
        assert db_session.query(PurchaseLedger).filter_by(
            purchase_order_number=confirmed_order.order_number
        ).count() == 1

    def test_zero_price_writes_nothing(self, db_session, confirmed_order):
        with pytest.raises(ValidationError):
            inbound_service.reconcile(
                confirmed_order.order_number,
                [ReceivedItem("P-TOFU", 7, 1200), ReceivedItem("P-EXTRA", 1, 0)],
                received_by=RECEIVER,
            )
        db_session.expire_all()
        order = db_session.query(PurchaseOrder).filter_by(order_number=confirmed_order.order_number).one()
        assert order.status == "confirmed"
        assert order.purchase_ledger_number is None
        assert db_session.query(PurchaseLedger).count() == 0
        assert db_session.query(Product).filter_by(product_id="P-TOFU").one().purchase_price == 700

    def test_received_quantity_may_diverge(self, db_session, confirmed_order):
        ledger = inbound_service.reconcile(
            confirmed_order.order_number,
            [ReceivedItem("P-TOFU", 20, 1000), ReceivedItem("P-BONUS", 2, 500, name="Sample pack")],
            received_by=RECEIVER,
        )
        bonus = next(i for i in ledger.items if i.product_id == "P-BONUS")
        assert bonus.name == "Sample pack"
        assert bonus.ordered_quantity == 0
        assert bonus.category == "uncategorized"
        assert ledger.total_amount == 20 * 1000 + 2 * 500

    def test_placed_order_cannot_be_received(self, db_session, tofu, open_window):
        order = _placed_order()
        with pytest.raises(InvalidStateError):
            inbound_service.reconcile(order.order_number, [ReceivedItem("P-TOFU", 1, 10)], received_by=RECEIVER)

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            inbound_service.reconcile("PO-000000-404", [ReceivedItem("P-TOFU", 1, 10)], received_by=RECEIVER)

    def test_receiver_required(self, db_session, confirmed_order):
        with pytest.raises(ValidationError):
            inbound_service.reconcile(confirmed_order.order_number, [ReceivedItem("P-TOFU", 1, 10)], received_by="")

    def test_awaiting_receipt(self, db_session, confirmed_order, day_start):
        awaiting = inbound_service.list_awaiting_receipt(since=day_start)
        assert [o.order_number for o in awaiting] == [confirmed_order.order_number]
        inbound_service.reconcile(confirmed_order.order_number, [ReceivedItem("P-TOFU", 8, 700)], received_by=RECEIVER)
        assert inbound_service.list_awaiting_receipt(since=day_start) == []
        assert len(inbound_service.list_awaiting_receipt(since=day_start, include_completed=True)) == 1

    def test_list_ledgers(self, db_session, confirmed_order, day_start):
        ledger = inbound_service.reconcile(
            confirmed_order.order_number, [ReceivedItem("P-TOFU", 8, 700)], received_by=RECEIVER,
        )
        assert [l.ledger_number for l in inbound_service.list_ledgers(supplier_id="111-11-11111")] == [ledger.ledger_number]
        assert inbound_service.list_ledgers(supplier_id="999") == []
        assert inbound_service.get_ledger(ledger.ledger_number).purchase_order_number == confirmed_order.order_number
        with pytest.raises(NotFoundError):
            inbound_service.get_ledger("PL-000000-404")


class TestLedgerImmutability:
    @pytest.fixture
    def ledger(self, db_session, confirmed_order):
        return inbound_service.reconcile(
            confirmed_order.order_number, [ReceivedItem("P-TOFU", 7, 1200)], received_by=RECEIVER,
        )

    def test_header_update_rejected(self, db_session, ledger):
        ledger.notes = "edited"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_item_update_rejected(self, db_session, ledger):
        item = db_session.query(PurchaseLedgerItem).first()
        item.quantity = 8
        item.line_total = 9600
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_delete_rejected(self, db_session, ledger):
        db_session.delete(ledger)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_line_total_checked_on_insert(self, db_session, ledger):
        db_session.add(PurchaseLedgerItem(
            purchase_ledger_id=ledger.id, position=9, product_id="P-X", name="X",
            category="c", quantity=2, unit_price=100, line_total=150,
        ))
        with pytest.raises(ValidationError):
            db_session.flush()
        db_session.rollback()
