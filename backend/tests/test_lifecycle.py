# Overview: Pytest coverage for the sale / purchase order transition tables.

import pytest

from ordering.errors import InvalidTransitionError, ValidationError
from ordering.models import PurchaseOrder, SaleOrder
from ordering.services.lifecycle_service import (
    PURCHASE_ORDER_TRANSITIONS,
    SALE_ORDER_TRANSITIONS,
    PurchaseOrderStatus,
    SaleOrderStatus,
    apply_purchase_order_transition,
    apply_sale_order_transition,
    can_transition,
    is_terminal,
    parse_status,
    require_transition,
)
from ordering.time_utils import utcnow


class TestTransitionTables:
    """The tables are the single source of truth for allowed moves."""

    @pytest.mark.parametrize("source,target", [
        ("placed", "confirmed"),
        ("placed", "pended"),
        ("placed", "rejected"),
        ("placed", "cancelled"),
        ("pended", "confirmed"),
        ("pended", "rejected"),
        ("confirmed", "completed"),
        ("confirmed", "cancelled"),
    ])
    def test_sale_order_allowed(self, source, target):
        assert can_transition("sale_order", source, target)

    @pytest.mark.parametrize("source,target", [
        ("completed", "placed"),
        ("cancelled", "confirmed"),
        ("rejected", "confirmed"),
        ("pended", "cancelled"),
        ("confirmed", "pended"),
        ("placed", "placed"),
        ("placed", "completed"),
    ])
    def test_sale_order_forbidden(self, source, target):
        assert not can_transition("sale_order", source, target)
        with pytest.raises(InvalidTransitionError) as exc:
            require_transition("sale_order", source, target)
        assert exc.value.source == source
        assert exc.value.target == target
        assert exc.value.http_status == 409

    def test_purchase_order_completion_only_from_confirmed(self):
        assert can_transition("purchase_order", "confirmed", "completed")
        assert not can_transition("purchase_order", "placed", "completed")
        assert not can_transition("purchase_order", "pended", "completed")
        assert not can_transition("purchase_order", "confirmed", "cancelled")

    def test_terminal_states_have_no_exits(self):
        for status in (SaleOrderStatus.REJECTED, SaleOrderStatus.CANCELLED, SaleOrderStatus.COMPLETED):
            assert SALE_ORDER_TRANSITIONS[status] == frozenset()
            assert is_terminal("sale_order", status.value)
        for status in (PurchaseOrderStatus.CANCELLED, PurchaseOrderStatus.COMPLETED):
            assert PURCHASE_ORDER_TRANSITIONS[status] == frozenset()
        assert not is_terminal("purchase_order", "placed")

    def test_every_status_has_a_row(self):
        assert set(SALE_ORDER_TRANSITIONS) == set(SaleOrderStatus)
        assert set(PURCHASE_ORDER_TRANSITIONS) == set(PurchaseOrderStatus)

    def test_unknown_status_is_not_transitionable(self):
        assert not can_transition("sale_order", "shipped", "completed")

    def test_parse_status(self):
        assert parse_status("purchase_order", "pended") is PurchaseOrderStatus.PENDED
        with pytest.raises(ValidationError):
            parse_status("sale_order", "shipped")
        with pytest.raises(ValidationError):
            parse_status("invoice", "placed")


class TestApplyTransition:
    """apply_* helpers stamp timestamps and never commit."""

    def test_sale_order_pend_records_reason(self):
        order = SaleOrder(order_number="SO-1", status="placed", placed_at=utcnow())
        at = utcnow()
        apply_sale_order_transition(order, SaleOrderStatus.PENDED, actor="ops", reason="stock shortage", at=at)
        assert order.status == "pended"
        assert order.pended_at == at
        assert order.pended_reason == "stock shortage"
        assert order.processed_by == "ops"

    def test_sale_order_invalid_leaves_order_untouched(self):
        order = SaleOrder(order_number="SO-1", status="completed", placed_at=utcnow())
        with pytest.raises(InvalidTransitionError):
            apply_sale_order_transition(order, SaleOrderStatus.CONFIRMED, actor="ops")
        assert order.status == "completed"
        assert order.confirmed_at is None
        assert order.processed_by is None

    def test_purchase_order_confirm_stamps_confirmed_at(self):
        order = PurchaseOrder(order_number="PO-1", status="placed", placed_at=utcnow())
        apply_purchase_order_transition(order, PurchaseOrderStatus.CONFIRMED, actor="ops")
        assert order.status == "confirmed"
        assert order.confirmed_at is not None

    def test_purchase_order_accepts_raw_value(self):
        order = PurchaseOrder(order_number="PO-1", status="placed", placed_at=utcnow())
        apply_purchase_order_transition(order, "cancelled")
        assert order.status == "cancelled"
        assert order.cancelled_at is not None
