# Overview: Pytest coverage for the end-of-day close: cutoff, aggregation, generation and dispatch.

from datetime import timedelta

import pytest

from ordering.errors import InvalidStateError
from ordering.models import PurchaseOrder
from ordering.services import cutoff_service, cycle_service, sale_order_service

from conftest import ACTOR, RecordingSender, item


@pytest.fixture
def demand(db_session, make_supplier, make_product, open_window, day_start):
    make_supplier()
    make_supplier(business_id="222-22-22222", name="Dairy Co")
    make_product()
    make_product(product_id="P-MILK", name="Milk", spec="1L", supplier_id="222-22-22222")
    make_product(product_id="P-SOAP", name="Soap", category="household", supplier_id="222-22-22222")
    sale_order_service.create_sale_order(
        buyer_id="C-001", buyer_name="Corner Mart", actor=ACTOR,
        items=[item(quantity=5), item(product_id="P-MILK", quantity=2), item(product_id="P-SOAP", quantity=1)],
        placed_at=day_start + timedelta(hours=1),
    )


class TestCloseCycle:
    def test_closes_generates_and_dispatches(self, db_session, demand):
        sender = RecordingSender()
        summary = cycle_service.close_cycle(actor=ACTOR, sender=sender)

        assert summary.window.status == "closed"
        assert not cutoff_service.current_window().is_open
        # every aggregated category when no cutoff categories are configured
        assert [g.category for g in summary.generation] == ["daily-fresh", "household"]
        assert len(summary.created_orders) == 3
        assert summary.dispatch.succeeded == 3
        assert db_session.query(PurchaseOrder).filter_by(status="confirmed").count() == 3

    def test_cutoff_categories_limit_generation(self, app, db_session, demand):
        app.config["CUTOFF_CATEGORIES"] = ["daily-fresh"]
        try:
            summary = cycle_service.close_cycle(actor=ACTOR, sender=RecordingSender())
        finally:
            app.config["CUTOFF_CATEGORIES"] = []
        assert [g.category for g in summary.generation] == ["daily-fresh"]
        assert db_session.query(PurchaseOrder).filter_by(category="household").count() == 0

    def test_rerun_reuses_closed_window(self, db_session, demand):
        first = cycle_service.close_cycle(actor=ACTOR, sender=RecordingSender())
        again = cycle_service.close_cycle(actor=ACTOR, sender=RecordingSender())
        assert again.window.cycle_id == first.window.cycle_id
        assert again.created_orders == []
        assert again.dispatch is None
        assert db_session.query(PurchaseOrder).count() == 3

    def test_without_dispatch(self, db_session, demand):
        summary = cycle_service.close_cycle(actor=ACTOR, dispatch=False)
        assert summary.dispatch is None
        assert db_session.query(PurchaseOrder).filter_by(status="placed").count() == 3

    def test_requires_a_cycle(self, db_session):
        with pytest.raises(InvalidStateError):
            cycle_service.close_cycle(actor=ACTOR)

    def test_summary_dict(self, db_session, demand):
        data = cycle_service.close_cycle(actor=ACTOR, categories=["daily-fresh"], sender=RecordingSender()).to_dict()
        assert data["window"]["status"] == "closed"
        assert data["totals"]["regular"]["count"] == 1
        assert len(data["created_orders"]) == 2
        assert data["dispatch"]["attempted"] == 2
