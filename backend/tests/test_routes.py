# Overview: Pytest coverage for the HTTP API; status codes, actor header and error payloads.

"""
API Route Tests

End-to-end through the Flask test client: every request runs in its own app
context, so fixtures commit before calling and assertions read the JSON body.
"""

from datetime import timedelta

from ordering.services import cutoff_service

from conftest import ACTOR, actor_headers, item


class TestActorHeader:
    def test_state_change_requires_actor(self, client, db_session):
        resp = client.post('/api/cutoff/open')
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "unauthenticated"

    def test_reads_do_not_require_actor(self, client, db_session):
        resp = client.get('/api/cutoff')
        assert resp.status_code == 200
        assert resp.get_json()["is_fallback"] is True


class TestCutoffRoutes:
    def test_open_close_cycle(self, client, db_session):
        resp = client.post('/api/cutoff/open', headers=actor_headers())
        assert resp.status_code == 201
        assert resp.get_json()["status"] == "open"
        assert resp.get_json()["opened_by"] == ACTOR

        resp = client.post('/api/cutoff/open', headers=actor_headers())
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "invalid_state"

        resp = client.post('/api/cutoff/close', headers=actor_headers("ops-park"))
        assert resp.status_code == 200
        assert resp.get_json()["closed_by"] == "ops-park"

        resp = client.get('/api/cutoff/cycles')
        assert resp.get_json()["count"] == 1


class TestSaleOrderRoutes:
    def test_create_and_fetch(self, client, tofu, open_window):
        resp = client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001",
            "buyer_name": "Corner Mart",
            "items": [item(quantity=5, unit_price=1000, line_total=5000)],
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["status"] == "confirmed"
        assert body["order_phase"] == "regular"
        assert body["items"][0]["line_total"] == 5000

        resp = client.get(f'/api/sale-orders/{body["order_number"]}')
        assert resp.status_code == 200
        assert resp.get_json()["created_by"] == ACTOR

    def test_line_total_mismatch_is_400(self, client, tofu, open_window):
        resp = client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001",
            "buyer_name": "Corner Mart",
            "items": [item(quantity=5, unit_price=1000, line_total=4000)],
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"
        assert resp.get_json()["expected"] == 5000

    def test_transitions(self, client, tofu, open_window):
        number = client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001", "buyer_name": "Corner Mart", "items": [item(product_id="P-GONE")],
        }).get_json()["order_number"]

        resp = client.post(f'/api/sale-orders/{number}/reject', headers=actor_headers(), json={})
        assert resp.status_code == 400

        resp = client.post(f'/api/sale-orders/{number}/reject', headers=actor_headers(), json={"reason": "gone"})
        assert resp.get_json()["status"] == "rejected"

        resp = client.post(f'/api/sale-orders/{number}/confirm', headers=actor_headers())
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "invalid_transition"
        assert resp.get_json()["source"] == "rejected"

    def test_modify_pended_and_batch_confirm(self, client, tofu, open_window):
        pended = client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001", "buyer_name": "Corner Mart", "items": [item(product_id="P-GONE")],
        }).get_json()["order_number"]
        other = client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-002", "buyer_name": "Deli", "items": [item(product_id="P-GONE")],
        }).get_json()["order_number"]

        resp = client.put(f'/api/sale-orders/{pended}/items', headers=actor_headers(), json={
            "items": [item(quantity=3, name=7)],
        })
        assert resp.status_code == 400

        resp = client.put(f'/api/sale-orders/{pended}/items', headers=actor_headers(), json={
            "items": [item(quantity=3)],
        })
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "confirmed"
        assert resp.get_json()["final_amount"] == 3000

        resp = client.post('/api/sale-orders/batch-confirm', headers=actor_headers(),
                           json={"order_numbers": [pended, other]})
        assert resp.status_code == 200
        body = resp.get_json()
        assert (body["attempted"], body["succeeded"], body["failed"]) == (2, 1, 1)

        assert client.post('/api/sale-orders/batch-confirm', headers=actor_headers(),
                           json={"order_numbers": []}).status_code == 400

    def test_list_and_bad_filters(self, client, tofu, open_window):
        assert client.get('/api/sale-orders?status=nope').status_code == 400
        assert client.get('/api/sale-orders?since=yesterday').status_code == 400
        assert client.get('/api/sale-orders').get_json()["count"] == 0

    def test_unknown_order_is_404(self, client, db_session):
        resp = client.get('/api/sale-orders/SO-000000-404')
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "not_found"


class TestPurchasingRoutes:
    def _place_demand(self, client, day_start):
        client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001", "buyer_name": "Corner Mart", "items": [item(quantity=8)],
        })

    def test_generate_dispatch_reconcile(self, client, tofu, open_window, day_start):
        self._place_demand(client, day_start)

        agg = client.get('/api/aggregation').get_json()
        supplier = agg["categories"][0]["suppliers"][0]
        assert supplier["total_quantity"] == 8
        assert supplier["has_purchase_order"] is False

        resp = client.post('/api/purchase-orders/generate', headers=actor_headers(), json={"category": "daily-fresh"})
        assert resp.status_code == 200
        created = resp.get_json()["created"]
        assert len(created) == 1
        number = created[0]

        again = client.post('/api/purchase-orders/generate', headers=actor_headers(), json={"category": "daily-fresh"})
        assert again.get_json()["outcomes"][0]["error_code"] == "duplicate_order"

        resp = client.patch(f'/api/purchase-orders/{number}/items/P-TOFU', headers=actor_headers(), json={"quantity": 10})
        assert resp.get_json()["items"][0]["quantity"] == 10

        resp = client.post('/api/purchase-orders/dispatch', headers=actor_headers(), json={"order_numbers": [number]})
        assert resp.get_json()["succeeded"] == 1
        assert client.get(f'/api/purchase-orders/{number}').get_json()["status"] == "confirmed"

        awaiting = client.get('/api/purchase-orders/awaiting-receipt').get_json()
        assert [o["order_number"] for o in awaiting["items"]] == [number]

        resp = client.post(f'/api/purchase-orders/{number}/reconcile', headers=actor_headers("clerk-cho"), json={
            "items": [{"product_id": "P-TOFU", "received_quantity": 7, "actual_unit_price": 1200}],
        })
        assert resp.status_code == 201
        ledger = resp.get_json()
        assert ledger["total_amount"] == 8400
        assert ledger["received_by"] == "clerk-cho"

        resp = client.post(f'/api/purchase-orders/{number}/reconcile', headers=actor_headers(), json={
            "items": [{"product_id": "P-TOFU", "received_quantity": 7, "actual_unit_price": 1200}],
        })
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "already_completed"

        resp = client.get(f'/api/purchase-ledgers/{ledger["ledger_number"]}')
        assert resp.get_json()["purchase_order_number"] == number

    def test_reconcile_zero_price_is_400(self, client, tofu, open_window, day_start):
        self._place_demand(client, day_start)
        number = client.post('/api/purchase-orders/generate', headers=actor_headers(),
                             json={"category": "daily-fresh"}).get_json()["created"][0]
        client.post(f'/api/purchase-orders/{number}/confirm', headers=actor_headers())

        resp = client.post(f'/api/purchase-orders/{number}/reconcile', headers=actor_headers(), json={
            "items": [{"product_id": "P-TOFU", "received_quantity": 7, "actual_unit_price": 0}],
        })
        assert resp.status_code == 400
        assert client.get(f'/api/purchase-orders/{number}').get_json()["status"] == "confirmed"
        assert client.get('/api/purchase-ledgers').get_json()["count"] == 0

    def test_generate_defaults_category(self, client, tofu, open_window, day_start):
        self._place_demand(client, day_start)
        resp = client.post('/api/purchase-orders/generate', headers=actor_headers(), json={})
        assert resp.status_code == 200
        assert len(resp.get_json()["created"]) == 1
        number = resp.get_json()["created"][0]
        assert client.get(f'/api/purchase-orders/{number}').get_json()["category"] == "daily-fresh"

    def test_generate_requires_category_without_default(self, app, client, db_session):
        app.config["DEFAULT_PURCHASE_CATEGORY"] = ""
        try:
            resp = client.post('/api/purchase-orders/generate', headers=actor_headers(), json={})
        finally:
            app.config["DEFAULT_PURCHASE_CATEGORY"] = "daily-fresh"
        assert resp.status_code == 400

    def test_dispatch_requires_numbers(self, client, db_session):
        resp = client.post('/api/purchase-orders/dispatch', headers=actor_headers(), json={"order_numbers": []})
        assert resp.status_code == 400

    def test_list_filters(self, client, db_session):
        assert client.get('/api/purchase-orders?cycle_date=oct-20').status_code == 400
        assert client.get('/api/purchase-orders?sms_success=maybe').status_code == 400
        assert client.get('/api/purchase-orders?sms_success=false').get_json()["count"] == 0


class TestCycleAndHealthRoutes:
    def test_close_cycle(self, client, tofu, open_window, day_start):
        client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001", "buyer_name": "Corner Mart", "items": [item(quantity=3)],
        })
        resp = client.post('/api/cycle/close', headers=actor_headers(), json={"dispatch": False})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["window"]["status"] == "closed"
        assert len(body["created_orders"]) == 1
        assert body["dispatch"] is None

    def test_close_cycle_without_cycle(self, client, db_session):
        resp = client.post('/api/cycle/close', headers=actor_headers())
        assert resp.status_code == 409

    def test_health(self, client, db_session):
        resp = client.get('/api/health')
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["database"]["details"]["sale_orders"] == 0
        assert body["cutoff"]["is_fallback"] is True

    def test_cors_for_known_origin(self, client, db_session):
        resp = client.get('/api/cutoff', headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "X-Actor-Id" in resp.headers["Access-Control-Allow-Headers"]


class TestCutoffPhaseOverHttp:
    def test_order_after_close_is_additional(self, client, tofu, open_window, day_start):
        cutoff_service.close_window(actor=ACTOR, at=day_start + timedelta(hours=5))
        body = client.post('/api/sale-orders', headers=actor_headers(), json={
            "buyer_id": "C-001", "buyer_name": "Corner Mart", "items": [item()],
        }).get_json()
        assert body["order_phase"] == "additional"
