# Overview: Flask API routes for purchase orders; generation, dispatch, transitions and inbound receipt.

"""
Purchase Order Routes

Batch endpoints (generate, dispatch, resend-failed) always answer 200 with a
summary; per-supplier / per-order failures live inside the summary.
"""

from datetime import date

from flask import Blueprint, current_app, request, jsonify, g

from ..decorators import require_actor
from ..services import aggregation_service, dispatch_service, inbound_service, purchase_order_service
from ordering.time_utils import parse_iso_datetime


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
def list_purchase_orders_route():
    """
    Query parameters:
    - status, category, supplier_id
    - cycle_date: YYYY-MM-DD
    - sms_success: true | false
    - limit: default 200, max 500
    """
    cycle_date = None
    if request.args.get("cycle_date"):
        try:
            cycle_date = date.fromisoformat(request.args["cycle_date"])
        except ValueError:
            return jsonify({"error": "Invalid cycle_date format (YYYY-MM-DD)"}), 400

    sms_success = None
    raw_sms = request.args.get("sms_success")
    if raw_sms is not None:
        if raw_sms.lower() not in ("true", "false"):
            return jsonify({"error": "sms_success must be true or false"}), 400
        sms_success = raw_sms.lower() == "true"

    limit = max(1, min(request.args.get("limit", 200, type=int), 500))
    orders = purchase_order_service.list_purchase_orders(
        status=request.args.get("status"),
        category=request.args.get("category"),
        supplier_id=request.args.get("supplier_id"),
        cycle_date=cycle_date,
        sms_success=sms_success,
        limit=limit,
    )
    return jsonify({"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)})


@purchase_orders_bp.post("/generate")
@require_actor
def generate_purchase_orders_route():
    """
    Request body:
    {
        "category": "daily-fresh",       // optional, default: DEFAULT_PURCHASE_CATEGORY
        "supplier_ids": ["123-45-67890"], // optional, default: every supplier bucket
        "since": "2025-10-20T00:00:00Z"   // optional aggregation reset point
    }
    """
    data = request.get_json(silent=True) or {}
    category = (data.get("category") or current_app.config.get("DEFAULT_PURCHASE_CATEGORY") or "").strip()
    if not category:
        return jsonify({"error": "category is required"}), 400

    since = None
    if data.get("since"):
        since = parse_iso_datetime(data.get("since"))
        if since is None:
            return jsonify({"error": "Invalid since format"}), 400

    supplier_ids = data.get("supplier_ids")
    if supplier_ids is not None and not isinstance(supplier_ids, list):
        return jsonify({"error": "supplier_ids must be a list"}), 400

    result = aggregation_service.aggregate(since, annotate=False)
    summary = purchase_order_service.generate_for_category(
        result, category, actor=g.actor_id, supplier_ids=supplier_ids
    )
    return jsonify(summary.to_dict())


@purchase_orders_bp.post("/dispatch")
@require_actor
def dispatch_route():
    """Request body: {"order_numbers": ["PO-251020-001", ...]}"""
    data = request.get_json(silent=True) or {}
    numbers = data.get("order_numbers")
    if not isinstance(numbers, list) or not numbers:
        return jsonify({"error": "order_numbers must be a non-empty list"}), 400
    summary = dispatch_service.dispatch_batch([str(n) for n in numbers], actor=g.actor_id)
    return jsonify(summary.to_dict())


@purchase_orders_bp.post("/resend-failed")
@require_actor
def resend_failed_route():
    data = request.get_json(silent=True) or {}
    summary = dispatch_service.resend_failed(category=data.get("category"), actor=g.actor_id)
    return jsonify(summary.to_dict())


@purchase_orders_bp.get("/awaiting-receipt")
def awaiting_receipt_route():
    since = None
    if request.args.get("since"):
        since = parse_iso_datetime(request.args.get("since"))
        if since is None:
            return jsonify({"error": "Invalid since format"}), 400
    include_completed = request.args.get("include_completed", "false").lower() == "true"
    orders = inbound_service.list_awaiting_receipt(since=since, include_completed=include_completed)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})


@purchase_orders_bp.get("/<order_number>")
def get_purchase_order_route(order_number: str):
    return jsonify(purchase_order_service.get_purchase_order(order_number).to_dict())


@purchase_orders_bp.patch("/<order_number>/items/<product_id>")
@require_actor
def update_item_quantity_route(order_number: str, product_id: str):
    data = request.get_json(silent=True) or {}
    if "quantity" not in data:
        return jsonify({"error": "quantity is required"}), 400
    order = purchase_order_service.update_item_quantity(
        order_number, product_id, data.get("quantity"), actor=g.actor_id
    )
    return jsonify(order.to_dict())


@purchase_orders_bp.post("/<order_number>/confirm")
@require_actor
def confirm_purchase_order_route(order_number: str):
    order = purchase_order_service.confirm_purchase_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())


@purchase_orders_bp.post("/<order_number>/pend")
@require_actor
def pend_purchase_order_route(order_number: str):
    order = purchase_order_service.pend_purchase_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())


@purchase_orders_bp.post("/<order_number>/cancel")
@require_actor
def cancel_purchase_order_route(order_number: str):
    order = purchase_order_service.cancel_purchase_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())


@purchase_orders_bp.post("/<order_number>/resume")
@require_actor
def resume_purchase_order_route(order_number: str):
    order = purchase_order_service.resume_purchase_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())


@purchase_orders_bp.post("/<order_number>/reconcile")
@require_actor
def reconcile_route(order_number: str):
    """
    Request body:
    {
        "items": [
            {"product_id": "P-1", "received_quantity": 7, "actual_unit_price": 1200}
        ],
        "notes": "two boxes damaged"
    }

    Returns the created purchase ledger.
    """
    data = request.get_json(silent=True) or {}
    ledger = inbound_service.reconcile(
        order_number,
        data.get("items"),
        received_by=g.actor_id,
        notes=data.get("notes"),
    )
    return jsonify(ledger.to_dict()), 201
