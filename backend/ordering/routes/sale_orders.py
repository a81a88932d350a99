# Overview: Flask API routes for sale orders; parses input and returns JSON responses.

"""
Sale Order Routes

Intake and operator transitions. Domain errors (validation, state,
transition, concurrency) are rendered by the registered error handler.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor
from ..services import sale_order_service
from ordering.time_utils import parse_iso_datetime


sale_orders_bp = Blueprint("sale_orders", __name__, url_prefix="/api/sale-orders")


@sale_orders_bp.get("")
def list_sale_orders_route():
    """
    Query parameters:
    - status: placed | confirmed | pended | rejected | cancelled | completed
    - phase: regular | additional | none
    - buyer_id
    - since / until: ISO-8601 bounds on placed_at
    - limit: default 200, max 500
    """
    since = until = None
    if request.args.get("since"):
        since = parse_iso_datetime(request.args.get("since"))
        if since is None:
            return jsonify({"error": "Invalid since format"}), 400
    if request.args.get("until"):
        until = parse_iso_datetime(request.args.get("until"))
        if until is None:
            return jsonify({"error": "Invalid until format"}), 400

    limit = max(1, min(request.args.get("limit", 200, type=int), 500))
    orders = sale_order_service.list_sale_orders(
        status=request.args.get("status"),
        phase=request.args.get("phase"),
        buyer_id=request.args.get("buyer_id"),
        since=since,
        until=until,
        limit=limit,
    )
    return jsonify({"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)})


@sale_orders_bp.post("")
@require_actor
def create_sale_order_route():
    """
    Request body:
    {
        "buyer_id": "C-001",
        "buyer_name": "Corner Mart",
        "buyer_type": "customer",          // or staff_proxy
        "items": [
            {"product_id": "P-1", "quantity": 5, "unit_price": 1000, "line_total": 5000}
        ]
    }
    """
    data = request.get_json(silent=True) or {}
    order = sale_order_service.create_sale_order(
        buyer_id=data.get("buyer_id"),
        buyer_name=data.get("buyer_name"),
        buyer_type=data.get("buyer_type") or "customer",
        items=data.get("items"),
        actor=g.actor_id,
    )
    return jsonify(order.to_dict()), 201


@sale_orders_bp.post("/batch-confirm")
@require_actor
def batch_confirm_route():
    """Request body: {"order_numbers": ["SO-251020-001", ...]}. Always 200; failures are per order."""
    data = request.get_json(silent=True) or {}
    numbers = data.get("order_numbers")
    if not isinstance(numbers, list) or not numbers:
        return jsonify({"error": "order_numbers must be a non-empty list"}), 400
    summary = sale_order_service.batch_confirm_sale_orders([str(n) for n in numbers], actor=g.actor_id)
    return jsonify(summary.to_dict())


@sale_orders_bp.get("/<order_number>")
def get_sale_order_route(order_number: str):
    return jsonify(sale_order_service.get_sale_order(order_number).to_dict())


@sale_orders_bp.post("/<order_number>/confirm")
@require_actor
def confirm_sale_order_route(order_number: str):
    order = sale_order_service.confirm_sale_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())


@sale_orders_bp.post("/<order_number>/pend")
@require_actor
def pend_sale_order_route(order_number: str):
    data = request.get_json(silent=True) or {}
    order = sale_order_service.pend_sale_order(order_number, actor=g.actor_id, reason=data.get("reason"))
    return jsonify(order.to_dict())


@sale_orders_bp.put("/<order_number>/items")
@require_actor
def modify_pended_order_route(order_number: str):
    """
    Replace a pended order's items and confirm it.

    Request body: {"items": [{"product_id": "P-1", "quantity": 3, "unit_price": 1000}]}
    """
    data = request.get_json(silent=True) or {}
    order = sale_order_service.modify_pended_order(order_number, data.get("items"), actor=g.actor_id)
    return jsonify(order.to_dict())


@sale_orders_bp.post("/<order_number>/reject")
@require_actor
def reject_sale_order_route(order_number: str):
    data = request.get_json(silent=True) or {}
    order = sale_order_service.reject_sale_order(order_number, actor=g.actor_id, reason=data.get("reason"))
    return jsonify(order.to_dict())


@sale_orders_bp.post("/<order_number>/cancel")
@require_actor
def cancel_sale_order_route(order_number: str):
    order = sale_order_service.cancel_sale_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())


@sale_orders_bp.post("/<order_number>/complete")
@require_actor
def complete_sale_order_route(order_number: str):
    order = sale_order_service.complete_sale_order(order_number, actor=g.actor_id)
    return jsonify(order.to_dict())
