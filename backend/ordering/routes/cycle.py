# Overview: Flask API route for the operator "close the day" action.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor
from ..services import cycle_service


cycle_bp = Blueprint("cycle", __name__, url_prefix="/api/cycle")


@cycle_bp.post("/close")
@require_actor
def close_cycle_route():
    """
    Request body (all optional):
    {
        "categories": ["daily-fresh"],   // default: CUTOFF_CATEGORIES or every aggregated category
        "dispatch": true                  // notify suppliers of the new orders
    }
    """
    data = request.get_json(silent=True) or {}
    categories = data.get("categories")
    if categories is not None and not isinstance(categories, list):
        return jsonify({"error": "categories must be a list"}), 400

    summary = cycle_service.close_cycle(
        actor=g.actor_id,
        categories=categories,
        dispatch=bool(data.get("dispatch", True)),
    )
    return jsonify(summary.to_dict())
