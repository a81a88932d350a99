# Overview: Flask API routes for the daily cutoff window.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor
from ..services import cutoff_service


cutoff_bp = Blueprint("cutoff", __name__, url_prefix="/api/cutoff")


@cutoff_bp.get("")
def get_cutoff_route():
    """
    Current cutoff window.

    Returns the synthesized fallback (closed, opened at local midnight,
    is_fallback=true) before any cycle has been opened.
    """
    window = cutoff_service.current_window()
    return jsonify(window.to_dict())


@cutoff_bp.post("/open")
@require_actor
def open_cutoff_route():
    window = cutoff_service.open_window(actor=g.actor_id)
    return jsonify(window.to_dict()), 201


@cutoff_bp.post("/close")
@require_actor
def close_cutoff_route():
    window = cutoff_service.close_window(actor=g.actor_id)
    return jsonify(window.to_dict())


@cutoff_bp.get("/cycles")
def list_cycles_route():
    limit = request.args.get("limit", 30, type=int)
    limit = max(1, min(limit, 365))
    cycles = cutoff_service.list_cycles(limit=limit)
    return jsonify({"items": [c.to_dict() for c in cycles], "count": len(cycles)})
