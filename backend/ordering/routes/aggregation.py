# Overview: Flask API routes for demand aggregation (read-only).

from flask import Blueprint, request, jsonify

from ..services import aggregation_service
from ordering.time_utils import parse_iso_datetime


aggregation_bp = Blueprint("aggregation", __name__, url_prefix="/api/aggregation")


def _since_arg():
    raw = request.args.get("since")
    if not raw:
        return None, None
    since = parse_iso_datetime(raw)
    if since is None:
        return None, (jsonify({"error": "Invalid since format"}), 400)
    return since, None


@aggregation_bp.get("")
def get_aggregation_route():
    """
    Category -> supplier -> product demand since `since`
    (default: current cutoff window opened_at).
    """
    since, error = _since_arg()
    if error:
        return error
    result = aggregation_service.aggregate(since)
    return jsonify(result.to_dict())


@aggregation_bp.get("/products/<product_id>")
def get_product_details_route(product_id: str):
    since, error = _since_arg()
    if error:
        return error
    return jsonify(aggregation_service.get_product_order_details(product_id, since))
