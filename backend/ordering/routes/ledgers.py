# Overview: Flask API routes for purchase ledgers (read-only; ledgers are append-only).

from flask import Blueprint, request, jsonify

from ..services import inbound_service
from ordering.time_utils import parse_iso_datetime


ledgers_bp = Blueprint("ledgers", __name__, url_prefix="/api/purchase-ledgers")


@ledgers_bp.get("")
def list_ledgers_route():
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
    ledgers = inbound_service.list_ledgers(
        supplier_id=request.args.get("supplier_id"),
        since=since,
        until=until,
        limit=limit,
    )
    return jsonify({"items": [l.to_dict() for l in ledgers], "count": len(ledgers)})


@ledgers_bp.get("/<ledger_number>")
def get_ledger_route(ledger_number: str):
    return jsonify(inbound_service.get_ledger(ledger_number).to_dict())
