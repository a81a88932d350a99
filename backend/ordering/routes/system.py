# backend/ordering/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports the current cutoff window so
deployments can be verified at a glance.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import CutoffCycle, PurchaseOrder, SaleOrder
from ..services import cutoff_service
from ordering.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        cycle_count = db.session.query(CutoffCycle).count()
        sale_order_count = db.session.query(SaleOrder).count()
        purchase_order_count = db.session.query(PurchaseOrder).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "cutoff_cycles": cycle_count,
                "sale_orders": sale_order_count,
                "purchase_orders": purchase_order_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }
    if database["status"] == "healthy":
        body["cutoff"] = cutoff_service.current_window().to_dict()
        return jsonify(body)
    return jsonify(body), 503
