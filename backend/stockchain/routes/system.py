# backend/stockchain/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import StockEntry, StockRequest, SalesApprovalHistory
from ..models.approvals import APPROVAL_STATUS_SENT
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        entry_count = db.session.query(StockEntry).count()
        request_count = db.session.query(StockRequest).count()
        unclaimed = db.session.query(SalesApprovalHistory).filter_by(status=APPROVAL_STATUS_SENT).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stock_entries": entry_count,
                "requests": request_count,
                "unclaimed_dispatches": unclaimed,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.route("/health", methods=["GET"])
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
        "dispatch_stock_policy": current_app.config.get("DISPATCH_STOCK_POLICY"),
    }), status_code
