# backend/pos_erp/routes/system.py
"""
System health and sync endpoints.

/api/health reports database reachability; /api/sync/revision lets
dashboards poll for the "data changed" signal.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Product, Sale, OrderLock
from ..services import sync_service
from pos_erp.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()
        live_locks = db.session.query(OrderLock).filter(OrderLock.expires_at > utcnow()).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
                "active_locks": live_locks,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), status_code


@system_bp.get("/api/sync/revision")
def sync_revision():
    return jsonify({"revision": sync_service.current_revision()}), 200
