# backend/stockapp/routes/system.py
"""
System health endpoint.

Reports store connectivity plus a few counters shown on the dashboard
(product total, critical-stock count).
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..services.category_service import fallback_category_name, find_id_by_name
from ..services.products_service import count_critical_products, count_products
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        product_count = count_products()
        critical_count = count_critical_products()
        fallback_present = find_id_by_name(fallback_category_name()) is not None

        elapsed_ms = (time.time() - start_time) * 1000

        if not fallback_present:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Fallback category missing; run `flask system init`",
                "details": {"products": product_count, "critical_stock": critical_count},
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "critical_stock": critical_count,
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


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()

    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        }
    }
    return response, http_status
