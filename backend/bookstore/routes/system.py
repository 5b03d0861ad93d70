# backend/bookstore/routes/system.py
"""
System health endpoint.

Reports database connectivity plus the settlement backlog, for deployment
debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Order, PayoutRecord, CatalogEvent
from ..statuses import PayoutStatus
from bookstore.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        unpaid_payouts = db.session.query(PayoutRecord).filter(
            PayoutRecord.payment_status != PayoutStatus.PAID.value
        ).count()
        pending_events = db.session.query(CatalogEvent).filter(
            CatalogEvent.acknowledged_at.is_(None)
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "unpaid_payouts": unpaid_payouts,
                "pending_catalog_events": pending_events,
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


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: Database reachable
    - 503: Database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
