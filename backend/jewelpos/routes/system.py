# backend/jewelpos/routes/system.py
"""
System health endpoint.

Reports database connectivity and the configured auth mode so a deploy can
be checked without credentials.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Sale, SaleInstallment
from jewelpos.time_utils import business_today, to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Count a few core tables; any exception marks the database unhealthy."""
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()
        open_installments = db.session.query(SaleInstallment).filter(
            SaleInstallment.is_paid.is_(False)
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
                "open_installments": open_installments,
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
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "business_date": business_today().isoformat(),
        "auth_mode": current_app.config.get("AUTH_MODE"),
        "checks": {
            "database": database_health,
        }
    }

    return response, 200 if healthy else 503
