# backend/plantops/routes/system.py
"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import PipelineEvent, StockRecord
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        record_count = db.session.query(func.count(StockRecord.id)).scalar()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"stock_records": record_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_pipeline_health() -> dict:
    """Unconsumed events are not an outage, but failing ones need a replay."""
    try:
        pending = (
            db.session.query(func.count(PipelineEvent.id))
            .filter(PipelineEvent.consumed_at.is_(None))
            .scalar()
        )
        failing = (
            db.session.query(func.count(PipelineEvent.id))
            .filter(PipelineEvent.consumed_at.is_(None), PipelineEvent.last_error.isnot(None))
            .scalar()
        )
    except Exception:
        current_app.logger.exception("Pipeline health check failed")
        return {"status": "unhealthy", "error": "Pipeline event table error"}
    return {
        "status": "degraded" if failing else "healthy",
        "details": {"pending_events": pending, "failing_events": failing},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    pipeline_health = check_pipeline_health()

    all_checks = [database_health, pipeline_health]
    if any(c["status"] == "unhealthy" for c in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "pipeline_events": pipeline_health,
        },
    }, http_status
