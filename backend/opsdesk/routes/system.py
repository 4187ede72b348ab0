# backend/opsdesk/routes/system.py
"""
System health and version endpoints.

Reports the state of the record store, the change bus and the order sweeper.
"""

import sys
import time
from flask import Blueprint, current_app
from ..live import records, sweeper
from ..services.paths import COLLECTIONS
from opsdesk.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_store_health() -> dict:
    """
    Check record store connectivity by counting every collection.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        counts = {name: len(records.children(name)) for name in COLLECTIONS}
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Record store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Record store error",
        }


def check_live_health() -> dict:
    bus = records.bus
    if bus.closed:
        return {"status": "unhealthy", "error": "Change bus closed"}

    details = {
        "subscriptions": bus.subscriber_count,
        "sweeper_running": sweeper.running,
        "sweeper_skipped_ticks": sweeper.skipped_ticks,
    }
    if sweeper.last_result is not None:
        details["last_sweep"] = sweeper.last_result.to_dict()

    enabled = current_app.config.get("ORDER_SWEEPER_ENABLED") and not current_app.config.get("TESTING")
    if enabled and not sweeper.running:
        return {"status": "degraded", "warning": "Order sweeper is not running", "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: record store unreachable or change bus closed
    """
    start_time = time.time()

    store_health = check_store_health()
    live_health = check_live_health()

    all_checks = [store_health, live_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "record_store": store_health,
            "live": live_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
