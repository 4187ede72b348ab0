# Overview: Flask API route for the order export view consumed by spreadsheet tooling.

from flask import Blueprint, jsonify, current_app

from ..decorators import require_admin
from ..live import records
from ..services import view_service
from ..services.record_store import StoreError
from opsdesk.time_utils import utcnow


exports_bp = Blueprint("exports", __name__, url_prefix="/api/exports")


@exports_bp.get("/orders")
@require_admin
def export_orders():
    """
    Order rows joined with user names, oldest first.

    Response: {"generated_at": "...Z", "rows": [...]}
    """
    try:
        rows = view_service.order_export_rows(records)
    except StoreError:
        current_app.logger.exception("Failed to build order export")
        return jsonify({"error": "Record store unavailable"}), 503
    return jsonify({"generated_at": utcnow().isoformat() + "Z", "rows": rows}), 200
