# Overview: Flask API routes for work orders and their lifecycle; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin
from ..live import records, sweeper
from ..services import lifecycle_service, order_service
from ..services.lifecycle_service import LifecycleError
from ..services.record_store import StoreError
from ..validation import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return False


@orders_bp.get("")
@require_admin
def list_orders():
    """List orders sorted by createdAt. Optional ?status= and ?customerId= filters."""
    try:
        status = request.args.get("status") or None
        customer_id = request.args.get("customerId")
        if customer_id:
            orders = order_service.list_orders_for_customer(records, customer_id)
            if status:
                orders = [o for o in orders if o.get("status") == status]
        else:
            orders = order_service.list_orders(records, status)
        return jsonify(orders), 200
    except StoreError:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Record store unavailable"}), 503


@orders_bp.post("")
@require_admin
def create_order():
    """
    Create a Pending order with a snapshot of the customer's workflows.

    Request: {"customerId", "selectedOptions"?: {key: value}, "staffId"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.create_order(
            records,
            customer_id=data.get("customerId"),
            selected_options=data.get("selectedOptions"),
            staff_id=data.get("staffId"),
        )
        return jsonify(order), 201
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Record store unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("")
@require_admin
def delete_orders():
    """
    Bulk delete.

    Either ?all=1 (every order) or a body {"ids": [...]}. Unknown ids are ignored.
    """
    try:
        if _parse_bool(request.args.get("all")):
            count = order_service.delete_all_orders(records)
            return jsonify({"deleted_count": count}), 200

        data = request.get_json(silent=True) or {}
        ids = data.get("ids")
        if not isinstance(ids, list) or not ids or not all(isinstance(i, str) for i in ids):
            return jsonify({"error": "ids must be a non-empty list of order ids"}), 400
        deleted = order_service.delete_orders(records, ids)
        return jsonify({"deleted": deleted, "deleted_count": len(deleted)}), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to delete orders")
        return jsonify({"error": "Record store unavailable"}), 503


@orders_bp.get("/<order_id>")
@require_admin
def get_order(order_id: str):
    try:
        order = order_service.get_order(records, order_id)
    except StoreError:
        current_app.logger.exception("Failed to fetch order %s", order_id)
        return jsonify({"error": "Record store unavailable"}), 503
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order), 200


@orders_bp.delete("/<order_id>")
@require_admin
def delete_order(order_id: str):
    try:
        if not order_service.delete_order(records, order_id):
            return jsonify({"error": "Order not found"}), 404
        return jsonify({"deleted": order_id}), 200
    except StoreError:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return jsonify({"error": "Record store unavailable"}), 503


@orders_bp.post("/<order_id>/status")
@require_admin
def change_status(order_id: str):
    """
    Change an order's status.

    Request: {"status": "Accepted"|"Rejected"|"Pending", "staffId"?, "override"?}

    Error responses:
        400: Unknown status value
        404: Order not found
        409: Transition not allowed (terminal order without override, back to Pending)
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in lifecycle_service.VALID_STATUSES:
        return jsonify({
            "error": f"status must be one of: {', '.join(sorted(lifecycle_service.VALID_STATUSES))}"
        }), 400

    try:
        order = lifecycle_service.change_status(
            records,
            order_id,
            status,
            staff_id=data.get("staffId") or None,
            override=_parse_bool(data.get("override")),
        )
        if order is None:
            return jsonify({"error": "Order not found"}), 404
        return jsonify(order_service.get_order(records, order_id)), 200
    except LifecycleError as exc:
        return jsonify({"error": str(exc)}), 409
    except StoreError:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Record store unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/sweep")
@require_admin
def sweep_orders():
    """Run one timeout sweep now. 409 when a sweep is already in progress."""
    try:
        result = sweeper.run_once()
    except StoreError:
        current_app.logger.exception("Manual order sweep failed")
        return jsonify({"error": "Record store unavailable"}), 503
    if result is None:
        return jsonify({"error": "A sweep is already in progress"}), 409
    return jsonify(result.to_dict()), 200
