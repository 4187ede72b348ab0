# Overview: Flask API routes for customers, staff and allocations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin
from ..live import records, allocation_locks
from ..services import allocation_service, user_service
from ..services.record_store import StoreError
from ..validation import ConflictError, ValidationError


users_bp = Blueprint("users", __name__, url_prefix="/api")


@users_bp.get("/users")
@require_admin
def list_users():
    try:
        users = user_service.list_users(records, request.args.get("type"))
        return jsonify(users), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Record store unavailable"}), 503


@users_bp.get("/customers")
@require_admin
def list_customers():
    try:
        return jsonify(user_service.list_users(records, "customer")), 200
    except StoreError:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Record store unavailable"}), 503


@users_bp.get("/staff")
@require_admin
def list_staff():
    try:
        return jsonify(user_service.list_users(records, "staff")), 200
    except StoreError:
        current_app.logger.exception("Failed to list staff")
        return jsonify({"error": "Record store unavailable"}), 503


@users_bp.post("/users")
@require_admin
def create_user():
    """
    Create a customer or staff user.

    Request:
        {"username", "password", "userType": "customer"|"staff", "allocatedMachine"?}

    Error responses:
        400: Missing field, password shorter than 6 characters, bad userType
        409: Username already exists
    """
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(
            records,
            username=data.get("username"),
            password=data.get("password"),
            user_type=data.get("userType"),
            allocated_machine=data.get("allocatedMachine", ""),
            notification_token=data.get("notificationToken", ""),
        )
        return jsonify(user), 201
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConflictError as exc:
        return jsonify({"error": str(exc)}), 409
    except StoreError:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Record store unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/users/<user_id>")
@require_admin
def get_user(user_id: str):
    try:
        user = user_service.get_user(records, user_id)
    except StoreError:
        current_app.logger.exception("Failed to fetch user %s", user_id)
        return jsonify({"error": "Record store unavailable"}), 503
    if user is None:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user), 200


@users_bp.put("/users/<user_id>")
@require_admin
def update_user(user_id: str):
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(
            records,
            user_id,
            username=data.get("username"),
            password=data.get("password"),
            allocated_machine=data.get("allocatedMachine"),
            notification_token=data.get("notificationToken"),
        )
        if user is None:
            return jsonify({"error": "User not found"}), 404
        return jsonify(user), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConflictError as exc:
        return jsonify({"error": str(exc)}), 409
    except StoreError:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Record store unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/users/<user_id>")
@require_admin
def delete_user(user_id: str):
    """Delete one user. Workflows, questions and orders referencing it are kept."""
    try:
        if not user_service.delete_user(records, user_id):
            return jsonify({"error": "User not found"}), 404
        return jsonify({"deleted": user_id}), 200
    except StoreError:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Record store unavailable"}), 503


# ================================================================================
# ALLOCATIONS
# ================================================================================

@users_bp.get("/customers/<customer_id>/staff")
@require_admin
def get_allocation(customer_id: str):
    try:
        details = allocation_service.allocation_details(records, customer_id)
    except StoreError:
        current_app.logger.exception("Failed to fetch allocation for %s", customer_id)
        return jsonify({"error": "Record store unavailable"}), 503
    if details is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify(details), 200


@users_bp.post("/customers/<customer_id>/staff")
@require_admin
def allocate_staff(customer_id: str):
    """
    Allocate a staff member to a customer. Idempotent.

    Request: {"staffId": "..."}
    Response: {"customerId", "allocatedStaffs": [...]}
    """
    data = request.get_json(silent=True) or {}
    try:
        if user_service.get_user(records, customer_id) is None:
            return jsonify({"error": "Customer not found"}), 404
        allocated = allocation_service.allocate(
            records, customer_id, data.get("staffId"), locks=allocation_locks()
        )
        return jsonify({"customerId": customer_id, "allocatedStaffs": allocated}), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to allocate staff")
        return jsonify({"error": "Record store unavailable"}), 503


@users_bp.delete("/customers/<customer_id>/staff/<staff_id>")
@require_admin
def deallocate_staff(customer_id: str, staff_id: str):
    try:
        if user_service.get_user(records, customer_id) is None:
            return jsonify({"error": "Customer not found"}), 404
        allocated = allocation_service.deallocate(
            records, customer_id, staff_id, locks=allocation_locks()
        )
        return jsonify({"customerId": customer_id, "allocatedStaffs": allocated}), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to deallocate staff")
        return jsonify({"error": "Record store unavailable"}), 503


@users_bp.get("/staff/<staff_id>/customers")
@require_admin
def customers_for_staff(staff_id: str):
    try:
        staff = user_service.get_user(records, staff_id)
        if staff is None or staff.get("userType") != "staff":
            return jsonify({"error": "Staff not found"}), 404
        customer_ids = allocation_service.list_customers_for(records, staff_id)
        customers = [user_service.get_user(records, customer_id) for customer_id in customer_ids]
    except StoreError:
        current_app.logger.exception("Failed to list customers for staff %s", staff_id)
        return jsonify({"error": "Record store unavailable"}), 503
    return jsonify([
        {"id": c["id"], "username": c.get("username") or "Unknown"}
        for c in customers if c is not None
    ]), 200
