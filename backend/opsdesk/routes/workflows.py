# Overview: Flask API routes for customer workflow screens; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin
from ..live import records
from ..services import workflow_service
from ..services.record_store import StoreError
from ..validation import ValidationError


workflows_bp = Blueprint("workflows", __name__, url_prefix="/api")


@workflows_bp.get("/customers/<customer_id>/workflows")
@require_admin
def list_workflows(customer_id: str):
    try:
        return jsonify(workflow_service.list_workflows_for(records, customer_id)), 200
    except StoreError:
        current_app.logger.exception("Failed to list workflows for %s", customer_id)
        return jsonify({"error": "Record store unavailable"}), 503


@workflows_bp.post("/workflows")
@require_admin
def create_workflow():
    """Request: {"customerId", "screenTitle", "options": [...]}"""
    data = request.get_json(silent=True) or {}
    try:
        workflow = workflow_service.create_workflow(
            records,
            customer_id=data.get("customerId"),
            screen_title=data.get("screenTitle"),
            options=data.get("options"),
        )
        return jsonify(workflow), 201
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to create workflow")
        return jsonify({"error": "Record store unavailable"}), 503


@workflows_bp.get("/workflows/<workflow_id>")
@require_admin
def get_workflow(workflow_id: str):
    try:
        workflow = workflow_service.get_workflow(records, workflow_id)
    except StoreError:
        current_app.logger.exception("Failed to fetch workflow %s", workflow_id)
        return jsonify({"error": "Record store unavailable"}), 503
    if workflow is None:
        return jsonify({"error": "Workflow not found"}), 404
    return jsonify(workflow), 200


@workflows_bp.put("/workflows/<workflow_id>")
@require_admin
def update_workflow(workflow_id: str):
    data = request.get_json(silent=True) or {}
    try:
        workflow = workflow_service.update_workflow(
            records,
            workflow_id,
            screen_title=data.get("screenTitle"),
            options=data.get("options"),
        )
        if workflow is None:
            return jsonify({"error": "Workflow not found"}), 404
        return jsonify(workflow), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to update workflow")
        return jsonify({"error": "Record store unavailable"}), 503


@workflows_bp.delete("/workflows/<workflow_id>")
@require_admin
def delete_workflow(workflow_id: str):
    try:
        if not workflow_service.delete_workflow(records, workflow_id):
            return jsonify({"error": "Workflow not found"}), 404
        return jsonify({"deleted": workflow_id}), 200
    except StoreError:
        current_app.logger.exception("Failed to delete workflow %s", workflow_id)
        return jsonify({"error": "Record store unavailable"}), 503
