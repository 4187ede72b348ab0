# Overview: Flask API routes for customer questionnaires; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin
from ..live import records
from ..services import question_service
from ..services.record_store import StoreError
from ..validation import ValidationError


questions_bp = Blueprint("questions", __name__, url_prefix="/api")


@questions_bp.get("/customers/<customer_id>/questions")
@require_admin
def list_questions(customer_id: str):
    try:
        return jsonify(question_service.list_questions_for(records, customer_id)), 200
    except StoreError:
        current_app.logger.exception("Failed to list questions for %s", customer_id)
        return jsonify({"error": "Record store unavailable"}), 503


@questions_bp.post("/questions")
@require_admin
def create_question():
    """
    Request: {"customerId", "question", "options": [...], "correctAnswer"}

    Error responses:
        400: Missing field, empty option, fewer than two options,
             correctAnswer not among the options, unknown customer
    """
    data = request.get_json(silent=True) or {}
    try:
        question = question_service.create_question(
            records,
            customer_id=data.get("customerId"),
            question=data.get("question"),
            options=data.get("options"),
            correct_answer=data.get("correctAnswer"),
        )
        return jsonify(question), 201
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to create question")
        return jsonify({"error": "Record store unavailable"}), 503


@questions_bp.get("/questions/<question_id>")
@require_admin
def get_question(question_id: str):
    try:
        question = question_service.get_question(records, question_id)
    except StoreError:
        current_app.logger.exception("Failed to fetch question %s", question_id)
        return jsonify({"error": "Record store unavailable"}), 503
    if question is None:
        return jsonify({"error": "Question not found"}), 404
    return jsonify(question), 200


@questions_bp.put("/questions/<question_id>")
@require_admin
def update_question(question_id: str):
    data = request.get_json(silent=True) or {}
    try:
        question = question_service.update_question(
            records,
            question_id,
            question=data.get("question"),
            options=data.get("options"),
            correct_answer=data.get("correctAnswer"),
        )
        if question is None:
            return jsonify({"error": "Question not found"}), 404
        return jsonify(question), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except StoreError:
        current_app.logger.exception("Failed to update question")
        return jsonify({"error": "Record store unavailable"}), 503


@questions_bp.delete("/questions/<question_id>")
@require_admin
def delete_question(question_id: str):
    try:
        if not question_service.delete_question(records, question_id):
            return jsonify({"error": "Question not found"}), 404
        return jsonify({"deleted": question_id}), 200
    except StoreError:
        current_app.logger.exception("Failed to delete question %s", question_id)
        return jsonify({"error": "Record store unavailable"}), 503
