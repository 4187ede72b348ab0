# Overview: Service-layer operations for per-customer questionnaire questions.

from __future__ import annotations

import logging
from typing import Any, Mapping

from opsdesk.validation import ValidationError, require_text, validate_options
from .paths import QUESTIONS, record_path
from .record_store import RecordStore
from .user_service import require_customer
from .view_service import as_list, questions_for, serialize_question

logger = logging.getLogger(__name__)

MIN_OPTIONS = 2


def _validated_fields(question: Any, options: Any, correct_answer: Any) -> dict:
    text = require_text({"question": question}, "question")
    cleaned = validate_options(options, min_count=MIN_OPTIONS)
    answer = require_text({"correctAnswer": correct_answer}, "correctAnswer")
    if answer not in cleaned:
        raise ValidationError("correctAnswer must be one of the options")
    return {"question": text, "options": cleaned, "correctAnswer": answer}


def get_question(store: RecordStore, question_id: str) -> dict | None:
    question = store.get(record_path(QUESTIONS, question_id))
    if not isinstance(question, Mapping):
        return None
    return serialize_question(question_id, question)


def list_questions_for(store: RecordStore, customer_id: str) -> list[dict]:
    return as_list(questions_for(store, customer_id), serialize_question)


def create_question(
    store: RecordStore,
    *,
    customer_id: Any,
    question: Any,
    options: Any,
    correct_answer: Any,
) -> dict:
    require_customer(store, customer_id)
    record = _validated_fields(question, options, correct_answer)
    question_id = store.generate_child_id(QUESTIONS)
    record.update({"id": question_id, "customerId": customer_id})
    store.set(record_path(QUESTIONS, question_id), record)
    logger.info("Created question %s for customer %s", question_id, customer_id)
    return serialize_question(question_id, record)


def update_question(
    store: RecordStore,
    question_id: str,
    *,
    question: Any = None,
    options: Any = None,
    correct_answer: Any = None,
) -> dict | None:
    """Full overwrite of an existing question; omitted fields keep stored values."""
    path = record_path(QUESTIONS, question_id)
    existing = store.get(path)
    if not isinstance(existing, Mapping):
        return None

    record = _validated_fields(
        question if question is not None else existing.get("question"),
        options if options is not None else existing.get("options"),
        correct_answer if correct_answer is not None else existing.get("correctAnswer"),
    )
    record.update({"id": question_id, "customerId": existing.get("customerId")})
    store.set(path, record)
    return serialize_question(question_id, record)


def delete_question(store: RecordStore, question_id: str) -> bool:
    path = record_path(QUESTIONS, question_id)
    if not store.exists(path):
        return False
    store.remove(path)
    logger.info("Deleted question %s", question_id)
    return True
