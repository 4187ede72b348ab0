# Overview: Storage path namespace shared by the record services.

from __future__ import annotations

from ..validation import ValidationError

USERS = "Users"
WORKFLOWS = "Workflows"
QUESTIONS = "Questions"
ORDERS = "Orders"
ADMIN_KEY = "adminKey"

COLLECTIONS = (USERS, WORKFLOWS, QUESTIONS, ORDERS)


def record_path(collection: str, record_id: str, *fields: str) -> str:
    if not record_id or "/" in str(record_id):
        raise ValidationError(f"Invalid record id {record_id!r}")
    return "/".join((collection, str(record_id)) + fields)
