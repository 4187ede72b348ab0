# Overview: Service-layer operations for per-customer workflow screens.

from __future__ import annotations

import logging
from typing import Any, Mapping

from opsdesk.validation import normalize_sequence, require_text, validate_options
from .paths import WORKFLOWS, record_path
from .record_store import RecordStore
from .user_service import require_customer
from .view_service import as_list, serialize_workflow, workflows_for

logger = logging.getLogger(__name__)


def get_workflow(store: RecordStore, workflow_id: str) -> dict | None:
    workflow = store.get(record_path(WORKFLOWS, workflow_id))
    if not isinstance(workflow, Mapping):
        return None
    return serialize_workflow(workflow_id, workflow)


def list_workflows_for(store: RecordStore, customer_id: str) -> list[dict]:
    return as_list(workflows_for(store, customer_id), serialize_workflow)


def create_workflow(store: RecordStore, *, customer_id: Any, screen_title: Any, options: Any) -> dict:
    require_customer(store, customer_id)
    record = {
        "customerId": customer_id,
        "screenTitle": require_text({"screenTitle": screen_title}, "screenTitle"),
        "options": validate_options(options),
    }
    workflow_id = store.generate_child_id(WORKFLOWS)
    record["id"] = workflow_id
    store.set(record_path(WORKFLOWS, workflow_id), record)
    logger.info("Created workflow %s for customer %s", workflow_id, customer_id)
    return serialize_workflow(workflow_id, record)


def update_workflow(
    store: RecordStore,
    workflow_id: str,
    *,
    screen_title: Any = None,
    options: Any = None,
) -> dict | None:
    """
    Overwrite an existing workflow. customerId never changes (an orphaned
    workflow of a deleted customer can still be edited).
    """
    path = record_path(WORKFLOWS, workflow_id)
    existing = store.get(path)
    if not isinstance(existing, Mapping):
        return None

    record = {
        "id": workflow_id,
        "customerId": existing.get("customerId"),
        "screenTitle": existing.get("screenTitle", ""),
        "options": normalize_sequence(existing.get("options")),
    }
    if screen_title is not None:
        record["screenTitle"] = require_text({"screenTitle": screen_title}, "screenTitle")
    if options is not None:
        record["options"] = validate_options(options)

    store.set(path, record)
    return serialize_workflow(workflow_id, record)


def delete_workflow(store: RecordStore, workflow_id: str) -> bool:
    path = record_path(WORKFLOWS, workflow_id)
    if not store.exists(path):
        return False
    store.remove(path)
    logger.info("Deleted workflow %s", workflow_id)
    return True
