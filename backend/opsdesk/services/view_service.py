# Overview: Service-layer derived views; filters and projects record collections for viewers.

"""
View Projector

Every view is recomputed from a snapshot of the underlying collection by a
linear scan with a field-equality predicate. Nothing here is cached or
persisted: a view is consistent with the store as of the snapshot it was
computed from.

Two entry points per view:
- store-reading wrappers (questions_for(store, customer_id), ...) for
  request/response callers
- pure projectors over a collection snapshot (project_questions_for(...))
  which watch() re-runs on every ChangeBus delivery
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from opsdesk.time_utils import ms_to_utc_z, to_epoch_ms
from opsdesk.validation import normalize_sequence
from .change_bus import Subscription
from .paths import ORDERS, QUESTIONS, USERS, WORKFLOWS
from .record_store import RecordStore


UNKNOWN_STAFF = "Unknown Staff"
UNKNOWN_USER = "Unknown user"

# Id fields written by older clients inside each record
LEGACY_ID_FIELDS = ("userId", "workflowId", "questionId", "orderId")


def filter_records(records: Mapping[str, Any] | None, field: str, value: Any) -> dict[str, Any]:
    """Records (as {id: record}) whose `field` equals `value`."""
    if not records:
        return {}
    return {
        record_id: record
        for record_id, record in records.items()
        if isinstance(record, Mapping) and record.get(field) == value
    }


# ================================================================================
# SERIALIZERS
# ================================================================================

def _with_id(record_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
    out = {k: v for k, v in record.items() if k not in LEGACY_ID_FIELDS}
    out["id"] = record_id
    return out


def allocated_staff_ids(record: Mapping[str, Any] | None) -> list[str]:
    """allocatedStaffs of a customer record as an ordered, duplicate-free list."""
    if not record:
        return []
    seen: list[str] = []
    for staff_id in normalize_sequence(record.get("allocatedStaffs")):
        if isinstance(staff_id, str) and staff_id and staff_id not in seen:
            seen.append(staff_id)
    return seen


def customers_allocated_to(users: Mapping[str, Any] | None, staff_id: str) -> list[str]:
    """Ids of customers whose allocatedStaffs contains `staff_id` (linear scan)."""
    return [
        user_id
        for user_id, user in project_users_of_type(users, "customer").items()
        if staff_id in allocated_staff_ids(user)
    ]


def serialize_user(user_id: str, user: Mapping[str, Any], users: Mapping[str, Any] | None = None) -> dict:
    out = _with_id(user_id, user)
    out.setdefault("allocatedMachine", "")
    out["notificationToken"] = user.get("notificationToken", user.get("fcmToken", "")) or ""
    out.pop("fcmToken", None)
    if user.get("userType") == "customer":
        out["allocatedStaffs"] = allocated_staff_ids(user)
        out.pop("allocatedCustomers", None)
    elif user.get("userType") == "staff":
        # Derived: the customer -> staff direction is the authoritative one
        out["allocatedCustomers"] = customers_allocated_to(users, user_id) if users is not None else []
    return out


def serialize_workflow(workflow_id: str, workflow: Mapping[str, Any]) -> dict:
    out = _with_id(workflow_id, workflow)
    out["options"] = normalize_sequence(workflow.get("options"))
    return out


def serialize_question(question_id: str, question: Mapping[str, Any]) -> dict:
    out = _with_id(question_id, question)
    out["options"] = normalize_sequence(question.get("options"))
    return out


def normalize_workflow_snapshot(workflows: Any) -> list[dict]:
    """An order's workflows snapshot is stored either as a list or keyed by id."""
    if not workflows:
        return []
    if isinstance(workflows, Mapping):
        items = []
        for key in sorted(workflows.keys(), key=str):
            wf = workflows[key]
            if isinstance(wf, Mapping):
                items.append(serialize_workflow(wf.get("workflowId") or wf.get("id") or key, wf))
        return items
    items = []
    for index, wf in enumerate(normalize_sequence(workflows)):
        if isinstance(wf, Mapping):
            wf_id = wf.get("workflowId") or wf.get("id") or str(index)
            items.append(serialize_workflow(wf_id, wf))
    return items


def order_created_ms(order: Mapping[str, Any]) -> int | None:
    """createdAt in epoch ms; the legacy `timestamp` field is accepted."""
    created = order.get("createdAt")
    if created is None:
        created = order.get("timestamp")
    return to_epoch_ms(created)


def serialize_order(order_id: str, order: Mapping[str, Any]) -> dict:
    out = _with_id(order_id, order)
    out.pop("timestamp", None)
    out["createdAt"] = order_created_ms(order)
    selected = order.get("selectedOptions")
    out["selectedOptions"] = dict(selected) if isinstance(selected, Mapping) else {
        str(i): v for i, v in enumerate(normalize_sequence(selected))
    }
    out["workflows"] = normalize_workflow_snapshot(order.get("workflows"))
    return out


def as_list(records: Mapping[str, Any] | None, serializer: Callable[[str, Mapping], dict]) -> list[dict]:
    if not records:
        return []
    return [
        serializer(record_id, record)
        for record_id, record in sorted(records.items(), key=lambda item: item[0])
        if isinstance(record, Mapping)
    ]


# ================================================================================
# PROJECTORS (pure, over collection snapshots)
# ================================================================================

def project_users_of_type(users: Mapping[str, Any] | None, user_type: str) -> dict[str, Any]:
    return filter_records(users, "userType", user_type)


def project_questions_for(questions: Mapping[str, Any] | None, customer_id: str) -> dict[str, Any]:
    return filter_records(questions, "customerId", customer_id)


def project_workflows_for(workflows: Mapping[str, Any] | None, customer_id: str) -> dict[str, Any]:
    return filter_records(workflows, "customerId", customer_id)


def project_orders_with_status(orders: Mapping[str, Any] | None, status: str) -> dict[str, Any]:
    return filter_records(orders, "status", status)


# ================================================================================
# STORE-READING VIEWS
# ================================================================================

def users_of_type(store: RecordStore, user_type: str) -> dict[str, Any]:
    return project_users_of_type(store.children(USERS), user_type)


def questions_for(store: RecordStore, customer_id: str) -> dict[str, Any]:
    return project_questions_for(store.children(QUESTIONS), customer_id)


def workflows_for(store: RecordStore, customer_id: str) -> dict[str, Any]:
    return project_workflows_for(store.children(WORKFLOWS), customer_id)


def orders_with_status(store: RecordStore, status: str) -> dict[str, Any]:
    return project_orders_with_status(store.children(ORDERS), status)


def order_export_rows(store: RecordStore) -> list[dict]:
    """
    Read-only materialized view for the spreadsheet export collaborator.

    One row per order, joined with Users for display names. Formatting into
    a file is the collaborator's job; rows carry plain JSON values only.
    """
    users = store.children(USERS)
    orders = store.children(ORDERS)
    rows = []
    for order_id, order in orders.items():
        if not isinstance(order, Mapping):
            continue
        customer_id = order.get("customerId")
        customer = users.get(customer_id) if customer_id else None
        staff_id = order.get("staffId")
        staff = users.get(staff_id) if staff_id else None

        staff_name = order.get("staffName") or (staff or {}).get("username") or "N/A"
        selected = serialize_order(order_id, order)["selectedOptions"]
        created_ms = order_created_ms(order)

        rows.append({
            "orderId": order.get("orderId") or order_id,
            "customerId": customer_id,
            "customerName": (customer or {}).get("username") or UNKNOWN_USER,
            "staffId": staff_id,
            "staffName": staff_name,
            "status": order.get("status"),
            "createdAt": ms_to_utc_z(created_ms),
            "selectedOptions": [f"{key}: {value}" for key, value in selected.items()],
            "workflows": [
                {"screenTitle": wf.get("screenTitle"), "options": wf.get("options", [])}
                for wf in normalize_workflow_snapshot(order.get("workflows"))
            ],
            "_createdMs": created_ms,
        })

    rows.sort(key=lambda row: (row["_createdMs"] is None, row["_createdMs"] or 0, row["orderId"]))
    for row in rows:
        row.pop("_createdMs")
    return rows


# ================================================================================
# LIVE PROJECTIONS
# ================================================================================

def watch(
    store: RecordStore,
    path: str,
    projector: Callable[[Any], Any],
    handler: Callable[[Any], None],
) -> Subscription:
    """
    Subscribe to `path` and deliver projector(snapshot) on every change.

    The projection is recomputed once per delivery of the underlying
    collection; the handler never sees the raw snapshot.
    """
    def _deliver(snapshot: Any) -> None:
        handler(projector(snapshot))

    return store.subscribe(path, _deliver)


def live_projection(name: str, record_id: str | None = None) -> tuple[str, Callable[[Any], Any]]:
    """
    Resolve a named live view to (path, projector).

    Raises KeyError for unknown names.
    """
    if name == "customers":
        return USERS, lambda users: as_list(
            project_users_of_type(users, "customer"), lambda i, u: serialize_user(i, u, users)
        )
    if name == "staff":
        return USERS, lambda users: as_list(
            project_users_of_type(users, "staff"), lambda i, u: serialize_user(i, u, users)
        )
    if name == "orders":
        return ORDERS, lambda orders: as_list(orders, serialize_order)
    if name == "questions" and record_id:
        return QUESTIONS, lambda questions: as_list(
            project_questions_for(questions, record_id), serialize_question
        )
    if name == "workflows" and record_id:
        return WORKFLOWS, lambda workflows: as_list(
            project_workflows_for(workflows, record_id), serialize_workflow
        )
    raise KeyError(name)
