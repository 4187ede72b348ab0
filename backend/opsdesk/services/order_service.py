# Overview: Service-layer operations for work orders; creation snapshot, listing and deletion.

"""
Orders live at Orders/{id}:

    {id, customerId, staffId?, staffName?, status, createdAt (epoch ms),
     selectedOptions {key: value}, workflows [snapshot], updatedAt?,
     rejectedReason?}

`workflows` is a copy of the customer's Workflow records taken when the
order is created; later workflow edits do not change existing orders.
`staffName` is likewise a snapshot of the staff username.

Orders are never deleted automatically, only by explicit single or bulk
delete.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from opsdesk.time_utils import now_ms
from opsdesk.validation import ValidationError
from . import lifecycle_service
from .paths import ORDERS, USERS, record_path
from .record_store import RecordStore
from .user_service import require_customer
from .view_service import (
    allocated_staff_ids,
    as_list,
    serialize_order,
    serialize_workflow,
    workflows_for,
)

logger = logging.getLogger(__name__)


def _clean_selected_options(selected: Any) -> dict[str, str]:
    if selected is None:
        return {}
    if isinstance(selected, Mapping):
        items = selected.items()
    elif isinstance(selected, (list, tuple)):
        items = ((str(i), v) for i, v in enumerate(selected))
    else:
        raise ValidationError("selectedOptions must be a mapping or a list")
    cleaned = {}
    for key, value in items:
        key = str(key)
        if not key or "/" in key:
            raise ValidationError(f"Invalid selectedOptions key {key!r}")
        if not isinstance(value, str):
            raise ValidationError("selectedOptions values must be strings")
        cleaned[key] = value
    return cleaned


def create_order(
    store: RecordStore,
    *,
    customer_id: Any,
    selected_options: Any = None,
    staff_id: Any = None,
    now: int | None = None,
) -> dict:
    """
    Create a PENDING order for a customer.

    Raises:
        ValidationError: unknown customer, staff not allocated to the customer,
            malformed selectedOptions
    """
    customer = require_customer(store, customer_id)
    selected = _clean_selected_options(selected_options)

    record: dict[str, Any] = {
        "customerId": customer_id,
        "status": lifecycle_service.PENDING,
        "createdAt": now if now is not None else now_ms(),
        "selectedOptions": selected,
        "workflows": [
            serialize_workflow(wf_id, wf)
            for wf_id, wf in sorted(workflows_for(store, customer_id).items())
        ],
    }

    if staff_id:
        if staff_id not in allocated_staff_ids(customer):
            raise ValidationError(f"Staff {staff_id} is not allocated to customer {customer_id}")
        staff = store.get(record_path(USERS, staff_id))
        if not isinstance(staff, Mapping) or staff.get("userType") != "staff":
            raise ValidationError(f"Staff {staff_id} not found")
        record["staffId"] = staff_id
        record["staffName"] = staff.get("username", "")

    order_id = store.generate_child_id(ORDERS)
    record["id"] = order_id
    store.set(record_path(ORDERS, order_id), record)
    logger.info("Created order %s for customer %s", order_id, customer_id)
    return serialize_order(order_id, record)


def get_order(store: RecordStore, order_id: str) -> dict | None:
    order = store.get(record_path(ORDERS, order_id))
    if not isinstance(order, Mapping):
        return None
    return serialize_order(order_id, order)


def list_orders(store: RecordStore, status: str | None = None) -> list[dict]:
    orders = store.children(ORDERS)
    if status is not None:
        orders = {k: v for k, v in orders.items() if isinstance(v, Mapping) and v.get("status") == status}
    items = as_list(orders, serialize_order)
    items.sort(key=lambda o: (o.get("createdAt") is None, o.get("createdAt") or 0, o["id"]))
    return items


def list_orders_for_customer(store: RecordStore, customer_id: str) -> list[dict]:
    return [order for order in list_orders(store) if order.get("customerId") == customer_id]


def delete_order(store: RecordStore, order_id: str) -> bool:
    path = record_path(ORDERS, order_id)
    if not store.exists(path):
        return False
    store.remove(path)
    logger.info("Deleted order %s", order_id)
    return True


def delete_orders(store: RecordStore, order_ids: Iterable[str]) -> list[str]:
    """
    Bulk delete. Ids that do not exist are ignored.

    All removals go through one update() call, so subscribers to Orders get
    a single delivery.
    """
    existing = store.children(ORDERS)
    targets = []
    for order_id in order_ids:
        record_path(ORDERS, order_id)
        if order_id in existing and order_id not in targets:
            targets.append(order_id)
    if targets:
        store.update(ORDERS, {order_id: None for order_id in targets})
        logger.info("Deleted %d order(s)", len(targets))
    return targets


def delete_all_orders(store: RecordStore) -> int:
    count = len(store.children(ORDERS))
    if count:
        store.remove(ORDERS)
        logger.info("Deleted all %d order(s)", count)
    return count
