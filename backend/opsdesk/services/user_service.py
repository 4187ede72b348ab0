# Overview: Service-layer operations for users; customers and staff records with username checks.

"""
User records live at Users/{id}:

    {id, username, password, userType, allocatedMachine, notificationToken,
     allocatedStaffs (customers only)}

Username uniqueness is enforced by scanning Users before the write. The scan
and the write are two separate store operations, so two concurrent creates
with the same username can both pass the check. That gap is known and is
not corrected here.

Deleting a user removes only Users/{id}. Workflows, Questions and Orders
that reference it are kept.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from opsdesk.validation import (
    ConflictError,
    ValidationError,
    optional_text,
    require_text,
    validate_password,
    validate_user_type,
)
from .paths import USERS, record_path
from .record_store import RecordStore
from .view_service import allocated_staff_ids, serialize_user

logger = logging.getLogger(__name__)


def find_by_username(store: RecordStore, username: str) -> str | None:
    """Id of the user with `username`, or None (linear scan)."""
    for user_id, user in store.children(USERS).items():
        if isinstance(user, Mapping) and user.get("username") == username:
            return user_id
    return None


def username_taken(store: RecordStore, username: str, *, exclude_id: str | None = None) -> bool:
    found = find_by_username(store, username)
    return found is not None and found != exclude_id


def get_user(store: RecordStore, user_id: str) -> dict | None:
    user = store.get(record_path(USERS, user_id))
    if not isinstance(user, Mapping):
        return None
    users = store.children(USERS) if user.get("userType") == "staff" else None
    return serialize_user(user_id, user, users)


def create_user(
    store: RecordStore,
    *,
    username: Any,
    password: Any,
    user_type: Any,
    allocated_machine: Any = "",
    notification_token: Any = "",
) -> dict:
    """
    Create a customer or staff user.

    Raises:
        ValidationError: missing username/password, short password, bad userType
        ConflictError: username already used by another user
    """
    username = require_text({"username": username}, "username")
    password = validate_password(password)
    user_type = validate_user_type(user_type)

    if username_taken(store, username):
        raise ConflictError("Username already exists")

    user_id = store.generate_child_id(USERS)
    record: dict[str, Any] = {
        "id": user_id,
        "username": username,
        "password": password,
        "userType": user_type,
        "allocatedMachine": optional_text(allocated_machine, "allocatedMachine"),
        "notificationToken": optional_text(notification_token, "notificationToken"),
    }
    if user_type == "customer":
        record["allocatedStaffs"] = []

    store.set(record_path(USERS, user_id), record)
    logger.info("Created %s user %s (%s)", user_type, user_id, username)
    return serialize_user(user_id, record, {user_id: record})


def update_user(
    store: RecordStore,
    user_id: str,
    *,
    username: Any = None,
    password: Any = None,
    allocated_machine: Any = None,
    notification_token: Any = None,
) -> dict | None:
    """
    Overwrite a user record with edited fields.

    userType and allocatedStaffs are always carried over from the stored
    record; the allocation is only changed through allocation_service.
    Returns None when the user does not exist.
    """
    path = record_path(USERS, user_id)
    existing = store.get(path)
    if not isinstance(existing, Mapping):
        return None

    record = dict(existing)
    if username is not None:
        new_username = require_text({"username": username}, "username")
        if new_username != existing.get("username") and username_taken(store, new_username, exclude_id=user_id):
            raise ConflictError("Username already exists")
        record["username"] = new_username
    if password is not None:
        record["password"] = validate_password(password)
    if allocated_machine is not None:
        record["allocatedMachine"] = optional_text(allocated_machine, "allocatedMachine")
    if notification_token is not None:
        record["notificationToken"] = optional_text(notification_token, "notificationToken")

    record["id"] = user_id
    record.pop("userId", None)
    if "fcmToken" in record:
        record.setdefault("notificationToken", record.get("fcmToken") or "")
        record.pop("fcmToken")
    if record.get("userType") == "customer":
        record["allocatedStaffs"] = allocated_staff_ids(existing)
    else:
        record.pop("allocatedCustomers", None)

    store.set(path, record)
    return get_user(store, user_id)


def delete_user(store: RecordStore, user_id: str) -> bool:
    """Remove Users/{id}. Returns False when there was nothing to remove."""
    path = record_path(USERS, user_id)
    if not store.exists(path):
        return False
    store.remove(path)
    logger.info("Deleted user %s", user_id)
    return True


def list_users(store: RecordStore, user_type: str | None = None) -> list[dict]:
    users = store.children(USERS)
    if user_type is not None:
        validate_user_type(user_type)
    return [
        serialize_user(user_id, user, users)
        for user_id, user in sorted(users.items())
        if isinstance(user, Mapping) and (user_type is None or user.get("userType") == user_type)
    ]


def require_customer(store: RecordStore, customer_id: Any) -> Mapping[str, Any]:
    if not customer_id or not isinstance(customer_id, str):
        raise ValidationError("customerId is required")
    customer = store.get(record_path(USERS, customer_id))
    if not isinstance(customer, Mapping) or customer.get("userType") != "customer":
        raise ValidationError(f"Customer {customer_id} not found")
    return customer
