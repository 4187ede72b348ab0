# Overview: Service-layer allocation index; customer <-> staff many-to-many relation.

"""
Allocation Index

================================================================================
PURPOSE: Maintain which staff members may act on behalf of which customers
================================================================================

STORAGE:
    The relation is stored in ONE direction only:
        Users/{customerId}/allocatedStaffs = [staffId, ...]
    The staff -> customers direction is computed by scanning customers.
    No reverse index is persisted.

RULES:
1. allocate() is idempotent: an already-present staff id is not written again
2. deallocate() of a non-member is a no-op
3. Every element written references an existing staff user
4. Unknown customer ids are a no-op returning an empty list (not an error)

KNOWN CONSISTENCY GAP:
    allocate/deallocate read the whole array, compute the new array and
    overwrite the whole field. Two actors changing the same customer at the
    same time can lose one of the two effects (last write wins on the array).
    Passing a KeyedLocks registry (config ALLOCATION_LOCKING) serializes the
    read-modify-write for writers in this process; it is off by default.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from opsdesk.validation import ValidationError
from .concurrency import KeyedLocks, lock_for_update
from .paths import USERS, record_path
from .record_store import RecordStore
from .view_service import (
    UNKNOWN_STAFF,
    allocated_staff_ids,
    customers_allocated_to,
    project_users_of_type,
)

logger = logging.getLogger(__name__)


def _load_customer(store: RecordStore, customer_id: str) -> Mapping[str, Any] | None:
    customer = store.get(record_path(USERS, customer_id))
    if customer is None:
        return None
    if not isinstance(customer, Mapping) or customer.get("userType") != "customer":
        raise ValidationError(f"User {customer_id} is not a customer")
    return customer


def _require_staff(store: RecordStore, staff_id: str) -> Mapping[str, Any]:
    if not staff_id or not isinstance(staff_id, str):
        raise ValidationError("staffId is required")
    staff = store.get(record_path(USERS, staff_id))
    if not isinstance(staff, Mapping) or staff.get("userType") != "staff":
        raise ValidationError(f"Staff {staff_id} not found")
    return staff


def list_allocated(store: RecordStore, customer_id: str) -> list[str]:
    """Staff ids allocated to `customer_id`, in allocation order, without duplicates."""
    return allocated_staff_ids(store.get(record_path(USERS, customer_id)))


def allocate(
    store: RecordStore,
    customer_id: str,
    staff_id: str,
    *,
    locks: KeyedLocks | None = None,
) -> list[str]:
    """
    Add `staff_id` to the customer's allocated staff.

    Returns the resulting allocation. Allocating an already-allocated staff
    member performs no write.

    Raises:
        ValidationError: staff id is not an existing staff user, or the
            customer id names a non-customer user
    """
    with lock_for_update(locks, customer_id):
        customer = _load_customer(store, customer_id)
        if customer is None:
            logger.info("allocate: customer %s not found, nothing to do", customer_id)
            return []
        _require_staff(store, staff_id)

        current = allocated_staff_ids(customer)
        if staff_id in current:
            return current

        updated = current + [staff_id]
        store.set(record_path(USERS, customer_id, "allocatedStaffs"), updated)
        logger.info("Allocated staff %s to customer %s", staff_id, customer_id)
        return updated


def deallocate(
    store: RecordStore,
    customer_id: str,
    staff_id: str,
    *,
    locks: KeyedLocks | None = None,
) -> list[str]:
    """
    Remove `staff_id` from the customer's allocated staff.

    Removing a staff id that is not allocated performs no write. The staff
    user does not need to exist (stale ids of deleted staff can be removed).
    """
    with lock_for_update(locks, customer_id):
        customer = _load_customer(store, customer_id)
        if customer is None:
            logger.info("deallocate: customer %s not found, nothing to do", customer_id)
            return []

        current = allocated_staff_ids(customer)
        if staff_id not in current:
            return current

        updated = [existing for existing in current if existing != staff_id]
        store.set(record_path(USERS, customer_id, "allocatedStaffs"), updated)
        logger.info("Deallocated staff %s from customer %s", staff_id, customer_id)
        return updated


def list_customers_for(store: RecordStore, staff_id: str) -> list[str]:
    """Customer ids that have `staff_id` allocated (scans every customer)."""
    return customers_allocated_to(store.children(USERS), staff_id)


def allocation_details(store: RecordStore, customer_id: str) -> dict | None:
    """
    Allocated and unallocated staff for one customer, with usernames.

    Allocated ids whose staff record no longer exists are reported with the
    username "Unknown Staff" so an operator can still remove them.
    Returns None when the customer does not exist.
    """
    users = store.children(USERS)
    customer = users.get(customer_id)
    if not isinstance(customer, Mapping) or customer.get("userType") != "customer":
        return None

    staff = project_users_of_type(users, "staff")
    allocated_ids = allocated_staff_ids(customer)
    allocated = [
        {"id": staff_id, "username": (staff.get(staff_id) or {}).get("username") or UNKNOWN_STAFF}
        for staff_id in allocated_ids
    ]
    unallocated = [
        {"id": staff_id, "username": record.get("username")}
        for staff_id, record in sorted(staff.items())
        if staff_id not in allocated_ids
    ]
    return {
        "customerId": customer_id,
        "username": customer.get("username"),
        "allocated": allocated,
        "unallocated": unallocated,
    }
