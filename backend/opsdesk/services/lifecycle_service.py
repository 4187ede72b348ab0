# Overview: Service-layer operations for order lifecycle; status state machine and timeout sweep.

"""
Order Lifecycle Service

================================================================================
PURPOSE: Enforce Pending -> {Accepted, Rejected} for work orders
================================================================================

STATE MACHINE:
    PENDING -> ACCEPTED   (operator or allocated staff accepts)
    PENDING -> REJECTED   (operator rejects, or timeout sweep)

    ACCEPTED, REJECTED are terminal: no automatic transition leaves them.
    Only an explicit operator override may swap one terminal state for the
    other. Nothing returns to PENDING.

LEGACY VALUES:
    Older snapshots of the order screen wrote "In Progress", "Completed" and
    "Cancelled". They are displayed as stored, never produced here, never
    swept, and can only be replaced through an operator override.

TIMEOUT SWEEP:
    sweep_expired_orders() rejects every PENDING order whose age is strictly
    greater than the timeout. The write is idempotent (the target status is
    the constant REJECTED), so overlapping sweeps converge.

KNOWN RACE (accepted):
    The sweep reads Orders, then writes each expired order separately. An
    operator who accepts an order between that read and that write is
    overwritten by REJECTED. Whichever write lands last decides; this is
    documented behaviour, not corrected here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from opsdesk.time_utils import now_ms
from .paths import ORDERS, USERS, record_path
from .record_store import RecordStore
from .view_service import allocated_staff_ids, order_created_ms

logger = logging.getLogger(__name__)


PENDING = "Pending"
ACCEPTED = "Accepted"
REJECTED = "Rejected"

VALID_STATUSES = {PENDING, ACCEPTED, REJECTED}
TERMINAL_STATUSES = {ACCEPTED, REJECTED}
LEGACY_STATUSES = {"In Progress", "InProgress", "Completed", "Cancelled"}
OrderStatus = Literal["Pending", "Accepted", "Rejected"]

TIMEOUT_REASON = "timeout"


class LifecycleError(ValueError):
    """
    Raised when an invalid status transition is attempted.

    This is a domain error, not a technical error.
    """
    pass


def validate_status(status: Any) -> None:
    """
    Raises:
        LifecycleError: If status is not in VALID_STATUSES
    """
    if status not in VALID_STATUSES:
        raise LifecycleError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def is_terminal(status: Any) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(from_status: Any, to_status: Any, *, override: bool = False) -> bool:
    """
    Check if a status change is allowed.

    Valid without override:
    - PENDING -> ACCEPTED
    - PENDING -> REJECTED
    - any status -> the same status (no-op)

    Valid only with override (explicit operator action):
    - ACCEPTED <-> REJECTED
    - legacy status -> ACCEPTED / REJECTED

    Never valid:
    - anything -> PENDING (except the PENDING no-op)
    """
    validate_status(to_status)

    if from_status == to_status:
        return True

    if to_status == PENDING:
        return False

    if from_status == PENDING:
        return True

    # from_status is terminal or legacy/unknown
    return override


def is_expired(order: Mapping[str, Any], now: int, timeout_seconds: float) -> bool:
    """True when `order` is PENDING and older than `timeout_seconds` at `now` (epoch ms)."""
    if order.get("status") != PENDING:
        return False
    created = order_created_ms(order)
    if created is None:
        return False
    return now - created > timeout_seconds * 1000


def change_status(
    store: RecordStore,
    order_id: str,
    status: str,
    *,
    staff_id: str | None = None,
    override: bool = False,
    now: int | None = None,
) -> dict | None:
    """
    Move an order to `status`.

    When `staff_id` is given the staff member must be allocated to the
    order's customer; the order records staffId and a staffName snapshot.

    Returns the updated order record, or None when the order does not exist.

    Raises:
        LifecycleError: invalid target status or forbidden transition
    """
    validate_status(status)
    path = record_path(ORDERS, order_id)
    order = store.get(path)
    if not isinstance(order, Mapping):
        return None

    current = order.get("status")
    if not can_transition(current, status, override=override):
        raise LifecycleError(
            f"Cannot change order {order_id} from '{current}' to '{status}'"
            + ("" if override or not is_terminal(current) else " without operator override")
        )

    fields: dict[str, Any] = {"status": status, "updatedAt": now if now is not None else now_ms()}
    if staff_id:
        staff = store.get(record_path(USERS, staff_id))
        if not isinstance(staff, Mapping) or staff.get("userType") != "staff":
            raise LifecycleError(f"Staff {staff_id} not found")
        customer = store.get(record_path(USERS, order.get("customerId"))) if order.get("customerId") else None
        if staff_id not in allocated_staff_ids(customer):
            raise LifecycleError(f"Staff {staff_id} is not allocated to customer {order.get('customerId')}")
        fields["staffId"] = staff_id
        fields["staffName"] = staff.get("username", "")
    if status != REJECTED:
        fields["rejectedReason"] = None

    if not store.update_existing(path, fields):
        logger.warning("Order %s was deleted before its status change was written", order_id)
        return None
    logger.info("Order %s status %s -> %s%s", order_id, current, status, " (override)" if override else "")
    return store.get(path)


@dataclass
class SweepResult:
    scanned: int = 0
    rejected_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "rejected": list(self.rejected_ids),
            "skipped": list(self.skipped_ids),
        }


def sweep_expired_orders(
    store: RecordStore,
    *,
    now: int | None = None,
    timeout_seconds: float = 60,
) -> SweepResult:
    """
    Reject every PENDING order older than `timeout_seconds`.

    Orders that are not PENDING, or PENDING but not yet expired, are never
    written. PENDING orders without a parseable createdAt are skipped, and an
    order deleted after the scan started is left deleted.
    """
    now = now if now is not None else now_ms()
    orders = store.children(ORDERS)
    result = SweepResult(scanned=len(orders))

    for order_id, order in orders.items():
        if not isinstance(order, Mapping) or order.get("status") != PENDING:
            continue
        if order_created_ms(order) is None:
            result.skipped_ids.append(order_id)
            continue
        if not is_expired(order, now, timeout_seconds):
            continue

        written = store.update_existing(
            record_path(ORDERS, order_id),
            {"status": REJECTED, "rejectedReason": TIMEOUT_REASON, "updatedAt": now},
        )
        if not written:
            logger.info("Order %s was deleted before the sweep reached it", order_id)
            continue
        result.rejected_ids.append(order_id)

    if result.rejected_ids:
        logger.info("Sweep rejected %d expired order(s): %s", len(result.rejected_ids), result.rejected_ids)
    if result.skipped_ids:
        logger.warning("Sweep skipped %d pending order(s) without createdAt", len(result.skipped_ids))
    return result
