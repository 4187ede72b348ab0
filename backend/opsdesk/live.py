# Overview: Process-wide live record store, change bus and order sweeper instances.

from __future__ import annotations

import logging

from flask import current_app

from .services.concurrency import KeyedLocks
from .services.order_sweeper import OrderSweeper
from .services.record_store import RecordStore

logger = logging.getLogger(__name__)

records = RecordStore()
sweeper = OrderSweeper()


def init_app(app) -> None:
    records.init_app(app)
    sweeper.init_app(app, records)
    app.extensions["opsdesk.allocation_locks"] = KeyedLocks() if app.config.get("ALLOCATION_LOCKING") else None


def allocation_locks() -> KeyedLocks | None:
    return current_app.extensions.get("opsdesk.allocation_locks")


def shutdown() -> None:
    """Stop the sweeper and the change bus dispatcher."""
    sweeper.stop()
    records.close()
    logger.info("Live store shut down")
