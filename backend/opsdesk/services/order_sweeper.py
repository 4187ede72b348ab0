# Overview: Background scheduler that periodically rejects expired pending orders.

from __future__ import annotations

import logging
import threading
from typing import Callable

from opsdesk.time_utils import now_ms
from . import lifecycle_service
from .lifecycle_service import SweepResult
from .record_store import RecordStore, StoreError

logger = logging.getLogger(__name__)


class OrderSweeper:
    """
    Runs lifecycle_service.sweep_expired_orders every `interval_seconds`.

    - At most one sweep runs at a time. A tick (or a manual run_once) that
      fires while a sweep is still running is skipped, never queued.
    - stop() ends the loop and joins the thread; no sweep starts after it.
    - `clock` returns epoch milliseconds and is injectable for tests.
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        *,
        interval_seconds: float = 10.0,
        timeout_seconds: float = 60.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self._sweep_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.last_result: SweepResult | None = None
        self.skipped_ticks = 0

    def init_app(self, app, store: RecordStore) -> None:
        self.store = store
        self.interval_seconds = float(app.config.get("ORDER_SWEEP_INTERVAL_SECONDS", self.interval_seconds))
        self.timeout_seconds = float(app.config.get("ORDER_PENDING_TIMEOUT_SECONDS", self.timeout_seconds))
        app.extensions["opsdesk.sweeper"] = self

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: int | None = None) -> SweepResult | None:
        """
        Run one sweep now. Returns None when another sweep is in progress.

        Store failures are logged and re-raised to the caller; the loop in
        _run() logs them and waits for the next tick.
        """
        if self.store is None:
            raise RuntimeError("OrderSweeper has no store")
        if not self._sweep_lock.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.warning("Order sweep still running, skipping this tick")
            return None
        try:
            result = lifecycle_service.sweep_expired_orders(
                self.store,
                now=now if now is not None else self.clock(),
                timeout_seconds=self.timeout_seconds,
            )
            self.last_result = result
            return result
        finally:
            self._sweep_lock.release()

    def _run(self) -> None:
        logger.info(
            "Order sweeper running (interval=%ss, timeout=%ss)",
            self.interval_seconds,
            self.timeout_seconds,
        )
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except StoreError:
                logger.exception("Order sweep failed")
            except Exception:
                logger.exception("Unexpected error in order sweep")
        logger.info("Order sweeper stopped")

    def start(self) -> bool:
        """Start the background loop. Returns False if it was already running."""
        if self.running:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="opsdesk-order-sweeper", daemon=True)
        self._thread.start()
        return True

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def run_forever(self) -> None:
        """Run the loop in the calling thread until stop() is called (CLI use)."""
        self._stop_event.clear()
        self._run()
