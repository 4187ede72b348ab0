# Overview: Path-scoped publish/subscribe used to push live record values to viewers.

"""
Change Bus

================================================================================
PURPOSE: Push the current value of a store path to every interested viewer
================================================================================

CONTRACT:
- subscribe(path, handler, initial_value) registers interest in `path` and
  queues one delivery of the value currently at `path` (None when absent).
- Every later write that touches `path`, one of its descendants, or one of
  its ancestors queues a delivery of the ENTIRE value rooted at `path`
  (never a diff).
- unsubscribe(subscription) stops further deliveries. Values already queued
  for that subscription are dropped; a handler already running is not
  interrupted.

ORDERING:
    All deliveries go through one FIFO queue drained by one dispatcher thread.
    A subscription therefore sees values in the order the writes committed.
    Delivery is asynchronous relative to the write that caused it.

The bus never reads storage itself. The record store snapshots values under
its own lock and hands them over via publish(), so a value always reflects
the store at commit time.
"""

from __future__ import annotations

import copy
import itertools
import logging
import queue
import threading
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

_STOP = object()


def split_path(path: str | None) -> tuple[str, ...]:
    """Split a store path into its non-empty segments."""
    if not path:
        return ()
    return tuple(part for part in str(path).split("/") if part)


def join_path(parts: Iterable[str]) -> str:
    return "/".join(parts)


def is_prefix(prefix: tuple[str, ...], parts: tuple[str, ...]) -> bool:
    return len(prefix) <= len(parts) and parts[: len(prefix)] == prefix


def paths_overlap(a: str | tuple[str, ...], b: str | tuple[str, ...]) -> bool:
    """True when one path is the other, an ancestor of it, or a descendant."""
    a_parts = a if isinstance(a, tuple) else split_path(a)
    b_parts = b if isinstance(b, tuple) else split_path(b)
    return is_prefix(a_parts, b_parts) or is_prefix(b_parts, a_parts)


class Subscription:
    """Handle returned by ChangeBus.subscribe."""

    def __init__(self, bus: "ChangeBus", sub_id: int, path: str, handler: Handler):
        self._bus = bus
        self.id = sub_id
        self.parts = split_path(path)
        self.path = join_path(self.parts)
        self.handler = handler
        self.active = True

    def cancel(self) -> bool:
        return self._bus.unsubscribe(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"<Subscription id={self.id} path={self.path!r} {state}>"


class ChangeBus:
    def __init__(self, name: str = "opsdesk-changebus"):
        self.name = name
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._queue: queue.Queue = queue.Queue()
        self._idle = threading.Condition()
        self._pending = 0
        self._thread: threading.Thread | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, path: str, handler: Handler, initial_value: Any = None) -> Subscription:
        if not callable(handler):
            raise TypeError("handler must be callable")
        with self._lock:
            if self._closed:
                raise RuntimeError("ChangeBus is closed")
            sub = Subscription(self, next(self._ids), path, handler)
            self._subscriptions[sub.id] = sub
        logger.debug("Subscribed %r", sub)
        self._enqueue(sub, initial_value)
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Stop deliveries to `subscription`. Returns False if it was already inactive."""
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
            subscription.active = False
        if removed is not None:
            logger.debug("Unsubscribed %r", subscription)
        return removed is not None

    def subscriptions_for(self, path: str) -> list[Subscription]:
        """Active subscriptions whose value is affected by a write at `path`."""
        parts = split_path(path)
        with self._lock:
            return [sub for sub in self._subscriptions.values() if paths_overlap(sub.parts, parts)]

    # ------------------------------------------------------------------
    # Publication
    # ------------------------------------------------------------------

    def publish(self, changed_paths: Iterable[str], read: Callable[[str], Any]) -> int:
        """
        Queue fresh values for every subscription affected by `changed_paths`.

        `read(path)` must return the committed value at `path`; it is called
        once per distinct subscribed path. Returns the number of deliveries
        queued.
        """
        if self._closed:
            return 0

        targets: list[Subscription] = []
        seen: set[int] = set()
        for changed in changed_paths:
            for sub in self.subscriptions_for(changed):
                if sub.id not in seen:
                    seen.add(sub.id)
                    targets.append(sub)
        if not targets:
            return 0

        values: dict[str, Any] = {}
        queued = 0
        for sub in targets:
            if sub.path in values:
                value = copy.deepcopy(values[sub.path])
            else:
                value = read(sub.path)
                values[sub.path] = value
            self._enqueue(sub, value)
            queued += 1
        return queued

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def _ensure_dispatcher(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        with self._lock:
            if self._closed:
                return
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def _enqueue(self, sub: Subscription, value: Any) -> None:
        # close() resets the pending count, so nothing may be counted after it
        with self._lock:
            if self._closed:
                return
            with self._idle:
                self._pending += 1
            self._queue.put((sub, value))
        self._ensure_dispatcher()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            sub, value = item
            try:
                if sub.active:
                    sub.handler(value)
            except Exception:
                logger.exception("Subscriber handler failed for %r", sub)
            finally:
                with self._idle:
                    self._pending -= 1
                    if self._pending <= 0:
                        self._idle.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every queued delivery has been handled."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending <= 0, timeout=timeout)

    def close(self, timeout: float | None = 5.0) -> None:
        """Cancel every subscription and stop the dispatcher thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subs = list(self._subscriptions.values())
            self._subscriptions.clear()
            for sub in subs:
                sub.active = False
            thread = self._thread

        if thread is not None and thread.is_alive():
            self._queue.put(_STOP)
            if thread is not threading.current_thread():
                thread.join(timeout)
        # Anything still queued belongs to cancelled subscriptions
        with self._idle:
            self._pending = 0
            self._idle.notify_all()
        logger.debug("ChangeBus %s closed (%d subscriptions cancelled)", self.name, len(subs))
