# Overview: Service-layer concurrency helpers; per-record locks for optional read-modify-write hardening.

from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from typing import Iterator


class KeyedLocks:
    """
    Process-local registry of one lock per key (e.g. per customer record).

    NOTE: The record store offers no cross-key transactions. Holding the lock
    for a key only excludes other writers that go through the same registry
    in the same process; writers that bypass it can still interleave.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.lock_for(key)
        with lock:
            yield


def lock_for_update(locks: KeyedLocks | None, key: str):
    """
    Serialize a read-modify-write on `key` when a lock registry is configured.

    With no registry this is a no-op context, and concurrent writers keep
    last-write-wins semantics on the whole value.
    """
    if locks is None:
        return nullcontext()
    return locks.hold(key)
