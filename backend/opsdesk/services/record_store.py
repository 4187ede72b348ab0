# Overview: Service-layer record store; keyed hierarchical JSON storage with change publication.

"""
Record Store

================================================================================
PURPOSE: Single shared mutable resource of the system
================================================================================

PATHS:
    ""                       -> whole tree {collection: {...}}
    "Users"                  -> collection {record_id: record}
    "adminKey"               -> collection-level leaf value
    "Users/{id}"             -> one record
    "Users/{id}/field/..."   -> value inside the record JSON

OPERATIONS (all single-key):
    get(path)                   -> value or None
    set(path, value)            -> full overwrite (None removes)
    update(path, fields)        -> one-level merge, None values remove children
    remove(path)
    generate_child_id(parent)   -> unique, chronologically sortable id
    subscribe(path, handler)    -> ChangeBus subscription

RULES:
1. Every operation runs in its own short transaction. There is NO multi-key
   atomicity: a caller that reads path A and writes path B based on that
   read has no isolation from concurrent writers.
2. Mutations of one store instance are serialized by one re-entrant lock,
   which is also held while the ChangeBus is fed. Subscribers therefore see
   writes in commit order.
3. A failed write rolls back completely and publishes nothing.
4. Values must be JSON-like (dict with str keys, list, str, int, float,
   bool, None).
"""

from __future__ import annotations

import copy
import logging
import math
import secrets
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..extensions import db
from ..models import Record
from .change_bus import ChangeBus, Handler, Subscription, join_path, split_path

logger = logging.getLogger(__name__)

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class StoreError(Exception):
    """Raised when a store operation fails (connectivity, serialization, bad value)."""
    pass


def ensure_json_like(value: Any, path: str = "") -> None:
    """Reject anything that would not survive a JSON round-trip."""
    if isinstance(value, float) and not math.isfinite(value):
        raise StoreError(f"Non-finite number at '{path or '/'}'")
    if value is None or isinstance(value, (str, bool, int, float)):
        return
    if isinstance(value, Mapping):
        for key, child in value.items():
            if not isinstance(key, str) or not key or "/" in key:
                raise StoreError(f"Invalid key {key!r} at '{path or '/'}'")
            ensure_json_like(child, f"{path}/{key}")
        return
    if isinstance(value, (list, tuple)):
        for index, child in enumerate(value):
            ensure_json_like(child, f"{path}/{index}")
        return
    raise StoreError(f"Value of type {type(value).__name__} at '{path or '/'}' is not JSON-like")


def _plain(value: Any) -> Any:
    """Deep copy into plain dict/list containers."""
    if isinstance(value, Mapping):
        return {key: _plain(child) for key, child in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(child) for child in value]
    return value


def _descend(value: Any, parts: tuple[str, ...]) -> Any:
    for part in parts:
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            index = int(part)
            value = value[index] if index < len(value) else None
        else:
            return None
        if value is None:
            return None
    return value


def _assign(container: Any, parts: tuple[str, ...], value: Any) -> Any:
    """
    Return a copy of `container` with `value` placed at `parts`.

    Missing intermediate levels are created as mappings. Removing the last
    child of a mapping prunes the now-empty mapping (returns None).
    """
    key, rest = parts[0], parts[1:]

    if isinstance(container, list) and key.isdigit():
        items = list(container)
        index = int(key)
        current = items[index] if index < len(items) else None
        child = _assign(current, rest, value) if rest else value
        while len(items) <= index:
            items.append(None)
        items[index] = child
        while items and items[-1] is None:
            items.pop()
        if not items and value is None:
            return None
        return items

    mapping = dict(container) if isinstance(container, dict) else {}
    child = _assign(mapping.get(key), rest, value) if rest else value
    if child is None:
        mapping.pop(key, None)
    else:
        mapping[key] = child
    if not mapping and value is None:
        return None
    return mapping


class RecordStore:
    def __init__(self, engine=None, bus: ChangeBus | None = None):
        self._lock = threading.RLock()
        self._engine = None
        self._session_factory = None
        self.bus = bus or ChangeBus()
        self._push_lock = threading.Lock()
        self._last_push_ms = 0
        self._last_push_random: list[int] = []
        if engine is not None:
            self.bind(engine)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def init_app(self, app) -> None:
        """Bind to the Flask-SQLAlchemy engine of `app` and register on it."""
        with app.app_context():
            engine = db.engine
        self.bind(engine)
        app.extensions["opsdesk.records"] = self

    def bind(self, engine, bus: ChangeBus | None = None) -> None:
        with self._lock:
            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
            if bus is not None:
                if bus is not self.bus:
                    self.bus.close()
                self.bus = bus
            elif self.bus.closed:
                self.bus = ChangeBus()

    @property
    def engine(self):
        return self._engine

    def close(self) -> None:
        self.bus.close()

    @contextmanager
    def _session(self) -> Iterator:
        if self._session_factory is None:
            raise StoreError("RecordStore is not bound to a database")
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Store operation failed: {exc.__class__.__name__}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str = "") -> Any:
        """Return the value at `path`, or None when absent."""
        with self._lock:
            return self._read_path(path)

    def exists(self, path: str) -> bool:
        return self.get(path) is not None

    def children(self, path: str) -> dict[str, Any]:
        """The value at `path` as a mapping; {} when absent or not a mapping."""
        value = self.get(path)
        return value if isinstance(value, dict) else {}

    def _read_path(self, path: str) -> Any:
        with self._session() as session:
            return self._read(session, split_path(path))

    def _read(self, session, parts: tuple[str, ...]) -> Any:
        if not parts:
            tree: dict[str, Any] = {}
            rows = session.query(Record).order_by(Record.collection, Record.record_id).all()
            for row in rows:
                if row.record_id:
                    tree.setdefault(row.collection, {})
                    if isinstance(tree[row.collection], dict):
                        tree[row.collection][row.record_id] = _plain(row.data)
                else:
                    tree[row.collection] = _plain(row.data)
            return tree or None

        collection = parts[0]
        if len(parts) == 1:
            rows = (
                session.query(Record)
                .filter_by(collection=collection)
                .order_by(Record.record_id.asc())
                .all()
            )
            for row in rows:
                if not row.record_id:
                    return _plain(row.data)
            records = {row.record_id: _plain(row.data) for row in rows if row.data is not None}
            return records or None

        row = session.query(Record).filter_by(collection=collection, record_id=parts[1]).first()
        if row is None:
            return None
        return _descend(_plain(row.data), parts[2:])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, path: str, value: Any) -> None:
        """Overwrite the value at `path`. Setting None removes it."""
        self._commit([(split_path(path), value)])

    def update(self, path: str, fields: Mapping[str, Any]) -> None:
        """
        Merge `fields` one level below `path`.

        Each key is a child path (it may itself contain '/'); a None value
        removes that child. All children are written in one transaction.
        """
        if not isinstance(fields, Mapping):
            raise StoreError("update() expects a mapping of child paths to values")
        base = split_path(path)
        writes = []
        for key, value in fields.items():
            child = split_path(key)
            if not child:
                raise StoreError(f"Invalid child key {key!r} for update at '{path}'")
            writes.append((base + child, value))
        if writes:
            self._commit(writes)

    def update_existing(self, path: str, fields: Mapping[str, Any]) -> bool:
        """
        Like update(), but only when a value is already stored at `path`.

        The check and the write happen under the store lock, so a record
        removed concurrently is never recreated from `fields` alone.
        Returns False when nothing was written.
        """
        with self._lock:
            if self._read_path(path) is None:
                return False
            self.update(path, fields)
            return True

    def remove(self, path: str) -> None:
        self._commit([(split_path(path), None)])

    def _commit(self, writes: list[tuple[tuple[str, ...], Any]]) -> None:
        for parts, value in writes:
            ensure_json_like(value, join_path(parts))

        with self._lock:
            with self._session() as session:
                for parts, value in writes:
                    self._write(session, parts, _plain(value))
            changed = [join_path(parts) for parts, _ in writes]
            try:
                self.bus.publish(changed, self._read_path)
            except StoreError:
                logger.exception("Committed %s but could not publish new values", changed)

    def _write(self, session, parts: tuple[str, ...], value: Any) -> None:
        if not parts:
            session.query(Record).delete(synchronize_session=False)
            if value is None:
                return
            if not isinstance(value, dict):
                raise StoreError("The root value must be a mapping of collections")
            for key, child in value.items():
                self._write(session, (key,), child)
            return

        collection = parts[0]
        if len(parts) == 1:
            session.query(Record).filter_by(collection=collection).delete(synchronize_session=False)
            if value is None:
                return
            if isinstance(value, dict):
                for record_id, child in value.items():
                    if child is not None:
                        session.add(Record(collection=collection, record_id=record_id, data=child))
            else:
                session.add(Record(collection=collection, record_id="", data=value))
            session.flush()
            return

        record_id = parts[1]
        row = session.query(Record).filter_by(collection=collection, record_id=record_id).first()

        if len(parts) > 2:
            current = copy.deepcopy(row.data) if row is not None else None
            value = _assign(current, parts[2:], value)

        if value is None:
            if row is not None:
                session.delete(row)
                session.flush()
            return

        # A collection that held a leaf value becomes a mapping of records
        session.query(Record).filter_by(collection=collection, record_id="").delete(synchronize_session=False)
        if row is None:
            session.add(Record(collection=collection, record_id=record_id, data=value))
        else:
            row.data = value
        session.flush()

    # ------------------------------------------------------------------
    # Ids
    # ------------------------------------------------------------------

    def generate_child_id(self, parent_path: str = "") -> str:
        """
        Generate a 20-character id for a new child of `parent_path`.

        8 characters encode the millisecond timestamp, 12 are random. Ids
        generated in the same millisecond increment the random part, so ids
        sort in creation order.
        """
        with self._push_lock:
            now = int(time.time() * 1000)
            duplicate = now <= self._last_push_ms
            if duplicate:
                now = self._last_push_ms
                random_part = list(self._last_push_random)
                for i in range(11, -1, -1):
                    if random_part[i] != 63:
                        random_part[i] += 1
                        break
                    random_part[i] = 0
            else:
                random_part = [secrets.randbelow(64) for _ in range(12)]
            self._last_push_ms = now
            self._last_push_random = random_part

        stamp = []
        remaining = now
        for _ in range(8):
            stamp.append(PUSH_CHARS[remaining % 64])
            remaining //= 64
        return "".join(reversed(stamp)) + "".join(PUSH_CHARS[i] for i in random_part)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, path: str, handler: Handler) -> Subscription:
        """
        Subscribe `handler` to `path`.

        The current value is read under the write lock, so the first delivery
        reflects every write committed before the call and nothing after it.
        """
        with self._lock:
            value = self._read_path(path)
            return self.bus.subscribe(path, handler, value)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.bus.unsubscribe(subscription)
