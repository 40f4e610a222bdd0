"""
htlc.runtime.storage_api — host hooks for the shared-object store.

This module provides the state backend contract used by every host API
(objects, balances, event log, counters) and the object-store facade the lock
engine talks to.

Design goals
------------
- Deterministic: pure functions over (id, kind, body) with no wall-clock or I/O.
- Simple default: in-process memory backend for local runs & tests.
- Pluggable: the SQLite backend in `htlc.runtime.state_db` implements the
  same `StateBackend` protocol.
- Atomic: every mutation made inside `backend.tx()` is applied on normal exit
  and discarded if the block raises. Nested `tx()` scopes join the outermost
  one.

Object-store API
----------------
- publish(obj_id, kind, body) -> None      # rejects an id that already exists
- load(obj_id) -> Optional[StoredObject]
- take(obj_id) -> Optional[StoredObject]   # read-and-delete, first caller wins
- exists(obj_id) -> bool
- list(kind) -> list[StoredObject]
"""

from __future__ import annotations

import contextlib
import re
import threading
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from ..errors import StateError


MAX_OBJECT_ID_LEN = 96
MAX_OBJECT_BODY_BYTES = 64 * 1024

_KIND_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.:]*$")


@dataclass(frozen=True)
class StoredObject:
    obj_id: str
    kind: str
    body: bytes


# ---------------------------- Backend API ---------------------------- #


@runtime_checkable
class StateBackend(Protocol):
    """Minimal backend interface for host state."""

    @property
    def in_tx(self) -> bool: ...

    def tx(self) -> contextlib.AbstractContextManager: ...

    # objects
    def get_object(self, obj_id: str) -> Optional[Tuple[str, bytes]]: ...
    def put_object(self, obj_id: str, kind: str, body: bytes) -> None: ...
    def delete_object(self, obj_id: str) -> bool: ...
    def list_objects(self, kind: str) -> List[Tuple[str, bytes]]: ...

    # balances
    def get_balance(self, owner: bytes, asset_type: str) -> int: ...
    def set_balance(self, owner: bytes, asset_type: str, amount: int) -> None: ...

    # append-only event log
    def append_event(self, name: bytes, body: bytes) -> int: ...
    def read_events(self, since_seq: int = 0) -> List[Tuple[int, bytes, bytes]]: ...

    # counters & metadata
    def get_meta(self, key: str) -> Optional[str]: ...
    def set_meta(self, key: str, value: str) -> None: ...


class MemoryState:
    """Thread-safe in-memory backend for local runs and tests."""

    def __init__(self) -> None:
        self._objects: Dict[str, Tuple[str, bytes]] = {}
        self._balances: Dict[Tuple[bytes, str], int] = {}
        self._events: List[Tuple[int, bytes, bytes]] = []
        self._meta: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[tuple] = None

    # -- transactions ------------------------------------------------------

    @property
    def in_tx(self) -> bool:
        return self._depth > 0

    @contextlib.contextmanager
    def tx(self) -> Iterator[None]:
        """
        Transaction context manager.

        Usage:
            with state.tx():
                state.put_object(...)
        """
        with self._lock:
            if self._depth == 0:
                self._snapshot = (
                    dict(self._objects),
                    dict(self._balances),
                    len(self._events),
                    dict(self._meta),
                )
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._restore()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    self._snapshot = None

    def _restore(self) -> None:
        assert self._snapshot is not None
        objects, balances, n_events, meta = self._snapshot
        self._objects = objects
        self._balances = balances
        del self._events[n_events:]
        self._meta = meta
        self._snapshot = None

    # -- objects -----------------------------------------------------------

    def get_object(self, obj_id: str) -> Optional[Tuple[str, bytes]]:
        with self._lock:
            return self._objects.get(obj_id)

    def put_object(self, obj_id: str, kind: str, body: bytes) -> None:
        with self._lock:
            if obj_id in self._objects:
                raise StateError("object id already exists", data={"obj_id": obj_id})
            self._objects[obj_id] = (kind, bytes(body))

    def delete_object(self, obj_id: str) -> bool:
        with self._lock:
            return self._objects.pop(obj_id, None) is not None

    def list_objects(self, kind: str) -> List[Tuple[str, bytes]]:
        with self._lock:
            return [(oid, body) for oid, (k, body) in sorted(self._objects.items()) if k == kind]

    # -- balances ----------------------------------------------------------

    def get_balance(self, owner: bytes, asset_type: str) -> int:
        with self._lock:
            return self._balances.get((bytes(owner), asset_type), 0)

    def set_balance(self, owner: bytes, asset_type: str, amount: int) -> None:
        with self._lock:
            key = (bytes(owner), asset_type)
            if amount == 0:
                self._balances.pop(key, None)
            else:
                self._balances[key] = amount

    # -- events ------------------------------------------------------------

    def append_event(self, name: bytes, body: bytes) -> int:
        with self._lock:
            seq = len(self._events) + 1
            self._events.append((seq, bytes(name), bytes(body)))
            return seq

    def read_events(self, since_seq: int = 0) -> List[Tuple[int, bytes, bytes]]:
        with self._lock:
            return [e for e in self._events if e[0] > since_seq]

    # -- meta --------------------------------------------------------------

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._meta[key] = value


# --------------------------- Validation helpers --------------------------- #


def _check_id(obj_id: str) -> None:
    if not isinstance(obj_id, str) or not obj_id:
        raise StateError("object id must be a non-empty str")
    if len(obj_id) > MAX_OBJECT_ID_LEN:
        raise StateError(f"object id too long (>{MAX_OBJECT_ID_LEN} chars)")


def _check_kind(kind: str) -> None:
    if not isinstance(kind, str) or not _KIND_RE.match(kind):
        raise StateError("object kind must be identifier-like", data={"kind": kind})


def _check_body(body: bytes) -> None:
    if not isinstance(body, (bytes, bytearray)):
        raise StateError("object body must be bytes")
    if len(body) > MAX_OBJECT_BODY_BYTES:
        raise StateError(f"object body too large (>{MAX_OBJECT_BODY_BYTES} bytes)")


# --------------------------- Object store facade -------------------------- #


class ObjectStore:
    """
    Globally addressable objects over a StateBackend.

    Objects are not owned by anyone: any caller holding an id may load or
    consume it. "Only the first consumer wins" is enforced by `take`, which
    reads and deletes under the backend's transaction.
    """

    def __init__(self, backend: StateBackend) -> None:
        self._backend = backend

    def publish(self, obj_id: str, kind: str, body: bytes) -> None:
        _check_id(obj_id)
        _check_kind(kind)
        _check_body(body)
        self._backend.put_object(obj_id, kind, bytes(body))

    def load(self, obj_id: str) -> Optional[StoredObject]:
        _check_id(obj_id)
        found = self._backend.get_object(obj_id)
        if found is None:
            return None
        kind, body = found
        return StoredObject(obj_id, kind, body)

    def take(self, obj_id: str) -> Optional[StoredObject]:
        """Remove and return the object, or None if it is not live."""
        _check_id(obj_id)
        with self._backend.tx():
            found = self._backend.get_object(obj_id)
            if found is None:
                return None
            self._backend.delete_object(obj_id)
        kind, body = found
        return StoredObject(obj_id, kind, body)

    def exists(self, obj_id: str) -> bool:
        _check_id(obj_id)
        return self._backend.get_object(obj_id) is not None

    def list(self, kind: str) -> List[StoredObject]:
        _check_kind(kind)
        return [StoredObject(oid, kind, body) for oid, body in self._backend.list_objects(kind)]


__all__ = [
    "StoredObject",
    "StateBackend",
    "MemoryState",
    "ObjectStore",
    "MAX_OBJECT_ID_LEN",
    "MAX_OBJECT_BODY_BYTES",
]
