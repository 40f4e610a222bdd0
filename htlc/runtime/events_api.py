from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import StateError
from .storage_api import StateBackend

# Basic bounds.
MAX_EVENT_NAME_BYTES = 64
MAX_KEY_LEN = 64
MAX_BYTES_LEN = 4096
MAX_STR_LEN = 256
MAX_INT_BITS = 256

# Keys must be identifier-like: letters/underscore, then letters/digits/underscore.
_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

ArgValue = Any  # constrained at runtime


@dataclass(frozen=True)
class Event:
    """A committed event as read back from the durable log."""

    seq: int
    name: bytes
    args: Dict[str, ArgValue]


@dataclass(frozen=True)
class CanonicalEvent:
    """
    Canonical event representation for receipts and indexers:

        name: "0x" + hex-encoded event name bytes
        args: sequence of {"k", "t", "v"} dicts
              t="b" => bytes encoded as 0x-prefixed hex
              t="i" => integer
              t="z" => boolean
              t="s" => string
    """

    seq: int
    name: str
    args: Sequence[Mapping[str, Any]]


Subscriber = Callable[[Event], None]


# --- Validation helpers -----------------------------------------------------


def _check_name(name: Any) -> bytes:
    if not isinstance(name, (bytes, bytearray)):
        raise StateError("event name must be bytes", code="event_invalid", data={"where": "name_type"})
    b = bytes(name)
    if len(b) == 0:
        raise StateError("event name must be non-empty", code="event_invalid", data={"where": "name_empty"})
    if len(b) > MAX_EVENT_NAME_BYTES:
        raise StateError(
            "event name too long",
            code="event_invalid",
            data={"where": "name_length", "len": len(b)},
        )
    return b


def _check_key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise StateError("event key must be a non-empty str", code="event_invalid", data={"where": "key_type"})
    if len(key) > MAX_KEY_LEN:
        raise StateError("event key too long", code="event_invalid", data={"where": "key_length", "len": len(key)})
    if not _KEY_RE.match(key):
        raise StateError(
            "event key has invalid characters",
            code="event_invalid",
            data={"where": "key_grammar", "key": key},
        )
    return key


def _encode_value(value: Any) -> Dict[str, Any]:
    if isinstance(value, (bytes, bytearray)):
        b = bytes(value)
        if len(b) > MAX_BYTES_LEN:
            raise StateError(
                "event bytes arg too long",
                code="event_invalid",
                data={"where": "value_bytes_length", "len": len(b)},
            )
        return {"t": "b", "v": "0x" + b.hex()}

    if isinstance(value, bool):
        # bool is a subclass of int, so check it before int.
        return {"t": "z", "v": value}

    if isinstance(value, int):
        if value.bit_length() > MAX_INT_BITS:
            raise StateError(
                "event int arg out of range",
                code="event_invalid",
                data={"where": "value_int_bits", "bits": value.bit_length()},
            )
        # Decimal string keeps u64+ values exact through any JSON consumer.
        return {"t": "i", "v": str(int(value))}

    if isinstance(value, str):
        if len(value) > MAX_STR_LEN:
            raise StateError("event str arg too long", code="event_invalid", data={"where": "value_str_length"})
        return {"t": "s", "v": value}

    raise StateError(
        "unsupported event arg type",
        code="event_invalid",
        data={"where": "value_type", "py_type": type(value).__name__},
    )


def _decode_value(item: Mapping[str, Any]) -> ArgValue:
    t, v = item["t"], item["v"]
    if t == "b":
        return bytes.fromhex(v[2:])
    if t == "i":
        return int(v)
    if t == "z":
        return bool(v)
    if t == "s":
        return str(v)
    raise StateError("unknown event arg tag in log", data={"t": t})


def encode_args(args: Mapping[Any, Any]) -> bytes:
    if not isinstance(args, Mapping):
        raise StateError("event args must be a mapping", code="event_invalid", data={"where": "args_type"})
    items: List[Dict[str, Any]] = []
    for raw_k, raw_v in args.items():
        item = {"k": _check_key(raw_k)}
        item.update(_encode_value(raw_v))
        items.append(item)
    return json.dumps(items, separators=(",", ":")).encode("utf-8")


def _decode_args(body: bytes) -> List[Mapping[str, Any]]:
    return json.loads(body.decode("utf-8"))


# --- Event log --------------------------------------------------------------


class EventLog:
    """
    Append-only event log over a StateBackend.

    Events are only accepted while a batch is open (i.e. inside
    `Host.atomic()`). They are written to the backend in the same transaction
    as the state change and handed to subscribers only after it commits.
    """

    def __init__(self, backend: StateBackend) -> None:
        self._backend = backend
        self._pending: Optional[List[tuple]] = None
        self._committed: List[Event] = []
        self._subscribers: List[Subscriber] = []
        self._lock = threading.RLock()

    # --- batch lifecycle (driven by the host) --------------------------------

    def open_batch(self) -> None:
        with self._lock:
            if self._pending is not None:
                raise StateError("event batch already open")
            self._pending = []
            self._committed = []

    def flush_batch(self) -> None:
        """Append pending events to the backend; must run inside its transaction."""
        with self._lock:
            if self._pending is None:
                raise StateError("no event batch open")
            for name, args, body in self._pending:
                seq = self._backend.append_event(name, body)
                self._committed.append(Event(seq, name, args))
            self._pending = None

    def discard_batch(self) -> None:
        with self._lock:
            self._pending = None
            self._committed = []

    def publish_batch(self) -> List[Event]:
        """Notify subscribers of the events committed by the last batch."""
        with self._lock:
            committed, self._committed = self._committed, []
            subscribers = list(self._subscribers)
        for ev in committed:
            for cb in subscribers:
                cb(ev)
        return committed

    # --- public API ------------------------------------------------------------

    def emit(self, name: bytes, args: Mapping[Any, Any]) -> None:
        bname = _check_name(name)
        body = encode_args(args)
        with self._lock:
            if self._pending is None:
                raise StateError("events can only be emitted inside a host transaction")
            self._pending.append((bname, dict(args), body))

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback` for committed events; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def get_events(self, since_seq: int = 0) -> List[Event]:
        out: List[Event] = []
        for seq, name, body in self._backend.read_events(since_seq):
            args = {item["k"]: _decode_value(item) for item in _decode_args(body)}
            out.append(Event(seq, name, args))
        return out

    def events_for_receipt(self, since_seq: int = 0) -> List[CanonicalEvent]:
        """
        Read the durable log in canonical receipt form.
        """
        return [
            CanonicalEvent(seq=seq, name="0x" + name.hex(), args=tuple(_decode_args(body)))
            for seq, name, body in self._backend.read_events(since_seq)
        ]


__all__ = [
    "Event",
    "CanonicalEvent",
    "EventLog",
    "encode_args",
    "MAX_EVENT_NAME_BYTES",
    "MAX_KEY_LEN",
    "MAX_BYTES_LEN",
    "MAX_INT_BITS",
]
