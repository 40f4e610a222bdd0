"""
HTLC runtime — host-side collaborators of the lock engine.

Convenience re-exports live here so callers can do:

    from htlc.runtime import Host, CallContext, ManualClock, Coin
    from htlc.runtime import SqliteState

Notes
-----
- All state goes through a `StateBackend` (memory or SQLite).
- The only time source is an explicit `Clock` passed by the caller.
"""

from __future__ import annotations

from .asset_api import Coin, Ledger
from .clock import Clock, ManualClock, SystemClock
from .context import CallContext, to_address, to_bytes, to_hex
from .events_api import CanonicalEvent, Event, EventLog
from .host import Host
from .state_db import SqliteState
from .storage_api import MemoryState, ObjectStore, StateBackend, StoredObject

__all__ = [
    "Host",
    "CallContext",
    "to_address",
    "to_bytes",
    "to_hex",
    "Clock",
    "ManualClock",
    "SystemClock",
    "Coin",
    "Ledger",
    "Event",
    "CanonicalEvent",
    "EventLog",
    "StateBackend",
    "MemoryState",
    "SqliteState",
    "ObjectStore",
    "StoredObject",
]
