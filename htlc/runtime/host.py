"""
htlc.runtime.host — the execution environment lock operations run in.

A `Host` bundles one state backend with the three host APIs built over it:

    host.objects   ObjectStore   shared, globally addressable objects
    host.ledger    Ledger        asset balances
    host.events    EventLog      append-only event log

and provides `atomic()`, the unit of work every lock operation runs inside:

    with host.atomic():
        ...validate, emit, transfer, delete...

On normal exit the backend transaction commits and subscribers see the new
events; if the block raises, every write (objects, balances, log entries)
is rolled back and no event is published. Operations therefore either fully
apply or leave no observable trace.
"""

from __future__ import annotations

import contextlib
import threading
from typing import Iterator, Optional

from ..errors import StateError
from .asset_api import Ledger
from .context import CallContext, to_hex
from .events_api import EventLog
from .hash_api import hash_concat_sha3_256
from .storage_api import MemoryState, ObjectStore, StateBackend

_OBJECT_SEQ_KEY = "object_seq"


class Host:
    """In-process host ledger."""

    def __init__(self, backend: Optional[StateBackend] = None) -> None:
        self.backend: StateBackend = backend if backend is not None else MemoryState()
        self.objects = ObjectStore(self.backend)
        self.ledger = Ledger(self.backend)
        self.events = EventLog(self.backend)
        self._lock = threading.RLock()
        self._active = False

    @contextlib.contextmanager
    def atomic(self) -> Iterator["Host"]:
        """
        Run the enclosed block as one all-or-nothing unit of work.

        Units from different threads are serialized on the host lock, so two
        callers consuming the same object commit one after the other and the
        second observes it gone. Nesting a unit inside another is refused.
        """
        with self._lock:
            if self._active:
                raise StateError("host operations cannot be nested")
            self._active = True
            try:
                self.events.open_batch()
                try:
                    with self.backend.tx():
                        yield self
                        self.events.flush_batch()
                except BaseException:
                    self.events.discard_batch()
                    raise
            finally:
                self._active = False
            self.events.publish_batch()

    def new_object_id(self, ctx: CallContext) -> str:
        """
        Derive a fresh object id from the calling transaction.

        The host-wide sequence number keeps ids unique even when a caller
        reuses a tx hash; ids are never handed out twice.
        """
        seq = int(self.backend.get_meta(_OBJECT_SEQ_KEY) or 0) + 1
        self.backend.set_meta(_OBJECT_SEQ_KEY, str(seq))
        return to_hex(hash_concat_sha3_256(ctx.tx_hash, seq.to_bytes(8, "big"), domain=b"object"))

    def close(self) -> None:
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()


__all__ = ["Host"]
