from __future__ import annotations

"""
HTLC SQLite state backend
=========================

Purpose
-------
Durable persistence for the host side of the lock engine: shared objects
(lock records), per-owner asset balances, the append-only event log and a few
counters. Implements the same `StateBackend` protocol as the in-memory
backend in `htlc.runtime.storage_api`.

Design notes
------------
- Single-writer, many-reader friendly via WAL.
- Schema versioned and created on open().
- Object bodies are the canonical encoded blobs produced by the engine; this
  module never interprets them.
- All writes are transactional: `tx()` issues BEGIN IMMEDIATE so two
  processes racing to consume the same lock are serialized by SQLite itself,
  and the loser observes the row already gone.
- Balances are stored as decimal TEXT so amounts above 2**63 survive.

Example
-------
    db = SqliteState("htlc.db")
    with db.tx():
        db.put_object("0xabc…", "htlc.Lock", blob)
    db.close()
"""

import contextlib
import sqlite3
import threading
import time
from typing import Iterator, List, Optional, Tuple

from ..errors import StateError


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS objects (
        obj_id     TEXT PRIMARY KEY,
        kind       TEXT NOT NULL,
        body       BLOB NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_objects_kind ON objects(kind)",
    """
    CREATE TABLE IF NOT EXISTS balances (
        owner      TEXT NOT NULL,
        asset_type TEXT NOT NULL,
        amount     TEXT NOT NULL,
        PRIMARY KEY (owner, asset_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        seq        INTEGER PRIMARY KEY AUTOINCREMENT,
        name       BLOB NOT NULL,
        body       BLOB NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
)


def _now_s() -> int:
    return int(time.time())


class SqliteState:
    """
    Tiny SQLite adapter for host state.

    Thread-safe for simple concurrent access via an internal RLock. For high
    concurrency, open separate connections per thread or process.
    """

    SCHEMA_VERSION = 1

    def __init__(self, path: str) -> None:
        """
        Open or create the SQLite database.

        `path` may be a filesystem path, ":memory:" or a URI (e.g. "file:htlc.db?mode=rwc").
        """
        path = str(path)
        uri = path.startswith("file:")
        self._db = sqlite3.connect(
            path,
            uri=uri,
            check_same_thread=False,
            isolation_level=None,  # autocommit; we manage transactions
        )
        self._db.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        try:
            self._apply_pragmas()
            with self.tx():
                self._migrate()
        except BaseException:
            self._db.close()
            raise

    # -- lifecycle -------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._db.close()

    def __enter__(self) -> "SqliteState":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def in_tx(self) -> bool:
        return self._depth > 0

    @contextlib.contextmanager
    def tx(self) -> Iterator[None]:
        """
        Transaction context manager. Nested scopes join the outermost one.

        Usage:
            with db.tx():
                db.put_object(...)
        """
        with self._lock:
            outer = self._depth == 0
            if outer:
                self._db.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outer:
                    self._db.execute("ROLLBACK")
                raise
            else:
                self._depth -= 1
                if outer:
                    self._db.execute("COMMIT")

    def _apply_pragmas(self) -> None:
        cur = self._db.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA temp_store=MEMORY")
        cur.close()

    # -- schema ----------------------------------------------------------------

    def _migrate(self) -> None:
        cur = self._db.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        cur.execute("SELECT value FROM meta WHERE key='schema_version'")
        row = cur.fetchone()
        if not row:
            cur.execute(
                "INSERT INTO meta(key, value) VALUES('schema_version', ?)",
                (str(self.SCHEMA_VERSION),),
            )
        elif int(row["value"]) != self.SCHEMA_VERSION:
            raise StateError(
                "unsupported schema version",
                data={"found": row["value"], "expected": self.SCHEMA_VERSION},
            )
        # executescript() would COMMIT the open transaction; run statements one by one.
        for stmt in _SCHEMA:
            cur.execute(stmt)
        cur.close()

    # -- objects ---------------------------------------------------------------

    def get_object(self, obj_id: str) -> Optional[Tuple[str, bytes]]:
        with self._lock:
            row = self._db.execute(
                "SELECT kind, body FROM objects WHERE obj_id=?", (obj_id,)
            ).fetchone()
        if row is None:
            return None
        return row["kind"], bytes(row["body"])

    def put_object(self, obj_id: str, kind: str, body: bytes) -> None:
        with self._lock:
            try:
                self._db.execute(
                    "INSERT INTO objects(obj_id, kind, body, created_at) VALUES(?,?,?,?)",
                    (obj_id, kind, sqlite3.Binary(body), _now_s()),
                )
            except sqlite3.IntegrityError as e:
                raise StateError("object id already exists", data={"obj_id": obj_id}) from e

    def delete_object(self, obj_id: str) -> bool:
        with self._lock:
            cur = self._db.execute("DELETE FROM objects WHERE obj_id=?", (obj_id,))
            return cur.rowcount > 0

    def list_objects(self, kind: str) -> List[Tuple[str, bytes]]:
        with self._lock:
            rows = self._db.execute(
                "SELECT obj_id, body FROM objects WHERE kind=? ORDER BY obj_id", (kind,)
            ).fetchall()
        return [(r["obj_id"], bytes(r["body"])) for r in rows]

    # -- balances --------------------------------------------------------------

    def get_balance(self, owner: bytes, asset_type: str) -> int:
        with self._lock:
            row = self._db.execute(
                "SELECT amount FROM balances WHERE owner=? AND asset_type=?",
                (bytes(owner).hex(), asset_type),
            ).fetchone()
        return int(row["amount"]) if row else 0

    def set_balance(self, owner: bytes, asset_type: str, amount: int) -> None:
        key = (bytes(owner).hex(), asset_type)
        with self._lock:
            if amount == 0:
                self._db.execute("DELETE FROM balances WHERE owner=? AND asset_type=?", key)
            else:
                self._db.execute(
                    """
                    INSERT INTO balances(owner, asset_type, amount) VALUES(?,?,?)
                    ON CONFLICT(owner, asset_type) DO UPDATE SET amount=excluded.amount
                    """,
                    (*key, str(int(amount))),
                )

    # -- events ----------------------------------------------------------------

    def append_event(self, name: bytes, body: bytes) -> int:
        with self._lock:
            cur = self._db.execute(
                "INSERT INTO events(name, body, created_at) VALUES(?,?,?)",
                (sqlite3.Binary(name), sqlite3.Binary(body), _now_s()),
            )
            return int(cur.lastrowid)

    def read_events(self, since_seq: int = 0) -> List[Tuple[int, bytes, bytes]]:
        with self._lock:
            rows = self._db.execute(
                "SELECT seq, name, body FROM events WHERE seq > ? ORDER BY seq", (int(since_seq),)
            ).fetchall()
        return [(int(r["seq"]), bytes(r["name"]), bytes(r["body"])) for r in rows]

    # -- meta ------------------------------------------------------------------

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._db.execute("SELECT value FROM meta WHERE key=?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._db.execute(
                "INSERT INTO meta(key, value) VALUES(?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )


__all__ = ["SqliteState"]
