"""
HTLC lock engine — package marker and public entrypoints.

This module exposes a small, stable façade over the engine and its host
runtime so downstream tools can rely on a consistent API:

- create_lock(host, ctx, clock, duration_ms, hashed, target, refund, asset, secret_length) -> lock_id
- create_lock_default_24h(...), create_lock_default_48h(...)
- redeem(host, ctx, lock_id, secret) -> None
- refund(host, ctx, lock_id, clock) -> None
- get_lock / lock_exists / list_locks / is_refundable  (read-only views)

Typical local run:

    from htlc import Host, CallContext, ManualClock, create_lock, redeem
    from htlc.runtime.hash_api import secret_digest

    host = Host()
    host.ledger.mint(alice, "SUI", 1_000)
    coin = host.ledger.split(alice, "SUI", 1_000)
    lock_id = create_lock(host, CallContext.of(alice), ManualClock(0), 3_600_000,
                          secret_digest(secret), bob, alice, coin, len(secret))
    redeem(host, CallContext.of(bob), lock_id, secret)
"""

from __future__ import annotations

from .version import __version__
from .errors import (
    HtlcError,
    InvalidArgument,
    DeadlineOverflow,
    LockNotFound,
    Refund3rdParty,
    RefundEarly,
    SecretLengthWrong,
    SecretPreimageWrong,
)
from .lock import (
    LockRecord,
    create_lock,
    create_lock_from_balance,
    create_lock_default_24h,
    create_lock_default_48h,
    get_lock,
    is_refundable,
    list_locks,
    lock_exists,
    redeem,
    refund,
)
from .runtime import CallContext, Coin, Host, ManualClock, SqliteState, SystemClock


def version() -> str:
    """Return the engine semantic version string."""
    return __version__


__all__ = [
    "__version__",
    "version",
    # engine
    "LockRecord",
    "create_lock",
    "create_lock_from_balance",
    "create_lock_default_24h",
    "create_lock_default_48h",
    "redeem",
    "refund",
    "get_lock",
    "lock_exists",
    "list_locks",
    "is_refundable",
    # runtime
    "Host",
    "CallContext",
    "Coin",
    "ManualClock",
    "SystemClock",
    "SqliteState",
    # errors
    "HtlcError",
    "InvalidArgument",
    "DeadlineOverflow",
    "LockNotFound",
    "SecretLengthWrong",
    "SecretPreimageWrong",
    "Refund3rdParty",
    "RefundEarly",
]
