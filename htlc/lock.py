"""
Hash time-locked escrow (lock engine).

Design (kept intentionally minimal for determinism and easy auditing):

- create_lock(host, ctx, clock, duration_ms, hashed, target_address,
              refund_address, asset, secret_length) -> lock_id
    Escrows `asset` in a new shared LockRecord. deadline = now + duration.
    Emits htlc.LockCreated.

- create_lock_from_balance(host, ctx, clock, duration_ms, hashed, target_address,
                           refund_address, asset_type, amount, secret_length)
    Same, but withdraws the asset from the caller's balance in the same unit of
    work.

- create_lock_default_24h(...) / create_lock_default_48h(...)
    Same as create_lock with the duration fixed to 24h / 48h.

- redeem(host, ctx, lock_id, secret) -> None
    Anyone who knows the secret may redeem. Checks the secret length, then its
    SHA3-256 digest; pays the asset to target_address and destroys the record.
    Emits htlc.LockRedeemed (which reveals the secret).

- refund(host, ctx, lock_id, clock) -> None
    Only refund_address, initiator or target_address may refund, and only
    strictly after the deadline. Pays the asset to refund_address and destroys
    the record. Emits htlc.LockRefunded.

Every operation runs inside `host.atomic()`: a rejected call changes nothing,
moves nothing and emits nothing, so a failed redeem can be retried with the
right secret. Redeem and refund both consume the record through the object
store's `take`, so whichever commits first wins and any later attempt fails
with LockNotFound.

The stored hash is opaque: the engine does not try to detect which algorithm
the counterparty used to produce it.
"""

from __future__ import annotations

import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .config import DIGEST_LEN, DURATION_24H_MS, DURATION_48H_MS, load_config
from .errors import (
    DeadlineOverflow,
    HtlcError,
    InvalidArgument,
    LockNotFound,
    Refund3rdParty,
    RefundEarly,
    SecretLengthWrong,
    SecretPreimageWrong,
    StateError,
)
from .logging import get_logger
from .runtime.asset_api import Coin
from .runtime.clock import Clock
from .runtime.context import CallContext, to_address, to_bytes, to_hex
from .runtime.hash_api import secret_digest
from .runtime.host import Host

log = get_logger(__name__)

LOCK_KIND = "htlc.Lock"
LOCK_ENCODING_VERSION = 1

# Event names
EV_LOCK_CREATED = b"htlc.LockCreated"
EV_LOCK_REDEEMED = b"htlc.LockRedeemed"
EV_LOCK_REFUNDED = b"htlc.LockRefunded"


# --------------------------------------------------------------------------- #
# Record                                                                      #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class LockRecord:
    """One escrow instance. Immutable; destroyed by redeem or refund."""

    lock_id: str
    created_at: int
    deadline: int
    duration: int
    hashed: bytes
    refund_address: bytes
    target_address: bytes
    initiator: bytes
    secret_length: int
    asset: Coin

    def refund_parties(self) -> Tuple[bytes, bytes, bytes]:
        """Identities allowed to trigger a refund."""
        return (self.refund_address, self.initiator, self.target_address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lock_id": self.lock_id,
            "created_at": self.created_at,
            "deadline": self.deadline,
            "duration": self.duration,
            "hashed": to_hex(self.hashed),
            "refund_address": to_hex(self.refund_address),
            "target_address": to_hex(self.target_address),
            "initiator": to_hex(self.initiator),
            "secret_length": self.secret_length,
            "asset": self.asset.to_dict(),
        }

    def encode(self) -> bytes:
        """Canonical persisted form: compact, sorted-key JSON."""
        d = self.to_dict()
        d["v"] = LOCK_ENCODING_VERSION
        return json.dumps(d, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, body: bytes) -> "LockRecord":
        try:
            d = json.loads(bytes(body).decode("utf-8"))
            if d.get("v") != LOCK_ENCODING_VERSION:
                raise StateError("unsupported lock encoding", data={"v": d.get("v")})
            return cls(
                lock_id=str(d["lock_id"]),
                created_at=int(d["created_at"]),
                deadline=int(d["deadline"]),
                duration=int(d["duration"]),
                hashed=to_bytes(d["hashed"]),
                refund_address=to_bytes(d["refund_address"]),
                target_address=to_bytes(d["target_address"]),
                initiator=to_bytes(d["initiator"]),
                secret_length=int(d["secret_length"]),
                asset=Coin.from_dict(d["asset"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise StateError("corrupt lock record", data={"reason": str(e)}) from e


# --------------------------------------------------------------------------- #
# Input checks                                                                #
# --------------------------------------------------------------------------- #


def _require_uint(name: str, v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidArgument(f"{name} must be int, got {type(v).__name__}", data={"field": name})
    if v < 0:
        raise InvalidArgument(f"{name} must be non-negative, got {v}", data={"field": name})
    return v


def _require_digest(hashed: Any) -> bytes:
    b = to_bytes(hashed)
    if len(b) != DIGEST_LEN:
        raise InvalidArgument(
            f"hashed must be exactly {DIGEST_LEN} bytes",
            data={"field": "hashed", "len": len(b)},
        )
    return b


def _now(clock: Clock) -> int:
    now = clock.timestamp_ms()
    if isinstance(now, bool) or not isinstance(now, int) or now < 0:
        raise InvalidArgument("clock returned an invalid timestamp", data={"now_ms": repr(now)})
    return now


def _deadline(now: int, duration_ms: int) -> int:
    deadline = now + duration_ms
    limit = load_config().max_timestamp_ms
    if deadline > limit:
        raise DeadlineOverflow(
            "now + duration exceeds the timestamp range",
            data={"now_ms": now, "duration_ms": duration_ms, "max_ms": limit},
        )
    return deadline


def _norm_lock_id(lock_id: Any) -> str:
    return to_hex(to_bytes(lock_id))


def _take(host: Host, lock_id: str) -> LockRecord:
    obj = host.objects.take(lock_id)
    if obj is None or obj.kind != LOCK_KIND:
        raise LockNotFound("no such lock", data={"lock_id": lock_id})
    return LockRecord.decode(obj.body)


# --------------------------------------------------------------------------- #
# Creation                                                                    #
# --------------------------------------------------------------------------- #


def _check_create_args(
    duration_ms: Any,
    hashed: Any,
    target_address: Any,
    refund_address: Any,
    secret_length: Any,
) -> Tuple[int, bytes, bytes, bytes, int]:
    duration_ms = _require_uint("duration_ms", duration_ms)
    secret_length = _require_uint("secret_length", secret_length)
    max_secret = load_config().max_secret_bytes
    if secret_length > max_secret:
        raise InvalidArgument(
            f"secret_length exceeds {max_secret} bytes",
            data={"field": "secret_length", "max": max_secret},
        )
    digest = _require_digest(hashed)
    target = to_address(target_address, "target_address")
    refund_to = to_address(refund_address, "refund_address")
    return duration_ms, digest, target, refund_to, secret_length


def _open_lock(
    host: Host,
    ctx: CallContext,
    clock: Clock,
    duration_ms: int,
    digest: bytes,
    target: bytes,
    refund_to: bytes,
    asset: Coin,
    secret_length: int,
) -> LockRecord:
    """Escrow `asset` and publish the record; runs inside `host.atomic()`."""
    host.ledger.escrow(asset)
    now = _now(clock)
    deadline = _deadline(now, duration_ms)
    lock_id = host.new_object_id(ctx)
    record = LockRecord(
        lock_id=lock_id,
        created_at=now,
        deadline=deadline,
        duration=duration_ms,
        hashed=digest,
        refund_address=refund_to,
        target_address=target,
        initiator=ctx.sender,
        secret_length=secret_length,
        asset=asset,
    )
    host.objects.publish(lock_id, LOCK_KIND, record.encode())
    host.events.emit(
        EV_LOCK_CREATED,
        {
            "lock_id": to_bytes(lock_id),
            "hashed": digest,
            "coin_id": asset.coin_id,
            "asset_type": asset.asset_type,
            "amount": asset.value,
            "target_address": target,
            "refund_address": refund_to,
            "initiator": ctx.sender,
            "deadline": deadline,
            "duration": duration_ms,
            "secret_length": secret_length,
        },
    )
    return record


def _log_created(ctx: CallContext, record: LockRecord) -> None:
    log.info(
        "lock_created",
        lock_id=record.lock_id,
        initiator=to_hex(ctx.sender),
        deadline=record.deadline,
        amount=record.asset.value,
        asset_type=record.asset.asset_type,
    )


def create_lock(
    host: Host,
    ctx: CallContext,
    clock: Clock,
    duration_ms: int,
    hashed: bytes,
    target_address: bytes,
    refund_address: bytes,
    asset: Coin,
    secret_length: int,
) -> str:
    """
    Escrow `asset` until `secret` with digest `hashed` is revealed, or until
    `duration_ms` after now, whichever resolution commits first.

    `asset` must be an outstanding coin issued by the host ledger; the ledger
    takes custody of it, so one coin can back at most one lock.

    Returns the new lock id. A zero-value asset and a zero duration are both
    legal; the latter makes the lock refundable from the next millisecond.
    """
    args = _check_create_args(duration_ms, hashed, target_address, refund_address, secret_length)
    if not isinstance(asset, Coin):
        raise InvalidArgument("asset must be a Coin", data={"py_type": type(asset).__name__})

    duration_ms, digest, target, refund_to, secret_length = args
    with host.atomic():
        record = _open_lock(host, ctx, clock, duration_ms, digest, target, refund_to, asset, secret_length)
    _log_created(ctx, record)
    return record.lock_id


def create_lock_from_balance(
    host: Host,
    ctx: CallContext,
    clock: Clock,
    duration_ms: int,
    hashed: bytes,
    target_address: bytes,
    refund_address: bytes,
    asset_type: str,
    amount: int,
    secret_length: int,
) -> str:
    """
    Withdraw `amount` of `asset_type` from the caller's balance and escrow it,
    in the same unit of work: either the lock exists or the balance is intact.
    """
    duration_ms, digest, target, refund_to, secret_length = _check_create_args(
        duration_ms, hashed, target_address, refund_address, secret_length
    )
    with host.atomic():
        coin = host.ledger.split(ctx.sender, asset_type, amount)
        record = _open_lock(host, ctx, clock, duration_ms, digest, target, refund_to, coin, secret_length)
    _log_created(ctx, record)
    return record.lock_id


def create_lock_default_24h(
    host: Host,
    ctx: CallContext,
    clock: Clock,
    hashed: bytes,
    target_address: bytes,
    refund_address: bytes,
    asset: Coin,
    secret_length: int,
) -> str:
    return create_lock(
        host, ctx, clock, DURATION_24H_MS, hashed, target_address, refund_address, asset, secret_length
    )


def create_lock_default_48h(
    host: Host,
    ctx: CallContext,
    clock: Clock,
    hashed: bytes,
    target_address: bytes,
    refund_address: bytes,
    asset: Coin,
    secret_length: int,
) -> str:
    return create_lock(
        host, ctx, clock, DURATION_48H_MS, hashed, target_address, refund_address, asset, secret_length
    )


# --------------------------------------------------------------------------- #
# Redemption                                                                  #
# --------------------------------------------------------------------------- #


def redeem(host: Host, ctx: CallContext, lock_id: str, secret: bytes) -> None:
    """
    Reveal `secret` and pay the escrow to the lock's target address.

    The caller is recorded in the event but not restricted: knowing the
    secret is the only authorization.
    """
    lock_id = _norm_lock_id(lock_id)
    if not isinstance(secret, (bytes, bytearray, memoryview)):
        raise InvalidArgument("secret must be bytes", data={"py_type": type(secret).__name__})
    secret = bytes(secret)

    try:
        with host.atomic():
            record = _take(host, lock_id)
            if len(secret) != record.secret_length:
                raise SecretLengthWrong(
                    "secret has the wrong length",
                    data={"lock_id": lock_id, "expected": record.secret_length, "got": len(secret)},
                )
            if not hmac.compare_digest(secret_digest(secret), record.hashed):
                raise SecretPreimageWrong("secret does not match hash", data={"lock_id": lock_id})

            host.events.emit(
                EV_LOCK_REDEEMED,
                {"lock_id": to_bytes(lock_id), "secret": secret, "redeemer": ctx.sender},
            )
            host.ledger.transfer(record.asset, record.target_address)
    except HtlcError as e:
        log.info("redeem_rejected", lock_id=lock_id, code=e.code, caller=to_hex(ctx.sender))
        raise

    log.info(
        "lock_redeemed",
        lock_id=lock_id,
        redeemer=to_hex(ctx.sender),
        to=to_hex(record.target_address),
        amount=record.asset.value,
    )


# --------------------------------------------------------------------------- #
# Refund                                                                      #
# --------------------------------------------------------------------------- #


def is_refundable(record: LockRecord, now_ms: int) -> bool:
    """True once the deadline has strictly passed."""
    return now_ms > record.deadline


def refund(host: Host, ctx: CallContext, lock_id: str, clock: Clock) -> None:
    """
    Return the escrow to the lock's refund address after the deadline.

    Only the three parties named in the record may trigger it.
    """
    lock_id = _norm_lock_id(lock_id)

    try:
        with host.atomic():
            record = _take(host, lock_id)
            if ctx.sender not in record.refund_parties():
                raise Refund3rdParty(
                    "caller is not a party to this lock",
                    data={"lock_id": lock_id, "caller": to_hex(ctx.sender)},
                )
            now = _now(clock)
            if not is_refundable(record, now):
                raise RefundEarly(
                    "lock deadline has not passed",
                    data={"lock_id": lock_id, "now_ms": now, "deadline": record.deadline},
                )

            host.events.emit(
                EV_LOCK_REFUNDED,
                {"lock_id": to_bytes(lock_id), "refunder": ctx.sender},
            )
            host.ledger.transfer(record.asset, record.refund_address)
    except HtlcError as e:
        log.info("refund_rejected", lock_id=lock_id, code=e.code, caller=to_hex(ctx.sender))
        raise

    log.info(
        "lock_refunded",
        lock_id=lock_id,
        refunder=to_hex(ctx.sender),
        to=to_hex(record.refund_address),
        amount=record.asset.value,
    )


# --------------------------------------------------------------------------- #
# Views                                                                       #
# --------------------------------------------------------------------------- #


def get_lock(host: Host, lock_id: str) -> LockRecord:
    lock_id = _norm_lock_id(lock_id)
    obj = host.objects.load(lock_id)
    if obj is None or obj.kind != LOCK_KIND:
        raise LockNotFound("no such lock", data={"lock_id": lock_id})
    return LockRecord.decode(obj.body)


def lock_exists(host: Host, lock_id: str) -> bool:
    obj = host.objects.load(_norm_lock_id(lock_id))
    return obj is not None and obj.kind == LOCK_KIND


def list_locks(host: Host) -> List[LockRecord]:
    """All live locks, oldest first."""
    records = [LockRecord.decode(obj.body) for obj in host.objects.list(LOCK_KIND)]
    return sorted(records, key=lambda r: (r.created_at, r.lock_id))


__all__ = [
    "LockRecord",
    "LOCK_KIND",
    "EV_LOCK_CREATED",
    "EV_LOCK_REDEEMED",
    "EV_LOCK_REFUNDED",
    "create_lock",
    "create_lock_from_balance",
    "create_lock_default_24h",
    "create_lock_default_48h",
    "redeem",
    "refund",
    "is_refundable",
    "get_lock",
    "lock_exists",
    "list_locks",
]
