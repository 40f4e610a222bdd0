# -*- coding: utf-8 -*-
"""
Property tests for the lock engine.

- deadline == created_at + duration for any in-range clock reading
- a refund succeeds iff now > deadline
- any single-bit flip of the secret fails the hash check
- any length mismatch fails the length check, even with the right prefix
"""
from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from htlc.config import U64_MAX
from htlc.errors import DeadlineOverflow, RefundEarly, SecretLengthWrong, SecretPreimageWrong
from htlc.lock import create_lock, get_lock, lock_exists, redeem, refund
from htlc.runtime import CallContext, Host, ManualClock, MemoryState
from htlc.runtime.hash_api import secret_digest

ALICE = b"\xaa" * 32
BOB = b"\xbb" * 32

SETTINGS = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)

SECRETS = st.binary(min_size=1, max_size=96)
TIMES = st.integers(min_value=0, max_value=U64_MAX)


def _new_lock(now: int, duration: int, secret: bytes, amount: int = 10):
    host = Host(MemoryState())
    clock = ManualClock(now)
    host.ledger.mint(ALICE, "SUI", amount)
    coin = host.ledger.split(ALICE, "SUI", amount)
    lock_id = create_lock(
        host, CallContext.of(ALICE), clock, duration, secret_digest(secret), BOB, ALICE, coin, len(secret)
    )
    return host, clock, lock_id


@SETTINGS
@given(now=TIMES, duration=TIMES)
def test_deadline_arithmetic(now, duration):
    if now + duration > U64_MAX:
        with pytest.raises(DeadlineOverflow):
            _new_lock(now, duration, b"x")
        return
    host, _, lock_id = _new_lock(now, duration, b"x")
    rec = get_lock(host, lock_id)
    assert rec.created_at == now
    assert rec.deadline == now + duration
    assert rec.deadline >= rec.created_at


@SETTINGS
@given(
    duration=st.integers(min_value=0, max_value=10**9),
    elapsed=st.integers(min_value=0, max_value=2 * 10**9),
)
def test_refund_iff_strictly_after_deadline(duration, elapsed):
    host, clock, lock_id = _new_lock(1_000, duration, b"x")
    clock.advance(elapsed)
    if elapsed > duration:
        refund(host, CallContext.of(ALICE), lock_id, clock)
        assert host.ledger.balance_of(ALICE, "SUI") == 10
    else:
        with pytest.raises(RefundEarly):
            refund(host, CallContext.of(ALICE), lock_id, clock)
        assert lock_exists(host, lock_id)


@SETTINGS
@given(secret=SECRETS, data=st.data())
def test_single_bit_flip_fails_hash(secret, data):
    host, _, lock_id = _new_lock(0, 1, secret)
    bit = data.draw(st.integers(min_value=0, max_value=len(secret) * 8 - 1))
    flipped = bytearray(secret)
    flipped[bit // 8] ^= 1 << (bit % 8)

    with pytest.raises(SecretPreimageWrong):
        redeem(host, CallContext.of(BOB), lock_id, bytes(flipped))
    assert lock_exists(host, lock_id)

    redeem(host, CallContext.of(BOB), lock_id, secret)
    assert host.ledger.balance_of(BOB, "SUI") == 10


@SETTINGS
@given(secret=SECRETS, extra=st.binary(min_size=1, max_size=8), cut=st.integers(min_value=1, max_value=8))
def test_length_mismatch_fails_length_check(secret, extra, cut):
    host, _, lock_id = _new_lock(0, 1, secret)
    with pytest.raises(SecretLengthWrong):
        redeem(host, CallContext.of(BOB), lock_id, secret + extra)
    with pytest.raises(SecretLengthWrong):
        redeem(host, CallContext.of(BOB), lock_id, secret[: max(0, len(secret) - cut)])
    assert lock_exists(host, lock_id)
