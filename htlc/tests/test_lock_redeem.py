from __future__ import annotations

import pytest

from htlc.errors import InvalidArgument, LockNotFound, SecretLengthWrong, SecretPreimageWrong
from htlc.lock import EV_LOCK_CREATED, EV_LOCK_REDEEMED, create_lock, get_lock, lock_exists, redeem
from htlc.runtime import CallContext
from htlc.runtime.context import to_bytes
from htlc.runtime.hash_api import secret_digest

ALICE = b"\xaa" * 32
BOB = b"\xbb" * 32
MALLORY = b"\xdd" * 32
SECRET = bytes(range(32))
HASHED = secret_digest(SECRET)
HOUR_MS = 3_600_000


@pytest.fixture
def lock_id(host, clock, alice, fund):
    return create_lock(host, alice, clock, HOUR_MS, HASHED, BOB, ALICE, fund(500), len(SECRET))


def test_redeem_pays_target_and_destroys_record(host, lock_id):
    redeem(host, CallContext.of(BOB), lock_id, SECRET)

    assert host.ledger.balance_of(BOB, "SUI") == 500
    assert host.ledger.balance_of(ALICE, "SUI") == 0
    assert not lock_exists(host, lock_id)


def test_redeem_event_reveals_secret(host, lock_id):
    redeem(host, CallContext.of(BOB), lock_id, SECRET)

    events = host.events.get_events()
    assert [e.name for e in events] == [EV_LOCK_CREATED, EV_LOCK_REDEEMED]
    assert events[1].args == {"lock_id": to_bytes(lock_id), "secret": SECRET, "redeemer": BOB}


def test_anyone_with_the_secret_may_redeem_but_target_is_paid(host, lock_id):
    redeem(host, CallContext.of(MALLORY), lock_id, SECRET)

    assert host.ledger.balance_of(BOB, "SUI") == 500
    assert host.ledger.balance_of(MALLORY, "SUI") == 0
    assert host.events.get_events()[-1].args["redeemer"] == MALLORY


def test_redeem_still_possible_after_deadline_until_refunded(host, clock, lock_id):
    clock.advance(HOUR_MS * 10)
    redeem(host, CallContext.of(BOB), lock_id, SECRET)
    assert host.ledger.balance_of(BOB, "SUI") == 500


@pytest.mark.parametrize("secret", [SECRET[:-1], SECRET + b"\x00", b""])
def test_wrong_length(host, lock_id, secret):
    with pytest.raises(SecretLengthWrong) as ei:
        redeem(host, CallContext.of(BOB), lock_id, secret)
    assert ei.value.data["expected"] == 32
    assert ei.value.data["got"] == len(secret)
    assert lock_exists(host, lock_id)


def test_length_is_checked_before_hash(host, clock, alice, fund):
    # declared length disagrees with the secret that produced the hash
    lid = create_lock(host, alice, clock, HOUR_MS, HASHED, BOB, ALICE, fund(1), 16)
    with pytest.raises(SecretLengthWrong):
        redeem(host, CallContext.of(BOB), lid, SECRET)
    assert lock_exists(host, lid)


def test_wrong_preimage(host, lock_id):
    with pytest.raises(SecretPreimageWrong):
        redeem(host, CallContext.of(BOB), lock_id, b"\xff" * 32)
    assert lock_exists(host, lock_id)


def test_rejected_redeem_changes_nothing(host, lock_id):
    before = get_lock(host, lock_id)
    seen = []
    host.events.subscribe(seen.append)

    for bad in (SECRET[:5], b"\x00" * 32):
        with pytest.raises((SecretLengthWrong, SecretPreimageWrong)):
            redeem(host, CallContext.of(BOB), lock_id, bad)

    assert get_lock(host, lock_id) == before
    assert host.ledger.balance_of(BOB, "SUI") == 0
    assert [e.name for e in host.events.get_events()] == [EV_LOCK_CREATED]
    assert seen == []

    # the failed attempts did not consume the lock
    redeem(host, CallContext.of(BOB), lock_id, SECRET)
    assert [e.name for e in seen] == [EV_LOCK_REDEEMED]


def test_second_redeem_fails_not_found(host, lock_id):
    redeem(host, CallContext.of(BOB), lock_id, SECRET)
    with pytest.raises(LockNotFound):
        redeem(host, CallContext.of(BOB), lock_id, SECRET)
    assert host.ledger.balance_of(BOB, "SUI") == 500


def test_unknown_lock(host):
    with pytest.raises(LockNotFound):
        redeem(host, CallContext.of(BOB), "0x" + "ab" * 32, SECRET)


def test_secret_must_be_bytes(host, lock_id):
    with pytest.raises(InvalidArgument):
        redeem(host, CallContext.of(BOB), lock_id, SECRET.hex())


def test_lock_id_accepts_raw_bytes(host, lock_id):
    redeem(host, CallContext.of(BOB), to_bytes(lock_id), bytearray(SECRET))
    assert not lock_exists(host, lock_id)


def test_zero_value_lock_is_redeemable(host, clock, alice, fund):
    lid = create_lock(host, alice, clock, HOUR_MS, HASHED, BOB, ALICE, fund(0), 32)
    redeem(host, CallContext.of(BOB), lid, SECRET)
    assert not lock_exists(host, lid)
    assert host.ledger.balance_of(BOB, "SUI") == 0
