"""
End-to-end swap walkthroughs: one funded initiator, one counterparty, one
outsider, against a manually driven clock.
"""
from __future__ import annotations

import pytest

from htlc.errors import Refund3rdParty, RefundEarly, SecretLengthWrong, SecretPreimageWrong
from htlc.lock import create_lock, lock_exists, redeem, refund
from htlc.runtime import CallContext
from htlc.runtime.hash_api import secret_digest

DEPOSITOR = b"\x11" * 32
RECIPIENT = b"\x22" * 32
OUTSIDER = b"\x33" * 32

SECRET = b"0123456789abcdef0123456789abcdef"
AMOUNT = 1_000
DURATION_MS = 3_600_000


@pytest.fixture
def lock_id(host, clock, fund):
    coin = fund(AMOUNT, owner=DEPOSITOR)
    return create_lock(
        host,
        CallContext.of(DEPOSITOR),
        clock,
        DURATION_MS,
        secret_digest(SECRET),
        RECIPIENT,
        DEPOSITOR,
        coin,
        32,
    )


def test_a_redeem_with_secret(host, lock_id):
    redeem(host, CallContext.of(RECIPIENT), lock_id, SECRET)
    assert host.ledger.balance_of(RECIPIENT, "SUI") == AMOUNT
    assert not lock_exists(host, lock_id)


def test_b_wrong_length_then_wrong_hash(host, lock_id):
    with pytest.raises(SecretLengthWrong):
        redeem(host, CallContext.of(RECIPIENT), lock_id, SECRET[:31])
    assert lock_exists(host, lock_id)

    with pytest.raises(SecretPreimageWrong):
        redeem(host, CallContext.of(RECIPIENT), lock_id, SECRET[::-1])
    assert lock_exists(host, lock_id)
    assert host.ledger.balance_of(RECIPIENT, "SUI") == 0


def test_c_refund_after_deadline(host, clock, lock_id):
    clock.advance(22_000_000)
    refund(host, CallContext.of(DEPOSITOR), lock_id, clock)
    assert host.ledger.balance_of(DEPOSITOR, "SUI") == AMOUNT
    assert not lock_exists(host, lock_id)


def test_d_refund_immediately_is_early(host, clock, lock_id):
    with pytest.raises(RefundEarly):
        refund(host, CallContext.of(DEPOSITOR), lock_id, clock)
    assert lock_exists(host, lock_id)
    assert host.ledger.balance_of(DEPOSITOR, "SUI") == 0


def test_e_outsider_cannot_refund(host, clock, lock_id):
    clock.advance(22_000_000)
    with pytest.raises(Refund3rdParty):
        refund(host, CallContext.of(OUTSIDER), lock_id, clock)
    assert lock_exists(host, lock_id)
    assert host.ledger.balance_of(OUTSIDER, "SUI") == 0


def test_deadline_boundary(host, clock, lock_id):
    clock.advance(DURATION_MS)
    with pytest.raises(RefundEarly):
        refund(host, CallContext.of(DEPOSITOR), lock_id, clock)
    clock.advance(1)
    refund(host, CallContext.of(DEPOSITOR), lock_id, clock)
    assert host.ledger.balance_of(DEPOSITOR, "SUI") == AMOUNT


def test_cross_chain_pair_shares_one_secret(host, clock, fund):
    """Both legs of a swap lock under the same hash; revealing on one unlocks the other."""
    hashed = secret_digest(SECRET)
    leg_a = create_lock(
        host, CallContext.of(DEPOSITOR), clock, 2 * DURATION_MS, hashed,
        RECIPIENT, DEPOSITOR, fund(AMOUNT, owner=DEPOSITOR), 32,
    )
    leg_b = create_lock(
        host, CallContext.of(RECIPIENT), clock, DURATION_MS, hashed,
        DEPOSITOR, RECIPIENT, fund(5, owner=RECIPIENT, asset_type="BTC"), 32,
    )

    seen = []
    host.events.subscribe(seen.append)
    redeem(host, CallContext.of(DEPOSITOR), leg_b, SECRET)

    revealed = seen[-1].args["secret"]
    redeem(host, CallContext.of(RECIPIENT), leg_a, revealed)

    assert host.ledger.balance_of(DEPOSITOR, "BTC") == 5
    assert host.ledger.balance_of(RECIPIENT, "SUI") == AMOUNT
