from __future__ import annotations

import json
import logging

import pytest

from htlc import logging as htlc_logging
from htlc.lock import create_lock, redeem
from htlc.runtime import CallContext
from htlc.runtime.hash_api import secret_digest

ALICE = b"\xaa" * 32
BOB = b"\xbb" * 32
SECRET = b"top-secret-preimage-of-32-bytes!"


@pytest.fixture
def json_logs(capsys):
    """
    Returns a function that configures JSON logging against the test's stderr
    and yields a reader for the records written so far. Configure from the
    test body so the handler binds the stream pytest captures during the call.
    """

    def start():
        htlc_logging.setup_logging(level="INFO", log_format="json")
        capsys.readouterr()

        def read():
            err = capsys.readouterr().err
            return [json.loads(line) for line in err.splitlines() if line.strip()]

        return read

    yield start
    htlc_logging.clear_call_context()
    logging.getLogger("htlc").handlers.clear()


def test_lock_lifecycle_is_logged(json_logs, host, clock, alice, fund):
    read = json_logs()
    lock_id = create_lock(host, alice, clock, 1_000, secret_digest(SECRET), BOB, ALICE, fund(3), 32)
    redeem(host, CallContext.of(BOB), lock_id, SECRET)

    records = read()
    assert [r["event"] for r in records] == ["lock_created", "lock_redeemed"]
    assert records[0]["lock_id"] == lock_id
    assert records[0]["logger"] == "htlc.lock"
    assert SECRET.hex() not in json.dumps(records)


def test_rejections_are_logged(json_logs, host, clock, alice, fund):
    read = json_logs()
    lock_id = create_lock(host, alice, clock, 1_000, secret_digest(SECRET), BOB, ALICE, fund(3), 32)
    with pytest.raises(Exception):
        redeem(host, CallContext.of(BOB), lock_id, b"short")

    rejected = [r for r in read() if r["event"] == "redeem_rejected"]
    assert rejected and rejected[0]["code"] == "secret_length_wrong"


def test_secret_keys_are_redacted(json_logs):
    read = json_logs()
    htlc_logging.get_logger("htlc.test").info("marker", secret="abc", preimage="x", other=1)
    (rec,) = read()
    assert rec["secret"] == "***"
    assert rec["preimage"] == "***"
    assert rec["other"] == 1


def test_call_context_is_merged(json_logs):
    read = json_logs()
    htlc_logging.bind_call_context(caller="0xaa", op="refund")
    htlc_logging.get_logger("htlc.test").info("first")
    htlc_logging.clear_call_context("op")
    htlc_logging.get_logger("htlc.test").info("second")

    first, second = read()
    assert first["caller"] == "0xaa" and first["op"] == "refund"
    assert second["caller"] == "0xaa" and "op" not in second
