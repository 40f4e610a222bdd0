from __future__ import annotations

from typing import Callable, Iterator

import pytest

from htlc.config import load_config
from htlc.runtime import CallContext, Coin, Host, ManualClock, MemoryState

ALICE = b"\xaa" * 32

START_MS = 1_700_000_000_000


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Every test sees defaults unless it sets HTLC_* itself."""
    for key in (
        "HTLC_ADDRESS_LEN",
        "HTLC_MAX_SECRET_BYTES",
        "HTLC_MAX_AMOUNT_BITS",
        "HTLC_MAX_TIMESTAMP_MS",
        "HTLC_DB_PATH",
        "HTLC_LOG_LEVEL",
        "HTLC_LOG_FORMAT",
    ):
        monkeypatch.delenv(key, raising=False)
    load_config.cache_clear()
    yield
    load_config.cache_clear()


@pytest.fixture
def host() -> Iterator[Host]:
    h = Host(MemoryState())
    yield h
    h.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_MS)


@pytest.fixture
def alice() -> CallContext:
    return CallContext.of(ALICE)


@pytest.fixture
def fund(host: Host) -> Callable[..., Coin]:
    """Mint to `owner` and split off a coin of exactly `amount`."""

    def _fund(amount: int = 100, owner: bytes = ALICE, asset_type: str = "SUI") -> Coin:
        host.ledger.mint(owner, asset_type, amount)
        return host.ledger.split(owner, asset_type, amount)

    return _fund
