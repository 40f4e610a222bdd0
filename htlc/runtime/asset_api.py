"""
htlc.runtime.asset_api — fungible asset values and the host balance ledger.

The lock engine treats an escrowed asset as an opaque `Coin`: it holds it in
the lock record and hands it to `Ledger.transfer(coin, to)` on resolution. It
never splits, merges or inspects the value beyond reading it for events.

- Coin(coin_id, asset_type, value)   # a detached quantity of one asset type
- Ledger.mint(owner, asset_type, amount)        # host/testing helper
- Ledger.split(owner, asset_type, amount) -> Coin
- Ledger.escrow(coin)                            # take custody of an issued coin
- Ledger.transfer(coin, to)                      # consume the coin, credit `to`
- Ledger.balance_of(owner, asset_type) -> int

Notes
-----
* Simulation ledger. On a real chain the asset type and ownership transfer
  live in the host; embedders swap the backend, not this interface.
* Deterministic: no wall-clock, no randomness, pure arithmetic with explicit caps.
* Conservation: only coins issued by `split` can be escrowed or transferred,
  each escrowed at most once and transferred at most once.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict

from ..config import load_config
from ..errors import AssetError
from .context import to_address, to_hex
from .hash_api import hash_concat_sha3_256
from .storage_api import StateBackend


_ASSET_TYPE_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_:.<>]{0,127}$")

_COIN_SEQ_KEY = "coin_seq"

COIN_KIND = "htlc.Coin"


# ------------------------------ Addr & Amount ------------------------------ #

def _check_asset_type(asset_type: str) -> str:
    if not isinstance(asset_type, str) or not _ASSET_TYPE_RE.match(asset_type):
        raise AssetError("invalid asset type", data={"asset_type": asset_type})
    return asset_type


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise AssetError("amount must be int")
    if amount < 0:
        raise AssetError("amount must be non-negative")
    max_bits = load_config().max_amount_bits
    if amount.bit_length() > max_bits:
        raise AssetError(f"amount exceeds {max_bits}-bit limit")
    return amount


def _add_checked(a: int, b: int) -> int:
    max_val = (1 << load_config().max_amount_bits) - 1
    c = a + b
    if c > max_val:
        raise AssetError("balance overflow")
    return c


# ---------------------------------- Coin ----------------------------------- #

@dataclass(frozen=True)
class Coin:
    """A detached quantity of one asset type."""

    coin_id: str
    asset_type: str
    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.coin_id, str) or not 0 < len(self.coin_id) <= 96:
            raise AssetError("coin id must be a non-empty str of at most 96 chars")
        _check_asset_type(self.asset_type)
        _check_amount(self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {"coin_id": self.coin_id, "asset_type": self.asset_type, "value": self.value}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Coin":
        return cls(coin_id=str(d["coin_id"]), asset_type=str(d["asset_type"]), value=int(d["value"]))


# --------------------------------- Ledger ---------------------------------- #

class Ledger:
    """
    Per-(owner, asset_type) balances over a StateBackend.

    Every Coin handed out by `split` is recorded as an outstanding coin until
    `transfer` consumes it. `escrow` moves an outstanding coin into custody;
    a coin the ledger never issued, or one already escrowed or spent, is
    rejected, so escrowed value always equals withdrawn value.
    """

    def __init__(self, backend: StateBackend) -> None:
        self._backend = backend

    def balance_of(self, owner: bytes, asset_type: str) -> int:
        return self._backend.get_balance(to_address(owner, "owner"), _check_asset_type(asset_type))

    def mint(self, owner: bytes, asset_type: str, amount: int) -> None:
        """
        Host/testing helper: increase balance of `owner` by `amount`.
        """
        addr = to_address(owner, "owner")
        _check_asset_type(asset_type)
        _check_amount(amount)
        with self._backend.tx():
            cur = self._backend.get_balance(addr, asset_type)
            self._backend.set_balance(addr, asset_type, _add_checked(cur, amount))

    def split(self, owner: bytes, asset_type: str, amount: int) -> Coin:
        """
        Withdraw `amount` from `owner`'s balance as a detached Coin.
        Zero-value coins are legal.
        """
        addr = to_address(owner, "owner")
        _check_asset_type(asset_type)
        _check_amount(amount)
        with self._backend.tx():
            cur = self._backend.get_balance(addr, asset_type)
            if amount > cur:
                raise AssetError(
                    "insufficient balance",
                    data={"owner": to_hex(addr), "asset_type": asset_type, "balance": cur, "amount": amount},
                )
            self._backend.set_balance(addr, asset_type, cur - amount)
            coin = Coin(coin_id=self._next_coin_id(addr), asset_type=asset_type, value=amount)
            self._put_coin(coin, escrowed=False)
        return coin

    def escrow(self, coin: Coin) -> None:
        """Take custody of an outstanding coin; each coin can be escrowed once."""
        with self._backend.tx():
            if self._coin_state(coin)["escrowed"]:
                raise AssetError("coin already escrowed", data={"coin_id": coin.coin_id})
            self._backend.delete_object(coin.coin_id)
            self._put_coin(coin, escrowed=True)

    def transfer(self, coin: Coin, to: bytes) -> None:
        """Consume `coin` and credit its full value to `to`."""
        addr = to_address(to, "recipient")
        with self._backend.tx():
            self._coin_state(coin)
            self._backend.delete_object(coin.coin_id)
            cur = self._backend.get_balance(addr, coin.asset_type)
            self._backend.set_balance(addr, coin.asset_type, _add_checked(cur, coin.value))

    # -- outstanding coins ---------------------------------------------------

    def _put_coin(self, coin: Coin, *, escrowed: bool) -> None:
        body = dict(coin.to_dict(), escrowed=escrowed)
        self._backend.put_object(
            coin.coin_id, COIN_KIND, json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
        )

    def _coin_state(self, coin: Coin) -> Dict[str, Any]:
        if not isinstance(coin, Coin):
            raise AssetError("expected a Coin", data={"py_type": type(coin).__name__})
        found = self._backend.get_object(coin.coin_id)
        if found is None or found[0] != COIN_KIND:
            raise AssetError("unknown or spent coin", data={"coin_id": coin.coin_id})
        state = json.loads(found[1].decode("utf-8"))
        if state["asset_type"] != coin.asset_type or int(state["value"]) != coin.value:
            raise AssetError("coin does not match the issued coin", data={"coin_id": coin.coin_id})
        return state

    def _next_coin_id(self, owner: bytes) -> str:
        seq = int(self._backend.get_meta(_COIN_SEQ_KEY) or 0) + 1
        self._backend.set_meta(_COIN_SEQ_KEY, str(seq))
        return to_hex(hash_concat_sha3_256(owner, seq.to_bytes(8, "big"), domain=b"coin"))


__all__ = ["COIN_KIND", "Coin", "Ledger"]
