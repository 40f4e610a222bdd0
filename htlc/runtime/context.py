"""
htlc.runtime.context — CallContext passed to every lock operation (deterministic)

The host ledger normally derives the acting identity from the ambient
transaction. Here it is carried explicitly in a small frozen `CallContext` so
the lock engine can be exercised without a surrounding execution harness.

Design notes
------------
- Addresses are raw bytes of exactly `HtlcConfig.address_len` bytes.
- Hex strings (with or without "0x") are accepted by helpers and normalized to
  bytes.
- `tx_hash` seeds deterministic object-id derivation; when omitted a random
  32-byte value is drawn, as a submitting wallet would.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from ..config import load_config
from ..errors import InvalidArgument


BytesLike = Union[bytes, bytearray, memoryview, str]


# ----------------------------- helpers ----------------------------- #

def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def to_bytes(value: BytesLike) -> bytes:
    """
    Coerce `value` to bytes.
    - If str, interpret as hex (with or without '0x'); odd-length hex is rejected.
    - If a bytes-like object, copy to immutable bytes.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        h = _strip_0x(value.strip())
        if len(h) % 2 != 0:
            raise InvalidArgument(f"hex string must have even length, got {len(h)}")
        try:
            return bytes.fromhex(h)
        except ValueError as e:
            raise InvalidArgument(f"invalid hex string: {value!r}") from e
    raise InvalidArgument(f"cannot convert type {type(value).__name__} to bytes")


def to_hex(b: Union[bytes, bytearray, memoryview]) -> str:
    """Encode bytes as 0x-prefixed lowercase hex."""
    return "0x" + bytes(b).hex()


def to_address(value: BytesLike, name: str = "address") -> bytes:
    """Normalize `value` to an address of the configured width."""
    b = to_bytes(value)
    alen = load_config().address_len
    if len(b) != alen:
        raise InvalidArgument(
            f"{name} must be exactly {alen} bytes",
            data={"field": name, "len": len(b)},
        )
    return b


# ----------------------------- model ------------------------------- #

@dataclass(frozen=True)
class CallContext:
    """
    Deterministic per-call environment.

    Fields
    ------
    sender:   Calling identity (address bytes).
    tx_hash:  Transaction hash bytes; drives object-id derivation.
    """
    sender: bytes
    tx_hash: bytes = field(default_factory=lambda: secrets.token_bytes(32))

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", to_address(self.sender, "sender"))
        object.__setattr__(self, "tx_hash", to_bytes(self.tx_hash))

    @classmethod
    def of(cls, sender: BytesLike, tx_hash: Any = None) -> "CallContext":
        if tx_hash is None:
            return cls(sender=to_bytes(sender))
        return cls(sender=to_bytes(sender), tx_hash=to_bytes(tx_hash))

    def to_dict(self) -> Dict[str, Any]:
        return {"sender": to_hex(self.sender), "tx_hash": to_hex(self.tx_hash)}


__all__ = [
    "CallContext",
    "to_bytes",
    "to_hex",
    "to_address",
]
