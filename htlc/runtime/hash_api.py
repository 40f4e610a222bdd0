"""
htlc.runtime.hash_api — deterministic hashing wrappers.

Goals
-----
- Strictly bytes-in, bytes-out (no implicit text/encoding).
- One fixed 256-bit digest for secrets (`secret_digest`), agreed by convention
  with the cooperating chain. The engine never inspects how a stored hash was
  produced; it only compares against this function's output.
- Optional domain separation for internal ids so they can never collide with
  a secret digest.

Provided APIs
-------------
- sha3_256(data: bytes, *, domain: bytes = b"") -> bytes
- hash_concat_sha3_256(*chunks: bytes, domain=b"") -> bytes
- secret_digest(secret: bytes) -> bytes        # plain SHA3-256, no domain

Domain Separation
-----------------
If a non-empty `domain` is provided, the hash input becomes:

    b"\\x19htlc:" || domain || b"\\x00" || data
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from ..errors import InvalidArgument


_HTLC_PREFIX = b"\x19htlc:"


def _ensure_bytes(buf: object, name: str) -> bytes:
    if isinstance(buf, (bytes, bytearray, memoryview)):
        return bytes(buf)
    raise InvalidArgument(f"{name} must be bytes-like (got {type(buf).__name__})")


def _apply_domain(h, domain: bytes) -> None:
    if domain:
        h.update(_HTLC_PREFIX)
        h.update(domain)
        h.update(b"\x00")


def sha3_256(data: bytes | bytearray | memoryview, *, domain: bytes = b"") -> bytes:
    d = _ensure_bytes(data, "data")
    dom = _ensure_bytes(domain, "domain")
    h = hashlib.sha3_256()
    _apply_domain(h, dom)
    h.update(d)
    return h.digest()



def _hash_concat(chunks: Iterable[bytes | bytearray | memoryview], h, domain: bytes) -> bytes:
    _apply_domain(h, domain)
    for i, c in enumerate(chunks):
        h.update(_ensure_bytes(c, f"chunk[{i}]"))
    return h.digest()


def hash_concat_sha3_256(*chunks: bytes | bytearray | memoryview, domain: bytes = b"") -> bytes:
    return _hash_concat(chunks, hashlib.sha3_256(), _ensure_bytes(domain, "domain"))


def secret_digest(secret: bytes | bytearray | memoryview) -> bytes:
    """Digest a redeeming secret exactly as the counterparty chain does."""
    return sha3_256(secret)


__all__ = [
    "sha3_256",
    "hash_concat_sha3_256",
    "secret_digest",
]
