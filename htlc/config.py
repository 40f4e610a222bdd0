"""
htlc.config — numeric caps, storage location and logging switches.

This module centralizes configuration for the lock engine and its host
runtime. It has NO third-party deps and is safe to import very early.

Configuration precedence:
  1) Environment variables (HTLC_*)
  2) Hardcoded safe defaults below

Key env vars:
  - HTLC_ADDRESS_LEN          (int)    default: 32
  - HTLC_MAX_SECRET_BYTES     (int)    default: 1024
  - HTLC_MAX_AMOUNT_BITS      (int)    default: 64
  - HTLC_MAX_TIMESTAMP_MS     (int)    default: 2**64 - 1
  - HTLC_DB_PATH              (path)   default: ./htlc.db
  - HTLC_LOG_LEVEL            (str)    default: INFO
  - HTLC_LOG_FORMAT           (str)    default: console   ("console" | "json")

Usage:
    from htlc.config import load_config
    CFG = load_config()
    if len(addr) != CFG.address_len: ...

Tests that tweak the environment must call `load_config.cache_clear()`.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict
import os


# Fixed by convention across cooperating chains; not configurable.
DIGEST_LEN = 32

DURATION_24H_MS = 24 * 60 * 60 * 1000
DURATION_48H_MS = 48 * 60 * 60 * 1000

U64_MAX = (1 << 64) - 1


# ----------------------------- helpers ---------------------------------------


def _env_int(name: str, default: int, *, min_v: int, max_v: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw, 0)
    except ValueError:
        return default
    if v < min_v:
        return min_v
    if v > max_v:
        return max_v
    return v


def _env_choice(name: str, default: str, choices: tuple) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    return raw if raw in choices else default


def _env_path(name: str, default: str) -> Path:
    raw = os.getenv(name) or default
    return Path(raw).expanduser()


# ------------------------------- config --------------------------------------


@dataclass(frozen=True)
class HtlcConfig:
    # Identities & values
    address_len: int
    max_secret_bytes: int
    max_amount_bits: int
    max_timestamp_ms: int

    # Host storage
    db_path: Path

    # Logging
    log_level: str
    log_format: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "address_len": self.address_len,
            "max_secret_bytes": self.max_secret_bytes,
            "max_amount_bits": self.max_amount_bits,
            "max_timestamp_ms": self.max_timestamp_ms,
            "db_path": str(self.db_path),
            "log_level": self.log_level,
            "log_format": self.log_format,
        }


@lru_cache(maxsize=1)
def load_config() -> HtlcConfig:
    """
    Build and cache an HtlcConfig from environment + safe defaults.
    """
    level = (os.getenv("HTLC_LOG_LEVEL") or "INFO").strip().upper()
    return HtlcConfig(
        address_len=_env_int("HTLC_ADDRESS_LEN", 32, min_v=20, max_v=64),
        max_secret_bytes=_env_int("HTLC_MAX_SECRET_BYTES", 1024, min_v=1, max_v=4096),
        max_amount_bits=_env_int("HTLC_MAX_AMOUNT_BITS", 64, min_v=8, max_v=256),
        max_timestamp_ms=_env_int("HTLC_MAX_TIMESTAMP_MS", U64_MAX, min_v=1, max_v=U64_MAX),
        db_path=_env_path("HTLC_DB_PATH", "htlc.db"),
        log_level=level,
        log_format=_env_choice("HTLC_LOG_FORMAT", "console", ("console", "json")),
    )


__all__ = [
    "HtlcConfig",
    "load_config",
    "DIGEST_LEN",
    "DURATION_24H_MS",
    "DURATION_48H_MS",
    "U64_MAX",
]
