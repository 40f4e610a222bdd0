"""htlc.version — semantic version for the lock engine.

This module exposes:
- __version__: a PEP 440-compliant version string
- compute_version(): resolution order → env → package metadata → fallback

Environment override:
- HTLC_VERSION
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import metadata as importlib_metadata
from typing import Optional

# Bump whenever the persisted LockRecord encoding or an event schema changes.
BASE_VERSION = "0.1.0"

DIST_NAME = "htlc-engine"


def _pkg_metadata_version(dist_name: str = DIST_NAME) -> Optional[str]:
    """Try to read installed package version; None if unavailable."""
    try:
        v = importlib_metadata.version(dist_name)
        return v if v and v != "0.0.0" else None
    except importlib_metadata.PackageNotFoundError:
        return None


@lru_cache(maxsize=1)
def compute_version() -> str:
    """
    Resolve a version string with this precedence:
      1) HTLC_VERSION (exact value)
      2) Installed package metadata version for 'htlc-engine'
      3) BASE_VERSION + '+dev'
    """
    val = os.getenv("HTLC_VERSION")
    if val:
        return val

    meta_v = _pkg_metadata_version()
    if meta_v:
        return meta_v

    return f"{BASE_VERSION}+dev"


__version__ = compute_version()

__all__ = ["__version__", "BASE_VERSION", "compute_version"]
