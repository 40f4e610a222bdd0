"""
htlc.cli — command-line entrypoints.

    python -m htlc.cli --help
"""

from .main import app, main

__all__ = ["app", "main"]
