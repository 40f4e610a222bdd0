from __future__ import annotations

"""
Structured logging setup for the HTLC engine and CLI.

This module configures **structlog** + the stdlib ``logging`` package so that:
- Engine and host logs are emitted either as a readable console stream (default)
  or as structured JSON.
- Context variables (e.g., caller, lock id) are merged into each event.
- Secrets revealed on redeem are never written in clear.

Quick start
-----------
    from htlc.logging import setup_logging, get_logger

    setup_logging()  # call once on process start
    log = get_logger(__name__)
    log.info("lock_created", lock_id="0x…", deadline=123)

Environment
-----------
- HTLC_LOG_LEVEL: one of DEBUG, INFO, WARNING, ERROR (default: INFO)
- HTLC_LOG_FORMAT: "console" (default) or "json"
"""

import logging
from typing import Any, Dict, Iterable, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.processors import JSONRenderer

from .config import load_config


# ------------------------------ Redaction ------------------------------------


REDACT_KEYS = {"secret", "preimage"}


def _redact_secrets(_: logging.Logger, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Processor that redacts revealed secrets.
    """
    for k in list(event_dict.keys()):
        if k.lower() in REDACT_KEYS and event_dict[k] is not None:
            event_dict[k] = "***"
    return event_dict


# ------------------------------ Setup ----------------------------------------


def _base_processors() -> Iterable:
    yield structlog.stdlib.add_log_level
    yield structlog.processors.TimeStamper(fmt="iso", utc=True)
    yield merge_contextvars
    yield structlog.processors.StackInfoRenderer()
    yield structlog.processors.format_exc_info
    yield _redact_secrets
    yield structlog.processors.UnicodeDecoder()


def setup_logging(
    *,
    level: Optional[str | int] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure structlog + stdlib logging. Safe to call more than once.

    Parameters
    ----------
    level: str|int
        Log level (e.g., "INFO"). Defaults to $HTLC_LOG_LEVEL or INFO.
    log_format: str
        "console" (default) or "json". Defaults to $HTLC_LOG_FORMAT.
    """
    cfg = load_config()
    level = level or cfg.log_level
    log_format = (log_format or cfg.log_format).lower()

    processors = list(_base_processors())

    if log_format == "json":
        renderer = JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False, sort_keys=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                *processors,
            ],
        )
    )

    root = logging.getLogger("htlc")
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.propagate = False


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structlog logger backed by the stdlib logger `name`.
    """
    return structlog.stdlib.get_logger(name or "htlc")


# ------------------------------ Context helpers -------------------------------

def bind_call_context(**kv: Any) -> None:
    """
    Bind call-scoped key/value pairs into the structlog contextvars store.
    Typical keys: caller, op, lock_id
    """
    structlog.contextvars.bind_contextvars(**kv)


def clear_call_context(*keys: str) -> None:
    """
    Clear specific keys from contextvars, or clear all if no keys provided.
    """
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_call_context",
    "clear_call_context",
]
