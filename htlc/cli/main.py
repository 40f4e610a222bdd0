from __future__ import annotations

"""
htlc.cli.main
-------------

Operator/devnet CLI for the lock engine over a local SQLite state file.

Every command opens the state DB, runs at most one engine operation and
prints JSON to stdout. Engine failures print the error's problem document to
stderr and exit with status 1.

Examples
--------
# Fund alice and lock 100 units for bob for one hour
python -m htlc.cli --db swap.db mint --owner 0xaa…aa --asset-type SUI --amount 1000
python -m htlc.cli --db swap.db create --caller 0xaa…aa --target 0xbb…bb --refund 0xaa…aa \
  --hash 0x<sha3-256 of secret> --secret-length 32 --asset-type SUI --amount 100 --duration-ms 3600000

# Redeem with the secret, or refund after the deadline
python -m htlc.cli --db swap.db redeem --caller 0xbb…bb --lock-id 0x… --secret 0x…
python -m htlc.cli --db swap.db --now-ms 1700000000000 refund --caller 0xaa…aa --lock-id 0x…

# Inspect
python -m htlc.cli --db swap.db list
python -m htlc.cli --db swap.db events --since 0
"""

import contextlib
import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterator, NoReturn, Optional

import typer

from ..config import DURATION_24H_MS, DURATION_48H_MS, load_config
from ..errors import HtlcError, InvalidArgument, StateError
from ..lock import create_lock_from_balance, get_lock, is_refundable, list_locks, redeem, refund
from ..logging import bind_call_context, clear_call_context, setup_logging
from ..runtime.clock import Clock, ManualClock, SystemClock
from ..runtime.context import CallContext, to_address, to_bytes, to_hex
from ..runtime.hash_api import secret_digest
from ..runtime.host import Host
from ..runtime.state_db import SqliteState

app = typer.Typer(
    name="htlc",
    add_completion=False,
    no_args_is_help=True,
    help="Create, redeem and refund hash time-locked escrows on a local state DB.",
)

_PRESETS = {"24h": DURATION_24H_MS, "48h": DURATION_48H_MS}


# -------------------- utils --------------------


def _echo_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, sort_keys=True))


def _fail(err: HtlcError) -> NoReturn:
    typer.echo(json.dumps(err.to_problem(), sort_keys=True), err=True)
    raise typer.Exit(code=1)


def _state(ctx: typer.Context) -> Dict[str, Any]:
    return ctx.obj or {}


def _clock(ctx: typer.Context) -> Clock:
    now_ms = _state(ctx).get("now_ms")
    return ManualClock(now_ms) if now_ms is not None else SystemClock()


@contextlib.contextmanager
def _host(ctx: typer.Context) -> Iterator[Host]:
    db_path = _state(ctx).get("db") or load_config().db_path
    host = Host(SqliteState(str(db_path)))
    try:
        yield host
    except HtlcError as e:
        _fail(e)
    except sqlite3.Error as e:
        _fail(StateError.from_exc(e))
    finally:
        clear_call_context()
        host.close()


def _call(caller: str, tx_hash: Optional[str]) -> CallContext:
    call = CallContext.of(caller, tx_hash)
    bind_call_context(caller=to_hex(call.sender))
    return call


# -------------------- wiring --------------------


@app.callback()
def _configure(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None, "--db", help="SQLite state file (default: $HTLC_DB_PATH or ./htlc.db)", envvar="HTLC_DB_PATH"
    ),
    now_ms: Optional[int] = typer.Option(
        None, "--now-ms", min=0, help="Pin the oracle reading (ms); defaults to the wall clock"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Engine log level"),
) -> None:
    setup_logging(level=log_level.upper())
    ctx.obj = {"db": db, "now_ms": now_ms}


@app.command("mint")
def mint_cmd(
    ctx: typer.Context,
    owner: str = typer.Option(..., "--owner", help="Recipient address (hex)"),
    asset_type: str = typer.Option(..., "--asset-type", help="Asset type tag, e.g. SUI"),
    amount: int = typer.Option(..., "--amount", min=0),
) -> None:
    """Credit `amount` of an asset to an address (devnet faucet)."""
    with _host(ctx) as host:
        host.ledger.mint(to_address(owner, "owner"), asset_type, amount)
        _echo_json({"owner": to_hex(to_address(owner)), "asset_type": asset_type,
                    "balance": host.ledger.balance_of(to_address(owner), asset_type)})


@app.command("balance")
def balance_cmd(
    ctx: typer.Context,
    owner: str = typer.Option(..., "--owner"),
    asset_type: str = typer.Option(..., "--asset-type"),
) -> None:
    """Show an address balance."""
    with _host(ctx) as host:
        addr = to_address(owner, "owner")
        _echo_json({"owner": to_hex(addr), "asset_type": asset_type,
                    "balance": host.ledger.balance_of(addr, asset_type)})


@app.command("create")
def create_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller", help="Initiator address; the asset is taken from its balance"),
    target: str = typer.Option(..., "--target", help="Paid on redeem"),
    refund_to: str = typer.Option(..., "--refund", help="Paid on refund"),
    hashed: str = typer.Option(..., "--hash", help="32-byte SHA3-256 digest of the secret (hex)"),
    secret_length: int = typer.Option(..., "--secret-length", min=0),
    asset_type: str = typer.Option(..., "--asset-type"),
    amount: int = typer.Option(..., "--amount", min=0),
    duration_ms: Optional[int] = typer.Option(None, "--duration-ms", min=0),
    preset: Optional[str] = typer.Option(None, "--preset", help="24h or 48h"),
    tx_hash: Optional[str] = typer.Option(None, "--tx-hash", help="Override the submitting tx hash (hex)"),
) -> None:
    """Escrow `amount` from the caller's balance under a new lock."""
    with _host(ctx) as host:
        if (duration_ms is None) == (preset is None):
            raise InvalidArgument("pass exactly one of --duration-ms or --preset")
        if preset is not None:
            if preset not in _PRESETS:
                raise InvalidArgument("preset must be 24h or 48h", data={"preset": preset})
            duration_ms = _PRESETS[preset]

        lock_id = create_lock_from_balance(
            host, _call(caller, tx_hash), _clock(ctx), duration_ms, to_bytes(hashed),
            to_bytes(target), to_bytes(refund_to), asset_type, amount, secret_length,
        )
        _echo_json(get_lock(host, lock_id).to_dict())


@app.command("redeem")
def redeem_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller"),
    lock_id: str = typer.Option(..., "--lock-id"),
    secret: str = typer.Option(..., "--secret", help="Secret bytes (hex)"),
) -> None:
    """Reveal the secret and pay the lock's target."""
    with _host(ctx) as host:
        bind_call_context(lock_id=lock_id)
        redeem(host, _call(caller, None), lock_id, to_bytes(secret))
        _echo_json({"lock_id": lock_id, "status": "redeemed"})


@app.command("refund")
def refund_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller"),
    lock_id: str = typer.Option(..., "--lock-id"),
) -> None:
    """Return an expired lock's asset to its refund address."""
    with _host(ctx) as host:
        bind_call_context(lock_id=lock_id)
        refund(host, _call(caller, None), lock_id, _clock(ctx))
        _echo_json({"lock_id": lock_id, "status": "refunded"})


@app.command("show")
def show_cmd(
    ctx: typer.Context,
    lock_id: str = typer.Option(..., "--lock-id"),
) -> None:
    """Show a live lock."""
    with _host(ctx) as host:
        record = get_lock(host, lock_id)
        out = record.to_dict()
        out["refundable"] = is_refundable(record, _clock(ctx).timestamp_ms())
        _echo_json(out)


@app.command("list")
def list_cmd(ctx: typer.Context) -> None:  # noqa: A001
    """List live locks, oldest first."""
    with _host(ctx) as host:
        _echo_json([r.to_dict() for r in list_locks(host)])


@app.command("events")
def events_cmd(
    ctx: typer.Context,
    since: int = typer.Option(0, "--since", min=0, help="Only events with seq > since"),
) -> None:
    """Dump the event log in canonical receipt form."""
    with _host(ctx) as host:
        _echo_json([
            {"seq": ev.seq, "name": ev.name, "args": list(ev.args)}
            for ev in host.events.events_for_receipt(since)
        ])


@app.command("digest")
def digest_cmd(
    secret: str = typer.Option(..., "--secret", help="Secret bytes (hex)"),
) -> None:
    """Print the SHA3-256 digest and length of a secret."""
    try:
        raw = to_bytes(secret)
    except HtlcError as e:
        _fail(e)
    _echo_json({"hash": to_hex(secret_digest(raw)), "secret_length": len(raw)})


def main() -> None:  # pragma: no cover - console entrypoint
    app()


__all__ = ["app", "main"]
