"""
HTLC errors.

Typed exception hierarchy with structured metadata, shared by the lock engine,
the runtime host APIs and the CLI.

Usage:

    from htlc.errors import RefundEarly, LockNotFound

    raise RefundEarly("deadline not reached", data={"now_ms": now, "deadline": d})

All errors expose:
- .code   : stable machine-readable code (snake_case)
- .status : suggested HTTP status (int)
- .data   : optional structured payload (dict-like)
- .to_problem() : RFC 7807-compatible dict for JSON responses

Engine failures (SecretLengthWrong, SecretPreimageWrong, Refund3rdParty,
RefundEarly) always abort the whole operation; the host rolls back any state
touched before the error was raised.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class HtlcError(Exception):
    """
    Base class for HTLC errors.

    Subclasses should set `default_code` and `default_status`.
    """
    default_code = "htlc_error"
    default_status = 400

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status = int(status if status is not None else self.default_status)
        self.data: Dict[str, Any] = dict(data) if data else {}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code

    def to_problem(self) -> Dict[str, Any]:
        """
        Render as an RFC 7807 "problem detail" object.
        """
        return {
            "type": f"urn:htlc:{self.code}",
            "title": self.code.replace("_", " ").title(),
            "status": self.status,
            "detail": self.message or None,
            "data": self.data or None,
        }

    @classmethod
    def from_exc(cls, exc: BaseException, *, code: Optional[str] = None, status: Optional[int] = None) -> "HtlcError":
        """
        Wrap an arbitrary exception into an HtlcError with a best-effort message.
        """
        msg = f"{exc.__class__.__name__}: {exc}"
        return cls(msg, code=code, status=status)


# --------------------------------------------------------------------------- #
# Lock engine                                                                 #
# --------------------------------------------------------------------------- #


class SecretLengthWrong(HtlcError):
    """
    Redeem was called with a secret whose byte length differs from the
    record's declared secret length.
    """
    default_code = "secret_length_wrong"
    default_status = 422


class SecretPreimageWrong(HtlcError):
    """
    Redeem was called with a secret whose digest differs from the record's hash.
    """
    default_code = "secret_preimage_wrong"
    default_status = 422


class Refund3rdParty(HtlcError):
    """
    Refund was called by an identity outside {refund_address, initiator, target_address}.
    """
    default_code = "refund_3rd_party"
    default_status = 403


class RefundEarly(HtlcError):
    """
    Refund was called at or before the lock deadline.
    """
    default_code = "refund_early"
    default_status = 409


class InvalidArgument(HtlcError):
    default_code = "invalid_argument"
    default_status = 400


class DeadlineOverflow(InvalidArgument):
    """
    now + duration does not fit the timestamp range.
    """
    default_code = "deadline_overflow"


# --------------------------------------------------------------------------- #
# Host collaborators                                                          #
# --------------------------------------------------------------------------- #


class LockNotFound(HtlcError):
    """
    No live lock with that id: it never existed or was already redeemed/refunded.
    """
    default_code = "lock_not_found"
    default_status = 404


class AssetError(HtlcError):
    default_code = "asset_error"
    default_status = 409


class ClockError(HtlcError):
    default_code = "clock_error"
    default_status = 500


class StateError(HtlcError):
    default_code = "state_error"
    default_status = 500


__all__ = [
    "HtlcError",
    "SecretLengthWrong",
    "SecretPreimageWrong",
    "Refund3rdParty",
    "RefundEarly",
    "InvalidArgument",
    "DeadlineOverflow",
    "LockNotFound",
    "AssetError",
    "ClockError",
    "StateError",
]
