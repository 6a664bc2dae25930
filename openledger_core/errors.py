"""
Error codes and exception taxonomy for OpenLedger.

Every failure the ledger can report has a stable integer code.  Codes are
grouped by kind so callers can decide whether a retry with a fresh nonce
makes sense:

  - 1xx  authorization (bad signature, stale nonce, missing capability)
  - 2xx  state conflict (balance, ownership, note state)
  - 3xx  validation (malformed input)
  - 4xx  not found
  - 5xx  transport

The ledger turns raised errors into codes on its result envelope; the
service layer passes codes through untouched, and ``error_for_code``
turns them back into exceptions at the caller's request.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    SUCCESS = 0

    # authorization
    INSUFFICIENT_AUTHORIZATION = 101
    UNAUTHORIZED = 102
    NONCE_REPLAYED = 103
    INVALID_NONCE = 104
    INVALID_SIGNATURE = 105

    # state conflict
    INSUFFICIENT_BALANCE = 201
    ACCOUNT_NOT_OPEN = 202
    NOTE_NOT_OWNED = 203
    INVALID_NOTE_STATE = 204
    NOTE_TORN = 205
    NOTE_NO_COLLISION = 206

    # validation
    INVALID_AMOUNT = 301
    INVALID_RANGE = 302
    INVALID_KEY = 303
    ENCODING_ERROR = 304
    INVALID_ARGUMENT = 305

    # not found
    ACCOUNT_NOT_FOUND = 401
    NOTE_NOT_FOUND = 402
    CONTRACT_NOT_FOUND = 403

    # transport
    TRANSPORT_ERROR = 501

    @property
    def is_authorization(self) -> bool:
        return 100 <= self.value < 200

    @property
    def is_state_conflict(self) -> bool:
        return 200 <= self.value < 300


class OpenLedgerError(Exception):
    """Base class for every error raised by openledger_core."""

    code: ErrorCode = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str = ""):
        super().__init__(message or self.code.name.replace("_", " ").lower())
        self.message = str(self.args[0])


# ── authorization ────────────────────────────────────────────────

class AuthorizationError(OpenLedgerError):
    code = ErrorCode.INSUFFICIENT_AUTHORIZATION


class InsufficientAuthorization(AuthorizationError):
    code = ErrorCode.INSUFFICIENT_AUTHORIZATION


class Unauthorized(AuthorizationError):
    code = ErrorCode.UNAUTHORIZED


class NonceReplayed(AuthorizationError):
    code = ErrorCode.NONCE_REPLAYED


class InvalidNonce(AuthorizationError):
    code = ErrorCode.INVALID_NONCE


class InvalidSignature(AuthorizationError):
    code = ErrorCode.INVALID_SIGNATURE


# ── state conflict ───────────────────────────────────────────────

class StateConflictError(OpenLedgerError):
    code = ErrorCode.INSUFFICIENT_BALANCE


class InsufficientBalance(StateConflictError):
    code = ErrorCode.INSUFFICIENT_BALANCE


class AccountNotOpen(StateConflictError):
    code = ErrorCode.ACCOUNT_NOT_OPEN


class NoteNotOwned(StateConflictError):
    code = ErrorCode.NOTE_NOT_OWNED


class InvalidNoteState(StateConflictError):
    code = ErrorCode.INVALID_NOTE_STATE


class NoteTorn(StateConflictError):
    code = ErrorCode.NOTE_TORN


class NoteNoCollision(StateConflictError):
    code = ErrorCode.NOTE_NO_COLLISION


# ── validation ───────────────────────────────────────────────────

class ValidationError(OpenLedgerError):
    code = ErrorCode.INVALID_ARGUMENT


class InvalidAmount(ValidationError):
    code = ErrorCode.INVALID_AMOUNT


class InvalidRange(ValidationError):
    code = ErrorCode.INVALID_RANGE


class InvalidKey(ValidationError):
    code = ErrorCode.INVALID_KEY


class EncodingError(ValidationError):
    code = ErrorCode.ENCODING_ERROR


class InvalidArgument(ValidationError):
    code = ErrorCode.INVALID_ARGUMENT


# ── not found ────────────────────────────────────────────────────

class NotFoundError(OpenLedgerError):
    code = ErrorCode.ACCOUNT_NOT_FOUND


class AccountNotFound(NotFoundError):
    code = ErrorCode.ACCOUNT_NOT_FOUND


class NoteNotFound(NotFoundError):
    code = ErrorCode.NOTE_NOT_FOUND


class ContractNotFound(NotFoundError):
    code = ErrorCode.CONTRACT_NOT_FOUND


# ── transport ────────────────────────────────────────────────────

class TransportError(OpenLedgerError):
    """The ledger collaborator was unreachable or timed out."""
    code = ErrorCode.TRANSPORT_ERROR


_BY_CODE: dict[ErrorCode, type[OpenLedgerError]] = {
    cls.code: cls
    for cls in (
        InsufficientAuthorization, Unauthorized, NonceReplayed, InvalidNonce,
        InvalidSignature, InsufficientBalance, AccountNotOpen, NoteNotOwned,
        InvalidNoteState, NoteTorn, NoteNoCollision, InvalidAmount,
        InvalidRange, InvalidKey, EncodingError, InvalidArgument,
        AccountNotFound, NoteNotFound, ContractNotFound, TransportError,
    )
}


def error_for_code(code: int, message: str = "") -> OpenLedgerError:
    """Build the exception matching a non-success error code."""
    try:
        ec = ErrorCode(code)
    except ValueError:
        return OpenLedgerError(f"unknown error code {code}: {message}")
    if ec is ErrorCode.SUCCESS:
        raise ValueError("SUCCESS has no exception")
    return _BY_CODE[ec](message)
