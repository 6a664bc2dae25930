"""
Collaborator contracts consumed by the asset services.

  - ``LedgerTransport``  submits signed operations, signed reads and public views
  - ``KeyProvider``      supplies a signing key bound to an account
  - ``EventExtractor``   turns a receipt's events into per-unit results

``InMemoryLedger`` in ``openledger_core.ledger`` is the reference
implementation of ``LedgerTransport``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from openledger_core.entities import IssueNoteResult, TransferNoteResult, TransferResult
from openledger_core.errors import ErrorCode
from openledger_core.signer import Signature

T = TypeVar("T")

# Event names emitted by the reference ledger.
EVENT_INSERT_RESULT = "InsertResult"
EVENT_TRANSFER_NOTE = "TransferNoteResult"
EVENT_ISSUE_NOTE = "IssueNoteResult"


@dataclass
class SubmitResult:
    """What the ledger hands back for a submission or a signed read."""
    success: bool
    error_code: ErrorCode = ErrorCode.SUCCESS
    err_msg: str = ""
    result: Any = None
    receipt: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "error_code": int(self.error_code),
            "err_msg": self.err_msg,
            "result": self.result,
            "receipt": self.receipt,
        }

    @classmethod
    def from_dict(cls, d: dict) -> SubmitResult:
        return cls(
            success=d["success"],
            error_code=ErrorCode(d["error_code"]),
            err_msg=d.get("err_msg", ""),
            result=d.get("result"),
            receipt=d.get("receipt") or {},
        )


@runtime_checkable
class LedgerTransport(Protocol):
    def submit(
        self,
        contract: str,
        operation: str,
        args: dict,
        message: bytes,
        signature: Signature,
    ) -> SubmitResult: ...

    def query_state(
        self,
        contract: str,
        selector: str,
        args: dict,
        message: bytes,
        signature: Signature,
    ) -> SubmitResult: ...

    def call(self, contract: str, selector: str, args: dict) -> SubmitResult:
        """Unauthenticated public view."""
        ...


@runtime_checkable
class KeyProvider(Protocol):
    address: str
    private_key: bytes


class EventExtractor:
    """Reads ordered, typed results out of a raw receipt."""

    @staticmethod
    def events(receipt: dict, name: str) -> list[dict]:
        return [ev["data"] for ev in receipt.get("events", []) if ev.get("name") == name]

    def _extract(self, receipt: dict, name: str, build: Callable[[dict], T]) -> list[T]:
        return [build(ev) for ev in self.events(receipt, name)]

    def insert_results(self, receipt: dict) -> list[TransferResult]:
        return self._extract(receipt, EVENT_INSERT_RESULT, TransferResult.from_event)

    def transfer_note_results(self, receipt: dict) -> list[TransferNoteResult]:
        return self._extract(receipt, EVENT_TRANSFER_NOTE, TransferNoteResult.from_event)

    def issue_note_results(self, receipt: dict) -> list[IssueNoteResult]:
        return self._extract(receipt, EVENT_ISSUE_NOTE, IssueNoteResult.from_event)
