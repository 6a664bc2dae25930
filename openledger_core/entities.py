"""
Value types shared by the asset services, the ledger and the query engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Generic, Optional, TypeVar

from openledger_core.canonical import PropertyValue, from_epoch_millis, to_epoch_millis
from openledger_core.crypto_utils import normalize_address
from openledger_core.errors import (
    ErrorCode,
    InvalidArgument,
    InvalidRange,
    OpenLedgerError,
    error_for_code,
)

T = TypeVar("T")

# Fungible operation type codes carried in the canonical message.
TYPE_DEPOSIT = 1
TYPE_WITHDRAWAL = 2
TYPE_TRANSFER = 3


def _addr(value: Optional[str]) -> Optional[str]:
    return None if value is None else normalize_address(value)


def _index(value: int, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgument(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidRange(f"{name} must be non-negative, got {value}")
    return value


# ===================================================================
#  Assets and notes
# ===================================================================

@dataclass
class Asset:
    """Contract-level asset metadata."""
    address: str
    price: int = 0
    rate: int = 0

    def to_dict(self) -> dict:
        return {"address": self.address, "price": self.price, "rate": self.rate}


class NoteStatus(IntEnum):
    PENDING = 0
    EFFECTIVE = 1
    FROZEN = 2
    TORN = 3


@dataclass
class Note:
    """A single non-fungible unit."""
    note_no: int
    batch_no: int
    owner: str
    status: NoteStatus = NoteStatus.EFFECTIVE
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    properties: dict[str, PropertyValue] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "note_no": self.note_no,
            "batch_no": self.batch_no,
            "owner": self.owner,
            "status": int(self.status),
            "effective_date": None if self.effective_date is None else to_epoch_millis(self.effective_date),
            "expiration_date": None if self.expiration_date is None else to_epoch_millis(self.expiration_date),
            "properties": {k: v.to_wire() for k, v in self.properties.items()},
        }

    @classmethod
    def from_dict(cls, d: dict) -> Note:
        eff = d.get("effective_date")
        exp = d.get("expiration_date")
        return cls(
            note_no=d["note_no"],
            batch_no=d["batch_no"],
            owner=d["owner"],
            status=NoteStatus(d["status"]),
            effective_date=None if eff is None else from_epoch_millis(eff),
            expiration_date=None if exp is None else from_epoch_millis(exp),
            properties={k: PropertyValue.from_wire(v) for k, v in d.get("properties", {}).items()},
        )


@dataclass(frozen=True)
class IssueOption:
    """
    Parameters for minting a batch of notes.

    Note numbers are ``note_no_prefix * 10**note_no_size + counter`` with
    the counter starting at 1, so ``amount`` notes need ``amount`` to fit in
    ``note_no_size`` digits.  Invalid combinations are rejected here rather
    than deep inside issuance.
    """
    amount: int
    note_no_prefix: int
    note_no_size: int
    issuer: str
    operator: str
    description: str = ""
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.amount, int) or self.amount <= 0:
            raise InvalidRange(f"amount must be positive, got {self.amount!r}")
        if not isinstance(self.note_no_prefix, int) or self.note_no_prefix < 0:
            raise InvalidRange(f"note_no_prefix must be non-negative, got {self.note_no_prefix!r}")
        if not isinstance(self.note_no_size, int) or self.note_no_size < 1:
            raise InvalidRange(f"note_no_size must be at least 1, got {self.note_no_size!r}")
        if self.amount > self.capacity:
            raise InvalidRange(
                f"{self.amount} notes do not fit in {self.note_no_size} digits "
                f"(max {self.capacity})"
            )
        if (
            self.effective_date is not None
            and self.expiration_date is not None
            and to_epoch_millis(self.expiration_date) <= to_epoch_millis(self.effective_date)
        ):
            raise InvalidRange("expiration_date must be after effective_date")
        object.__setattr__(self, "issuer", normalize_address(self.issuer))
        object.__setattr__(self, "operator", normalize_address(self.operator))

    @property
    def capacity(self) -> int:
        return 10 ** self.note_no_size - 1

    def to_args(self) -> dict:
        return {
            "amount": self.amount,
            "note_no_prefix": self.note_no_prefix,
            "note_no_size": self.note_no_size,
            "issuer": self.issuer,
            "operator": self.operator,
            "description": self.description,
            "effective_date": 0 if self.effective_date is None else to_epoch_millis(self.effective_date),
            "expiration_date": 0 if self.expiration_date is None else to_epoch_millis(self.expiration_date),
        }

    @classmethod
    def from_args(cls, args: dict) -> IssueOption:
        eff = args.get("effective_date") or 0
        exp = args.get("expiration_date") or 0
        return cls(
            amount=args["amount"],
            note_no_prefix=args["note_no_prefix"],
            note_no_size=args["note_no_size"],
            issuer=args["issuer"],
            operator=args["operator"],
            description=args.get("description", ""),
            effective_date=from_epoch_millis(eff) if eff else None,
            expiration_date=from_epoch_millis(exp) if exp else None,
        )


# ===================================================================
#  Per-unit results
# ===================================================================

@dataclass(frozen=True)
class TransferResult:
    success: bool
    seq_no: int
    term_no: int
    from_address: Optional[str]
    to_address: Optional[str]
    amount: int
    detail: str = ""

    @classmethod
    def from_event(cls, ev: dict) -> TransferResult:
        return cls(
            success=ev["success"],
            seq_no=ev["seq_no"],
            term_no=ev["term_no"],
            from_address=ev.get("from"),
            to_address=ev.get("to"),
            amount=ev["amount"],
            detail=ev.get("detail", ""),
        )


@dataclass(frozen=True)
class TransferNoteResult:
    success: bool
    seq_no: int
    term_no: int
    from_address: Optional[str]
    to_address: Optional[str]
    note_no: int
    detail: str = ""

    @classmethod
    def from_event(cls, ev: dict) -> TransferNoteResult:
        return cls(
            success=ev["success"],
            seq_no=ev["seq_no"],
            term_no=ev["term_no"],
            from_address=ev.get("from"),
            to_address=ev.get("to"),
            note_no=ev["note_no"],
            detail=ev.get("detail", ""),
        )


@dataclass(frozen=True)
class IssueNoteResult:
    note_no: int
    batch_no: int
    owner: str
    seq_no: int
    term_no: int

    @classmethod
    def from_event(cls, ev: dict) -> IssueNoteResult:
        return cls(
            note_no=ev["note_no"],
            batch_no=ev["batch_no"],
            owner=ev["owner"],
            seq_no=ev["seq_no"],
            term_no=ev["term_no"],
        )


# ===================================================================
#  Ledger records
# ===================================================================

@dataclass(frozen=True)
class RecordEntity:
    """One fungible ledger entry; (term_no, seq_no) is unique per ledger."""
    term_no: int
    seq_no: int
    from_address: Optional[str]
    to_address: Optional[str]
    amount: int
    detail: str = ""
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "term_no": self.term_no,
            "seq_no": self.seq_no,
            "from": self.from_address,
            "to": self.to_address,
            "amount": self.amount,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict) -> RecordEntity:
        return cls(d["term_no"], d["seq_no"], d.get("from"), d.get("to"),
                   d["amount"], d.get("detail", ""), d.get("timestamp", 0.0))


@dataclass(frozen=True)
class NonFungibleRecord:
    """One note ledger entry."""
    term_no: int
    seq_no: int
    from_address: Optional[str]
    to_address: Optional[str]
    note_no: int
    detail: str = ""
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "term_no": self.term_no,
            "seq_no": self.seq_no,
            "from": self.from_address,
            "to": self.to_address,
            "note_no": self.note_no,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict) -> NonFungibleRecord:
        return cls(d["term_no"], d["seq_no"], d.get("from"), d.get("to"),
                   d["note_no"], d.get("detail", ""), d.get("timestamp", 0.0))


@dataclass(frozen=True)
class Condition:
    """
    Record filter.  ``0`` is the wildcard for term_no / seq_no and ``None``
    leaves from/to unfiltered.  ``limit`` is ``(offset, count)`` applied
    after filtering.
    """
    term_no: int = 0
    seq_no: int = 0
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    limit: Optional[tuple[int, int]] = None

    def __post_init__(self):
        # None is accepted as a spelling of the wildcard
        object.__setattr__(self, "term_no", _index(self.term_no or 0, "term_no"))
        object.__setattr__(self, "seq_no", _index(self.seq_no or 0, "seq_no"))
        if self.limit is not None:
            if not isinstance(self.limit, (list, tuple)) or len(self.limit) != 2:
                raise InvalidArgument(f"limit must be an (offset, count) pair, got {self.limit!r}")
            offset, count = (_index(v, "limit") for v in self.limit)
            object.__setattr__(self, "limit", (offset, count))
        object.__setattr__(self, "from_address", _addr(self.from_address))
        object.__setattr__(self, "to_address", _addr(self.to_address))

    def to_args(self) -> dict:
        return {
            "term_no": self.term_no,
            "seq_no": self.seq_no,
            "from": self.from_address,
            "to": self.to_address,
            "limit": None if self.limit is None else list(self.limit),
        }

    @classmethod
    def from_args(cls, args: dict) -> Condition:
        return cls(
            term_no=args.get("term_no") or 0,
            seq_no=args.get("seq_no") or 0,
            from_address=args.get("from"),
            to_address=args.get("to"),
            limit=args.get("limit"),
        )


# ===================================================================
#  Response envelope
# ===================================================================

@dataclass
class TransactionInfo:
    """Opaque submission details: the signed digest and the raw receipt."""
    message_hash: str = ""
    receipt: dict = field(default_factory=dict)


@dataclass
class ResponseData(Generic[T]):
    """Result envelope returned by every service call."""
    error_code: ErrorCode = ErrorCode.SUCCESS
    err_msg: str = ""
    result: Optional[T] = None
    transaction_info: Optional[TransactionInfo] = None

    def is_success(self) -> bool:
        return self.error_code == ErrorCode.SUCCESS

    def unwrap(self) -> Optional[T]:
        """Return the result, or raise the error the code stands for."""
        if not self.is_success():
            raise error_for_code(self.error_code, self.err_msg)
        return self.result

    @classmethod
    def failure(cls, exc: OpenLedgerError) -> ResponseData:
        return cls(error_code=exc.code, err_msg=exc.message)
