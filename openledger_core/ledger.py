"""
In-memory reference ledger for OpenLedger.

Implements the ``LedgerTransport`` contract and the ledger-side rules the
asset services depend on:

  1. re-derive the canonical message from the submitted arguments
  2. recover the signer and check the nonce has not been consumed
  3. validate, then apply the state change (all-or-nothing)
  4. consume the nonce only after the change is applied
  5. return a receipt with ordered result events

Two contract kinds live here: ``FungibleContract`` (balances) and
``NonFungibleContract`` (notes).  All state is held in plain dicts and
lists; this is a reference collaborator, not a storage engine.

Usage:
    ledger = InMemoryLedger()
    ledger.auth.create_org("org-1", admins=[admin.address])
    contract = ledger.deploy_fungible("org-1")
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from openledger_core import canonical
from openledger_core.auth_center import AuthCenter
from openledger_core.canonical import (
    Field,
    decode_properties,
    from_epoch_millis,
)
from openledger_core.crypto_utils import keccak256, normalize_address
from openledger_core.entities import (
    Asset,
    Condition,
    IssueOption,
    NonFungibleRecord,
    Note,
    NoteStatus,
    TYPE_DEPOSIT,
    TYPE_TRANSFER,
    TYPE_WITHDRAWAL,
    RecordEntity,
)
from openledger_core.logging_config import log_context
from openledger_core.errors import (
    AccountNotOpen,
    ContractNotFound,
    ErrorCode,
    InsufficientAuthorization,
    InsufficientBalance,
    InvalidAmount,
    InvalidArgument,
    InvalidNoteState,
    InvalidRange,
    NoteNoCollision,
    NoteNotFound,
    NoteNotOwned,
    NoteTorn,
    OpenLedgerError,
    Unauthorized,
)
from openledger_core.query import QueryEngine
from openledger_core.signer import Signature
from openledger_core.transport import (
    EVENT_INSERT_RESULT,
    EVENT_ISSUE_NOTE,
    EVENT_TRANSFER_NOTE,
    SubmitResult,
)

logger = logging.getLogger("openledger_ledger")


# ===================================================================
#  Argument helpers
# ===================================================================

def _int(args: dict, key: str, minimum: int = 0) -> int:
    value = args.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidArgument(f"{key} must be an integer")
    if value < minimum:
        raise InvalidArgument(f"{key} must be >= {minimum}")
    return value


def _address(args: dict, key: str, optional: bool = False) -> str | None:
    value = args.get(key)
    if value is None:
        if optional:
            return None
        raise InvalidArgument(f"{key} is required")
    return normalize_address(value)


def _text(args: dict, key: str) -> str:
    value = args.get(key, "")
    if not isinstance(value, str):
        raise InvalidArgument(f"{key} must be a string")
    return value


@dataclass
class Call:
    """One in-flight submission or signed read."""
    args: dict
    message: bytes
    signature: Signature
    caller: str | None = None
    nonce: int | None = None
    events: list[dict] = field(default_factory=list)

    def emit(self, name: str, data: dict) -> None:
        self.events.append({"name": name, "data": data})


Handler = Callable[[Call], Any]


# ===================================================================
#  Contracts
# ===================================================================

class AssetContract:
    """
    State and operations shared by both asset kinds: opened accounts,
    price/rate, books (terms) and the record log.
    """

    kind = "asset"

    def __init__(self, address: str, org_id: str, auth: AuthCenter, clock: Callable[[], float]):
        self.address = address
        self.org_id = org_id
        self.auth = auth
        self.clock = clock
        self.asset = Asset(address=address)
        self.accounts: list[str] = []
        self.term_no = 1
        self._seq_no = 0
        self.records: list = []
        self.query_engine = QueryEngine()
        self.operations: dict[str, Handler] = {
            "open_account": self._open_account,
            "set_price": self._set_price,
            "set_rate": self._set_rate,
            "add_book": self._add_book,
        }
        self.selectors: dict[str, Handler] = {
            "query": self._query,
        }
        self.public: dict[str, Callable[[dict], Any]] = {
            "asset_info": lambda _args: self.asset.to_dict(),
        }

    # ── helpers ──────────────────────────────────────────────────

    def authorize(self, call: Call, fields: list[Field], nonce: int) -> str:
        call.caller = self.auth.authenticate(fields, nonce, call.message, call.signature)
        call.nonce = nonce
        return call.caller

    def is_admin(self, address: str) -> bool:
        return self.auth.is_admin(self.org_id, address)

    def require_admin(self, caller: str) -> None:
        if not self.is_admin(caller):
            raise Unauthorized(f"{caller} is not an admin of {self.org_id}")

    @staticmethod
    def require_operator(caller: str, operator: str) -> None:
        if caller != operator:
            raise InsufficientAuthorization(f"signer {caller} is not operator {operator}")

    def require_self_or_admin(self, caller: str, account: str) -> None:
        if caller != account and not self.is_admin(caller):
            raise Unauthorized(f"{caller} may not act for {account}")

    def require_open(self, account: str) -> None:
        if account not in self.accounts:
            raise AccountNotOpen(f"account {account} is not open on {self.address}")

    def next_seq(self) -> tuple[int, int]:
        self._seq_no += 1
        return self.term_no, self._seq_no

    # ── shared operations ────────────────────────────────────────

    def _open_account(self, call: Call) -> bool:
        account = _address(call.args, "address")
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.open_account_fields(account, nonce), nonce)
        self.require_self_or_admin(caller, account)
        if account not in self.accounts:
            self.accounts.append(account)
            self.on_open(account)
        return True

    def on_open(self, account: str) -> None:
        pass

    def _set_value(self, call: Call, attr: str) -> int:
        value = _int(call.args, "value")
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.value_fields(value, nonce), nonce)
        self.require_admin(caller)
        setattr(self.asset, attr, value)
        return value

    def _set_price(self, call: Call) -> int:
        return self._set_value(call, "price")

    def _set_rate(self, call: Call) -> int:
        return self._set_value(call, "rate")

    def _add_book(self, call: Call) -> int:
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.read_fields(nonce), nonce)
        self.require_admin(caller)
        self.term_no += 1
        return self.term_no

    def _query(self, call: Call) -> list[dict]:
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.read_fields(nonce), nonce)
        wanted = call.args.get("condition") or {}
        if not isinstance(wanted, dict):
            raise InvalidArgument("condition must be an object")
        condition = Condition.from_args(wanted)
        hits = self.query_engine.filter(self.records, condition, caller, self.is_admin(caller))
        return [r.to_dict() for r in hits]

    def read_auth(self, call: Call) -> str:
        """Authenticate a parameterless signed read."""
        nonce = _int(call.args, "nonce", 1)
        return self.authorize(call, canonical.read_fields(nonce), nonce)


class FungibleContract(AssetContract):
    """Balance ledger: deposit, withdrawal and transfer."""

    kind = "fungible"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.balances: dict[str, int] = {}
        self.operations.update({
            "deposit": self._deposit,
            "withdrawal": self._withdrawal,
            "transfer": self._transfer,
        })
        self.selectors.update({
            "balance": self._balance,
            "holders": self._holders,
            "total_balance": self._total_balance,
        })

    def on_open(self, account: str) -> None:
        self.balances.setdefault(account, 0)

    def _tx_auth(self, call: Call, from_addr: str | None, to_addr: str | None,
                 expected_type: int) -> tuple[str, int, str]:
        operator = _address(call.args, "operator")
        amount = _int(call.args, "amount", minimum=-(1 << 255))
        type_code = _int(call.args, "type_code")
        detail = _text(call.args, "detail")
        nonce = _int(call.args, "nonce", 1)
        if amount <= 0:
            raise InvalidAmount(f"amount must be positive, got {amount}")
        if type_code != expected_type:
            raise InvalidArgument(f"type code {type_code} does not match the operation")
        addresses = [from_addr, to_addr, operator, self.address, None]
        fields = canonical.tx_fields(addresses, amount, [type_code], [detail], nonce)
        caller = self.authorize(call, fields, nonce)
        self.require_operator(caller, operator)
        return operator, amount, detail

    def _write(self, call: Call, from_addr: str | None, to_addr: str | None,
               amount: int, detail: str) -> dict:
        term_no, seq_no = self.next_seq()
        record = RecordEntity(term_no, seq_no, from_addr, to_addr, amount, detail, self.clock())
        self.records.append(record)
        event = {
            "success": True, "term_no": term_no, "seq_no": seq_no,
            "from": from_addr, "to": to_addr, "amount": amount, "detail": detail,
        }
        call.emit(EVENT_INSERT_RESULT, event)
        return event

    def _deposit(self, call: Call) -> dict:
        account = _address(call.args, "account")
        operator, amount, detail = self._tx_auth(call, None, account, TYPE_DEPOSIT)
        self.require_admin(operator)
        self.require_open(account)
        self.balances[account] += amount
        return self._write(call, None, account, amount, detail)

    def _withdrawal(self, call: Call) -> dict:
        account = _address(call.args, "account")
        operator, amount, detail = self._tx_auth(call, account, None, TYPE_WITHDRAWAL)
        self.require_self_or_admin(operator, account)
        self.require_open(account)
        if self.balances[account] < amount:
            raise InsufficientBalance(f"balance of {account} is below {amount}")
        self.balances[account] -= amount
        return self._write(call, account, None, amount, detail)

    def _transfer(self, call: Call) -> dict:
        from_addr = _address(call.args, "from")
        to_addr = _address(call.args, "to")
        operator, amount, detail = self._tx_auth(call, from_addr, to_addr, TYPE_TRANSFER)
        if from_addr == to_addr:
            raise InvalidArgument("from and to must differ")
        self.require_self_or_admin(operator, from_addr)
        self.require_open(from_addr)
        self.require_open(to_addr)
        if self.balances[from_addr] < amount:
            raise InsufficientBalance(f"balance of {from_addr} is below {amount}")
        self.balances[from_addr] -= amount
        self.balances[to_addr] += amount
        return self._write(call, from_addr, to_addr, amount, detail)

    def _balance(self, call: Call) -> int:
        account = _address(call.args, "account")
        caller = self.read_auth(call)
        self.require_self_or_admin(caller, account)
        self.require_open(account)
        return self.balances[account]

    def _holders(self, call: Call) -> list[str]:
        self.require_admin(self.read_auth(call))
        return [a for a in self.accounts if self.balances.get(a, 0) > 0]

    def _total_balance(self, call: Call) -> int:
        self.require_admin(self.read_auth(call))
        return sum(self.balances.values())


class NonFungibleContract(AssetContract):
    """Note ledger: issuance in batches, transfer, freeze, tear, metadata."""

    kind = "non_fungible"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.notes: dict[int, Note] = {}
        # batch_no -> {"effective_date", "expiration_date", "description", "note_nos"}
        self.batches: dict[int, dict] = {}
        self._prefix_counters: dict[tuple[int, int], int] = {}
        # owner at tear time -> torn note numbers
        self.torn: dict[str, list[int]] = {}
        self.operations.update({
            "issue": self._issue,
            "transfer": self._transfer,
            "freeze_note": self._freeze_note,
            "unfreeze_note": self._unfreeze_note,
            "tear_note": self._tear_note,
            "update_note_no": self._update_note_no,
            "update_note_properties": self._update_note_properties,
            "update_effective_date": self._update_effective_date,
            "update_expiration_date": self._update_expiration_date,
            "effect_batch": self._effect_batch,
        })
        self.selectors.update({
            "note_detail": self._note_detail,
            "note_properties": self._note_properties,
            "account_notes": self._account_notes,
            "tear_notes": self._tear_notes,
        })
        self.public["total_note_size"] = lambda _args: sum(
            1 for n in self.notes.values() if n.status is not NoteStatus.TORN
        )

    # ── helpers ──────────────────────────────────────────────────

    def _note(self, note_no: int) -> Note:
        note = self.notes.get(note_no)
        if note is None:
            raise NoteNotFound(f"note {note_no} does not exist")
        return note

    def _live_note(self, note_no: int) -> Note:
        note = self._note(note_no)
        if note.status is NoteStatus.TORN:
            raise NoteTorn(f"note {note_no} is torn")
        return note

    def _batch(self, batch_no: int) -> dict:
        batch = self.batches.get(batch_no)
        if batch is None:
            raise InvalidArgument(f"batch {batch_no} does not exist")
        return batch

    def _note_op_auth(self, call: Call) -> tuple[int, str]:
        note_no = _int(call.args, "note_no")
        operator = _address(call.args, "operator")
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.note_fields(note_no, operator, nonce), nonce)
        self.require_operator(caller, operator)
        return note_no, operator

    def _write(self, from_addr: str | None, to_addr: str | None, note_no: int,
               detail: str) -> tuple[int, int]:
        term_no, seq_no = self.next_seq()
        self.records.append(
            NonFungibleRecord(term_no, seq_no, from_addr, to_addr, note_no, detail, self.clock())
        )
        return term_no, seq_no

    # ── issuance ─────────────────────────────────────────────────

    def _issue(self, call: Call) -> list[int]:
        nonce = _int(call.args, "nonce", 1)
        try:
            option = IssueOption.from_args(call.args)
        except (KeyError, TypeError) as exc:
            raise InvalidArgument(f"malformed issue arguments: {exc}") from exc
        raw = option.to_args()
        fields = canonical.issue_fields(
            option.issuer, option.operator, self.address,
            option.amount, option.note_no_prefix, option.note_no_size,
            raw["effective_date"], raw["expiration_date"],
            option.description, nonce,
        )
        caller = self.authorize(call, fields, nonce)
        self.require_operator(caller, option.operator)
        self.require_admin(caller)
        self.require_open(option.issuer)

        key = (option.note_no_prefix, option.note_no_size)
        start = self._prefix_counters.get(key, 0)
        if start + option.amount > option.capacity:
            raise InvalidRange(
                f"prefix {option.note_no_prefix} has {option.capacity - start} numbers left, "
                f"{option.amount} requested"
            )
        base = option.note_no_prefix * 10 ** option.note_no_size
        note_nos = [base + start + i for i in range(1, option.amount + 1)]
        if any(n in self.notes for n in note_nos):
            raise InvalidRange("generated note numbers collide with existing notes")

        batch_no = len(self.batches) + 1
        status = NoteStatus.PENDING if option.effective_date else NoteStatus.EFFECTIVE
        self._prefix_counters[key] = start + option.amount
        self.batches[batch_no] = {
            "effective_date": option.effective_date,
            "expiration_date": option.expiration_date,
            "description": option.description,
            "note_nos": list(note_nos),
        }
        for note_no in note_nos:
            self.notes[note_no] = Note(
                note_no=note_no,
                batch_no=batch_no,
                owner=option.issuer,
                status=status,
                effective_date=option.effective_date,
                expiration_date=option.expiration_date,
            )
            term_no, seq_no = self._write(None, option.issuer, note_no, option.description)
            call.emit(EVENT_ISSUE_NOTE, {
                "note_no": note_no, "batch_no": batch_no, "owner": option.issuer,
                "term_no": term_no, "seq_no": seq_no,
            })
        return note_nos

    # ── transfer ─────────────────────────────────────────────────

    def _transfer(self, call: Call) -> list[int]:
        operator = _address(call.args, "operator")
        from_addr = _address(call.args, "from")
        to_addr = _address(call.args, "to")
        note_nos = call.args.get("note_nos")
        detail = _text(call.args, "detail")
        nonce = _int(call.args, "nonce", 1)
        if not isinstance(note_nos, list) or not all(
            isinstance(n, int) and not isinstance(n, bool) and n >= 0 for n in note_nos
        ):
            raise InvalidArgument("note_nos must be a list of note numbers")
        fields = canonical.note_transfer_fields(
            self.address, operator, from_addr, to_addr, note_nos, detail, nonce,
        )
        caller = self.authorize(call, fields, nonce)
        self.require_operator(caller, operator)
        self.require_self_or_admin(operator, from_addr)
        if not note_nos:
            raise InvalidArgument("no notes to transfer")
        if len(set(note_nos)) != len(note_nos):
            raise InvalidArgument("duplicate note numbers in transfer")
        if from_addr == to_addr:
            raise InvalidArgument("from and to must differ")
        self.require_open(from_addr)
        self.require_open(to_addr)

        # validate every note before moving any of them
        notes = []
        for note_no in note_nos:
            note = self._live_note(note_no)
            if note.owner != from_addr:
                raise NoteNotOwned(f"note {note_no} is not owned by {from_addr}")
            if note.status is not NoteStatus.EFFECTIVE:
                raise InvalidNoteState(f"note {note_no} is {note.status.name.lower()}")
            notes.append(note)

        for note in notes:
            note.owner = to_addr
            term_no, seq_no = self._write(from_addr, to_addr, note.note_no, detail)
            call.emit(EVENT_TRANSFER_NOTE, {
                "success": True, "term_no": term_no, "seq_no": seq_no,
                "from": from_addr, "to": to_addr, "note_no": note.note_no, "detail": detail,
            })
        return list(note_nos)

    # ── note state machine ───────────────────────────────────────

    def _freeze_note(self, call: Call) -> bool:
        note_no, operator = self._note_op_auth(call)
        self.require_admin(operator)
        note = self._live_note(note_no)
        if note.status is not NoteStatus.EFFECTIVE:
            raise InvalidNoteState(f"cannot freeze a {note.status.name.lower()} note")
        note.status = NoteStatus.FROZEN
        return True

    def _unfreeze_note(self, call: Call) -> int:
        note_no, operator = self._note_op_auth(call)
        self.require_admin(operator)
        note = self._live_note(note_no)
        if note.status is not NoteStatus.FROZEN:
            raise InvalidNoteState(f"cannot unfreeze a {note.status.name.lower()} note")
        note.status = NoteStatus.EFFECTIVE
        return int(note.status)

    def _tear_note(self, call: Call) -> bool:
        note_no, operator = self._note_op_auth(call)
        note = self._live_note(note_no)
        self.require_self_or_admin(operator, note.owner)
        if note.status not in (NoteStatus.EFFECTIVE, NoteStatus.FROZEN):
            raise InvalidNoteState(f"cannot tear a {note.status.name.lower()} note")
        note.status = NoteStatus.TORN
        self.torn.setdefault(note.owner, []).append(note_no)
        return True

    def _update_note_no(self, call: Call) -> bool:
        old_no = _int(call.args, "old_no")
        new_no = _int(call.args, "new_no")
        operator = _address(call.args, "operator")
        nonce = _int(call.args, "nonce", 1)
        fields = canonical.note_renumber_fields(old_no, new_no, operator, nonce)
        caller = self.authorize(call, fields, nonce)
        self.require_operator(caller, operator)
        self.require_admin(operator)
        note = self._live_note(old_no)
        if new_no in self.notes:
            raise NoteNoCollision(f"note {new_no} already exists")
        del self.notes[old_no]
        note.note_no = new_no
        self.notes[new_no] = note
        batch_notes = self.batches[note.batch_no]["note_nos"]
        batch_notes[batch_notes.index(old_no)] = new_no
        return True

    def _update_note_properties(self, call: Call) -> dict:
        note_no = _int(call.args, "note_no")
        operator = _address(call.args, "operator")
        nonce = _int(call.args, "nonce", 1)
        wire = call.args.get("properties")
        if not isinstance(wire, dict) or not wire:
            raise InvalidArgument("properties must be a non-empty mapping")
        properties = decode_properties(wire)
        fields = canonical.note_properties_fields(note_no, properties, operator, nonce)
        caller = self.authorize(call, fields, nonce)
        self.require_operator(caller, operator)
        self.require_admin(operator)
        note = self._live_note(note_no)
        note.properties.update(properties)
        return {k: v.to_wire() for k, v in note.properties.items()}

    # ── batches ──────────────────────────────────────────────────

    def _update_batch_date(self, call: Call, attr: str) -> bool:
        batch_no = _int(call.args, "batch_no", 1)
        date = _int(call.args, "date", 1)
        operator = _address(call.args, "operator")
        nonce = _int(call.args, "nonce", 1)
        fields = canonical.batch_date_fields(batch_no, date, operator, nonce)
        caller = self.authorize(call, fields, nonce)
        self.require_operator(caller, operator)
        self.require_admin(operator)
        batch = self._batch(batch_no)
        updated = dict(batch, **{attr: from_epoch_millis(date)})
        eff, exp = updated["effective_date"], updated["expiration_date"]
        if eff is not None and exp is not None and exp <= eff:
            raise InvalidRange("expiration_date must be after effective_date")
        batch[attr] = updated[attr]
        for note_no in batch["note_nos"]:
            setattr(self.notes[note_no], attr, batch[attr])
        return True

    def _update_effective_date(self, call: Call) -> bool:
        return self._update_batch_date(call, "effective_date")

    def _update_expiration_date(self, call: Call) -> bool:
        return self._update_batch_date(call, "expiration_date")

    def _effect_batch(self, call: Call) -> bool:
        batch_no = _int(call.args, "batch_no", 1)
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.effect_batch_fields(batch_no, nonce), nonce)
        self.require_admin(caller)
        batch = self._batch(batch_no)
        for note_no in batch["note_nos"]:
            note = self.notes[note_no]
            if note.status is NoteStatus.PENDING:
                note.status = NoteStatus.EFFECTIVE
        return True

    # ── reads ────────────────────────────────────────────────────

    def _note_detail(self, call: Call) -> dict:
        caller = self.read_auth(call)
        note = self._note(_int(call.args, "note_no"))
        self.require_self_or_admin(caller, note.owner)
        return note.to_dict()

    def _note_properties(self, call: Call) -> dict:
        caller = self.read_auth(call)
        note = self._note(_int(call.args, "note_no"))
        self.require_self_or_admin(caller, note.owner)
        return {k: v.to_wire() for k, v in note.properties.items()}

    def _account_notes(self, call: Call) -> list[int]:
        account = _address(call.args, "account")
        offset = _int(call.args, "offset")
        count = _int(call.args, "count")
        caller = self.read_auth(call)
        self.require_self_or_admin(caller, account)
        owned = [
            n.note_no for n in self.notes.values()
            if n.owner == account and n.status is not NoteStatus.TORN
        ]
        owned.sort()
        return owned[offset:offset + count]

    def _tear_notes(self, call: Call) -> list[int]:
        account = _address(call.args, "account")
        nonce = _int(call.args, "nonce", 1)
        caller = self.authorize(call, canonical.account_read_fields(account, nonce), nonce)
        self.require_self_or_admin(caller, account)
        return list(self.torn.get(account, []))


# ===================================================================
#  Ledger
# ===================================================================

class InMemoryLedger:
    """A single-process ledger hosting asset contracts."""

    def __init__(
        self,
        auth: AuthCenter | None = None,
        ledger_id: str = "ledger-1",
        clock: Callable[[], float] = time.time,
    ):
        self.auth = auth or AuthCenter()
        self.ledger_id = ledger_id
        self.clock = clock
        self.contracts: dict[str, AssetContract] = {}
        self._lock = threading.RLock()
        self._deploy_count = 0

    # ── deployment ───────────────────────────────────────────────

    def _deploy(self, cls: type[AssetContract], org_id: str) -> str:
        with self._lock:
            self._deploy_count += 1
            seed = f"{self.ledger_id}:{cls.kind}:{self._deploy_count}".encode("utf-8")
            address = "0x" + keccak256(seed)[-20:].hex()
            self.contracts[address] = cls(address, org_id, self.auth, self.clock)
        logger.info(f"Deployed {cls.kind} contract {address} for org {org_id}")
        return address

    def deploy_fungible(self, org_id: str) -> str:
        return self._deploy(FungibleContract, org_id)

    def deploy_non_fungible(self, org_id: str) -> str:
        return self._deploy(NonFungibleContract, org_id)

    def get_contract(self, address: str) -> AssetContract:
        contract = self.contracts.get(normalize_address(address))
        if contract is None:
            raise ContractNotFound(f"no contract at {address}")
        return contract

    # ── LedgerTransport ──────────────────────────────────────────

    def _dispatch(
        self,
        contract: str,
        name: str,
        args: dict,
        message: bytes,
        signature: Signature,
        mutating: bool,
    ) -> SubmitResult:
        with self._lock:
            try:
                target = self.get_contract(contract)
                table = target.operations if mutating else target.selectors
                handler = table.get(name)
                if handler is None:
                    raise InvalidArgument(f"{target.kind} contract has no operation {name!r}")
                call = Call(args=dict(args), message=bytes(message), signature=signature)
                result = handler(call)
                if call.caller is None or call.nonce is None:
                    raise InsufficientAuthorization(f"{name} did not authenticate its caller")
                if mutating:
                    self.auth.consume(call.caller, call.nonce)
            except OpenLedgerError as exc:
                logger.warning(
                    f"{name} rejected: [{exc.code.name}] {exc.message}",
                    extra=log_context(name, None, contract, exc.code),
                )
                return SubmitResult(False, exc.code, exc.message)

        receipt = {}
        if mutating:
            receipt = {
                "transaction_hash": "0x" + keccak256(bytes(message) + signature.to_bytes()).hex(),
                "contract": target.address,
                "operation": name,
                "from": call.caller,
                "events": call.events,
            }
            logger.info(
                f"{name} applied",
                extra=log_context(name, call.caller, target.address),
            )
        return SubmitResult(True, ErrorCode.SUCCESS, "", result, receipt)

    def submit(self, contract: str, operation: str, args: dict,
               message: bytes, signature: Signature) -> SubmitResult:
        return self._dispatch(contract, operation, args, message, signature, mutating=True)

    def query_state(self, contract: str, selector: str, args: dict,
                    message: bytes, signature: Signature) -> SubmitResult:
        return self._dispatch(contract, selector, args, message, signature, mutating=False)

    def call(self, contract: str, selector: str, args: dict | None = None) -> SubmitResult:
        """Unauthenticated public read (asset info, totals)."""
        with self._lock:
            try:
                target = self.get_contract(contract)
                fn = target.public.get(selector)
                if fn is None:
                    raise InvalidArgument(f"{target.kind} contract has no public view {selector!r}")
                return SubmitResult(True, ErrorCode.SUCCESS, "", fn(args or {}))
            except OpenLedgerError as exc:
                return SubmitResult(False, exc.code, exc.message)

