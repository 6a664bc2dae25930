"""
Client-side asset services for OpenLedger.

Every authenticated call runs the same sequence while holding the acting
account's lock:

  1. fetch a fresh nonce for the account
  2. build the operation's canonical fields (nonce last) and digest them
  3. sign the digest with the account's key
  4. hand (arguments, digest, signature) to the ledger transport
  5. wrap the ledger's answer in a ``ResponseData`` envelope

Nothing is retried: a retry needs a new nonce and a new signature, which
is simply a new call.  Errors reported by the ledger come back as codes in
the envelope; failures raised by the transport itself propagate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any, Optional

from openledger_core import canonical
from openledger_core.canonical import Field, MessageCanonicalizer, decode_properties, encode_properties
from openledger_core.crypto_utils import normalize_address
from openledger_core.entities import (
    TYPE_DEPOSIT,
    TYPE_TRANSFER,
    TYPE_WITHDRAWAL,
    Condition,
    IssueNoteResult,
    IssueOption,
    NonFungibleRecord,
    Note,
    RecordEntity,
    ResponseData,
    TransactionInfo,
    TransferNoteResult,
    TransferResult,
)
from openledger_core.errors import InvalidAmount, InvalidArgument, OpenLedgerError, TransportError
from openledger_core.logging_config import log_context
from openledger_core.nonce import NonceAuthority
from openledger_core.signer import SignerClient
from openledger_core.transport import EventExtractor, KeyProvider, LedgerTransport, SubmitResult

logger = logging.getLogger("openledger_service")

# (fields, args) for one call, given the nonce it will carry
Builder = Callable[[int], tuple[list[Field], dict]]


class StandardAssetService:
    """Operations and message builders shared by both asset kinds."""

    def __init__(
        self,
        transport: LedgerTransport,
        contract_address: str,
        nonce_authority: NonceAuthority,
        signer: Optional[SignerClient] = None,
        canonicalizer: Optional[MessageCanonicalizer] = None,
    ):
        self.transport = transport
        self.contract_address = normalize_address(contract_address)
        self.nonces = nonce_authority
        self.signer = signer or SignerClient()
        self.canonicalizer = canonicalizer or MessageCanonicalizer()
        self.extractor = EventExtractor()

    # ── message builders ─────────────────────────────────────────

    @staticmethod
    def gen_address(*addresses: Optional[str]) -> list[Optional[str]]:
        return [None if a is None else normalize_address(a) for a in addresses]

    @staticmethod
    def gen_type(*type_codes: int) -> list[int]:
        return list(type_codes)

    @staticmethod
    def gen_detail(*details: Optional[str]) -> list[str]:
        """Detail slots; ``None`` is an empty slot and contributes no bytes."""
        return ["" if d is None else d for d in details]

    def compute_open_account_msg(self, address: str, nonce: int) -> bytes:
        return self.canonicalizer.digest(canonical.open_account_fields(address, nonce))

    def compute_value_msg(self, value: int, nonce: int) -> bytes:
        return self.canonicalizer.digest(canonical.value_fields(value, nonce))

    def compute_tx_msg(
        self,
        addresses: Sequence[Optional[str]],
        amount: int,
        type_codes: Sequence[int],
        details: Sequence[str],
        nonce: int,
    ) -> bytes:
        return self.canonicalizer.digest(
            canonical.tx_fields(addresses, amount, type_codes, details, nonce)
        )

    def compute_read_msg(self, nonce: int) -> bytes:
        return self.canonicalizer.digest(canonical.read_fields(nonce))

    # ── execution ────────────────────────────────────────────────

    def _execute(
        self,
        wallet: KeyProvider,
        operation: str,
        build: Builder,
        shape: Callable[[SubmitResult], Any] = lambda r: r.result,
        mutating: bool = True,
    ) -> ResponseData:
        account = wallet.address
        try:
            with self.nonces.account_lock(account):
                nonce = self.nonces.next_nonce(account)
                fields, args = build(nonce)
                digest = self.canonicalizer.digest(fields)
                signature = self.signer.sign(wallet.private_key, digest)
                logger.debug(
                    f"submitting nonce={nonce} digest={digest.hex()}",
                    extra=log_context(operation, account, self.contract_address),
                )
                send = self.transport.submit if mutating else self.transport.query_state
                result = send(self.contract_address, operation, args, digest, signature)
        except TransportError:
            raise
        except OpenLedgerError as exc:
            logger.warning(
                f"not sent: [{exc.code.name}] {exc.message}",
                extra=log_context(operation, account, self.contract_address, exc.code),
            )
            return ResponseData.failure(exc)

        info = TransactionInfo(message_hash="0x" + digest.hex(), receipt=result.receipt)
        if not result.success:
            logger.warning(
                f"rejected: [{result.error_code.name}] {result.err_msg}",
                extra=log_context(operation, account, self.contract_address, result.error_code),
            )
            return ResponseData(result.error_code, result.err_msg, None, info)
        return ResponseData(result=shape(result), transaction_info=info)

    def _public(self, selector: str, args: Optional[dict] = None) -> ResponseData:
        result = self.transport.call(self.contract_address, selector, args or {})
        if not result.success:
            return ResponseData(result.error_code, result.err_msg)
        return ResponseData(result=result.result)

    # ── shared operations ────────────────────────────────────────

    def open_account(self, wallet: KeyProvider, address: str) -> ResponseData[bool]:
        address = normalize_address(address)

        def build(nonce):
            return canonical.open_account_fields(address, nonce), {"address": address, "nonce": nonce}

        return self._execute(wallet, "open_account", build)

    def _set_value(self, wallet: KeyProvider, operation: str, value: int) -> ResponseData[int]:
        def build(nonce):
            return canonical.value_fields(value, nonce), {"value": value, "nonce": nonce}

        return self._execute(wallet, operation, build)

    def set_price(self, wallet: KeyProvider, price: int) -> ResponseData[int]:
        return self._set_value(wallet, "set_price", price)

    def add_book(self, wallet: KeyProvider) -> ResponseData[int]:
        """Close the current book; returns the new term number."""
        return self._execute(wallet, "add_book", self._read_builder({}))

    def get_asset_info(self) -> ResponseData[dict]:
        return self._public("asset_info")

    def _read_builder(self, args: dict) -> Builder:
        def build(nonce):
            return canonical.read_fields(nonce), dict(args, nonce=nonce)
        return build

    def _read(self, wallet: KeyProvider, selector: str, args: dict,
              shape: Callable[[SubmitResult], Any] = lambda r: r.result) -> ResponseData:
        return self._execute(wallet, selector, self._read_builder(args), shape, mutating=False)

    def _query(self, wallet: KeyProvider, condition: Optional[Condition],
               record_type: type) -> ResponseData[list]:
        condition = condition or Condition()
        return self._read(
            wallet, "query", {"condition": condition.to_args()},
            lambda r: [record_type.from_dict(d) for d in r.result],
        )


# ===================================================================
#  Fungible assets
# ===================================================================

class FungibleAssetService(StandardAssetService):
    """Balances: deposit, withdrawal, transfer and balance queries."""

    def set_rate(self, wallet: KeyProvider, rate: int) -> ResponseData[int]:
        return self._set_value(wallet, "set_rate", rate)

    def _tx(
        self,
        wallet: KeyProvider,
        operation: str,
        from_address: Optional[str],
        to_address: Optional[str],
        operator: Optional[str],
        amount: int,
        type_code: int,
        detail: str,
        extra: dict,
    ) -> ResponseData[TransferResult]:
        operator = normalize_address(operator or wallet.address)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            return ResponseData.failure(InvalidAmount(f"amount must be positive, got {amount!r}"))
        addresses = self.gen_address(from_address, to_address, operator, self.contract_address, None)

        def build(nonce):
            fields = canonical.tx_fields(
                addresses, amount, self.gen_type(type_code), self.gen_detail(detail), nonce,
            )
            args = dict(extra, operator=operator, amount=amount, type_code=type_code,
                        detail=detail, nonce=nonce)
            return fields, args

        return self._execute(
            wallet, operation, build, lambda r: self.extractor.insert_results(r.receipt)[0],
        )

    def deposit(self, wallet: KeyProvider, operator: Optional[str], account: str, amount: int,
                type_code: int = TYPE_DEPOSIT, detail: str = "") -> ResponseData[TransferResult]:
        account = normalize_address(account)
        return self._tx(wallet, "deposit", None, account, operator, amount, type_code, detail,
                        {"account": account})

    def withdrawal(self, wallet: KeyProvider, operator: Optional[str], account: str, amount: int,
                   type_code: int = TYPE_WITHDRAWAL, detail: str = "") -> ResponseData[TransferResult]:
        account = normalize_address(account)
        return self._tx(wallet, "withdrawal", account, None, operator, amount, type_code, detail,
                        {"account": account})

    def transfer(self, wallet: KeyProvider, operator: Optional[str], from_address: str,
                 to_address: str, amount: int, type_code: int = TYPE_TRANSFER,
                 detail: str = "") -> ResponseData[TransferResult]:
        from_address = normalize_address(from_address)
        to_address = normalize_address(to_address)
        return self._tx(wallet, "transfer", from_address, to_address, operator, amount, type_code,
                        detail, {"from": from_address, "to": to_address})

    def get_balance(self, wallet: KeyProvider, account: str) -> ResponseData[int]:
        return self._read(wallet, "balance", {"account": normalize_address(account)})

    def get_holders(self, wallet: KeyProvider) -> ResponseData[list]:
        return self._read(wallet, "holders", {})

    def get_total_balance(self, wallet: KeyProvider) -> ResponseData[int]:
        return self._read(wallet, "total_balance", {})

    def query(self, wallet: KeyProvider,
              condition: Optional[Condition] = None) -> ResponseData[list[RecordEntity]]:
        return self._query(wallet, condition, RecordEntity)


# ===================================================================
#  Non-fungible assets
# ===================================================================

class NonFungibleAssetService(StandardAssetService):
    """Notes: issuance, transfer, lifecycle and metadata."""

    def issue(self, wallet: KeyProvider, option: IssueOption) -> ResponseData[list[IssueNoteResult]]:
        raw = option.to_args()

        def build(nonce):
            fields = canonical.issue_fields(
                option.issuer, option.operator, self.contract_address,
                option.amount, option.note_no_prefix, option.note_no_size,
                raw["effective_date"], raw["expiration_date"],
                option.description, nonce,
            )
            return fields, dict(raw, nonce=nonce)

        return self._execute(
            wallet, "issue", build, lambda r: self.extractor.issue_note_results(r.receipt),
        )

    def transfer(self, wallet: KeyProvider, operator: Optional[str], from_address: str,
                 to_address: str, note_nos: Sequence[int],
                 detail: str = "") -> ResponseData[list[TransferNoteResult]]:
        operator = normalize_address(operator or wallet.address)
        from_address = normalize_address(from_address)
        to_address = normalize_address(to_address)
        note_nos = list(note_nos)
        if not note_nos:
            return ResponseData.failure(InvalidArgument("no notes to transfer"))

        def build(nonce):
            fields = canonical.note_transfer_fields(
                self.contract_address, operator, from_address, to_address, note_nos, detail, nonce,
            )
            args = {"operator": operator, "from": from_address, "to": to_address,
                    "note_nos": note_nos, "detail": detail, "nonce": nonce}
            return fields, args

        return self._execute(
            wallet, "transfer", build, lambda r: self.extractor.transfer_note_results(r.receipt),
        )

    def _note_op(self, wallet: KeyProvider, operation: str, note_no: int,
                 operator: Optional[str]) -> ResponseData:
        operator = normalize_address(operator or wallet.address)

        def build(nonce):
            fields = canonical.note_fields(note_no, operator, nonce)
            return fields, {"note_no": note_no, "operator": operator, "nonce": nonce}

        return self._execute(wallet, operation, build)

    def freeze_note(self, wallet: KeyProvider, note_no: int,
                    operator: Optional[str] = None) -> ResponseData[bool]:
        return self._note_op(wallet, "freeze_note", note_no, operator)

    def unfreeze_note(self, wallet: KeyProvider, note_no: int,
                      operator: Optional[str] = None) -> ResponseData[int]:
        """Returns the note's status after unfreezing."""
        return self._note_op(wallet, "unfreeze_note", note_no, operator)

    def tear_note(self, wallet: KeyProvider, note_no: int,
                  operator: Optional[str] = None) -> ResponseData[bool]:
        return self._note_op(wallet, "tear_note", note_no, operator)

    def update_note_no(self, wallet: KeyProvider, old_no: int, new_no: int,
                       operator: Optional[str] = None) -> ResponseData[bool]:
        operator = normalize_address(operator or wallet.address)

        def build(nonce):
            fields = canonical.note_renumber_fields(old_no, new_no, operator, nonce)
            return fields, {"old_no": old_no, "new_no": new_no, "operator": operator, "nonce": nonce}

        return self._execute(wallet, "update_note_no", build)

    def update_note_properties(self, wallet: KeyProvider, note_no: int, properties: dict,
                               operator: Optional[str] = None) -> ResponseData[dict]:
        """Merge *properties* into the note; returns all properties decoded."""
        operator = normalize_address(operator or wallet.address)
        try:
            wire = encode_properties(properties)
        except OpenLedgerError as exc:
            return ResponseData.failure(exc)
        values = decode_properties(wire)

        def build(nonce):
            fields = canonical.note_properties_fields(note_no, values, operator, nonce)
            args = {"note_no": note_no, "properties": wire, "operator": operator, "nonce": nonce}
            return fields, args

        return self._execute(wallet, "update_note_properties", build, _decoded_properties)

    def _batch_date(self, wallet: KeyProvider, operation: str, batch_no: int, date: datetime,
                    operator: Optional[str]) -> ResponseData[bool]:
        operator = normalize_address(operator or wallet.address)

        def build(nonce):
            millis = canonical.to_epoch_millis(date)
            fields = canonical.batch_date_fields(batch_no, millis, operator, nonce)
            args = {"batch_no": batch_no, "date": millis, "operator": operator, "nonce": nonce}
            return fields, args

        return self._execute(wallet, operation, build)

    def update_effective_date(self, wallet: KeyProvider, batch_no: int, date: datetime,
                              operator: Optional[str] = None) -> ResponseData[bool]:
        return self._batch_date(wallet, "update_effective_date", batch_no, date, operator)

    def update_expiration_date(self, wallet: KeyProvider, batch_no: int, date: datetime,
                               operator: Optional[str] = None) -> ResponseData[bool]:
        return self._batch_date(wallet, "update_expiration_date", batch_no, date, operator)

    def effect_batch(self, wallet: KeyProvider, batch_no: int) -> ResponseData[bool]:
        def build(nonce):
            fields = canonical.effect_batch_fields(batch_no, nonce)
            return fields, {"batch_no": batch_no, "nonce": nonce}

        return self._execute(wallet, "effect_batch", build)

    def get_note_detail(self, wallet: KeyProvider, note_no: int) -> ResponseData[Note]:
        return self._read(wallet, "note_detail", {"note_no": note_no},
                          lambda r: Note.from_dict(r.result))

    def get_note_properties(self, wallet: KeyProvider, note_no: int) -> ResponseData[dict]:
        return self._read(wallet, "note_properties", {"note_no": note_no}, _decoded_properties)

    def get_account_notes(self, wallet: KeyProvider, account: str, offset: int = 0,
                          count: int = 100) -> ResponseData[list[int]]:
        # signed like any parameterless read: the nonce alone
        account = normalize_address(account)
        return self._read(wallet, "account_notes",
                          {"account": account, "offset": offset, "count": count})

    def get_tear_notes(self, wallet: KeyProvider, account: str) -> ResponseData[list[int]]:
        account = normalize_address(account)

        def build(nonce):
            return canonical.account_read_fields(account, nonce), {"account": account, "nonce": nonce}

        return self._execute(wallet, "tear_notes", build, mutating=False)

    def get_total_note_size(self) -> ResponseData[int]:
        return self._public("total_note_size")

    def query(self, wallet: KeyProvider,
              condition: Optional[Condition] = None) -> ResponseData[list[NonFungibleRecord]]:
        return self._query(wallet, condition, NonFungibleRecord)


def _decoded_properties(result: SubmitResult) -> dict[str, Any]:
    return {k: v.to_python() for k, v in decode_properties(result.result).items()}
