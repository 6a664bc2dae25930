"""
Test suite for openledger_core.entities and openledger_core.errors.

Covers:
  - IssueOption validation at construction
  - Condition wildcards, limits and address normalization
  - Note / record serialization
  - ResponseData envelope and error-code mapping
"""

import unittest
from datetime import datetime, timezone

from openledger_core.canonical import PropertyValue
from openledger_core.entities import (
    Condition,
    IssueNoteResult,
    IssueOption,
    NonFungibleRecord,
    Note,
    NoteStatus,
    RecordEntity,
    ResponseData,
    TransferResult,
)
from openledger_core.errors import (
    AuthorizationError,
    ErrorCode,
    InsufficientBalance,
    InvalidArgument,
    InvalidRange,
    NonceReplayed,
    OpenLedgerError,
    error_for_code,
)

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


def _option(**overrides):
    kwargs = dict(amount=3, note_no_prefix=2021, note_no_size=3, issuer=ALICE, operator=ALICE)
    kwargs.update(overrides)
    return IssueOption(**kwargs)


class TestIssueOption(unittest.TestCase):

    def test_valid(self):
        opt = _option()
        self.assertEqual(opt.capacity, 999)

    def test_normalizes_addresses(self):
        opt = _option(issuer=ALICE.upper().replace("0X", "0x"))
        self.assertEqual(opt.issuer, ALICE)

    def test_amount_must_be_positive(self):
        with self.assertRaises(InvalidRange):
            _option(amount=0)

    def test_size_must_be_at_least_one(self):
        with self.assertRaises(InvalidRange):
            _option(note_no_size=0)

    def test_negative_prefix(self):
        with self.assertRaises(InvalidRange):
            _option(note_no_prefix=-1)

    def test_size_too_small_for_amount(self):
        with self.assertRaises(InvalidRange):
            _option(amount=10, note_no_size=1)
        _option(amount=9, note_no_size=1)

    def test_expiration_before_effective(self):
        eff = datetime(2030, 1, 1, tzinfo=timezone.utc)
        with self.assertRaises(InvalidRange):
            _option(effective_date=eff, expiration_date=eff)

    def test_args_roundtrip(self):
        opt = _option(
            description="bond",
            effective_date=datetime(2030, 1, 1, tzinfo=timezone.utc),
            expiration_date=datetime(2031, 1, 1, tzinfo=timezone.utc),
        )
        self.assertEqual(IssueOption.from_args(opt.to_args()), opt)

    def test_unset_dates_encode_as_zero(self):
        args = _option().to_args()
        self.assertEqual(args["effective_date"], 0)
        self.assertEqual(args["expiration_date"], 0)

    def test_dates_are_milliseconds(self):
        args = _option(effective_date=datetime(2021, 1, 1, tzinfo=timezone.utc)).to_args()
        self.assertEqual(args["effective_date"], 1_609_459_200_000)

    def test_unrepresentable_date_from_args(self):
        args = _option().to_args()
        args["expiration_date"] = 10 ** 20
        with self.assertRaises(InvalidRange):
            IssueOption.from_args(args)


class TestCondition(unittest.TestCase):

    def test_defaults_are_wildcards(self):
        c = Condition()
        self.assertEqual((c.term_no, c.seq_no, c.from_address, c.to_address), (0, 0, None, None))

    def test_none_means_wildcard(self):
        c = Condition(term_no=None, seq_no=None)
        self.assertEqual((c.term_no, c.seq_no), (0, 0))

    def test_negative_rejected(self):
        with self.assertRaises(InvalidRange):
            Condition(seq_no=-1)

    def test_bad_limit(self):
        with self.assertRaises(InvalidRange):
            Condition(limit=(0, -1))

    def test_text_term_no_rejected(self):
        with self.assertRaises(InvalidArgument):
            Condition(term_no="3")

    def test_bool_seq_no_rejected(self):
        with self.assertRaises(InvalidArgument):
            Condition(seq_no=True)

    def test_short_limit_from_args(self):
        with self.assertRaises(InvalidArgument):
            Condition.from_args({"limit": [1]})

    def test_limit_must_hold_integers(self):
        with self.assertRaises(InvalidArgument):
            Condition(limit=("0", 5))
        with self.assertRaises(InvalidArgument):
            Condition.from_args({"limit": 5})

    def test_args_roundtrip(self):
        c = Condition(term_no=3, seq_no=28, from_address=ALICE, to_address=BOB, limit=(0, 5))
        self.assertEqual(Condition.from_args(c.to_args()), c)


class TestSerialization(unittest.TestCase):

    def test_note_roundtrip(self):
        note = Note(
            note_no=2021001, batch_no=1, owner=ALICE, status=NoteStatus.FROZEN,
            effective_date=datetime(2030, 1, 1, tzinfo=timezone.utc),
            properties={"grade": PropertyValue.from_python("A")},
        )
        restored = Note.from_dict(note.to_dict())
        self.assertEqual(restored, note)

    def test_record_dict_uses_from_to(self):
        rec = RecordEntity(1, 2, None, ALICE, 100, "deposit")
        d = rec.to_dict()
        self.assertIsNone(d["from"])
        self.assertEqual(d["to"], ALICE)
        self.assertEqual(RecordEntity.from_dict(d), rec)

    def test_nf_record_roundtrip(self):
        rec = NonFungibleRecord(1, 3, ALICE, BOB, 2021001, "sale", 12.5)
        self.assertEqual(NonFungibleRecord.from_dict(rec.to_dict()), rec)

    def test_results_from_events(self):
        tr = TransferResult.from_event({
            "success": True, "seq_no": 4, "term_no": 1, "from": ALICE, "to": BOB,
            "amount": 10, "detail": "",
        })
        self.assertEqual((tr.from_address, tr.to_address, tr.amount), (ALICE, BOB, 10))
        ir = IssueNoteResult.from_event(
            {"note_no": 7, "batch_no": 1, "owner": ALICE, "seq_no": 1, "term_no": 1}
        )
        self.assertEqual(ir.note_no, 7)


class TestResponseData(unittest.TestCase):

    def test_success(self):
        r = ResponseData(result=5)
        self.assertTrue(r.is_success())
        self.assertEqual(r.unwrap(), 5)

    def test_failure_unwrap_raises_mapped_error(self):
        r = ResponseData(ErrorCode.NONCE_REPLAYED, "replayed")
        self.assertFalse(r.is_success())
        with self.assertRaises(NonceReplayed):
            r.unwrap()

    def test_failure_from_exception(self):
        r = ResponseData.failure(InsufficientBalance("too poor"))
        self.assertEqual(r.error_code, ErrorCode.INSUFFICIENT_BALANCE)
        self.assertEqual(r.err_msg, "too poor")


class TestErrors(unittest.TestCase):

    def test_every_failure_code_maps_to_its_class(self):
        for code in ErrorCode:
            if code is ErrorCode.SUCCESS:
                continue
            exc = error_for_code(code, "m")
            self.assertEqual(exc.code, code)
            self.assertEqual(exc.message, "m")

    def test_success_has_no_exception(self):
        with self.assertRaises(ValueError):
            error_for_code(ErrorCode.SUCCESS)

    def test_unknown_code(self):
        exc = error_for_code(999, "odd")
        self.assertIsInstance(exc, OpenLedgerError)

    def test_groups(self):
        self.assertTrue(ErrorCode.NONCE_REPLAYED.is_authorization)
        self.assertTrue(ErrorCode.NOTE_TORN.is_state_conflict)
        self.assertFalse(ErrorCode.INVALID_AMOUNT.is_authorization)
        self.assertIsInstance(error_for_code(ErrorCode.INVALID_SIGNATURE), AuthorizationError)

    def test_default_message(self):
        self.assertEqual(InsufficientBalance().message, "insufficient balance")


if __name__ == "__main__":
    unittest.main()
