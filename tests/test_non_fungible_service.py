"""
Test suite for openledger_core.asset_service.NonFungibleAssetService.

Covers:
  - Issuance: numbering, batches, per-prefix counters, range exhaustion, collisions
  - Batch transfer: ordering, all-or-nothing, ownership and state checks
  - Freeze / unfreeze / tear state machine
  - Renumbering and tagged note properties
  - Batch effective / expiration dates and effect_batch
  - Note reads, account pagination, torn notes and record queries
"""

from datetime import datetime, timezone

import pytest

from openledger_core.entities import (
    Condition,
    IssueNoteResult,
    IssueOption,
    NonFungibleRecord,
    NoteStatus,
    TransferNoteResult,
)
from openledger_core.errors import ErrorCode
from openledger_core.wallet import Wallet

EFFECTIVE = datetime(2030, 1, 1, tzinfo=timezone.utc)
EXPIRES = datetime(2031, 1, 1, tzinfo=timezone.utc)


def _issue(svc, admin, owner, amount=3, prefix=2021, size=3, **kwargs):
    option = IssueOption(
        amount=amount, note_no_prefix=prefix, note_no_size=size,
        issuer=owner.address, operator=admin.address, **kwargs,
    )
    return svc.issue(admin, option)


@pytest.fixture
def issued(notes, admin_wallet, alice_wallet):
    """Three effective notes 2021001..2021003 owned by Alice."""
    _issue(notes, admin_wallet, alice_wallet).unwrap()
    return notes


# ═══════════════════════════════════════════════════════════════════
#  Issuance
# ═══════════════════════════════════════════════════════════════════

class TestIssue:
    def test_note_numbers(self, notes, admin_wallet, alice_wallet):
        results = _issue(notes, admin_wallet, alice_wallet, description="bonds").unwrap()
        assert all(isinstance(r, IssueNoteResult) for r in results)
        assert [r.note_no for r in results] == [2021001, 2021002, 2021003]
        assert {r.batch_no for r in results} == {1}
        assert {r.owner for r in results} == {alice_wallet.address}

    def test_counter_continues_across_issues(self, issued, admin_wallet, bob_wallet):
        results = _issue(issued, admin_wallet, bob_wallet, amount=2).unwrap()
        assert [r.note_no for r in results] == [2021004, 2021005]
        assert results[0].batch_no == 2

    def test_range_exhausted(self, notes, admin_wallet, alice_wallet):
        _issue(notes, admin_wallet, alice_wallet, amount=9, prefix=7, size=1).unwrap()
        resp = _issue(notes, admin_wallet, alice_wallet, amount=1, prefix=7, size=1)
        assert resp.error_code == ErrorCode.INVALID_RANGE

    def test_collision_with_other_prefix(self, issued, admin_wallet, alice_wallet):
        # prefix 202 / size 4 reaches 2021001 at counter 1001
        resp = _issue(issued, admin_wallet, alice_wallet, amount=1001, prefix=202, size=4)
        assert resp.error_code == ErrorCode.INVALID_RANGE
        assert issued.get_total_note_size().unwrap() == 3

    def test_non_admin_cannot_issue(self, notes, alice_wallet):
        option = IssueOption(amount=1, note_no_prefix=1, note_no_size=1,
                             issuer=alice_wallet.address, operator=alice_wallet.address)
        assert notes.issue(alice_wallet, option).error_code == ErrorCode.UNAUTHORIZED

    def test_issuer_must_be_open(self, ledger, notes, admin_wallet):
        stranger = Wallet.create()
        ledger.auth.register_account(stranger.address)
        resp = _issue(notes, admin_wallet, stranger)
        assert resp.error_code == ErrorCode.ACCOUNT_NOT_OPEN

    def test_without_effective_date_notes_are_effective(self, issued, alice_wallet):
        note = issued.get_note_detail(alice_wallet, 2021001).unwrap()
        assert note.status is NoteStatus.EFFECTIVE

    def test_with_effective_date_notes_are_pending(self, notes, admin_wallet, alice_wallet):
        _issue(notes, admin_wallet, alice_wallet, effective_date=EFFECTIVE,
               expiration_date=EXPIRES).unwrap()
        note = notes.get_note_detail(alice_wallet, 2021001).unwrap()
        assert note.status is NoteStatus.PENDING
        assert note.effective_date == EFFECTIVE
        assert note.expiration_date == EXPIRES

    def test_total_note_size(self, issued):
        assert issued.get_total_note_size().unwrap() == 3


# ═══════════════════════════════════════════════════════════════════
#  Transfer
# ═══════════════════════════════════════════════════════════════════

class TestTransfer:
    def test_results_follow_input_order(self, issued, alice_wallet, bob_wallet):
        results = issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                                  [2021002, 2021001], detail="sale").unwrap()
        assert all(isinstance(r, TransferNoteResult) for r in results)
        assert [r.note_no for r in results] == [2021002, 2021001]
        assert all(r.to_address == bob_wallet.address for r in results)
        assert results[0].seq_no < results[1].seq_no

    def test_ownership_moves(self, issued, alice_wallet, bob_wallet):
        issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                        [2021001]).unwrap()
        assert issued.get_note_detail(bob_wallet, 2021001).unwrap().owner == bob_wallet.address
        assert issued.get_account_notes(alice_wallet, alice_wallet.address).unwrap() == [
            2021002, 2021003,
        ]

    def test_not_owned(self, issued, bob_wallet, carol_wallet):
        resp = issued.transfer(bob_wallet, None, bob_wallet.address, carol_wallet.address,
                               [2021001])
        assert resp.error_code == ErrorCode.NOTE_NOT_OWNED

    def test_all_or_nothing(self, issued, admin_wallet, alice_wallet, bob_wallet):
        issued.freeze_note(admin_wallet, 2021003).unwrap()
        resp = issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                               [2021001, 2021003])
        assert resp.error_code == ErrorCode.INVALID_NOTE_STATE
        assert issued.get_note_detail(alice_wallet, 2021001).unwrap().owner == alice_wallet.address

    def test_duplicates_rejected(self, issued, alice_wallet, bob_wallet):
        resp = issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                               [2021001, 2021001])
        assert resp.error_code == ErrorCode.INVALID_ARGUMENT

    def test_empty_list_rejected(self, issued, alice_wallet, bob_wallet):
        resp = issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address, [])
        assert resp.error_code == ErrorCode.INVALID_ARGUMENT

    def test_unknown_note(self, issued, alice_wallet, bob_wallet):
        resp = issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                               [999])
        assert resp.error_code == ErrorCode.NOTE_NOT_FOUND

    def test_pending_cannot_move_until_effected(self, notes, admin_wallet, alice_wallet,
                                                bob_wallet):
        _issue(notes, admin_wallet, alice_wallet, amount=1, effective_date=EFFECTIVE).unwrap()
        resp = notes.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                              [2021001])
        assert resp.error_code == ErrorCode.INVALID_NOTE_STATE
        assert notes.effect_batch(admin_wallet, 1).unwrap() is True
        assert notes.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                              [2021001]).is_success()

    def test_admin_transfers_on_behalf(self, issued, admin_wallet, alice_wallet, carol_wallet):
        resp = issued.transfer(admin_wallet, None, alice_wallet.address, carol_wallet.address,
                               [2021003])
        assert resp.is_success()


# ═══════════════════════════════════════════════════════════════════
#  Note state machine
# ═══════════════════════════════════════════════════════════════════

class TestNoteLifecycle:
    def test_freeze_unfreeze_round_trip(self, issued, admin_wallet, alice_wallet):
        before = issued.get_note_detail(alice_wallet, 2021001).unwrap()
        assert issued.freeze_note(admin_wallet, 2021001).unwrap() is True
        frozen = issued.get_note_detail(alice_wallet, 2021001).unwrap()
        assert frozen.status is NoteStatus.FROZEN
        status = issued.unfreeze_note(admin_wallet, 2021001).unwrap()
        assert status == NoteStatus.EFFECTIVE
        assert issued.get_note_detail(alice_wallet, 2021001).unwrap() == before

    def test_freeze_requires_admin(self, issued, alice_wallet):
        assert issued.freeze_note(alice_wallet, 2021001).error_code == ErrorCode.UNAUTHORIZED

    def test_double_freeze(self, issued, admin_wallet):
        issued.freeze_note(admin_wallet, 2021001).unwrap()
        assert issued.freeze_note(admin_wallet, 2021001).error_code == ErrorCode.INVALID_NOTE_STATE

    def test_unfreeze_effective_note(self, issued, admin_wallet):
        resp = issued.unfreeze_note(admin_wallet, 2021001)
        assert resp.error_code == ErrorCode.INVALID_NOTE_STATE

    def test_tear_by_owner(self, issued, alice_wallet, admin_wallet):
        assert issued.tear_note(alice_wallet, 2021002).unwrap() is True
        assert issued.get_tear_notes(alice_wallet, alice_wallet.address).unwrap() == [2021002]
        assert issued.get_total_note_size().unwrap() == 2
        assert 2021002 not in issued.get_account_notes(alice_wallet, alice_wallet.address).unwrap()
        assert issued.freeze_note(admin_wallet, 2021002).error_code == ErrorCode.NOTE_TORN

    def test_tear_frozen_note(self, issued, admin_wallet):
        issued.freeze_note(admin_wallet, 2021001).unwrap()
        assert issued.tear_note(admin_wallet, 2021001).unwrap() is True

    def test_tear_by_stranger(self, issued, carol_wallet):
        assert issued.tear_note(carol_wallet, 2021001).error_code == ErrorCode.UNAUTHORIZED

    def test_torn_note_cannot_move(self, issued, alice_wallet, bob_wallet):
        issued.tear_note(alice_wallet, 2021001).unwrap()
        resp = issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                               [2021001])
        assert resp.error_code == ErrorCode.NOTE_TORN

    def test_tear_notes_of_other_account(self, issued, alice_wallet, bob_wallet):
        resp = issued.get_tear_notes(bob_wallet, alice_wallet.address)
        assert resp.error_code == ErrorCode.UNAUTHORIZED


# ═══════════════════════════════════════════════════════════════════
#  Renumbering and properties
# ═══════════════════════════════════════════════════════════════════

class TestMetadata:
    def test_renumber(self, issued, admin_wallet, alice_wallet):
        assert issued.update_note_no(admin_wallet, 2021001, 5000001).unwrap() is True
        assert issued.get_note_detail(alice_wallet, 5000001).unwrap().note_no == 5000001
        resp = issued.get_note_detail(admin_wallet, 2021001)
        assert resp.error_code == ErrorCode.NOTE_NOT_FOUND

    def test_renumber_collision(self, issued, admin_wallet):
        resp = issued.update_note_no(admin_wallet, 2021001, 2021002)
        assert resp.error_code == ErrorCode.NOTE_NO_COLLISION

    def test_renumber_requires_admin(self, issued, alice_wallet):
        resp = issued.update_note_no(alice_wallet, 2021001, 1)
        assert resp.error_code == ErrorCode.UNAUTHORIZED

    def test_properties_merge_and_decode(self, issued, admin_wallet, alice_wallet):
        first = issued.update_note_properties(
            admin_wallet, 2021001, {"grade": "A", "weight": 12, "insured": True},
        ).unwrap()
        assert first == {"grade": "A", "weight": 12, "insured": True}
        merged = issued.update_note_properties(
            admin_wallet, 2021001, {"weight": -3, "audited": EFFECTIVE},
        ).unwrap()
        assert merged == {"grade": "A", "weight": -3, "insured": True, "audited": EFFECTIVE}
        assert issued.get_note_properties(alice_wallet, 2021001).unwrap() == merged

    def test_unsupported_property_value(self, issued, admin_wallet):
        resp = issued.update_note_properties(admin_wallet, 2021001, {"ratio": 0.5})
        assert resp.error_code == ErrorCode.ENCODING_ERROR

    def test_properties_require_admin(self, issued, alice_wallet):
        resp = issued.update_note_properties(alice_wallet, 2021001, {"grade": "B"})
        assert resp.error_code == ErrorCode.UNAUTHORIZED


# ═══════════════════════════════════════════════════════════════════
#  Batches
# ═══════════════════════════════════════════════════════════════════

class TestBatches:
    def test_update_dates(self, issued, admin_wallet, alice_wallet):
        assert issued.update_effective_date(admin_wallet, 1, EFFECTIVE).unwrap() is True
        assert issued.update_expiration_date(admin_wallet, 1, EXPIRES).unwrap() is True
        for note_no in (2021001, 2021002, 2021003):
            note = issued.get_note_detail(alice_wallet, note_no).unwrap()
            assert (note.effective_date, note.expiration_date) == (EFFECTIVE, EXPIRES)

    def test_expiration_must_follow_effective(self, issued, admin_wallet):
        issued.update_effective_date(admin_wallet, 1, EXPIRES).unwrap()
        resp = issued.update_expiration_date(admin_wallet, 1, EFFECTIVE)
        assert resp.error_code == ErrorCode.INVALID_RANGE

    def test_unknown_batch(self, issued, admin_wallet):
        assert issued.effect_batch(admin_wallet, 9).error_code == ErrorCode.INVALID_ARGUMENT
        resp = issued.update_effective_date(admin_wallet, 9, EFFECTIVE)
        assert resp.error_code == ErrorCode.INVALID_ARGUMENT

    def test_batch_ops_require_admin(self, issued, alice_wallet):
        assert issued.effect_batch(alice_wallet, 1).error_code == ErrorCode.UNAUTHORIZED

    def test_effect_batch_leaves_frozen_notes(self, notes, admin_wallet, alice_wallet):
        _issue(notes, admin_wallet, alice_wallet, amount=2, effective_date=EFFECTIVE).unwrap()
        notes.effect_batch(admin_wallet, 1).unwrap()
        notes.freeze_note(admin_wallet, 2021001).unwrap()
        notes.effect_batch(admin_wallet, 1).unwrap()
        assert notes.get_note_detail(alice_wallet, 2021001).unwrap().status is NoteStatus.FROZEN


# ═══════════════════════════════════════════════════════════════════
#  Reads and queries
# ═══════════════════════════════════════════════════════════════════

class TestReads:
    def test_note_detail_visibility(self, issued, bob_wallet, admin_wallet):
        assert issued.get_note_detail(bob_wallet, 2021001).error_code == ErrorCode.UNAUTHORIZED
        assert issued.get_note_detail(admin_wallet, 2021001).is_success()

    def test_account_notes_pagination(self, issued, alice_wallet):
        assert issued.get_account_notes(alice_wallet, alice_wallet.address, 1, 1).unwrap() == [
            2021002,
        ]
        assert issued.get_account_notes(alice_wallet, alice_wallet.address, 5, 10).unwrap() == []

    def test_account_notes_signed_over_nonce_only(self, issued, alice_wallet, ledger, nonces):
        nonce = nonces.next_nonce(alice_wallet.address)
        message = issued.compute_read_msg(nonce)
        sig = issued.signer.sign(alice_wallet.private_key, message)
        args = {"account": alice_wallet.address, "offset": 0, "count": 10, "nonce": nonce}
        res = ledger.query_state(issued.contract_address, "account_notes", args, message, sig)
        assert res.success
        assert res.result == [2021001, 2021002, 2021003]

    def test_query_records(self, issued, alice_wallet, bob_wallet, carol_wallet, admin_wallet):
        issued.transfer(alice_wallet, None, alice_wallet.address, bob_wallet.address,
                        [2021001]).unwrap()
        alice_view = issued.query(alice_wallet).unwrap()
        assert all(isinstance(r, NonFungibleRecord) for r in alice_view)
        assert len(alice_view) == 4
        bob_view = issued.query(bob_wallet).unwrap()
        assert [r.note_no for r in bob_view] == [2021001]
        assert issued.query(carol_wallet).unwrap() == []
        assert len(issued.query(admin_wallet).unwrap()) == 4

    def test_query_issue_records(self, issued, admin_wallet):
        records = issued.query(admin_wallet, Condition(from_address=None)).unwrap()
        issue_records = [r for r in records if r.from_address is None]
        assert [r.note_no for r in issue_records] == [2021001, 2021002, 2021003]

    def test_asset_info(self, issued):
        info = issued.get_asset_info().unwrap()
        assert info["address"] == issued.contract_address
