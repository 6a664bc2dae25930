"""
Ledger record queries with per-account visibility.

Filtering order:
  1. term_no / seq_no (0 = any)
  2. from / to (None = any side)
  3. visibility: a non-admin caller only ever sees records where they are
     the sender or the receiver, whatever they asked for
  4. insertion order is kept (ascending term_no, then seq_no)
  5. ``(offset, count)`` pagination last

No match is an empty list, never an error.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar

from openledger_core.crypto_utils import normalize_address
from openledger_core.entities import Condition

WILDCARD = 0


class LedgerRecord(Protocol):
    term_no: int
    seq_no: int
    from_address: str | None
    to_address: str | None


R = TypeVar("R", bound=LedgerRecord)


class QueryEngine:
    """Stateless record filter."""

    @staticmethod
    def matches(record: LedgerRecord, condition: Condition) -> bool:
        if condition.term_no != WILDCARD and record.term_no != condition.term_no:
            return False
        if condition.seq_no != WILDCARD and record.seq_no != condition.seq_no:
            return False
        if condition.from_address is not None and record.from_address != condition.from_address:
            return False
        if condition.to_address is not None and record.to_address != condition.to_address:
            return False
        return True

    @staticmethod
    def visible(record: LedgerRecord, caller: str, is_admin: bool) -> bool:
        if is_admin:
            return True
        return caller in (record.from_address, record.to_address)

    def filter(
        self,
        records: Iterable[R],
        condition: Condition,
        caller: str,
        is_admin: bool = False,
    ) -> list[R]:
        caller = normalize_address(caller)
        hits = [
            r for r in records
            if self.matches(r, condition) and self.visible(r, caller, is_admin)
        ]
        hits.sort(key=lambda r: (r.term_no, r.seq_no))
        if condition.limit is not None:
            offset, count = condition.limit
            hits = hits[offset:offset + count]
        return hits
