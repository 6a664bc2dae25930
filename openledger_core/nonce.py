"""
Per-account nonce management for OpenLedger.

Each registered account has two counters:

  - ``issued``  the highest nonce handed out by ``next_nonce``
  - ``floor``   the highest nonce the ledger has accepted

A nonce ``n`` is acceptable iff ``floor < n <= issued``.  Acceptance raises
the floor to ``n``, so a consumed nonce (and every nonce below it) can never
validate again.  Fetching only moves ``issued``: a nonce that was fetched
but never submitted is simply a skipped gap.

Callers serialise "fetch -> sign -> submit" per account with
``account_lock``; different accounts never contend.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from openledger_core.crypto_utils import normalize_address
from openledger_core.errors import AccountNotFound, InvalidNonce, NonceReplayed

logger = logging.getLogger("openledger_nonce")


@dataclass
class NonceState:
    """Counters for a single account."""
    account: str
    issued: int = 0
    floor: int = 0

    def to_dict(self) -> dict:
        return {"account": self.account, "issued": self.issued, "floor": self.floor}


class NonceAuthority:
    """Issues and retires nonces for all registered accounts."""

    def __init__(self):
        self._states: dict[str, NonceState] = {}
        # guards _states and the counters inside it
        self._mutex = threading.Lock()
        # account -> lock held across a whole signed operation
        self._account_locks: dict[str, threading.RLock] = {}

    # ── registration ─────────────────────────────────────────────

    def register(self, account: str) -> NonceState:
        """Register an account.  Registering twice is a no-op."""
        addr = normalize_address(account)
        with self._mutex:
            state = self._states.get(addr)
            if state is None:
                state = NonceState(account=addr)
                self._states[addr] = state
                logger.debug(f"Registered account {addr}")
            return state

    def is_registered(self, account: str) -> bool:
        return normalize_address(account) in self._states

    def _state(self, account: str) -> NonceState:
        addr = normalize_address(account)
        state = self._states.get(addr)
        if state is None:
            raise AccountNotFound(f"account {addr} is not registered")
        return state

    # ── client side ──────────────────────────────────────────────

    def next_nonce(self, account: str) -> int:
        """Hand out a fresh nonce, strictly greater than any issued before."""
        with self._mutex:
            state = self._state(account)
            state.issued = max(state.issued, state.floor) + 1
            return state.issued

    @contextmanager
    def account_lock(self, account: str) -> Iterator[None]:
        """Mutual exclusion for one account's fetch/sign/submit section."""
        addr = normalize_address(account)
        with self._mutex:
            lock = self._account_locks.setdefault(addr, threading.RLock())
        with lock:
            yield

    # ── ledger side ──────────────────────────────────────────────

    def check(self, account: str, nonce: int) -> None:
        """Raise unless *nonce* is currently acceptable for *account*."""
        with self._mutex:
            self._check_locked(self._state(account), nonce)

    def accept(self, account: str, nonce: int) -> None:
        """Consume *nonce*; afterwards it (and every lower value) is dead."""
        with self._mutex:
            state = self._state(account)
            self._check_locked(state, nonce)
            state.floor = nonce

    @staticmethod
    def _check_locked(state: NonceState, nonce: int) -> None:
        if not isinstance(nonce, int) or isinstance(nonce, bool) or nonce < 0:
            raise InvalidNonce(f"nonce must be a non-negative integer, got {nonce!r}")
        if nonce <= state.floor:
            raise NonceReplayed(
                f"nonce {nonce} already consumed for {state.account} (floor {state.floor})"
            )
        if nonce > state.issued:
            raise InvalidNonce(f"nonce {nonce} was never issued to {state.account}")

    # ── inspection ───────────────────────────────────────────────

    def floor(self, account: str) -> int:
        return self._state(account).floor

    def issued(self, account: str) -> int:
        return self._state(account).issued
