"""
Ledger-side authorization for OpenLedger.

The auth center owns:
  - the ``NonceAuthority`` (account registry + nonce counters)
  - organizations and their admin accounts
  - signature checking: re-derive the canonical digest from the submitted
    arguments, compare it to the submitted message, recover the signer and
    check the nonce for that signer

Mirrors the role of an on-chain auth contract that every asset contract
consults before touching state.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from openledger_core.canonical import Field, MessageCanonicalizer
from openledger_core.crypto_utils import normalize_address
from openledger_core.errors import InsufficientAuthorization, InvalidArgument, InvalidSignature
from openledger_core.nonce import NonceAuthority
from openledger_core.signer import Signature, SignerClient

logger = logging.getLogger("openledger_auth")


class AuthCenter:
    """Account registry, admin capabilities and signed-message checks."""

    def __init__(
        self,
        nonce_authority: NonceAuthority | None = None,
        signer: SignerClient | None = None,
        canonicalizer: MessageCanonicalizer | None = None,
    ):
        self.nonces = nonce_authority or NonceAuthority()
        self.signer = signer or SignerClient()
        self.canonicalizer = canonicalizer or MessageCanonicalizer()
        # org id -> admin addresses
        self._org_admins: dict[str, set[str]] = {}

    # ── accounts ─────────────────────────────────────────────────

    def register_account(self, address: str) -> str:
        return self.nonces.register(address).account

    def is_registered(self, address: str) -> bool:
        return self.nonces.is_registered(address)

    # ── organizations ────────────────────────────────────────────

    def create_org(self, org_id: str, admins: Sequence[str] = ()) -> None:
        if not org_id:
            raise InvalidArgument("org id must be non-empty")
        members = self._org_admins.setdefault(org_id, set())
        for admin in admins:
            self.add_admin(org_id, admin)
        logger.info(f"Organization {org_id} has {len(members)} admin(s)")

    def add_admin(self, org_id: str, address: str) -> None:
        if org_id not in self._org_admins:
            raise InvalidArgument(f"unknown organization {org_id!r}")
        addr = self.register_account(address)
        self._org_admins[org_id].add(addr)

    def is_admin(self, org_id: str, address: str) -> bool:
        return normalize_address(address) in self._org_admins.get(org_id, set())

    # ── signed messages ──────────────────────────────────────────

    def authenticate(
        self,
        fields: Sequence[Field],
        nonce: int,
        message: bytes,
        signature: Signature,
    ) -> str:
        """
        Return the signer's address if *message* is the canonical digest
        of *fields*, *signature* is valid over it, and *nonce* is currently
        acceptable for the signer.  Does not consume the nonce.
        """
        expected = self.canonicalizer.digest(fields)
        if bytes(message) != expected:
            raise InsufficientAuthorization("message does not match operation arguments")
        if not isinstance(signature, Signature):
            raise InvalidSignature("missing signature")
        caller = self.signer.recover(expected, signature)
        self.nonces.check(caller, nonce)
        return caller

    def consume(self, caller: str, nonce: int) -> None:
        self.nonces.accept(caller, nonce)
