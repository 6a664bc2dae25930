"""
Wallet management for OpenLedger.

A wallet wraps a secp256k1 key-pair bound to one account address.  It is
the KeyProvider the asset services use to sign canonical messages; how the
key got here (file, HSM, seed) is the caller's business.
"""

from __future__ import annotations

import hashlib
from typing import Any

from openledger_core.crypto_utils import (
    derive_address,
    generate_keypair,
    public_key_from_private,
)
from openledger_core.errors import InvalidKey


class Wallet:
    """Key-pair plus the account address derived from it."""

    SEED_ITERATIONS = 600_000

    def __init__(self, private_key: bytes, public_key: bytes | None = None):
        self.private_key = bytes(private_key)
        derived = public_key_from_private(self.private_key)
        if public_key is not None and bytes(public_key) != derived:
            raise InvalidKey("public key does not match private key")
        self.public_key = derived
        self.address = derive_address(derived)

    # ---- factory methods ----

    @classmethod
    def create(cls) -> Wallet:
        """Generate a brand-new wallet."""
        priv, pub = generate_keypair()
        return cls(priv, pub)

    @classmethod
    def from_seed(cls, seed: str, iterations: int | None = None) -> Wallet:
        """
        Derive a wallet deterministically from a seed phrase.

        Uses PBKDF2-HMAC-SHA256 with a fixed salt, so the same seed always
        maps to the same address.
        """
        priv = hashlib.pbkdf2_hmac(
            "sha256",
            seed.encode("utf-8"),
            b"OpenLedger/seed/v1",
            iterations or cls.SEED_ITERATIONS,
        )
        return cls(priv)

    @classmethod
    def from_private_key(cls, private_key: bytes | str) -> Wallet:
        """Load a wallet from raw bytes or a (0x-prefixed) hex string."""
        if isinstance(private_key, str):
            body = private_key[2:] if private_key.startswith("0x") else private_key
            try:
                private_key = bytes.fromhex(body)
            except ValueError:
                raise InvalidKey("private key is not valid hex") from None
        return cls(private_key)

    # ---- export ----

    def private_key_hex(self) -> str:
        return "0x" + self.private_key.hex()

    def to_dict(self) -> dict[str, Any]:
        """Public information only; the private key is never included."""
        return {
            "address": self.address,
            "public_key": self.public_key.hex(),
        }

    def __repr__(self) -> str:
        return f"Wallet({self.address})"
