"""
Signing client for OpenLedger.

Wraps the secp256k1 primitives in ``crypto_utils`` behind a small contract:

    sig = SignerClient().sign(private_key, digest)
    SignerClient().verify(address_or_public_key, digest, sig)   # -> bool

Malformed keys raise ``InvalidKey`` and malformed signatures raise
``InvalidSignature``; neither is ever coerced into a ``False``.
"""

from __future__ import annotations

from dataclasses import dataclass

from openledger_core import crypto_utils
from openledger_core.errors import InvalidSignature


@dataclass(frozen=True)
class Signature:
    """An ECDSA signature with its recovery id."""
    r: int
    s: int
    v: int

    def to_bytes(self) -> bytes:
        """65-byte wire form ``r(32) || s(32) || v(1)``."""
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()

    @classmethod
    def from_bytes(cls, raw: bytes) -> Signature:
        if len(raw) != 65:
            raise InvalidSignature(f"signature must be 65 bytes, got {len(raw)}")
        sig = cls(
            r=int.from_bytes(raw[:32], "big"),
            s=int.from_bytes(raw[32:64], "big"),
            v=raw[64],
        )
        sig.validate()
        return sig

    @classmethod
    def from_hex(cls, text: str) -> Signature:
        body = text[2:] if text.startswith("0x") else text
        try:
            raw = bytes.fromhex(body)
        except ValueError:
            raise InvalidSignature("signature is not valid hex") from None
        return cls.from_bytes(raw)

    def validate(self) -> None:
        crypto_utils._check_signature_parts(self.r, self.s, self.v)

    def to_dict(self) -> dict:
        return {"r": hex(self.r), "s": hex(self.s), "v": self.v}


class SignerClient:
    """Signs digests and checks signatures against keys or addresses."""

    def sign(self, private_key: bytes, digest: bytes) -> Signature:
        r, s, v = crypto_utils.sign(private_key, digest)
        return Signature(r, s, v)

    def recover(self, digest: bytes, signature: Signature) -> str:
        """Address of the key that produced *signature* over *digest*."""
        if not isinstance(signature, Signature):
            raise InvalidSignature(f"expected a Signature, got {type(signature).__name__}")
        signature.validate()
        return crypto_utils.recover_address(digest, signature.r, signature.s, signature.v)

    def verify(self, key_or_address: bytes | str, digest: bytes, signature: Signature) -> bool:
        if not isinstance(signature, Signature):
            raise InvalidSignature(f"expected a Signature, got {type(signature).__name__}")
        signature.validate()
        if isinstance(key_or_address, str):
            expected = crypto_utils.normalize_address(key_or_address)
            return self.recover(digest, signature) == expected
        return crypto_utils.verify(key_or_address, digest, signature.r, signature.s)
