"""
Cryptographic helpers for OpenLedger.

Provides:
  - Keccak-256 hashing
  - secp256k1 key-pair generation
  - Address derivation (last 20 bytes of Keccak-256 of the public key)
  - Recoverable ECDSA signing, public-key recovery and verification

Signing works on 32-byte digests; the caller is responsible for producing
the digest (see ``openledger_core.canonical``).
"""

from __future__ import annotations

import hashlib

from Crypto.Hash import keccak
from ecdsa import BadSignatureError, SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_strings_canonize

from openledger_core.errors import InvalidArgument, InvalidKey, InvalidSignature

CURVE_ORDER = SECP256k1.order
ADDRESS_LENGTH = 20


# ===================================================================
#  Hashing
# ===================================================================

def keccak256(data: bytes) -> bytes:
    """Keccak-256 (the pre-standard SHA-3 variant used by EVM chains)."""
    return keccak.new(digest_bits=256, data=data).digest()


# ===================================================================
#  Keys and addresses
# ===================================================================

def _check_private_key(private_key: bytes) -> None:
    if not isinstance(private_key, (bytes, bytearray)) or len(private_key) != 32:
        raise InvalidKey("private key must be 32 bytes")
    secexp = int.from_bytes(private_key, "big")
    if not 1 <= secexp < CURVE_ORDER:
        raise InvalidKey("private key out of curve range")


def generate_keypair() -> tuple[bytes, bytes]:
    """Return ``(private_key, public_key)``; the public key is 65 bytes (0x04‖X‖Y)."""
    sk = SigningKey.generate(curve=SECP256k1)
    return sk.to_string(), b"\x04" + sk.get_verifying_key().to_string()


def public_key_from_private(private_key: bytes) -> bytes:
    _check_private_key(private_key)
    sk = SigningKey.from_string(bytes(private_key), curve=SECP256k1)
    return b"\x04" + sk.get_verifying_key().to_string()


def _public_key_body(public_key: bytes) -> bytes:
    if len(public_key) == 65 and public_key[0] == 4:
        return bytes(public_key[1:])
    if len(public_key) == 64:
        return bytes(public_key)
    raise InvalidKey("public key must be 64 or 65 bytes uncompressed")


def derive_address(public_key: bytes) -> str:
    """Derive the 0x-prefixed, lowercase hex address of a public key."""
    return "0x" + keccak256(_public_key_body(public_key))[-ADDRESS_LENGTH:].hex()


def normalize_address(address: str) -> str:
    """Lowercase, 0x-prefixed form of a 20-byte hex address."""
    if not isinstance(address, str):
        raise InvalidArgument(f"address must be a string, got {type(address).__name__}")
    body = address[2:] if address[:2] in ("0x", "0X") else address
    if len(body) != ADDRESS_LENGTH * 2:
        raise InvalidArgument(f"address must be {ADDRESS_LENGTH} bytes: {address!r}")
    try:
        bytes.fromhex(body)
    except ValueError:
        raise InvalidArgument(f"address is not hex: {address!r}") from None
    return "0x" + body.lower()


# ===================================================================
#  Recoverable signatures
# ===================================================================

def _check_digest(digest: bytes) -> None:
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != 32:
        raise InvalidArgument("digest must be 32 bytes")


def _check_signature_parts(r: int, s: int, v: int) -> None:
    if not (isinstance(r, int) and 1 <= r < CURVE_ORDER):
        raise InvalidSignature("signature r out of range")
    if not (isinstance(s, int) and 1 <= s < CURVE_ORDER):
        raise InvalidSignature("signature s out of range")
    if v not in (0, 1):
        raise InvalidSignature(f"recovery id must be 0 or 1, got {v!r}")


def sign(private_key: bytes, digest: bytes) -> tuple[int, int, int]:
    """
    Deterministically sign a 32-byte digest (RFC 6979, low-s).

    Returns ``(r, s, v)`` where ``v`` is the recovery id.
    """
    _check_private_key(private_key)
    _check_digest(digest)
    sk = SigningKey.from_string(bytes(private_key), curve=SECP256k1)
    r_bytes, s_bytes = sk.sign_digest_deterministic(
        bytes(digest), hashfunc=hashlib.sha256, sigencode=sigencode_strings_canonize,
    )
    raw = r_bytes + s_bytes
    own = sk.get_verifying_key().to_string()
    candidates = VerifyingKey.from_public_key_recovery_with_digest(
        raw, bytes(digest), SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string,
    )
    for v, candidate in enumerate(candidates):
        if candidate.to_string() == own:
            return int.from_bytes(r_bytes, "big"), int.from_bytes(s_bytes, "big"), v
    # Only reachable when R.x overflowed the curve order, which the
    # recovery routine does not model.
    raise InvalidSignature("could not determine recovery id")


def recover_public_key(digest: bytes, r: int, s: int, v: int) -> bytes:
    """Recover the 65-byte public key that produced ``(r, s, v)`` over *digest*."""
    _check_digest(digest)
    _check_signature_parts(r, s, v)
    raw = r.to_bytes(32, "big") + s.to_bytes(32, "big")
    try:
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            raw, bytes(digest), SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string,
        )
    except Exception as exc:
        raise InvalidSignature(f"public key recovery failed: {exc}") from exc
    if v >= len(candidates):
        raise InvalidSignature("recovery id has no matching point")
    return b"\x04" + candidates[v].to_string()


def recover_address(digest: bytes, r: int, s: int, v: int) -> str:
    return derive_address(recover_public_key(digest, r, s, v))


def verify(public_key: bytes, digest: bytes, r: int, s: int) -> bool:
    """Plain ECDSA verification of ``(r, s)`` against a public key."""
    _check_digest(digest)
    if not (1 <= r < CURVE_ORDER and 1 <= s < CURVE_ORDER):
        raise InvalidSignature("signature component out of range")
    try:
        vk = VerifyingKey.from_string(_public_key_body(public_key), curve=SECP256k1)
    except Exception as exc:
        raise InvalidKey(f"invalid public key: {exc}") from exc
    raw = r.to_bytes(32, "big") + s.to_bytes(32, "big")
    try:
        return vk.verify_digest(raw, bytes(digest), sigdecode=sigdecode_string)
    except BadSignatureError:
        return False
