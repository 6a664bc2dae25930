"""
Canonical message construction for OpenLedger.

A canonical message is the ordered concatenation of an operation's fields:

  - integers and addresses as 32-byte big-endian words (zero-padded)
  - text as raw UTF-8, with no length prefix
  - raw bytes as-is

followed by the nonce, always last.  The Keccak-256 of that byte string is
what gets signed.  Field boundaries are not self-describing: signer and
verifier agree on each operation's field order out of band, which is why
both sides build their fields through the schema functions at the bottom of
this module.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Union

from openledger_core.crypto_utils import ADDRESS_LENGTH, keccak256, normalize_address
from openledger_core.errors import EncodingError, InvalidRange

WORD = 32
_MAX_UINT = 1 << (WORD * 8)
_MIN_INT = -(1 << (WORD * 8 - 1))
_MAX_INT = (1 << (WORD * 8 - 1)) - 1
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ===================================================================
#  Typed fields
# ===================================================================

@dataclass(frozen=True)
class Uint:
    value: int


@dataclass(frozen=True)
class Address:
    value: str | None


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Raw:
    value: bytes


Field = Union[Uint, Address, Text, Raw, int, str, bytes]


# ===================================================================
#  Primitive encoders
# ===================================================================

def to_bytes32(value: int) -> bytes:
    """Unsigned 32-byte big-endian word."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"expected an integer, got {type(value).__name__}")
    if value < 0 or value >= _MAX_UINT:
        raise EncodingError(f"{value} does not fit an unsigned 256-bit word")
    return value.to_bytes(WORD, "big")


def to_signed_bytes32(value: int) -> bytes:
    """Two's complement 32-byte big-endian word."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"expected an integer, got {type(value).__name__}")
    if not _MIN_INT <= value <= _MAX_INT:
        raise EncodingError(f"{value} does not fit a signed 256-bit word")
    return value.to_bytes(WORD, "big", signed=True)


def address_bytes(address: str | None) -> bytes:
    """An address left-padded to one word; ``None`` is the zero address."""
    if address is None:
        return b"\x00" * WORD
    raw = bytes.fromhex(normalize_address(address)[2:])
    return b"\x00" * (WORD - ADDRESS_LENGTH) + raw


def text_bytes(text: str) -> bytes:
    if not isinstance(text, str):
        raise EncodingError(f"expected text, got {type(text).__name__}")
    return text.encode("utf-8")


def to_epoch_millis(moment: datetime) -> int:
    """Milliseconds since the Unix epoch; naive datetimes are taken as UTC."""
    if not isinstance(moment, datetime):
        raise EncodingError(f"expected a datetime, got {type(moment).__name__}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    try:
        return EPOCH + timedelta(milliseconds=millis)
    except (OverflowError, TypeError) as exc:
        raise InvalidRange(f"{millis!r} is not a representable epoch millisecond count") from exc


# ===================================================================
#  Canonicalizer
# ===================================================================

class MessageCanonicalizer:
    """Deterministic, order-sensitive field encoder plus Keccak-256 hashing."""

    @staticmethod
    def encode_field(field: Field) -> bytes:
        if isinstance(field, Uint):
            return to_bytes32(field.value)
        if isinstance(field, Address):
            return address_bytes(field.value)
        if isinstance(field, Text):
            return text_bytes(field.value)
        if isinstance(field, Raw):
            return bytes(field.value)
        if isinstance(field, bool):
            raise EncodingError("booleans must be wrapped explicitly")
        if isinstance(field, int):
            return to_bytes32(field)
        if isinstance(field, str):
            return text_bytes(field)
        if isinstance(field, (bytes, bytearray)):
            return bytes(field)
        raise EncodingError(f"cannot encode field of type {type(field).__name__}")

    def encode(self, fields: Iterable[Field]) -> bytes:
        return b"".join(self.encode_field(f) for f in fields)

    @staticmethod
    def hash(data: bytes) -> bytes:
        return keccak256(data)

    def digest(self, fields: Iterable[Field]) -> bytes:
        return self.hash(self.encode(fields))


# ===================================================================
#  Tagged property values
# ===================================================================

class PropertyType(IntEnum):
    INT = 1
    STRING = 2
    DATE = 3
    BOOL = 4


@dataclass(frozen=True)
class PropertyValue:
    """
    A note property stored as (type tag, raw payload).

    INT, DATE and BOOL payloads are one signed word; STRING payloads are
    raw UTF-8.  ``from_python`` / ``to_python`` are exact inverses.
    """
    type: PropertyType
    payload: bytes

    @classmethod
    def from_python(cls, value: Any) -> PropertyValue:
        if isinstance(value, bool):
            return cls(PropertyType.BOOL, to_signed_bytes32(int(value)))
        if isinstance(value, int):
            return cls(PropertyType.INT, to_signed_bytes32(value))
        if isinstance(value, str):
            return cls(PropertyType.STRING, text_bytes(value))
        if isinstance(value, datetime):
            return cls(PropertyType.DATE, to_signed_bytes32(to_epoch_millis(value)))
        raise EncodingError(f"unsupported property value type {type(value).__name__}")

    def to_python(self) -> Any:
        if self.type is PropertyType.STRING:
            return self.payload.decode("utf-8")
        if len(self.payload) != WORD:
            raise EncodingError(f"{self.type.name} payload must be {WORD} bytes")
        number = int.from_bytes(self.payload, "big", signed=True)
        if self.type is PropertyType.INT:
            return number
        if self.type is PropertyType.BOOL:
            if number not in (0, 1):
                raise EncodingError(f"invalid boolean payload {number}")
            return bool(number)
        return from_epoch_millis(number)

    def to_bytes(self) -> bytes:
        """Canonical form: tag word followed by the payload."""
        return to_bytes32(int(self.type)) + self.payload

    def to_wire(self) -> dict:
        return {"type": int(self.type), "value": self.payload.hex()}

    @classmethod
    def from_wire(cls, wire: Mapping[str, Any]) -> PropertyValue:
        try:
            ptype = PropertyType(int(wire["type"]))
            payload = bytes.fromhex(wire["value"])
        except (KeyError, TypeError, ValueError) as exc:
            raise EncodingError(f"malformed property value {wire!r}") from exc
        pv = cls(ptype, payload)
        pv.to_python()  # validates payload shape
        return pv


def encode_properties(properties: Mapping[str, Any]) -> dict[str, dict]:
    """Python mapping -> wire mapping of tagged values."""
    out = {}
    for key, value in properties.items():
        if not isinstance(key, str) or not key:
            raise EncodingError(f"property keys must be non-empty strings, got {key!r}")
        pv = value if isinstance(value, PropertyValue) else PropertyValue.from_python(value)
        out[key] = pv.to_wire()
    return out


def decode_properties(wire: Mapping[str, Mapping[str, Any]]) -> dict[str, PropertyValue]:
    return {key: PropertyValue.from_wire(val) for key, val in wire.items()}


# ===================================================================
#  Operation schemas (shared by signer and verifier)
# ===================================================================

def open_account_fields(address: str, nonce: int) -> list[Field]:
    return [Address(address), Uint(nonce)]


def value_fields(value: int, nonce: int) -> list[Field]:
    """setPrice / setRate."""
    return [Uint(value), Uint(nonce)]


def read_fields(nonce: int) -> list[Field]:
    """Authenticated reads and administrative calls without parameters."""
    return [Uint(nonce)]


def account_read_fields(account: str, nonce: int) -> list[Field]:
    return [Address(account), Uint(nonce)]


def tx_fields(
    addresses: Sequence[str | None],
    amount: int,
    type_codes: Sequence[int],
    details: Sequence[str],
    nonce: int,
) -> list[Field]:
    """
    Fungible deposit / withdrawal / transfer.

    Detail slots are raw UTF-8 with no length prefix, so an empty slot adds
    no bytes: a single detail signs the same digest as a detail followed by
    an empty second slot.
    """
    fields: list[Field] = [Address(a) for a in addresses]
    fields.append(Uint(amount))
    fields.extend(Uint(t) for t in type_codes)
    fields.extend(Text(d) for d in details)
    fields.append(Uint(nonce))
    return fields


def issue_fields(
    issuer: str,
    operator: str,
    contract: str,
    amount: int,
    note_no_prefix: int,
    note_no_size: int,
    effective_date: int,
    expiration_date: int,
    description: str,
    nonce: int,
) -> list[Field]:
    """Dates are epoch milliseconds, 0 when unset."""
    return [
        Address(issuer), Address(operator), Address(contract),
        Uint(amount), Uint(note_no_prefix), Uint(note_no_size),
        Uint(effective_date), Uint(expiration_date),
        Text(description),
        Uint(nonce),
    ]


def note_transfer_fields(
    contract: str,
    operator: str,
    from_address: str,
    to_address: str,
    note_nos: Sequence[int],
    detail: str,
    nonce: int,
) -> list[Field]:
    fields: list[Field] = [
        Address(from_address), Address(to_address), Address(operator), Address(contract),
    ]
    fields.extend(Uint(n) for n in note_nos)
    fields.append(Text(detail))
    fields.append(Uint(nonce))
    return fields


def note_fields(note_no: int, operator: str, nonce: int) -> list[Field]:
    """freeze / unfreeze / tear / detail reads."""
    return [Uint(note_no), Address(operator), Uint(nonce)]


def note_renumber_fields(old_no: int, new_no: int, operator: str, nonce: int) -> list[Field]:
    return [Uint(old_no), Uint(new_no), Address(operator), Uint(nonce)]


def note_properties_fields(
    note_no: int,
    properties: Mapping[str, PropertyValue],
    operator: str,
    nonce: int,
) -> list[Field]:
    # A mapping has no semantic order; keys are sorted so both sides agree.
    fields: list[Field] = [Uint(note_no)]
    for key in sorted(properties):
        fields.append(Text(key))
        fields.append(Raw(properties[key].to_bytes()))
    fields.append(Address(operator))
    fields.append(Uint(nonce))
    return fields


def batch_date_fields(batch_no: int, date: int, operator: str, nonce: int) -> list[Field]:
    return [Uint(batch_no), Uint(date), Address(operator), Uint(nonce)]


def effect_batch_fields(batch_no: int, nonce: int) -> list[Field]:
    return [Uint(batch_no), Uint(nonce)]
