"""Identifier primitives shared by all document types.

UUIDs, OIDs, UEIDs, URIs, tagged byte strings and tagged integers, plus the
type choice variants built on them.
"""

import uuid
from typing import Any, Optional
from urllib.parse import urlparse

from . import cbor_utils
from .encoding import JSONValue, Kind, b64decode, b64encode, type_name
from .typechoice import Variant

# UUID


def parse_uuid(value: Any) -> uuid.UUID:
    """Build a UUID from its canonical string form, 16 raw bytes or a UUID.

    Raises:
        ValueError: If the value is not a well-formed UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 16:
            raise ValueError(f"bad UUID: expected 16 bytes, got {len(value)}")
        return uuid.UUID(bytes=bytes(value))
    if isinstance(value, str):
        try:
            return uuid.UUID(value)
        except ValueError as err:
            raise ValueError(f"bad UUID: {err}") from err
    raise ValueError(f"bad UUID: unexpected type {type_name(value)}")


def uuid_from_cbor(data: Any) -> uuid.UUID:
    """Extract a UUID from a decoded tag 37 item."""
    if isinstance(data, uuid.UUID):
        return data
    return parse_uuid(cbor_utils.untag(data, cbor_utils.TAG_UUID, "uuid"))


def check_uuid(value: uuid.UUID) -> None:
    if value.int == 0:
        raise ValueError("empty UUID")


class UUIDVariant(Variant):
    """UUID, CBOR tag 37, JSON canonical string."""

    type_name = "uuid"
    cbor_tag = cbor_utils.TAG_UUID

    def __init__(self, value: Any = None):
        super().__init__(None if value is None else parse_uuid(value))

    def valid(self) -> None:
        if self.value is None:
            raise ValueError("empty UUID")
        check_uuid(self.value)

    def to_bytes(self) -> bytes:
        return b"" if self.value is None else self.value.bytes

    def to_cbor_value(self) -> Any:
        return self.value

    @classmethod
    def from_cbor_value(cls, data: Any) -> "UUIDVariant":
        return cls(uuid_from_cbor(data))

    def to_json_value(self) -> JSONValue:
        return str(self.value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "UUIDVariant":
        if not isinstance(data, str):
            raise ValueError(f"bad UUID: expected a string, got {type_name(data)}")
        return cls(data)


class _UUIDKind(Kind):
    """Untagged 16-byte UUID field (JSON canonical string)."""

    name = "uuid"

    def to_cbor(self, value: Any) -> Any:
        return parse_uuid(value).bytes

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        if not isinstance(data, bytes):
            raise ValueError(f"expected bytes, got {type_name(data)}")
        return parse_uuid(data)

    def to_json(self, value: Any) -> JSONValue:
        return str(parse_uuid(value))

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"bad UUID: expected a string, got {type_name(data)}")
        return parse_uuid(data)

    def coerce(self, value: Any) -> Any:
        return parse_uuid(value)


class _TaggedUUIDKind(_UUIDKind):
    """Tag 37 UUID field (JSON canonical string)."""

    def to_cbor(self, value: Any) -> Any:
        return parse_uuid(value)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return uuid_from_cbor(data)


UUID_BYTES = _UUIDKind()
TAGGED_UUID = _TaggedUUIDKind()


# OID

_MIN_OID_ARCS = 3
_MAX_OID_LEN = 255


def oid_from_string(value: str) -> bytes:
    """Encode a dotted-decimal OID into BER content octets.

    Raises:
        ValueError: If the OID is malformed or has fewer than three arcs
    """
    if not value:
        raise ValueError("empty OID")
    if value[0] == ".":
        raise ValueError("OID must be absolute")

    arcs = []
    for part in value.split("."):
        if not part.isdigit():
            raise ValueError(f"invalid OID: bad arc {part!r}")
        arcs.append(int(part))

    if len(arcs) < _MIN_OID_ARCS:
        raise ValueError(
            f"invalid OID: got {len(arcs)} arcs, expecting at least {_MIN_OID_ARCS}"
        )
    if arcs[0] > 2 or (arcs[0] < 2 and arcs[1] > 39):
        raise ValueError(f"invalid OID: bad leading arcs {arcs[0]}.{arcs[1]}")

    out = bytearray()
    for arc in [arcs[0] * 40 + arcs[1]] + arcs[2:]:
        chunk = [arc & 0x7F]
        arc >>= 7
        while arc:
            chunk.append(0x80 | (arc & 0x7F))
            arc >>= 7
        out.extend(reversed(chunk))

    if len(out) > _MAX_OID_LEN:
        raise ValueError(f"OIDs greater than {_MAX_OID_LEN} bytes are not accepted")
    return bytes(out)


def oid_to_string(value: bytes) -> str:
    """Decode BER content octets into a dotted-decimal OID.

    Raises:
        ValueError: If the content octets are truncated or empty
    """
    if not value:
        raise ValueError("empty OID")
    if value[-1] & 0x80:
        raise ValueError("invalid OID: truncated arc")

    arcs = []
    acc = 0
    for byte in value:
        acc = (acc << 7) | (byte & 0x7F)
        if not byte & 0x80:
            arcs.append(acc)
            acc = 0

    first = arcs[0]
    if first < 80:
        head = [first // 40, first % 40]
    else:
        head = [2, first - 80]
    return ".".join(str(arc) for arc in head + arcs[1:])


class OIDVariant(Variant):
    """Absolute OID, CBOR tag 111 over BER content octets, JSON dotted string."""

    type_name = "oid"
    cbor_tag = cbor_utils.TAG_OID

    def __init__(self, value: Any = None):
        if isinstance(value, str):
            value = oid_from_string(value)
        super().__init__(value)

    def __str__(self) -> str:
        return oid_to_string(self.value) if self.value else ""

    def valid(self) -> None:
        if not self.value:
            raise ValueError("empty OID")
        if len(oid_to_string(self.value).split(".")) < _MIN_OID_ARCS:
            raise ValueError(f"invalid OID: expecting at least {_MIN_OID_ARCS} arcs")

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, bytes):
            raise ValueError(f"expected OID bytes, got {type_name(data)}")
        return data

    def to_json_value(self) -> JSONValue:
        return str(self)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "OIDVariant":
        if not isinstance(data, str):
            raise ValueError(f"expected an OID string, got {type_name(data)}")
        return cls(data)


# URI


def check_uri(value: str) -> None:
    """Check that value is an absolute URI.

    Raises:
        ValueError: If the value is empty or has no scheme
    """
    if not value:
        raise ValueError("empty URI")
    if not urlparse(value).scheme:
        raise ValueError(f"expecting absolute URI, found {value!r}")


class _URIKind(Kind):
    """Tag 32 URI; JSON carries the bare string."""

    name = "uri"

    def to_cbor(self, value: Any) -> Any:
        return cbor_utils.create_tag(cbor_utils.TAG_URI, self.coerce(value))

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        value = cbor_utils.untag(data, cbor_utils.TAG_URI, "URI")
        return self.coerce(value)

    def to_json(self, value: Any) -> JSONValue:
        return self.coerce(value)

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self.coerce(data)

    def coerce(self, value: Any) -> Any:
        if not isinstance(value, str):
            raise ValueError(f"expected a URI string, got {type_name(value)}")
        check_uri(value)
        return value


URI = _URIKind()


# Profile identifiers


def _looks_like_oid(value: str) -> bool:
    return bool(value) and all(part.isdigit() for part in value.split("."))


class Profile:
    """Profile identifier: an absolute URI or an OID.

    On the CBOR wire a URI profile is a text string and an OID profile is the
    tag 111 OID; JSON carries the URI or the dotted OID as a string.
    """

    def __init__(self, value: str):
        if not isinstance(value, str):
            raise ValueError(f"profile should be OID or URI, got {type_name(value)}")
        if _looks_like_oid(value):
            self._oid: Optional[bytes] = oid_from_string(value)
        else:
            self._oid = None
            try:
                check_uri(value)
            except ValueError as err:
                raise ValueError(f"profile should be OID or URI: {err}") from err
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Profile):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __repr__(self) -> str:
        return f"Profile({self.value!r})"

    def __str__(self) -> str:
        return self.value

    def is_oid(self) -> bool:
        return self._oid is not None

    def is_uri(self) -> bool:
        return self._oid is None

    def to_cbor_value(self) -> Any:
        if self._oid is not None:
            return cbor_utils.create_tag(cbor_utils.TAG_OID, self._oid)
        return self.value

    @classmethod
    def from_cbor_value(cls, data: Any) -> "Profile":
        if isinstance(data, str):
            return cls(data)
        if cbor_utils.is_tag(data, cbor_utils.TAG_OID):
            data = data.value
        if isinstance(data, bytes):
            return cls(oid_to_string(data))
        raise ValueError(f"profile should be OID or URI, got {type_name(data)}")

    def to_json_value(self) -> JSONValue:
        return self.value

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "Profile":
        return cls(data)


# UEID

UEID_TYPE_RAND = 0x01
UEID_TYPE_EUI = 0x02
UEID_TYPE_IMEI = 0x03

_UEID_LENGTHS = {
    UEID_TYPE_RAND: (17, 25, 33),
    UEID_TYPE_EUI: (7,),
    UEID_TYPE_IMEI: (15,),
}


def check_ueid(value: bytes) -> None:
    """Check that value is a RAND, EUI or IMEI universal entity ID.

    Raises:
        ValueError: If the UEID type or length is wrong
    """
    if not value:
        raise ValueError("UEID validation failed: empty UEID")
    lengths = _UEID_LENGTHS.get(value[0])
    if lengths is None:
        raise ValueError(f"UEID validation failed: invalid UEID type {value[0]}")
    if len(value) not in lengths:
        raise ValueError(
            f"UEID validation failed: invalid length {len(value)} for type {value[0]}"
        )


class UEIDVariant(Variant):
    """UEID, CBOR tag 550, JSON base64."""

    type_name = "ueid"
    cbor_tag = cbor_utils.TAG_UEID

    def __init__(self, value: Any = None):
        if isinstance(value, str):
            value = b64decode(value)
        super().__init__(value)

    def __str__(self) -> str:
        return b64encode(self.value or b"")

    def valid(self) -> None:
        check_ueid(self.value or b"")

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, bytes):
            raise ValueError(f"unexpected type for UEID: {type_name(data)}")
        return data

    def to_json_value(self) -> JSONValue:
        return b64encode(self.value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "UEIDVariant":
        return cls(b64decode(data))


# Tagged bytes and integers


class BytesVariant(Variant):
    """Opaque byte string, CBOR tag 560, JSON base64."""

    type_name = "bytes"
    cbor_tag = cbor_utils.TAG_BYTES

    def __init__(self, value: Any = None):
        if isinstance(value, str):
            value = b64decode(value)
        if isinstance(value, bytearray):
            value = bytes(value)
        super().__init__(value)

    def __str__(self) -> str:
        return b64encode(self.value or b"")

    def valid(self) -> None:
        if not self.value:
            raise ValueError("empty bytes")

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        if not isinstance(data, bytes):
            raise ValueError(f"unexpected type for bytes: {type_name(data)}")
        return data

    def to_json_value(self) -> JSONValue:
        return b64encode(self.value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "BytesVariant":
        return cls(b64decode(data))


class IntVariant(Variant):
    """Signed integer, CBOR tag 551."""

    type_name = "int"
    cbor_tag = cbor_utils.TAG_INT

    def valid(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise ValueError(f"expected an integer, got {type_name(self.value)}")

    def to_bytes(self) -> bytes:
        length = max(1, (self.value.bit_length() + 8) // 8)
        return self.value.to_bytes(length, "big", signed=True)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "IntVariant":
        if isinstance(data, bool) or not isinstance(data, int):
            raise ValueError(f"expected an integer, got {type_name(data)}")
        return cls(data)


IMPL_ID_SIZE = 32


class ImplIDVariant(BytesVariant):
    """PSA implementation ID: 32 bytes under CBOR tag 600."""

    type_name = "psa.impl-id"
    cbor_tag = cbor_utils.TAG_PSA_IMPL_ID

    def valid(self) -> None:
        if self.value is None:
            raise ValueError("empty ImplID")
        if len(self.value) != IMPL_ID_SIZE:
            raise ValueError(
                f"bad ImplID format: got {len(self.value)} bytes, want {IMPL_ID_SIZE}"
            )


class StringVariant(Variant):
    """Untagged text string."""

    type_name = "string"
    cbor_types = (str,)

    def valid(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValueError("empty string")

    @classmethod
    def from_cbor_value(cls, data: Any) -> "StringVariant":
        if not isinstance(data, str):
            raise ValueError(f"expected a text string, got {type_name(data)}")
        return cls(data)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "StringVariant":
        if not isinstance(data, str):
            raise ValueError(f"expected a string, got {type_name(data)}")
        return cls(data)


class UintVariant(Variant):
    """Untagged unsigned integer."""

    type_name = "uint"
    cbor_types = (int,)

    def valid(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValueError(f"expected an unsigned integer, got {type_name(self.value)}")
        if self.value < 0:
            raise ValueError(f"negative value {self.value} for uint")

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(max(1, (self.value.bit_length() + 7) // 8), "big")

    @classmethod
    def from_cbor_value(cls, data: Any) -> "UintVariant":
        return cls(data)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "UintVariant":
        if isinstance(data, bool) or not isinstance(data, int):
            raise ValueError(f"expected an unsigned integer, got {type_name(data)}")
        return cls(data)


def variant_factory(variant_type: type) -> Any:
    """Return a type choice factory for variant_type (None builds an empty variant)."""

    def factory(value: Optional[Any]) -> Variant:
        if value is None:
            return variant_type()
        if isinstance(value, variant_type):
            return value
        return variant_type(value)

    return factory
