"""CBOR utilities module.

This module provides a unified interface for CBOR operations, isolating the
underlying CBOR library implementation. All documents produced by this package
are encoded deterministically (sorted map keys, definite lengths, tagged
times), and every buffer handed to :func:`decode` is first checked for
well-formedness and duplicate map keys.

Currently uses cbor2 as the underlying implementation.
"""

import datetime
import uuid
from typing import Any, Optional, Union

import cbor2

# Type aliases for CBOR special values
CBORTag = cbor2.CBORTag
CBORError = cbor2.CBORError


class DecodeError(ValueError):
    """Raised for malformed CBOR input."""


class EncodeError(ValueError):
    """Raised when a value cannot be encoded as CBOR."""


# Generic tags
TAG_TIME_STRING = 0
TAG_TIME_EPOCH = 1
TAG_COSE_SIGN1 = 18
TAG_URI = 32
TAG_UUID = 37
TAG_OID = 111

# Document wrapper tags
TAG_UNSIGNED_CORIM = 501
TAG_COSWID = 505
TAG_COMID = 506
TAG_COTS = 507
TAG_CONCISE_EVIDENCE = 571

# CoMID value tags
TAG_UEID = 550
TAG_INT = 551
TAG_SVN = 552
TAG_MIN_SVN = 553
TAG_PKIX_BASE64_KEY = 554
TAG_PKIX_BASE64_CERT = 555
TAG_PKIX_BASE64_CERT_PATH = 556
TAG_THUMBPRINT = 557
TAG_COSE_KEY = 558
TAG_CERT_THUMBPRINT = 559
TAG_BYTES = 560
TAG_CERT_PATH_THUMBPRINT = 561
TAG_MASKED_RAW_VALUE = 563
TAG_PSA_IMPL_ID = 600
TAG_PSA_REFVAL_ID = 601
TAG_CCA_PLATFORM_CONFIG_ID = 602

# Expression tags (TDX profile)
TAG_NUMERIC_EXPRESSION = 60010
TAG_SET_DIGEST_EXPRESSION = 60020
TAG_SET_STRING_EXPRESSION = 60021

_ARGUMENT_SIZES = {24: 1, 25: 2, 26: 4, 27: 8}
_BREAK = 0xFF


def encode(obj: Any, canonical: bool = True) -> bytes:
    """Encode an object to CBOR bytes.

    Datetimes are always emitted with an epoch tag (tag 1); naive datetimes
    are taken to be UTC. cbor2 never emits indefinite-length items.

    Args:
        obj: The object to encode
        canonical: Whether to use canonical encoding (deterministic)

    Returns:
        CBOR-encoded bytes

    Raises:
        EncodeError: If the object holds a value CBOR cannot represent
    """
    try:
        return cbor2.dumps(
            obj,
            canonical=canonical,
            datetime_as_timestamp=True,
            timezone=datetime.timezone.utc,
        )
    except CBORError as err:
        raise EncodeError(f"cbor: {err}") from err


def decode(data: bytes) -> Any:
    """Decode CBOR bytes to an object.

    The buffer must hold exactly one well-formed data item. Indefinite-length
    items are accepted.

    Args:
        data: CBOR-encoded bytes

    Returns:
        The decoded object

    Raises:
        DecodeError: If the data is not valid CBOR, contains a duplicate
            map key, or is followed by extraneous bytes
    """
    check_well_formed(data)
    try:
        return cbor2.loads(bytes(data))
    except CBORError as err:
        raise DecodeError(f"cbor: {err}") from err


def check_well_formed(data: bytes) -> None:
    """Scan a buffer item by item without building Python objects.

    Args:
        data: CBOR-encoded bytes

    Raises:
        DecodeError: On truncated input, stray break codes, invalid
            additional information, duplicate map keys or trailing bytes
    """
    if not isinstance(data, (bytes, bytearray)):
        raise DecodeError(f"cbor: expected bytes, got {type(data).__name__}")

    scanner = _Scanner(bytes(data))
    scanner.scan_item()
    if scanner.pos != len(data):
        raise DecodeError(
            f"cbor: {len(data) - scanner.pos} bytes of extraneous data "
            f"starting at index {scanner.pos}"
        )


class _Scanner:
    """Walks CBOR item heads, skipping payloads."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def _need(self, n: int) -> None:
        if self.pos + n > len(self.data):
            raise DecodeError("cbor: unexpected EOF")

    def _read_argument(self, major: int, info: int) -> Optional[int]:
        if info < 24:
            return info
        if info in _ARGUMENT_SIZES:
            size = _ARGUMENT_SIZES[info]
            self._need(size)
            value = int.from_bytes(self.data[self.pos:self.pos + size], "big")
            self.pos += size
            return value
        if info == 31 and major in (2, 3, 4, 5):
            return None
        raise DecodeError(
            f"cbor: invalid additional information {info} for type {major}"
        )

    def _at_break(self) -> bool:
        self._need(1)
        if self.data[self.pos] == _BREAK:
            self.pos += 1
            return True
        return False

    def scan_item(self) -> None:
        self._need(1)
        initial = self.data[self.pos]
        if initial == _BREAK:
            raise DecodeError('cbor: unexpected "break" code')
        self.pos += 1

        major, info = initial >> 5, initial & 0x1F
        argument = self._read_argument(major, info)

        if major in (0, 1):
            return

        if major in (2, 3):
            if argument is None:
                while not self._at_break():
                    chunk = self.data[self.pos]
                    if chunk >> 5 != major or chunk & 0x1F == 31:
                        raise DecodeError(
                            "cbor: wrong element type in indefinite-length string"
                        )
                    self.scan_item()
                return
            self._need(argument)
            self.pos += argument
            return

        if major == 4:
            if argument is None:
                while not self._at_break():
                    self.scan_item()
            else:
                for _ in range(argument):
                    self.scan_item()
            return

        if major == 5:
            seen: set[bytes] = set()
            count = 0
            while True:
                if argument is None:
                    if self._at_break():
                        break
                elif count == argument:
                    break
                key_start = self.pos
                self.scan_item()
                key = self.data[key_start:self.pos]
                if key in seen:
                    raise DecodeError(f"cbor: found duplicate map key 0x{key.hex()}")
                seen.add(key)
                self.scan_item()
                count += 1
            return

        if major == 6:
            self.scan_item()
            return

        # major type 7: simple values and floats carry no nested items
        if 28 <= info <= 30:
            raise DecodeError(f"cbor: invalid additional information {info} for type 7")


def create_tag(tag: int, value: Any) -> CBORTag:
    """Create a CBOR tag.

    Args:
        tag: The tag number
        value: The tagged value

    Returns:
        A CBOR tag object
    """
    return CBORTag(tag, value)


def is_tag(obj: Any, tag_number: Union[int, None] = None) -> bool:
    """Check if an object is a CBOR tag.

    Args:
        obj: The object to check
        tag_number: Optional specific tag number to check for

    Returns:
        True if the object is a CBOR tag (and matches tag_number if specified)
    """
    if not isinstance(obj, CBORTag):
        return False
    if tag_number is not None:
        return obj.tag == tag_number
    return True


def get_tag_number(obj: CBORTag) -> int:
    """Get the tag number from a CBOR tag.

    Args:
        obj: A CBOR tag object

    Returns:
        The tag number
    """
    return obj.tag


def get_tag_value(obj: CBORTag) -> Any:
    """Get the tagged value from a CBOR tag.

    Args:
        obj: A CBOR tag object

    Returns:
        The tagged value
    """
    return obj.value


def tag_of(obj: Any) -> Optional[int]:
    """Return the tag number a decoded item was carrying, if any.

    cbor2 turns some tags into native objects on decode (UUIDs, datetimes);
    those are mapped back to the tag that produced them.

    Args:
        obj: A decoded CBOR item

    Returns:
        The tag number, or None for untagged items
    """
    if isinstance(obj, CBORTag):
        return obj.tag
    if isinstance(obj, uuid.UUID):
        return TAG_UUID
    if isinstance(obj, datetime.datetime):
        return TAG_TIME_EPOCH
    return None


def untag(obj: Any, tag_number: int, what: str) -> Any:
    """Return the content of a tagged item, checking the tag number.

    Args:
        obj: A decoded CBOR item
        tag_number: The tag the item must carry
        what: A short description used in the error message

    Returns:
        The tagged content

    Raises:
        ValueError: If the item does not carry the expected tag
    """
    if not is_tag(obj, tag_number):
        raise ValueError(f"expected {what} (tag {tag_number}), got {describe(obj)}")
    return obj.value


def describe(obj: Any) -> str:
    """Short human-readable description of a decoded CBOR item."""
    if isinstance(obj, CBORTag):
        return f"tag {obj.tag}"
    return type(obj).__name__


def tag_prefix(tag: int) -> bytes:
    """Return the encoded head of a CBOR tag.

    Args:
        tag: The tag number

    Returns:
        The tag head bytes, e.g. ``D9 02 3B`` for tag 571
    """
    if tag < 24:
        return bytes([0xC0 | tag])
    if tag < 0x100:
        return bytes([0xD8, tag])
    if tag < 0x10000:
        return bytes([0xD9]) + tag.to_bytes(2, "big")
    if tag < 0x100000000:
        return bytes([0xDA]) + tag.to_bytes(4, "big")
    return bytes([0xDB]) + tag.to_bytes(8, "big")


def strip_tag_prefix(data: bytes, tag: int, what: str) -> bytes:
    """Check and remove a wrapper tag head from an encoded document.

    Args:
        data: CBOR-encoded tagged document
        tag: The expected wrapper tag
        what: Document name used in the error message

    Returns:
        The encoded content following the tag head

    Raises:
        ValueError: If the buffer is too short or carries another tag
    """
    prefix = tag_prefix(tag)
    if len(data) < len(prefix):
        raise ValueError("input CBOR data too short")
    if bytes(data[:len(prefix)]) != prefix:
        raise ValueError(f"did not see {what} tag")
    return bytes(data[len(prefix):])
