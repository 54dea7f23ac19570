"""Unit tests for the record mapping layer and type choices."""

import dataclasses
from typing import Optional

import pytest

from corim.encoding import (
    BYTES,
    TEXT,
    UINT,
    Record,
    b64decode,
    cbor_field,
    json_loads,
    parse_time,
)
from corim.environment import ClassID
from corim.identifiers import BytesVariant, UUIDVariant
from corim.measurement import SVN, ExactSVNVariant


@dataclasses.dataclass
class Sample(Record):
    """Test record with one mandatory and two optional fields."""

    name: str = cbor_field(0, "name", TEXT, omitempty=False, default=None)
    count: Optional[int] = cbor_field(1, "count", UINT)
    blob: Optional[bytes] = cbor_field(2, "blob", BYTES)
    tags: Optional[list] = cbor_field(3, "tags", [TEXT])

    def valid(self) -> None:
        if not self.name:
            raise ValueError("empty name")


@dataclasses.dataclass
class Pair(Record):
    """Array-shaped test record."""

    _toarray = True

    first: int = cbor_field(0, "first", UINT, omitempty=False, default=0)
    second: Optional[str] = cbor_field(1, "second", TEXT)


class TestRecord:
    """Test map and array records."""

    @pytest.mark.unit
    def test_cbor_round_trip(self):
        """Test encoding and decoding a map record."""
        sample = Sample(name="a", count=3, blob=b"\x01", tags=["x", "y"])
        data = sample.to_cbor()
        assert data == bytes.fromhex("a4 00 61 61 01 03 02 41 01 03 82 61 78 61 79")
        assert Sample().from_cbor(data) == sample

    @pytest.mark.unit
    def test_empty_optional_fields_are_omitted(self):
        """Test that unset and empty optional fields are skipped."""
        assert Sample(name="a", tags=[]).to_cbor_value() == {0: "a"}

    @pytest.mark.unit
    def test_missing_mandatory_field(self):
        """Test that encoding fails when a mandatory field is None."""
        with pytest.raises(ValueError, match=r'missing mandatory field "name" \(0\)'):
            Sample().to_cbor_value()

    @pytest.mark.unit
    def test_unexpected_map_key(self):
        """Test that records without extensions reject unknown keys."""
        with pytest.raises(ValueError, match="unexpected map key 9"):
            Sample().from_cbor(b"\xa2\x00\x61a\x09\x00")

    @pytest.mark.unit
    def test_field_error_names_the_field(self):
        """Test that decoding errors carry the field name."""
        with pytest.raises(ValueError, match='error unmarshalling field "count": expected uint, got -1'):
            Sample().from_cbor(b"\xa2\x00\x61a\x01\x20")

    @pytest.mark.unit
    def test_list_error_names_the_index(self):
        """Test that array item errors carry the index."""
        with pytest.raises(ValueError, match="error at index 1: expected text, got int"):
            Sample().from_cbor(b"\xa2\x00\x61a\x03\x82\x61x\x01")

    @pytest.mark.unit
    def test_from_cbor_validates(self):
        """Test that decoding runs the record checks."""
        with pytest.raises(ValueError, match="empty name"):
            Sample().from_cbor(b"\xa1\x00\x60")

    @pytest.mark.unit
    def test_json_round_trip(self):
        """Test JSON encoding, with bytes as base64."""
        sample = Sample(name="a", blob=b"\xde\xad")
        text = sample.to_json()
        assert json_loads(text) == {"name": "a", "blob": "3q0="}
        assert Sample().from_json(text) == sample

    @pytest.mark.unit
    def test_json_unexpected_member(self):
        """Test that unknown JSON members are rejected."""
        with pytest.raises(ValueError, match="unexpected member 'colour'"):
            Sample().from_json('{"name": "a", "colour": "red"}')

    @pytest.mark.unit
    def test_json_duplicate_member(self):
        """Test that repeated JSON members are rejected."""
        with pytest.raises(ValueError, match="duplicate JSON member 'name'"):
            Sample().from_json('{"name": "a", "name": "b"}')

    @pytest.mark.unit
    def test_array_record(self):
        """Test an array-shaped record and its optional trailing item."""
        assert Pair(first=1, second="z").to_cbor() == b"\x82\x01\x61z"
        assert Pair().from_cbor(b"\x81\x05") == Pair(first=5)
        with pytest.raises(ValueError, match="expected an array of 2 items, got 3"):
            Pair().from_cbor(b"\x83\x01\x02\x03")
        assert json_loads(Pair(first=1).to_json()) == {"first": 1}


class TestHelpers:
    """Test the base64 and time helpers."""

    @pytest.mark.unit
    def test_b64decode_errors(self):
        """Test that bad base64 input is rejected."""
        with pytest.raises(ValueError, match="illegal base64 data"):
            b64decode("not base64!")
        with pytest.raises(ValueError, match="expected a base64 string"):
            b64decode(12)

    @pytest.mark.unit
    def test_parse_time(self):
        """Test RFC 3339 parsing with a Z suffix."""
        parsed = parse_time("2025-03-01T12:00:00Z")
        assert parsed.year == 2025 and parsed.utcoffset().total_seconds() == 0
        with pytest.raises(ValueError, match="invalid RFC 3339 time"):
            parse_time("yesterday")


class TestTypeChoice:
    """Test type choice registration and wire forms."""

    @pytest.mark.unit
    def test_new_with_unknown_type(self):
        """Test that unknown variant names are rejected."""
        with pytest.raises(ValueError, match="unknown class id type: nope"):
            ClassID.new(b"\x01", "nope")

    @pytest.mark.unit
    def test_duplicate_registration(self):
        """Test that a type name can only be registered once."""
        with pytest.raises(ValueError, match='type with name "bytes" already exists'):
            ClassID.register_type(None, lambda v: BytesVariant(v))

    @pytest.mark.unit
    def test_json_form(self):
        """Test the type-and-value JSON object."""
        cid = ClassID.new(b"\x00\x11", "bytes")
        assert cid.to_json_value() == {"type": "bytes", "value": "ABE="}
        assert ClassID.from_json_value({"type": "bytes", "value": "ABE="}) == cid

    @pytest.mark.unit
    def test_json_errors(self):
        """Test malformed type-and-value objects."""
        with pytest.raises(ValueError, match="type not set"):
            ClassID.from_json_value({"value": "ABE="})
        with pytest.raises(ValueError, match="unexpected members"):
            ClassID.from_json_value({"type": "bytes", "value": "ABE=", "x": 1})
        with pytest.raises(ValueError, match="unknown class id type: blob"):
            ClassID.from_json_value({"type": "blob", "value": "ABE="})

    @pytest.mark.unit
    def test_unknown_cbor_tag(self):
        """Test that an unregistered tag is rejected on decode."""
        from corim.cbor_utils import create_tag

        with pytest.raises(ValueError, match="unknown tag 999 for class id"):
            ClassID.from_cbor_value(create_tag(999, b"\x01"))

    @pytest.mark.unit
    def test_untagged_variant_selected_by_type(self):
        """Test that a bare uint decodes into the untagged SVN variant."""
        svn = SVN.from_cbor_value(7)
        assert svn.type == "uint"
        assert svn.value.value == 7

    @pytest.mark.unit
    def test_variant_accessor(self):
        """Test retrieving a typed variant."""
        svn = SVN.exact(3)
        assert isinstance(svn.variant(ExactSVNVariant), ExactSVNVariant)
        with pytest.raises(ValueError, match="SVN type is: ExactSVNVariant"):
            svn.variant(UUIDVariant)

    @pytest.mark.unit
    def test_invalid_decoded_variant(self):
        """Test that decoded variants are validated."""
        from corim.cbor_utils import create_tag

        with pytest.raises(ValueError, match="invalid bytes: empty bytes"):
            ClassID.from_cbor_value(create_tag(560, b""))
