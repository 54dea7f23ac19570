"""Unit tests for UUID, OID, URI, UEID and profile identifiers."""

import uuid

import pytest
from cbor2 import CBORTag

from corim import cbor_utils
from corim.identifiers import (
    URI,
    BytesVariant,
    ImplIDVariant,
    IntVariant,
    OIDVariant,
    Profile,
    UEIDVariant,
    UintVariant,
    UUIDVariant,
    check_ueid,
    check_uri,
    oid_from_string,
    oid_to_string,
    parse_uuid,
)

TEST_UUID = uuid.UUID("31fb5abf-023e-4992-aa4e-95f9c1503bfa")


class TestUUID:
    """Test UUID parsing and the UUID variant."""

    @pytest.mark.unit
    def test_parse_forms(self):
        """Test that string, bytes and UUID inputs agree."""
        assert parse_uuid(str(TEST_UUID)) == TEST_UUID
        assert parse_uuid(TEST_UUID.bytes) == TEST_UUID
        assert parse_uuid(TEST_UUID) is TEST_UUID

    @pytest.mark.unit
    @pytest.mark.parametrize("bad", ["not-a-uuid", b"\x00" * 15, 42])
    def test_parse_errors(self, bad):
        """Test that malformed UUIDs are rejected."""
        with pytest.raises(ValueError, match="^bad UUID"):
            parse_uuid(bad)

    @pytest.mark.unit
    def test_nil_uuid_is_invalid(self):
        """Test that the nil UUID does not validate."""
        with pytest.raises(ValueError, match="empty UUID"):
            UUIDVariant(uuid.UUID(int=0)).valid()

    @pytest.mark.unit
    def test_wire_forms(self):
        """Test CBOR tag 37 and the JSON string form."""
        variant = UUIDVariant(str(TEST_UUID))
        assert cbor_utils.encode(variant.to_cbor_value()) == b"\xd8\x25\x50" + TEST_UUID.bytes
        assert variant.to_json_value() == str(TEST_UUID)
        assert UUIDVariant.from_cbor_value(CBORTag(37, TEST_UUID.bytes)) == variant


class TestOID:
    """Test OID encoding."""

    @pytest.mark.unit
    def test_encode_decode(self):
        """Test BER content octets of a multi-byte arc."""
        encoded = oid_from_string("2.16.840.1.113741.1.16.1")
        assert encoded == bytes.fromhex("6086480186f84d011001")
        assert oid_to_string(encoded) == "2.16.840.1.113741.1.16.1"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value,message",
        [
            ("", "empty OID"),
            (".1.2.3", "OID must be absolute"),
            ("1.2", "invalid OID: got 2 arcs, expecting at least 3"),
            ("1.two.3", "invalid OID: bad arc"),
        ],
    )
    def test_invalid(self, value: str, message: str):
        """Test rejected OID strings."""
        with pytest.raises(ValueError, match=message):
            oid_from_string(value)

    @pytest.mark.unit
    def test_variant(self):
        """Test the OID variant wire forms."""
        variant = OIDVariant("1.2.3.4")
        variant.valid()
        assert variant.to_cbor_value() == CBORTag(111, b"\x2a\x03\x04")
        assert variant.to_json_value() == "1.2.3.4"
        assert OIDVariant.from_json_value("1.2.3.4") == variant


class TestURIAndProfile:
    """Test URIs and profile identifiers."""

    @pytest.mark.unit
    def test_check_uri(self):
        """Test absolute URI checks."""
        check_uri("https://example.com/x")
        with pytest.raises(ValueError, match="empty URI"):
            check_uri("")
        with pytest.raises(ValueError, match="expecting absolute URI, found 'example'"):
            check_uri("example")

    @pytest.mark.unit
    def test_uri_kind_uses_tag_32(self):
        """Test that URIs are wrapped in tag 32 on the wire."""
        assert URI.to_cbor("https://x.example") == CBORTag(32, "https://x.example")
        assert URI.from_cbor(CBORTag(32, "https://x.example")) == "https://x.example"

    @pytest.mark.unit
    def test_uri_profile(self):
        """Test a URI profile."""
        profile = Profile("tag:arm.com,2025:psa#1.0.0")
        assert profile.is_uri() and not profile.is_oid()
        assert profile.to_cbor_value() == "tag:arm.com,2025:psa#1.0.0"

    @pytest.mark.unit
    def test_oid_profile(self):
        """Test an OID profile round trip."""
        profile = Profile("2.16.840.1.113741.1.16.1")
        assert profile.is_oid()
        encoded = profile.to_cbor_value()
        assert encoded.tag == 111
        assert Profile.from_cbor_value(encoded) == profile

    @pytest.mark.unit
    def test_bad_profile(self):
        """Test that relative references are not profiles."""
        with pytest.raises(ValueError, match="profile should be OID or URI"):
            Profile("relative/path")
        with pytest.raises(ValueError, match="profile should be OID or URI"):
            Profile.from_cbor_value(12)


class TestUEID:
    """Test UEID checks."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value",
        [b"\x01" + bytes(16), b"\x01" + bytes(32), b"\x02" + bytes(6), b"\x03" + bytes(14)],
    )
    def test_valid(self, value: bytes):
        """Test accepted UEID types and lengths."""
        check_ueid(value)
        UEIDVariant(value).valid()

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value,message",
        [
            (b"", "empty UEID"),
            (b"\x04" + bytes(16), "invalid UEID type 4"),
            (b"\x02" + bytes(8), "invalid length 9 for type 2"),
        ],
    )
    def test_invalid(self, value: bytes, message: str):
        """Test rejected UEIDs."""
        with pytest.raises(ValueError, match=f"UEID validation failed: {message}"):
            check_ueid(value)


class TestTaggedScalars:
    """Test the tagged bytes and integer variants."""

    @pytest.mark.unit
    def test_bytes_variant(self):
        """Test tag 560 and base64 JSON."""
        variant = BytesVariant(b"\x00\x11\x22\x33")
        assert variant.to_cbor_value() == CBORTag(560, b"\x00\x11\x22\x33")
        assert variant.to_json_value() == "ABEiMw=="
        with pytest.raises(ValueError, match="empty bytes"):
            BytesVariant(b"").valid()

    @pytest.mark.unit
    def test_int_variant(self):
        """Test tag 551."""
        assert IntVariant(-5).to_cbor_value() == CBORTag(551, -5)
        with pytest.raises(ValueError, match="expected an integer"):
            IntVariant("5").valid()

    @pytest.mark.unit
    def test_impl_id_length(self):
        """Test that PSA implementation IDs are 32 bytes."""
        ImplIDVariant(bytes(32)).valid()
        with pytest.raises(ValueError, match="bad ImplID format: got 31 bytes, want 32"):
            ImplIDVariant(bytes(31)).valid()

    @pytest.mark.unit
    def test_uint_variant(self):
        """Test that negative values are not uints."""
        UintVariant(0).valid()
        with pytest.raises(ValueError, match="negative value -1 for uint"):
            UintVariant(-1).valid()
