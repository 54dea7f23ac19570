"""Unit tests for unsigned CoRIMs."""

import datetime
import uuid

import pytest
from cbor2 import CBORTag

from corim import cbor_utils
from corim.comid import Comid
from corim.corim import EmbeddedTag, Entity, Locator, Role, UnsignedCorim, Validity, split_tag
from corim.coswid import Role as SWIDRole
from corim.coswid import SoftwareIdentity, TagID
from corim.digests import SHA256, HashEntry

TEST_CORIM_ID = "5c57e8f4-46cd-421b-91c9-08cf93e13cfc"
TEST_UUID = uuid.UUID("31fb5abf-023e-4992-aa4e-95f9c1503bfa")

NOT_BEFORE = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)
NOT_AFTER = datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc)


@pytest.fixture
def swid_tag() -> SoftwareIdentity:
    """A minimal valid CoSWID tag."""
    tag = SoftwareIdentity(tag_id=TagID.from_value(TEST_UUID), software_name="RoadRunner")
    return tag.add_entity("ACME Ltd.", SWIDRole.TAG_CREATOR)


@pytest.fixture
def corim_with_comid(reference_comid: Comid) -> UnsignedCorim:
    """An unsigned CoRIM carrying the reference CoMID."""
    return UnsignedCorim().set_id(TEST_CORIM_ID).add_comid(reference_comid)


class TestSplitTag:
    """Test splitting embedded tags into number and content."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "data,number,content",
        [
            (bytes.fromhex("c1a0"), 1, b"\xa0"),
            (bytes.fromhex("d820a0"), 32, b"\xa0"),
            (bytes.fromhex("d901faa0"), 506, b"\xa0"),
            (bytes.fromhex("da00010000a0"), 65536, b"\xa0"),
        ],
    )
    def test_split(self, data: bytes, number: int, content: bytes):
        """Test tag heads of every argument size."""
        assert split_tag(data) == EmbeddedTag(number, content)

    @pytest.mark.unit
    def test_kind_names(self):
        """Test the human readable tag kind."""
        assert EmbeddedTag(506, b"").kind == "CoMID"
        assert EmbeddedTag(505, b"").kind == "CoSWID"
        assert EmbeddedTag(507, b"").kind == "CoTS"
        assert EmbeddedTag(42, b"").kind == "tag 42"

    @pytest.mark.unit
    def test_errors(self):
        """Test inputs that are not tags."""
        with pytest.raises(ValueError, match="empty tag"):
            split_tag(b"")
        with pytest.raises(ValueError, match="expecting a CBOR tag, got initial byte 0xa0"):
            split_tag(b"\xa0")
        with pytest.raises(ValueError, match="truncated CBOR tag head"):
            split_tag(b"\xd9\x01")


class TestValidity:
    """Test validity periods."""

    @pytest.mark.unit
    def test_create(self):
        """Test a well-formed period and its encoding."""
        validity = Validity.create(NOT_AFTER, NOT_BEFORE)
        value = validity.to_cbor_value()
        assert value == {0: NOT_BEFORE, 1: NOT_AFTER}
        decoded = cbor_utils.decode(validity.to_cbor())
        assert decoded[1] == NOT_AFTER

    @pytest.mark.unit
    def test_negative_delta(self):
        """Test that not-after must not precede not-before."""
        with pytest.raises(ValueError, match="invalid not-before / not-after: negative delta"):
            Validity.create(NOT_BEFORE, NOT_AFTER)

    @pytest.mark.unit
    def test_missing_not_after(self):
        """Test that not-after is mandatory."""
        with pytest.raises(ValueError, match="missing not-after"):
            Validity().valid()


class TestLocator:
    """Test dependent RIM locators."""

    @pytest.mark.unit
    def test_encoding(self):
        """Test that the href is a tagged URI."""
        locator = Locator("https://acme.example/rims/1", HashEntry(SHA256, bytes(32)))
        locator.valid()
        assert locator.to_cbor_value() == {
            0: CBORTag(32, "https://acme.example/rims/1"),
            1: [1, bytes(32)],
        }

    @pytest.mark.unit
    def test_bad_thumbprint(self):
        """Test that the thumbprint is checked."""
        locator = Locator("https://acme.example/rims/1", HashEntry(SHA256, bytes(3)))
        with pytest.raises(ValueError, match="invalid locator thumbprint: length mismatch"):
            locator.valid()

    @pytest.mark.unit
    def test_relative_href(self):
        """Test that only absolute URIs are accepted."""
        with pytest.raises(ValueError, match="expecting absolute URI"):
            UnsignedCorim().add_dependent_rim("rims/1")


class TestEntity:
    """Test CoRIM entities."""

    @pytest.mark.unit
    def test_manifest_creator(self):
        """Test the only CoRIM role."""
        entity = Entity(name="ACME Ltd.", roles=[Role.MANIFEST_CREATOR])
        entity.valid()
        assert entity.to_json_value() == {"name": "ACME Ltd.", "roles": ["manifestCreator"]}

    @pytest.mark.unit
    def test_unknown_role(self):
        """Test that undefined role codes are rejected."""
        decoded = Entity.from_cbor_value({0: "ACME Ltd.", 2: [1]})
        assert decoded.roles == [Role.MANIFEST_CREATOR]
        with pytest.raises(ValueError, match="invalid entity: unknown role 7 at index 0"):
            Entity(name="ACME Ltd.", roles=[7]).valid()


class TestUnsignedCorim:
    """Test unsigned CoRIM documents."""

    @pytest.mark.unit
    def test_id_forms(self):
        """Test string and UUID identifiers."""
        rim = UnsignedCorim().set_id("my-rim")
        assert rim.get_id() == "my-rim"
        rim.set_id(uuid.UUID(TEST_CORIM_ID))
        assert rim.get_id() == TEST_CORIM_ID
        assert rim.corim_id.to_cbor_value() == uuid.UUID(TEST_CORIM_ID).bytes

    @pytest.mark.unit
    def test_validation_errors(self, reference_comid: Comid):
        """Test the mandatory members."""
        with pytest.raises(ValueError, match="empty id"):
            UnsignedCorim().valid()
        with pytest.raises(ValueError, match="tags validation failed: no tags"):
            UnsignedCorim().set_id("x").valid()

        rim = UnsignedCorim().set_id("x").add_comid(reference_comid)
        rim.tags.append(b"")
        with pytest.raises(ValueError, match="tag validation failed at pos 1: empty tag"):
            rim.valid()

    @pytest.mark.unit
    def test_bad_validity_and_entity(self, corim_with_comid: UnsignedCorim):
        """Test that members are validated with their position."""
        corim_with_comid.rim_validity = Validity(not_before=NOT_AFTER, not_after=NOT_BEFORE)
        with pytest.raises(ValueError, match="RIM validity validation failed"):
            corim_with_comid.valid()

        corim_with_comid.rim_validity = None
        corim_with_comid.entities.add(Entity(name="ACME Ltd."))
        with pytest.raises(
            ValueError, match="entity validation failed at pos 0: invalid entity: empty roles"
        ):
            corim_with_comid.valid()

    @pytest.mark.unit
    def test_tagged_cbor(self, corim_with_comid: UnsignedCorim):
        """Test the tag 501 wrapper and the embedded CoMID tag."""
        data = corim_with_comid.to_tagged_cbor()
        assert data[:3] == bytes.fromhex("d901f5")

        value = cbor_utils.decode(data).value
        assert value[0] == uuid.UUID(TEST_CORIM_ID).bytes
        assert value[1][0][:3] == bytes.fromhex("d901fa")

    @pytest.mark.unit
    def test_decode_with_and_without_tag(self, corim_with_comid: UnsignedCorim):
        """Test that the 501 tag head is optional on decode."""
        tagged = corim_with_comid.to_tagged_cbor()
        untagged = corim_with_comid.to_cbor()
        assert UnsignedCorim().from_cbor(tagged).to_cbor() == untagged
        assert UnsignedCorim().from_cbor(untagged).to_cbor() == untagged
        assert UnsignedCorim().from_tagged_cbor(tagged).get_id() == TEST_CORIM_ID

        with pytest.raises(ValueError, match="did not see unsigned CoRIM tag"):
            UnsignedCorim().from_tagged_cbor(untagged)

    @pytest.mark.unit
    def test_extract_tags(self, reference_comid: Comid, swid_tag: SoftwareIdentity):
        """Test decoding the embedded documents by kind."""
        rim = UnsignedCorim().set_id(TEST_CORIM_ID).add_comid(reference_comid).add_coswid(swid_tag)

        assert [tag.kind for tag in rim.iter_tags()] == ["CoMID", "CoSWID"]
        comids = rim.comids()
        assert len(comids) == 1
        assert comids[0].to_cbor() == reference_comid.to_cbor()
        assert rim.coswids()[0].software_name == "RoadRunner"
        assert rim.cots() == []

    @pytest.mark.unit
    def test_extract_invalid_tag(self):
        """Test that a broken embedded document is reported by position."""
        rim = UnsignedCorim().set_id("x").add_tag(cbor_utils.TAG_COMID, b"\xa0")
        with pytest.raises(ValueError, match="CoMID tag at index 0: tag-identity validation failed"):
            rim.comids()

    @pytest.mark.unit
    def test_profile_and_metadata(self, corim_with_comid: UnsignedCorim):
        """Test the optional members."""
        corim_with_comid.set_profile("tag:arm.com,2025:psa#1.0.0")
        corim_with_comid.set_rim_validity(NOT_AFTER, NOT_BEFORE)
        corim_with_comid.add_entity("ACME Ltd.", "https://acme.example", Role.MANIFEST_CREATOR)
        corim_with_comid.add_dependent_rim("https://acme.example/rims/base")

        value = cbor_utils.decode(corim_with_comid.to_cbor())
        assert set(value) == {0, 1, 2, 3, 4, 5}
        assert value[3] == "tag:arm.com,2025:psa#1.0.0"

        decoded = UnsignedCorim().from_cbor(corim_with_comid.to_cbor())
        assert str(decoded.profile) == "tag:arm.com,2025:psa#1.0.0"
        assert decoded.rim_validity.not_after == NOT_AFTER
        assert decoded.entities[0].roles == [Role.MANIFEST_CREATOR]

    @pytest.mark.unit
    def test_oid_profile(self, corim_with_comid: UnsignedCorim):
        """Test that OID profiles use tag 111."""
        corim_with_comid.set_profile("2.16.840.1.113741.1.16.1")
        value = cbor_utils.decode(corim_with_comid.to_cbor())
        assert value[3] == CBORTag(111, bytes.fromhex("6086480186f84d011001"))

    @pytest.mark.unit
    def test_json_round_trip(self, corim_with_comid: UnsignedCorim):
        """Test the JSON form, where embedded tags are base64."""
        corim_with_comid.set_profile("tag:arm.com,2025:psa#1.0.0")
        text = corim_with_comid.to_json()
        decoded = UnsignedCorim().from_json(text)
        assert decoded.to_cbor() == corim_with_comid.to_cbor()

    @pytest.mark.unit
    def test_uuid_id_from_json_template(self):
        """Test that a UUID string corim-id is encoded as sixteen bytes."""
        rim = UnsignedCorim()
        rim.populate_json({"corim-id": TEST_CORIM_ID})
        assert rim.corim_id.to_cbor_value() == uuid.UUID(TEST_CORIM_ID).bytes
        assert rim.to_json_value()["corim-id"] == TEST_CORIM_ID
