"""Unit tests for CoMID documents."""

import json
import uuid

import pytest
from cbor2 import CBORTag

from corim import cbor_utils
from corim.comid import Comid, Entity, LinkedTag, Rel, Role, TagIdentity
from corim.coswid import TagID
from corim.digests import SHA256
from corim.environment import Class, ClassID, Environment
from corim.measurement import Measurement
from corim.triples import ValueTriple

TEST_UUID = uuid.UUID("31fb5abf-023e-4992-aa4e-95f9c1503bfa")


def _minimal_comid() -> Comid:
    env = Environment(klass=Class(class_id=ClassID.new(TEST_UUID, "uuid"), vendor="ACME"))
    triple = ValueTriple(environment=env).add_measurement(
        Measurement().set_key("fw", "string").add_digest(SHA256, bytes(32))
    )
    return (
        Comid()
        .set_tag_identity("my-ns:acme-roadrunner", 0)
        .add_entity("ACME Ltd.", None, Role.TAG_CREATOR)
        .add_reference_value(triple)
    )


class TestTagIdentity:
    """Test the tag identity member."""

    @pytest.mark.unit
    def test_string_and_uuid(self):
        """Test both identifier forms."""
        comid = Comid().set_tag_identity("my-ns:acme", 2)
        assert comid.tag_identity.to_cbor_value() == {0: "my-ns:acme", 1: 2}

        comid.set_tag_identity(TEST_UUID)
        assert comid.tag_identity.to_cbor_value() == {0: TEST_UUID.bytes}

    @pytest.mark.unit
    def test_bad_type(self):
        """Test that only strings and UUIDs identify tags."""
        with pytest.raises(ValueError, match="bad type for tag-id: expecting string or UUID"):
            Comid().set_tag_identity(42)

    @pytest.mark.unit
    def test_empty(self):
        """Test that the identifier is mandatory."""
        with pytest.raises(ValueError, match="empty tag-id"):
            TagIdentity().valid()


class TestEntity:
    """Test CoMID entities."""

    @pytest.mark.unit
    def test_json_role_names(self):
        """Test that roles use their names in JSON."""
        entity = Entity(name="ACME Ltd.", reg_id="https://acme.example", roles=[Role.TAG_CREATOR])
        assert entity.to_json_value() == {
            "name": "ACME Ltd.",
            "regid": "https://acme.example",
            "roles": ["tagCreator"],
        }
        assert entity.to_cbor_value() == {
            0: "ACME Ltd.",
            1: CBORTag(32, "https://acme.example"),
            2: [0],
        }

    @pytest.mark.unit
    def test_validation(self):
        """Test the mandatory entity members."""
        with pytest.raises(ValueError, match="invalid entity: empty entity-name"):
            Entity(roles=[Role.CREATOR]).valid()
        with pytest.raises(ValueError, match="invalid entity: empty roles"):
            Entity(name="x").valid()

    @pytest.mark.unit
    def test_add_entity_needs_roles(self):
        """Test that the builder refuses role-less entities."""
        with pytest.raises(ValueError, match="empty roles"):
            Comid().add_entity("ACME Ltd.", None)

    @pytest.mark.unit
    def test_entity_index_in_errors(self):
        """Test that entity errors are reported by position."""
        comid = _minimal_comid()
        comid.entities.add(Entity(name="", roles=[Role.CREATOR]))
        with pytest.raises(
            ValueError, match="entities validation failed: entity at index 1: invalid entity"
        ):
            comid.valid()


class TestLinkedTag:
    """Test linked tags."""

    @pytest.mark.unit
    def test_json(self):
        """Test the linked tag JSON members."""
        comid = _minimal_comid().add_linked_tag(TEST_UUID, Rel.SUPPLEMENTS)
        linked = comid.linked_tags[0]
        assert linked.to_json_value() == {
            "target": str(TEST_UUID),
            "rel": "supplements",
        }
        comid.valid()

    @pytest.mark.unit
    def test_validation(self):
        """Test missing members."""
        with pytest.raises(ValueError, match="tag-id must be set in linked-tag"):
            LinkedTag().valid()
        with pytest.raises(ValueError, match="rel validation failed: rel is unset"):
            LinkedTag(linked_tag_id=TagID.from_value("x")).valid()

    @pytest.mark.unit
    def test_error_is_reported_by_index(self):
        """Test that the failing linked tag is identified."""
        comid = _minimal_comid()
        comid.linked_tags.append(LinkedTag(linked_tag_id=TagID.from_value("x")))
        with pytest.raises(ValueError, match="invalid linked-tag entry at index 0"):
            comid.valid()


class TestComid:
    """Test whole CoMID documents."""

    @pytest.mark.unit
    def test_reference_comid(self, reference_comid: Comid):
        """Test the shared reference CoMID fixture."""
        reference_comid.valid()
        value = cbor_utils.decode(reference_comid.to_cbor())
        assert value[0] == "en-GB"
        assert set(value) == {0, 1, 2, 4}
        assert set(value[4]) == {0}

    @pytest.mark.unit
    def test_cbor_round_trip(self, reference_comid: Comid):
        """Test decoding what was encoded."""
        encoded = reference_comid.to_cbor()
        decoded = Comid().from_cbor(encoded)
        assert decoded.to_cbor() == encoded
        assert decoded.language == "en-GB"
        assert [e.name for e in decoded.entities] == ["ACME Ltd."]

    @pytest.mark.unit
    def test_json_round_trip(self, reference_comid: Comid):
        """Test decoding the JSON form."""
        text = reference_comid.to_json()
        assert set(json.loads(text)) == {"lang", "tag-identity", "entities", "triples"}
        decoded = Comid().from_json(text)
        assert decoded.to_cbor() == reference_comid.to_cbor()

    @pytest.mark.unit
    def test_json_template(self):
        """Test reading a hand-written JSON template."""
        template = {
            "tag-identity": {"id": "my-ns:acme-roadrunner"},
            "entities": [{"name": "ACME Ltd.", "roles": ["tagCreator"]}],
            "triples": {
                "reference-values": [
                    {
                        "environment": {"class": {"vendor": "ACME", "model": "RoadRunner"}},
                        "measurements": [
                            {"key": {"type": "string", "value": "fw"}, "value": {"name": "boot"}}
                        ],
                    }
                ]
            },
        }
        comid = Comid().from_json(json.dumps(template))
        assert comid.tag_identity.tag_id.to_json_value() == "my-ns:acme-roadrunner"
        assert next(comid.iter_ref_vals()).environment.klass.model == "RoadRunner"

    @pytest.mark.unit
    def test_malformed_cbor(self):
        """Test that a stream of break codes is rejected."""
        with pytest.raises(ValueError, match='cbor: unexpected "break" code'):
            Comid().from_cbor(b"\xff\xff")

    @pytest.mark.unit
    def test_empty_map(self):
        """Test that an empty map lacks a tag identity."""
        with pytest.raises(ValueError, match="tag-identity validation failed: empty tag-id"):
            Comid().from_cbor(b"\xa0")

    @pytest.mark.unit
    def test_no_triples(self):
        """Test that a CoMID needs at least one triple."""
        comid = Comid().set_tag_identity("x").add_entity("ACME Ltd.", None, Role.TAG_CREATOR)
        with pytest.raises(ValueError, match="triples validation failed: no triples set"):
            comid.valid()

    @pytest.mark.unit
    def test_no_entities(self):
        """Test that a CoMID needs at least one entity."""
        comid = _minimal_comid()
        comid.entities.clear()
        with pytest.raises(ValueError, match="entities validation failed: no entities"):
            comid.valid()
        with pytest.raises(ValueError, match="entities validation failed: no entities"):
            comid.to_cbor()

    @pytest.mark.unit
    def test_tagged_cbor(self, reference_comid: Comid):
        """Test the tag 506 wrapping used inside a CoRIM."""
        tagged = reference_comid.to_tagged_cbor()
        assert tagged[:3] == bytes.fromhex("d901fa")
        assert tagged[3:] == reference_comid.to_cbor()

    @pytest.mark.unit
    def test_iterators(self, reference_comid: Comid):
        """Test iterating over the triple kinds."""
        assert len(list(reference_comid.iter_ref_vals())) == 1
        assert list(reference_comid.iter_end_vals()) == []
        assert list(reference_comid.iter_attest_verif_keys()) == []
        assert list(reference_comid.iter_dev_identity_keys()) == []
