"""Unit tests for Concise Evidence."""

import uuid
from typing import Optional

import pytest

from corim import cbor_utils
from corim.coev import ConciseEvidence, EvidenceID, EvTriples, TaggedConciseEvidence
from corim.coswid import Evidence, TagID
from corim.digests import SHA256
from corim.environment import Class, ClassID, Environment
from corim.identifiers import UUIDVariant
from corim.measurement import Measurement
from corim.triples import (
    CoSWIDEvidenceMap,
    CoSWIDTriple,
    DependencyTriple,
    KeyTriple,
    MembershipTriple,
    ValueTriple,
)

TEST_UUID = uuid.UUID("31fb5abf-023e-4992-aa4e-95f9c1503bfa")
TEST_UUID2 = uuid.UUID("e0a1b2c3-d4e5-4f60-8172-8394a5b6c7d8")
TEST_UUID3 = uuid.UUID("f1e2d3c4-b5a6-4798-8a9b-0c1d2e3f4a5b")


def _env(class_uuid: uuid.UUID, model: str, layer: Optional[int] = None) -> Environment:
    return Environment(
        klass=Class(
            class_id=ClassID.new(class_uuid, "uuid"),
            vendor="ACME Ltd.",
            model=model,
            layer=layer,
        )
    )


def _evidence(triples: EvTriples) -> ConciseEvidence:
    return ConciseEvidence().add_triples(triples).add_evidence_id(EvidenceID.from_uuid(TEST_UUID))


class TestEncodedSizes:
    """Test the exact encoding of dependency and membership evidence."""

    @pytest.mark.unit
    def test_dependency_triple(self):
        """Test a domain with two dependent domains."""
        triple = (
            DependencyTriple()
            .set_domain(_env(TEST_UUID, "Hypervisor", 0))
            .add_dependent_domain(_env(TEST_UUID2, "VM1", 1))
            .add_dependent_domain(_env(TEST_UUID3, "VM2", 1))
        )
        data = _evidence(EvTriples().add_dependency_triple(triple)).to_cbor()
        assert len(data) == 159
        assert set(cbor_utils.decode(data)[0]) == {2}

    @pytest.mark.unit
    def test_membership_triple(self):
        """Test a domain with two member environments."""
        triple = (
            MembershipTriple()
            .set_domain(_env(TEST_UUID, "TrustZone", 0))
            .add_environment(_env(TEST_UUID2, "SecureWorld", 1))
            .add_environment(_env(TEST_UUID3, "NormalWorld", 1))
        )
        data = _evidence(EvTriples().add_membership_triple(triple)).to_cbor()
        assert len(data) == 174
        assert set(cbor_utils.decode(data)[0]) == {3}

    @pytest.mark.unit
    def test_dependency_and_membership(self):
        """Test both triple kinds in one piece of evidence."""
        domain = _env(TEST_UUID, "Platform")
        triples = (
            EvTriples()
            .add_dependency_triple(
                DependencyTriple().set_domain(domain).add_dependent_domain(_env(TEST_UUID2, "Application"))
            )
            .add_membership_triple(
                MembershipTriple().set_domain(domain).add_environment(_env(TEST_UUID3, "Component"))
            )
        )
        data = _evidence(triples).to_cbor()
        assert len(data) == 215

        decoded = ConciseEvidence().from_cbor(data)
        assert decoded.to_cbor() == data
        assert decoded.evidence_id.to_cbor_value() == TEST_UUID


class TestEvTriples:
    """Test the evidence triples map."""

    @pytest.mark.unit
    def test_empty(self):
        """Test that at least one triple is required."""
        with pytest.raises(ValueError, match="no Triples set inside EvTriples"):
            EvTriples().valid()

    @pytest.mark.unit
    def test_invalid_evidence_triple(self):
        """Test that evidence value triples are checked."""
        triples = EvTriples().add_evidence_triple(ValueTriple(environment=_env(TEST_UUID, "x")))
        with pytest.raises(ValueError, match="invalid EvidenceTriples: invalid value triple at index 0"):
            triples.valid()

    @pytest.mark.unit
    def test_invalid_identity_triple(self):
        """Test that key triples are reported by index."""
        triples = EvTriples().add_identity_triple(KeyTriple(environment=_env(TEST_UUID, "x")))
        with pytest.raises(ValueError, match="invalid IdentityTriples at index: 0, verification keys"):
            triples.valid()

    @pytest.mark.unit
    def test_invalid_dependency_triple(self):
        """Test that dependency triples are checked."""
        triples = EvTriples().add_dependency_triple(DependencyTriple(domain=_env(TEST_UUID, "x")))
        with pytest.raises(
            ValueError,
            match="invalid DependencyTriples: invalid dependency triple at index 0: no dependent domains",
        ):
            triples.valid()

    @pytest.mark.unit
    def test_evidence_and_coswid_triples(self):
        """Test evidence values and CoSWID evidence together."""
        measurement = Measurement().set_key("fw", "string").add_digest(SHA256, bytes(32))
        coswid = CoSWIDTriple(environment=_env(TEST_UUID, "x")).add_evidence(
            CoSWIDEvidenceMap(tag_id=TagID.from_value("swid-1"), evidence=Evidence(device_id="dev"))
        )
        triples = (
            EvTriples()
            .add_evidence_triple(ValueTriple(environment=_env(TEST_UUID, "x")).add_measurement(measurement))
            .add_coswid_triple(coswid)
        )
        triples.valid()
        value = triples.to_cbor_value()
        assert set(value) == {0, 4}
        assert set(triples.to_json_value()) == {"evidence-triples", "coswid-triples"}


class TestConciseEvidence:
    """Test Concise Evidence documents."""

    @pytest.mark.unit
    def test_add_invalid_triples(self):
        """Test that triples are checked when added."""
        with pytest.raises(ValueError, match="invalid evidence triples: no Triples set"):
            ConciseEvidence().add_triples(EvTriples())
        with pytest.raises(ValueError, match="no evidence triples"):
            ConciseEvidence().add_triples(None)

    @pytest.mark.unit
    def test_evidence_id(self):
        """Test evidence identifier checks."""
        with pytest.raises(ValueError, match="no evidence id supplied"):
            ConciseEvidence().add_evidence_id(None)
        with pytest.raises(ValueError, match="invalid EvidenceID"):
            ConciseEvidence().add_evidence_id(EvidenceID(UUIDVariant(uuid.UUID(int=0))))

    @pytest.mark.unit
    def test_unknown_evidence_id_tag(self):
        """Test that only registered identifier tags decode."""
        with pytest.raises(ValueError, match="unknown tag 38 for EvidenceID"):
            EvidenceID.from_cbor_value(cbor_utils.create_tag(38, b""))

    @pytest.mark.unit
    def test_profile(self):
        """Test the profile member."""
        triple = DependencyTriple().set_domain(_env(TEST_UUID, "a")).add_dependent_domain(
            _env(TEST_UUID2, "b")
        )
        ev = _evidence(EvTriples().add_dependency_triple(triple)).add_profile("tag:acme.example,2025:ev")
        assert cbor_utils.decode(ev.to_cbor())[2] == "tag:acme.example,2025:ev"
        assert ConciseEvidence().from_json(ev.to_json()).to_cbor() == ev.to_cbor()

    @pytest.mark.unit
    def test_missing_triples(self):
        """Test that the triples member is validated."""
        with pytest.raises(ValueError, match="invalid EvTriples: no Triples set inside EvTriples"):
            ConciseEvidence().valid()


class TestTaggedConciseEvidence:
    """Test Concise Evidence under CBOR tag 571."""

    @pytest.fixture
    def evidence(self) -> ConciseEvidence:
        triple = DependencyTriple().set_domain(_env(TEST_UUID, "a")).add_dependent_domain(
            _env(TEST_UUID2, "b")
        )
        return _evidence(EvTriples().add_dependency_triple(triple))

    @pytest.mark.unit
    def test_wrap(self, evidence: ConciseEvidence):
        """Test that the tagged form prefixes the plain encoding."""
        tagged = TaggedConciseEvidence.wrap(evidence)
        data = tagged.to_cbor()
        assert data[:3] == bytes.fromhex("d9023b")
        assert data[3:] == evidence.to_cbor()

        decoded = TaggedConciseEvidence().from_cbor(data)
        assert decoded.to_cbor() == data

    @pytest.mark.unit
    def test_wrap_errors(self):
        """Test wrapping missing or invalid evidence."""
        with pytest.raises(ValueError, match="non existent concise evidence"):
            TaggedConciseEvidence.wrap(None)
        with pytest.raises(ValueError, match="concise Evidence is not valid"):
            TaggedConciseEvidence.wrap(ConciseEvidence())

    @pytest.mark.unit
    def test_decode_requires_tag(self, evidence: ConciseEvidence):
        """Test that the tag head must be present."""
        with pytest.raises(ValueError, match="did not see concise evidence tag"):
            TaggedConciseEvidence().from_cbor(evidence.to_cbor())
        with pytest.raises(ValueError, match="input CBOR data too short"):
            TaggedConciseEvidence().from_cbor(b"\xd9")
