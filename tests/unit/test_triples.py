"""Unit tests for CoMID and evidence triples."""

import datetime
import uuid

import pytest

from corim import cbor_utils
from corim.coswid import Evidence, File, TagID
from corim.cryptokeys import CryptoKey
from corim.digests import SHA256
from corim.environment import Class, ClassID, Environment
from corim.measurement import Measurement
from corim.triples import (
    CondEndorseSeriesRecord,
    CondEndorseSeriesTriple,
    CoSWIDEvidenceMap,
    CoSWIDTriple,
    DependencyTriple,
    KeyTriple,
    MembershipTriple,
    Triples,
    ValueTriple,
)

TEST_UUID = uuid.UUID("31fb5abf-023e-4992-aa4e-95f9c1503bfa")


def _env(model: str = "RoadRunner") -> Environment:
    return Environment(klass=Class(class_id=ClassID.new(TEST_UUID, "uuid"), vendor="ACME", model=model))


def _measurement() -> Measurement:
    return Measurement().set_key("fw", "string").add_digest(SHA256, bytes(32))


class TestEnvironment:
    """Test environment checks, used by every triple."""

    @pytest.mark.unit
    def test_empty_environment(self):
        """Test that an environment needs a class, instance or group."""
        with pytest.raises(ValueError, match="environment must not be empty"):
            Environment().valid()

    @pytest.mark.unit
    def test_empty_class(self):
        """Test that a class needs at least one member."""
        with pytest.raises(ValueError, match="environment validation failed: class must not be empty"):
            Environment(klass=Class()).valid()

    @pytest.mark.unit
    def test_class_json(self):
        """Test the JSON member names of a class."""
        env = Environment(klass=Class.with_id(b"\x01\x02", "bytes"))
        env.klass.layer = 1
        assert env.to_json_value() == {
            "class": {"id": {"type": "bytes", "value": "AQI="}, "layer": 1}
        }
        assert Environment.from_json_value(env.to_json_value()) == env


class TestValueTriple:
    """Test reference and endorsed value triples."""

    @pytest.mark.unit
    def test_array_shape(self):
        """Test that a value triple is a two-element array."""
        triple = ValueTriple().set_environment(_env()).add_measurement(_measurement())
        value = triple.to_cbor_value()
        assert isinstance(value, list) and len(value) == 2
        assert value[1][0][0] == "fw"

    @pytest.mark.unit
    def test_set_invalid_environment(self):
        """Test that set_environment checks its argument."""
        with pytest.raises(ValueError, match="environment is not valid: environment must not be empty"):
            ValueTriple().set_environment(Environment())

    @pytest.mark.unit
    def test_no_measurements(self):
        """Test that measurements are required."""
        triple = ValueTriple(environment=_env())
        with pytest.raises(ValueError, match="measurements validation failed: no measurements"):
            triple.valid()


class TestKeyTriple:
    """Test identity and attestation key triples."""

    @pytest.mark.unit
    def test_no_keys(self):
        """Test that keys are required."""
        triple = KeyTriple(environment=_env())
        with pytest.raises(ValueError, match="verification keys validation failed: no keys to validate"):
            triple.valid()

    @pytest.mark.unit
    def test_round_trip(self, public_key_pem: str):
        """Test a key triple round trip."""
        triple = KeyTriple(environment=_env()).add_key(CryptoKey.new(public_key_pem, "pkix-base64-key"))
        decoded = KeyTriple().from_cbor(triple.to_cbor())
        assert decoded == triple


class TestCondEndorseSeries:
    """Test conditional endorsement series triples."""

    @pytest.mark.unit
    def test_series_required(self):
        """Test that at least one series record is required."""
        condition = ValueTriple(environment=_env()).add_measurement(_measurement())
        triple = CondEndorseSeriesTriple(condition=condition)
        with pytest.raises(ValueError, match="conditional series validation failed: no series records"):
            triple.valid()

    @pytest.mark.unit
    def test_invalid_condition(self):
        """Test that the condition is checked first."""
        triple = CondEndorseSeriesTriple()
        with pytest.raises(ValueError, match="stateful environment validation failed"):
            triple.valid()

    @pytest.mark.unit
    def test_round_trip(self):
        """Test encoding and decoding a full series."""
        record = CondEndorseSeriesRecord()
        record.selection.add(_measurement())
        record.addition.add(Measurement().set_key("fw", "string").set_svn(4))
        condition = ValueTriple(environment=_env()).add_measurement(_measurement())
        triple = CondEndorseSeriesTriple(condition=condition).add_series(record)

        encoded = triple.to_cbor()
        decoded = CondEndorseSeriesTriple().from_cbor(encoded)
        assert decoded.to_cbor() == encoded
        assert len(decoded.series) == 1


class TestDomainTriples:
    """Test dependency and membership triples."""

    @pytest.mark.unit
    def test_dependency(self):
        """Test a dependency triple and its JSON member names."""
        triple = DependencyTriple().set_domain(_env("Hypervisor")).add_dependent_domain(_env("VM1"))
        triple.valid()
        assert set(triple.to_json_value()) == {"domain", "dependent-domains"}
        assert DependencyTriple().from_cbor(triple.to_cbor()) == triple

    @pytest.mark.unit
    def test_dependency_errors(self):
        """Test missing and invalid dependents."""
        with pytest.raises(ValueError, match="no dependent domains specified"):
            DependencyTriple(domain=_env()).valid()
        with pytest.raises(ValueError, match="invalid domain: environment must not be empty"):
            DependencyTriple().valid()
        triple = DependencyTriple(domain=_env(), dependent_domains=[_env(), Environment()])
        with pytest.raises(ValueError, match="invalid dependent domain at index 1"):
            triple.valid()

    @pytest.mark.unit
    def test_membership(self):
        """Test a membership triple."""
        triple = MembershipTriple().set_domain(_env("TrustZone")).add_environment(_env("SecureWorld"))
        triple.valid()
        with pytest.raises(ValueError, match="no environments specified"):
            MembershipTriple(domain=_env()).valid()


class TestCoSWIDTriple:
    """Test CoSWID evidence triples."""

    @pytest.mark.unit
    def test_evidence_required(self):
        """Test that evidence entries are required."""
        with pytest.raises(ValueError, match="no evidence entry in the CoSWIDTriple"):
            CoSWIDTriple(environment=_env()).valid()
        triple = CoSWIDTriple(environment=_env()).add_evidence(CoSWIDEvidenceMap())
        with pytest.raises(ValueError, match="evidence validation failed: missing evidence"):
            triple.valid()

    @pytest.mark.unit
    def test_round_trip(self):
        """Test a CoSWID triple carrying dated file evidence."""
        evidence = Evidence(
            files=[File(fs_name="boot.bin")],
            date=datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc),
            device_id="BAD809B1-7032-43D9-8F94-BF128E5D061D",
        )
        entry = CoSWIDEvidenceMap(tag_id=TagID.from_value(str(TEST_UUID)), evidence=evidence)
        triple = CoSWIDTriple(environment=_env()).add_evidence(entry)
        encoded = triple.to_cbor()
        assert CoSWIDTriple().from_cbor(encoded) == triple


class TestTriples:
    """Test the CoMID triples map."""

    @pytest.mark.unit
    def test_empty(self):
        """Test that at least one triple is required."""
        with pytest.raises(ValueError, match="no triples set"):
            Triples().valid()

    @pytest.mark.unit
    def test_keys_and_json_names(self):
        """Test the map keys of the different triple kinds."""
        triples = Triples()
        triples.add_reference_value(ValueTriple(environment=_env()).add_measurement(_measurement()))
        triples.add_membership_triple(MembershipTriple(domain=_env(), environments=[_env("x")]))
        assert set(triples.to_cbor_value()) == {0, 5}
        assert set(triples.to_json_value()) == {"reference-values", "membership-triples"}

    @pytest.mark.unit
    def test_error_names_the_kind(self):
        """Test that failures are attributed to the triple kind."""
        triples = Triples().add_endorsed_value(ValueTriple(environment=_env()))
        with pytest.raises(
            ValueError,
            match="endorsed values validation failed: invalid value triple at index 0: measurements validation failed",
        ):
            triples.valid()

    @pytest.mark.unit
    def test_decode_unknown_key_is_kept(self):
        """Test that unknown triple kinds survive a round trip."""
        triples = Triples().add_reference_value(
            ValueTriple(environment=_env()).add_measurement(_measurement())
        )
        raw = triples.to_cbor_value()
        raw[42] = ["opaque"]
        decoded = Triples().from_cbor(cbor_utils.encode(raw))
        assert decoded.extensions.cached["cbor"] == {42: ["opaque"]}
        assert decoded.to_cbor_value()[42] == ["opaque"]
