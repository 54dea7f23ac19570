"""Unit tests for the diagnostic notation and CDDL helpers."""

import cbor2
import pytest

from corim import cbor_utils
from corim.cddl_schemas import DOCUMENT_SCHEMAS
from corim.cddl_utils import CDDLValidator, create_validator, validate_cbor
from corim.edn_utils import cbor_to_diag, diag_to_cbor


class TestEDN:
    """Test conversions between CBOR and diagnostic notation."""

    @pytest.mark.unit
    def test_tags_and_byte_strings(self):
        """Test that tags and byte strings are rendered."""
        data = cbor_utils.encode({0: cbor2.CBORTag(560, b"\x00\x11\x22\x33"), 1: "ACME"})
        edn = cbor_to_diag(data)
        assert "560(h'00112233')" in edn
        assert '"ACME"' in edn

    @pytest.mark.unit
    def test_diag_to_cbor(self):
        """Test parsing diagnostic notation."""
        data = diag_to_cbor("{0: 32(\"https://acme.example\"), 1: [1, 2]}")
        assert cbor2.loads(data) == {0: cbor2.CBORTag(32, "https://acme.example"), 1: [1, 2]}

    @pytest.mark.unit
    def test_round_trip(self):
        """Test that rendering and parsing give back the same bytes."""
        data = cbor_utils.encode({0: "en", 1: {0: "my-ns:acme", 1: 0}})
        assert diag_to_cbor(cbor_to_diag(data)) == data

    @pytest.mark.unit
    def test_malformed(self):
        """Test that malformed CBOR is refused."""
        with pytest.raises(ValueError, match='unexpected "break" code'):
            cbor_to_diag(b"\xff\xff")


class TestCDDLValidator:
    """Test the zcbor backed validator."""

    @pytest.mark.unit
    def test_permissive_schema(self):
        """Test a schema that accepts any item."""
        validator = create_validator("doc = any")
        assert "doc" in validator.rules()
        assert validator.validate(cbor_utils.encode({1: "x"}), "doc")
        assert validator.validate_obj([1, 2, 3], "doc")

    @pytest.mark.unit
    def test_unknown_rule(self):
        """Test that rules must exist in the schema."""
        validator = CDDLValidator("doc = any")
        with pytest.raises(ValueError, match="unknown CDDL rule: nope"):
            validator.check_obj(1, "nope")
        assert not validator.validate_obj(1, "nope")

    @pytest.mark.unit
    def test_mismatch(self):
        """Test that a non-matching item fails."""
        validator = CDDLValidator("doc = uint")
        assert not validator.validate(cbor_utils.encode("x"), "doc")

    @pytest.mark.unit
    def test_broken_schema(self):
        """Test that a schema that does not compile is reported."""
        validator = CDDLValidator("doc = {")
        assert validator.error.startswith("compiling CDDL schema")
        assert validator.rules() == []
        with pytest.raises(ValueError, match="compiling CDDL schema"):
            validator.check(cbor_utils.encode(1), "doc")

    @pytest.mark.unit
    def test_malformed_cbor(self):
        """Test that bytes that do not decode are not valid."""
        assert not validate_cbor(b"\xff\xff", "doc = any", "doc")

    @pytest.mark.unit
    def test_document_schemas(self):
        """Test that every document kind has a schema and a root rule."""
        assert set(DOCUMENT_SCHEMAS) == {"comid", "corim", "cots", "coev", "coserv"}
        for schema, rule in DOCUMENT_SCHEMAS.values():
            assert f"{rule} = " in schema
