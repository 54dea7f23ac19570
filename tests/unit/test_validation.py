"""Unit tests for CBOR, CDDL and semantic document validation."""

import cbor2
import pytest

from corim import cbor_utils
from corim.comid import Comid
from corim.corim import UnsignedCorim
from corim.validation import (
    CBORValidator,
    CDDLValidator,
    DocumentValidator,
    strip_document_tag,
)

PERMISSIVE_CDDL = "doc = any"
TEST_CORIM_ID = "5c57e8f4-46cd-421b-91c9-08cf93e13cfc"


class TestCBORValidator:
    """Test cases for CBOR validation utilities."""

    @pytest.mark.unit
    def test_cbor_to_diagnostic(self):
        """Test converting CBOR to diagnostic notation."""
        cbor_data = cbor2.dumps({0: "en-GB", 1: 42})

        diag = CBORValidator().to_diagnostic(cbor_data)

        assert '"en-GB"' in diag
        assert "42" in diag

    @pytest.mark.unit
    def test_diagnostic_to_cbor(self):
        """Test converting diagnostic notation to CBOR."""
        cbor_data = CBORValidator().from_diagnostic('{0: "en-GB", 1: 42}')
        assert cbor2.loads(cbor_data) == {0: "en-GB", 1: 42}

    @pytest.mark.unit
    def test_validate_structure(self):
        """Test well-formedness checks."""
        assert CBORValidator.validate_structure(cbor2.dumps([1, 2]))
        assert not CBORValidator.validate_structure(b"\xff\xff")
        assert not CBORValidator.validate_structure(cbor2.dumps(1) + b"\x00")


class TestCDDLValidator:
    """Test CDDL checks per document kind."""

    @pytest.mark.unit
    def test_strip_document_tag(self):
        """Test removing the wrapper tag head of each kind."""
        assert strip_document_tag("comid", bytes.fromhex("d901faa0")) == b"\xa0"
        assert strip_document_tag("comid", b"\xa0") == b"\xa0"
        assert strip_document_tag("coev", bytes.fromhex("d9023ba0")) == b"\xa0"
        assert strip_document_tag("coserv", bytes.fromhex("d901faa0")) == bytes.fromhex("d901faa0")

    @pytest.mark.unit
    def test_custom_schema(self):
        """Test that a custom schema replaces the built-in ones."""
        validator = CDDLValidator(PERMISSIVE_CDDL)
        assert validator.validate(bytes.fromhex("d901faa0"), "comid", "doc")
        assert not validator.validate(b"\xa0", "comid", "missing-rule")

    @pytest.mark.unit
    def test_unknown_kind(self):
        """Test kinds without a schema."""
        validator = CDDLValidator()
        with pytest.raises(ValueError, match="no CDDL schema for document kind: coswid"):
            validator.default_rule("coswid")
        with pytest.raises(ValueError, match="no CDDL schema for document kind: coswid"):
            validator.check(b"\xa0", "coswid")

    @pytest.mark.unit
    def test_default_rules(self):
        """Test the top-level rule of each kind."""
        validator = CDDLValidator()
        assert validator.default_rule("comid") == "concise-mid-tag"
        assert validator.default_rule("corim") == "unsigned-corim-map"
        assert validator.default_rule("coserv") == "coserv-map"


class TestDocumentValidator:
    """Test the combined document checks."""

    @pytest.fixture
    def validator(self) -> DocumentValidator:
        """A validator whose CDDL step accepts anything."""
        return DocumentValidator(cddl_schema=PERMISSIVE_CDDL, rule="doc")

    @pytest.mark.unit
    def test_valid_comid(self, validator: DocumentValidator, reference_comid: Comid):
        """Test a well-formed CoMID."""
        results = validator.validate_document("comid", reference_comid.to_tagged_cbor())
        assert results == {
            "valid": True,
            "cbor_valid": True,
            "cddl_valid": True,
            "semantic_valid": True,
            "errors": [],
        }

    @pytest.mark.unit
    def test_valid_corim(self, validator: DocumentValidator, reference_comid: Comid):
        """Test a well-formed unsigned CoRIM."""
        rim = UnsignedCorim().set_id(TEST_CORIM_ID).add_comid(reference_comid)
        results = validator.validate_document("corim", rim.to_tagged_cbor())
        assert results["valid"], results["errors"]

    @pytest.mark.unit
    def test_malformed_cbor(self, validator: DocumentValidator):
        """Test that malformed input stops at the CBOR step."""
        results = validator.validate_document("comid", b"\xff\xff")
        assert not results["valid"]
        assert not results["cbor_valid"]
        assert not results["semantic_valid"]
        assert results["errors"][0].startswith("Invalid CBOR structure")

    @pytest.mark.unit
    def test_semantic_failure(self, validator: DocumentValidator):
        """Test that a structurally fine but incomplete CoMID fails."""
        results = validator.validate_document("comid", cbor_utils.encode({}))
        assert results["cbor_valid"]
        assert results["cddl_valid"]
        assert not results["semantic_valid"]
        assert not results["valid"]
        assert "semantic validation failed: tag-identity validation failed" in results["errors"][0]

    @pytest.mark.unit
    def test_unknown_kind(self, validator: DocumentValidator):
        """Test that only known kinds are validated."""
        results = validator.validate_document("swid", b"\xa0")
        assert results["errors"] == ["unknown document kind: swid"]
        assert not results["valid"]

    @pytest.mark.unit
    def test_builtin_schema_still_runs_semantics(self, reference_comid: Comid):
        """Test that the semantic step runs whatever the CDDL outcome."""
        results = DocumentValidator().validate_document("comid", reference_comid.to_tagged_cbor())
        assert results["cbor_valid"]
        assert results["semantic_valid"]
