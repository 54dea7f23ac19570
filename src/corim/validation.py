"""CBOR, CDDL and semantic validation of CoRIM family documents."""

import logging
from typing import Any, Callable, Optional

from . import cbor_utils, cddl_utils, edn_utils, profiles
from .cddl_schemas import DOCUMENT_SCHEMAS
from .coev import ConciseEvidence
from .corim import UnsignedCorim
from .coserv import Coserv
from .cots import ConciseTaStore

logger = logging.getLogger(__name__)

# Optional wrapper tag of each document kind
DOCUMENT_TAGS = {
    "comid": cbor_utils.TAG_COMID,
    "coswid": cbor_utils.TAG_COSWID,
    "corim": cbor_utils.TAG_UNSIGNED_CORIM,
    "cots": cbor_utils.TAG_COTS,
    "coev": cbor_utils.TAG_CONCISE_EVIDENCE,
}


def strip_document_tag(kind: str, data: bytes) -> bytes:
    """Remove the wrapper tag head of a document kind when present."""
    tag = DOCUMENT_TAGS.get(kind)
    if tag is None:
        return data
    prefix = cbor_utils.tag_prefix(tag)
    if bytes(data[: len(prefix)]) == prefix:
        return bytes(data[len(prefix) :])
    return data


def _decode_corim(data: bytes, profile: Optional[str]) -> UnsignedCorim:
    return profiles.unmarshal_and_validate_unsigned_corim_from_cbor(data)


def _decode_cots(data: bytes, profile: Optional[str]) -> ConciseTaStore:
    return ConciseTaStore().from_cbor(strip_document_tag("cots", data))


def _decode_coev(data: bytes, profile: Optional[str]) -> ConciseEvidence:
    return profiles.unmarshal_concise_evidence_from_cbor(data)


def _decode_coserv(data: bytes, profile: Optional[str]) -> Coserv:
    return Coserv().from_cbor(data)


# Semantic decoders: each populates and validates a document or raises ValueError.
# Only CoMIDs take the profile from the caller, the other kinds name their own.
DOCUMENT_DECODERS: dict[str, Callable[[bytes, Optional[str]], Any]] = {
    "comid": profiles.unmarshal_comid_from_cbor,
    "corim": _decode_corim,
    "cots": _decode_cots,
    "coev": _decode_coev,
    "coserv": _decode_coserv,
}


class CBORValidator:
    """Utility class for CBOR validation and diagnostics."""

    @staticmethod
    def to_diagnostic(cbor_data: bytes) -> str:
        """Convert CBOR data to diagnostic notation.

        Args:
            cbor_data: CBOR encoded bytes

        Returns:
            Diagnostic notation string
        """
        return edn_utils.cbor_to_diag(cbor_data)

    @staticmethod
    def from_diagnostic(diag_str: str) -> bytes:
        """Convert diagnostic notation to CBOR data.

        Args:
            diag_str: Diagnostic notation string

        Returns:
            CBOR encoded bytes
        """
        return edn_utils.diag_to_cbor(diag_str)

    @staticmethod
    def validate_structure(cbor_data: bytes) -> bool:
        """Check that the data holds exactly one well-formed CBOR item."""
        try:
            cbor_utils.decode(cbor_data)
            return True
        except ValueError as e:
            logger.debug("malformed CBOR: %s", e)
            return False


class CDDLValidator:
    """CDDL checks of document kinds, against built-in or custom schemas."""

    def __init__(self, cddl_schema: Optional[str] = None):
        """Initialize CDDL validator.

        Args:
            cddl_schema: Optional custom CDDL schema string; when omitted the
                built-in schema of each document kind is used
        """
        self.schema = cddl_schema
        self._custom = cddl_utils.create_validator(cddl_schema) if cddl_schema else None
        self._builtin: dict[str, cddl_utils.CDDLValidator] = {}

    def _validator_for(self, kind: str) -> cddl_utils.CDDLValidator:
        if self._custom is not None:
            return self._custom
        if kind not in DOCUMENT_SCHEMAS:
            raise ValueError(f"no CDDL schema for document kind: {kind}")
        if kind not in self._builtin:
            schema, _ = DOCUMENT_SCHEMAS[kind]
            self._builtin[kind] = cddl_utils.create_validator(schema)
        return self._builtin[kind]

    def default_rule(self, kind: str) -> str:
        if kind not in DOCUMENT_SCHEMAS:
            raise ValueError(f"no CDDL schema for document kind: {kind}")
        return DOCUMENT_SCHEMAS[kind][1]

    def check(self, cbor_data: bytes, kind: str, rule: Optional[str] = None) -> None:
        """Check a document against a CDDL rule.

        Args:
            cbor_data: Encoded document, with or without its wrapper tag
            kind: Document kind (``comid``, ``corim``, ``cots``, ``coev``, ``coserv``)
            rule: Rule name; defaults to the kind's top-level rule

        Raises:
            ValueError: If the document does not match the rule
        """
        validator = self._validator_for(kind)
        validator.check(strip_document_tag(kind, cbor_data), rule or self.default_rule(kind))

    def validate(self, cbor_data: bytes, kind: str, rule: Optional[str] = None) -> bool:
        try:
            self.check(cbor_data, kind, rule)
            return True
        except ValueError as e:
            logger.debug("%s", e)
            return False


class DocumentValidator:
    """High-level validator running CBOR, CDDL and semantic checks on a document."""

    def __init__(
        self,
        cddl_schema: Optional[str] = None,
        rule: Optional[str] = None,
        profile: Optional[str] = None,
    ):
        """Initialize the validator.

        Args:
            cddl_schema: Custom CDDL schema replacing the built-in ones
            rule: CDDL rule to check instead of the kind's top-level rule
            profile: Profile applied to CoMIDs, which do not name their own
        """
        self.cddl_validator = CDDLValidator(cddl_schema)
        self.rule = rule
        self.profile = profile

    def validate_document(self, kind: str, data: bytes) -> dict[str, Any]:
        """Validate an encoded document.

        Args:
            kind: Document kind (``comid``, ``corim``, ``cots``, ``coev``, ``coserv``)
            data: CBOR encoded document

        Returns:
            Validation results dictionary
        """
        results: dict[str, Any] = {
            "valid": False,
            "cbor_valid": False,
            "cddl_valid": False,
            "semantic_valid": False,
            "errors": [],
        }
        if kind not in DOCUMENT_DECODERS:
            results["errors"].append(f"unknown document kind: {kind}")
            return results

        try:
            cbor_utils.decode(data)
        except ValueError as e:
            results["errors"].append(f"Invalid CBOR structure: {e}")
            return results
        results["cbor_valid"] = True

        try:
            self.cddl_validator.check(data, kind, self.rule)
            results["cddl_valid"] = True
        except ValueError as e:
            results["errors"].append(str(e))

        try:
            DOCUMENT_DECODERS[kind](data, self.profile)
            results["semantic_valid"] = True
        except ValueError as e:
            results["errors"].append(f"semantic validation failed: {e}")

        results["valid"] = results["cbor_valid"] and not results["errors"]
        return results
