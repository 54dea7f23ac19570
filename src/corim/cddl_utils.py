"""CDDL (Concise Data Definition Language) utilities wrapper.

This module provides a unified interface for CDDL validation operations,
abstracting the underlying zcbor library implementation.
"""

import logging
from typing import Any, Optional

import zcbor  # type: ignore[import-untyped]

from . import cbor_utils

logger = logging.getLogger(__name__)


class CDDLValidator:
    """CDDL schema validator using zcbor."""

    def __init__(self, schema: str):
        """Initialize with CDDL schema string.

        Args:
            schema: CDDL schema string
        """
        self.schema = schema
        self.validator: Optional[zcbor.DataTranslator] = None
        self.error: Optional[str] = None
        self._compile_schema()

    def _compile_schema(self) -> None:
        """Compile the CDDL schema."""
        try:
            self.validator = zcbor.DataTranslator.from_cddl(self.schema, default_max_qty=100)
        except Exception as e:
            logger.warning("failed to compile CDDL schema with zcbor: %s", e)
            self.error = f"compiling CDDL schema: {e}"
            self.validator = None

    def rules(self) -> list[str]:
        """Names of the rules defined by the compiled schema."""
        if not self.validator:
            return []
        return sorted(self.validator.my_types)

    def check_obj(self, obj: Any, type_name: str) -> None:
        """Check a decoded CBOR object against a CDDL rule.

        Args:
            obj: Python object as returned by ``cbor_utils.decode``
            type_name: CDDL rule name to validate against

        Raises:
            ValueError: If the schema did not compile, the rule is unknown or
                the object does not match the rule
        """
        if not self.validator:
            raise ValueError(self.error or "no CDDL schema")
        if type_name not in self.validator.my_types:
            raise ValueError(f"unknown CDDL rule: {type_name}")
        try:
            self.validator.my_types[type_name].validate_obj(obj)
        except Exception as e:
            raise ValueError(f"CDDL validation against {type_name} failed: {e}") from e

    def check(self, cbor_data: bytes, type_name: str) -> None:
        """Check CBOR data against a CDDL rule.

        Raises:
            ValueError: If the data is not well-formed CBOR or does not
                match the rule
        """
        self.check_obj(cbor_utils.decode(cbor_data), type_name)

    def validate(self, cbor_data: bytes, type_name: str) -> bool:
        """Validate CBOR data against CDDL schema.

        Args:
            cbor_data: CBOR encoded data to validate
            type_name: CDDL type name to validate against

        Returns:
            True if valid according to schema
        """
        try:
            self.check(cbor_data, type_name)
            return True
        except ValueError as e:
            logger.debug("%s", e)
            return False

    def validate_obj(self, obj: Any, type_name: str) -> bool:
        """Validate Python object against CDDL schema.

        Args:
            obj: Python object to validate
            type_name: CDDL type name to validate against

        Returns:
            True if valid according to schema
        """
        try:
            self.check_obj(obj, type_name)
            return True
        except ValueError as e:
            logger.debug("%s", e)
            return False


def create_validator(schema: str) -> CDDLValidator:
    """Create a CDDL validator instance.

    Args:
        schema: CDDL schema string

    Returns:
        CDDLValidator instance
    """
    return CDDLValidator(schema)


def validate_cbor(cbor_data: bytes, schema: str, type_name: str) -> bool:
    """Validate CBOR data against CDDL schema (convenience function)."""
    return create_validator(schema).validate(cbor_data, type_name)
