"""Intel TDX profile (OID ``2.16.840.1.113741.1.16.1``).

TDX reference values, endorsed values and evidence carry TEE specific
measurement values under negative map keys. Several of them may be given
either as a plain value or as an expression to match against: a numeric
expression (tag 60010), a set of digests (tag 60020) or a set of strings
(tag 60021).

Nothing is registered on import: call :func:`register_profile` once at
start-up.
"""

import dataclasses
import datetime
import logging
from typing import Any, Optional

from . import cbor_utils, profiles
from .cryptokeys import CryptoKeys
from .digests import Digests
from .encoding import BYTES, TEXT, TIME, JSONValue, Record, cbor_field, type_name
from .expressions import (
    Operator,
    SetDigestExpression,
    SetDigestExpressionVariant,
    SetStringExpression,
    SetStringExpressionVariant,
    NumericExpressionVariant,
    numeric_expression,
)
from .extensions import Map
from .identifiers import UintVariant, variant_factory
from .typechoice import TypeChoice, Variant

logger = logging.getLogger(__name__)

PROFILE_ID = "2.16.840.1.113741.1.16.1"

TCB_COMP_SVN_COUNT = 16


# Untagged variants


class RawBytesVariant(Variant):
    """Untagged byte string, JSON base64."""

    type_name = "bytes"
    cbor_types = (bytes,)

    def valid(self) -> None:
        if not isinstance(self.value, bytes) or not self.value:
            raise ValueError("empty bytes")

    def to_json_value(self) -> JSONValue:
        return BYTES.to_json(self.value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "RawBytesVariant":
        return cls(BYTES.from_json(data))


class DigestsVariant(Variant):
    """Untagged array of digests."""

    type_name = "digest"
    cbor_types = (list, tuple)

    def valid(self) -> None:
        if not self.value:
            raise ValueError("no digests")
        self.value.valid()

    def to_bytes(self) -> bytes:
        return cbor_utils.encode(self.value.to_cbor_value())

    def payload_to_cbor(self) -> Any:
        return self.value.to_cbor_value()

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        return Digests.from_cbor_value(data)

    def to_json_value(self) -> JSONValue:
        return self.value.to_json_value()

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "DigestsVariant":
        return cls(Digests.from_json_value(data))


class StringsVariant(Variant):
    """Untagged array of text strings."""

    type_name = "string"
    cbor_types = (list, tuple)

    def valid(self) -> None:
        if not self.value:
            raise ValueError("zero len string array supplied")
        for i, item in enumerate(self.value):
            if not isinstance(item, str):
                raise ValueError(f"expected a string at index {i}, got {type_name(item)}")

    def to_bytes(self) -> bytes:
        return cbor_utils.encode(self.value)

    def payload_to_cbor(self) -> Any:
        return list(self.value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "StringsVariant":
        if not isinstance(data, list):
            raise ValueError(f"expected an array of strings, got {type_name(data)}")
        return cls(data)


# Type choices


class _NumberOrExpression(TypeChoice):
    """A uint, or a numeric expression that must use the >= operator."""

    @classmethod
    def from_uint(cls, value: int) -> "_NumberOrExpression":
        return cls.new(value, UintVariant.type_name)

    @classmethod
    def at_least(cls, value: int) -> "_NumberOrExpression":
        return cls(NumericExpressionVariant(numeric_expression(Operator.GE, value)))

    def is_expression(self) -> bool:
        return isinstance(self.value, NumericExpressionVariant)

    def valid(self) -> None:
        super().valid()
        if self.is_expression():
            expr = self.value.value
            if expr.operator != Operator.GE:
                raise ValueError(
                    f"unknown operator {expr.operator.json_name} for {self.choice_name}"
                )
            if isinstance(expr.operand, bool) or not isinstance(expr.operand, int) or expr.operand < 0:
                raise ValueError(f"unknown type {type_name(expr.operand)} for {self.choice_name}")

    def matches(self, measured: int) -> bool:
        """Compare a measured number with the reference value."""
        if self.is_expression():
            return self.value.value.matches(measured)
        return measured == self.value.value


class TeeSVN(_NumberOrExpression):
    choice_name = "TeeSVN"
    label = "TeeSVN"


class TeeTcbEvalNumber(_NumberOrExpression):
    choice_name = "TeeTcbEvalNumber"
    label = "TeeTcbEvalNumber"


class _UintOrBytes(TypeChoice):
    """A uint or a byte string."""

    @classmethod
    def from_uint(cls, value: int) -> "_UintOrBytes":
        return cls.new(value, UintVariant.type_name)

    @classmethod
    def from_bytes(cls, value: bytes) -> "_UintOrBytes":
        return cls.new(value, RawBytesVariant.type_name)


class TeeInstanceID(_UintOrBytes):
    choice_name = "TeeInstanceID"
    label = "TeeInstanceID"


class TeeISVProdID(_UintOrBytes):
    choice_name = "TeeISVProdID"
    label = "TeeISVProdID"


class TeeDigest(TypeChoice):
    """Digests, or a set-of-digests membership expression."""

    choice_name = "TeeDigest"
    label = "TeeDigest"

    @classmethod
    def from_digests(cls, digests: Digests) -> "TeeDigest":
        return cls.new(digests, DigestsVariant.type_name)

    @classmethod
    def expression(cls, operator: Operator, digests: Digests) -> "TeeDigest":
        expr = SetDigestExpression(operator, digests)
        expr.valid()
        return cls(SetDigestExpressionVariant(expr))


class _StringsOrExpression(TypeChoice):
    """Strings, or a set-of-strings membership expression."""

    @classmethod
    def from_strings(cls, values: list[str]) -> "_StringsOrExpression":
        return cls.new(list(values), StringsVariant.type_name)

    @classmethod
    def expression(cls, operator: Operator, values: list[str]) -> "_StringsOrExpression":
        expr = SetStringExpression(operator, list(values))
        expr.valid()
        return cls(SetStringExpressionVariant(expr))

    def add(self, operator: Optional[Operator], values: list[str]) -> "_StringsOrExpression":
        """Append values to the current strings or expression.

        Raises:
            ValueError: If values is empty or the operator differs from the
                expression's
        """
        if not values:
            raise ValueError(f"zero len value for {self.choice_name}")
        if isinstance(self.value, SetStringExpressionVariant):
            expr = self.value.value
            if operator != expr.operator:
                raise ValueError(
                    f"operator mis-match {self.choice_name} Op: {expr.operator}, Input Op: {operator}"
                )
            expr.values.extend(values)
        else:
            self.value.value.extend(values)
        return self


class TeeTcbStatus(_StringsOrExpression):
    choice_name = "TeeTcbStatus"
    label = "TeeTcbStatus"


class TeeAdvisoryIDs(_StringsOrExpression):
    choice_name = "TeeAdvisoryIDs"
    label = "TeeAdvisoryIDs"


for _choice in (TeeSVN, TeeTcbEvalNumber):
    _choice.register_type(None, variant_factory(UintVariant))
    _choice.register_type(
        cbor_utils.TAG_NUMERIC_EXPRESSION, variant_factory(NumericExpressionVariant)
    )
for _choice in (TeeInstanceID, TeeISVProdID):
    _choice.register_type(None, variant_factory(UintVariant))
    _choice.register_type(None, variant_factory(RawBytesVariant))
for _choice in (TeeTcbStatus, TeeAdvisoryIDs):
    _choice.register_type(None, variant_factory(StringsVariant))
    _choice.register_type(
        cbor_utils.TAG_SET_STRING_EXPRESSION, variant_factory(SetStringExpressionVariant)
    )
TeeDigest.register_type(None, variant_factory(DigestsVariant))
TeeDigest.register_type(
    cbor_utils.TAG_SET_DIGEST_EXPRESSION, variant_factory(SetDigestExpressionVariant)
)
del _choice


@dataclasses.dataclass
class MvalExtensions(Record):
    """TDX measurement value extensions (TEE measurement keys)."""

    tcb_date: Optional[datetime.datetime] = cbor_field(-72, "tcbdate", TIME)
    isv_svn: Optional[TeeSVN] = cbor_field(-73, "isvsvn", TeeSVN)
    instance_id: Optional[TeeInstanceID] = cbor_field(-77, "instanceid", TeeInstanceID)
    pce_id: Optional[str] = cbor_field(-80, "pceid", TEXT)
    misc_select: Optional[bytes] = cbor_field(-81, "miscselect", BYTES)
    attributes: Optional[bytes] = cbor_field(-82, "attributes", BYTES)
    mr_tee: Optional[TeeDigest] = cbor_field(-83, "mrtee", TeeDigest)
    mr_signer: Optional[TeeDigest] = cbor_field(-84, "mrsigner", TeeDigest)
    isv_prod_id: Optional[TeeISVProdID] = cbor_field(-85, "isvprodid", TeeISVProdID)
    tcb_eval_num: Optional[TeeTcbEvalNumber] = cbor_field(-86, "tcbevalnum", TeeTcbEvalNumber)
    tcb_status: Optional[TeeTcbStatus] = cbor_field(-88, "tcbstatus", TeeTcbStatus)
    advisory_ids: Optional[TeeAdvisoryIDs] = cbor_field(-89, "advisoryids", TeeAdvisoryIDs)
    epoch: Optional[datetime.datetime] = cbor_field(-90, "epoch", TIME)
    tee_crypto_keys: Optional[CryptoKeys] = cbor_field(-91, "teecryptokeys", CryptoKeys)
    tcb_comp_svn: Optional[list] = cbor_field(-125, "tcbcompsvn", [TeeSVN])

    def valid(self) -> None:
        for wf in self.wire_fields():
            value = getattr(self, wf.name)
            if value is None or not hasattr(value, "valid"):
                continue
            try:
                value.valid()
            except ValueError as err:
                raise ValueError(f"invalid {wf.json}: {err}") from err

        if self.tcb_comp_svn is not None:
            if len(self.tcb_comp_svn) != TCB_COMP_SVN_COUNT:
                raise ValueError(
                    f"invalid tcbcompsvn: want {TCB_COMP_SVN_COUNT} entries, "
                    f"got {len(self.tcb_comp_svn)}"
                )
            for i, svn in enumerate(self.tcb_comp_svn):
                try:
                    svn.valid()
                except ValueError as err:
                    raise ValueError(f"invalid tcbcompsvn at index {i}: {err}") from err


def extensions_map() -> Map:
    return (
        Map()
        .add("ReferenceValue", MvalExtensions())
        .add("EndorsedValue", MvalExtensions())
        .add("EvidenceTriples", MvalExtensions())
    )


def register_profile() -> profiles.ProfileManifest:
    """Register the TDX profile; calling it again returns the existing manifest."""
    manifest = profiles.get_profile_manifest(PROFILE_ID)
    if manifest is not None:
        return manifest
    manifest = profiles.register_profile(PROFILE_ID, extensions_map())
    logger.debug("TDX profile registered")
    return manifest
