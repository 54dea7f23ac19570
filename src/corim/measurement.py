"""Measurements: a measured element key paired with a measurement-values map.

The measurement-values map (:class:`Mval`) is the main extension point of a
CoMID: profiles add their own fields to it, and to the operational flags map
it carries.
"""

import dataclasses
import enum
import ipaddress
import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from . import cbor_utils
from .cryptokeys import CryptoKey, CryptoKeys
from .digests import Digests, HashEntry, valid_hash_entry
from .encoding import (
    BOOL,
    BYTES,
    TEXT,
    JSONValue,
    Kind,
    Record,
    cbor_field,
    extensions_field,
    type_name,
)
from .expressions import NumericExpression, NumericExpressionVariant, numeric_expression
from .extensions import Collection, Extensible, Extensions, Map, UnexpectedPointError
from .identifiers import (
    UUID_BYTES,
    BytesVariant,
    OIDVariant,
    StringVariant,
    UintVariant,
    UUIDVariant,
    check_ueid,
    check_uuid,
    variant_factory,
)
from .typechoice import RecordVariant, TypeChoice, Variant

logger = logging.getLogger(__name__)


# Version


class VersionScheme(enum.IntEnum):
    """CoSWID version schemes (RFC 9393)."""

    MULTIPART_NUMERIC = 1
    MULTIPART_NUMERIC_SUFFIX = 2
    ALPHANUMERIC = 3
    DECIMAL = 4
    SEMVER = 16384


_SCHEME_NAMES = {
    VersionScheme.MULTIPART_NUMERIC: "multipartnumeric",
    VersionScheme.MULTIPART_NUMERIC_SUFFIX: "multipartnumeric+suffix",
    VersionScheme.ALPHANUMERIC: "alphanumeric",
    VersionScheme.DECIMAL: "decimal",
    VersionScheme.SEMVER: "semver",
}


class _VersionSchemeKind(Kind):
    """Version scheme: CBOR int, JSON registered name (or int for private codes)."""

    name = "version-scheme"

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            for scheme, scheme_name in _SCHEME_NAMES.items():
                if scheme_name == value:
                    return scheme
            raise ValueError(f"unknown version scheme {value!r}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"expected a version scheme, got {type_name(value)}")
        try:
            return VersionScheme(value)
        except ValueError:
            return value

    def to_cbor(self, value: Any) -> Any:
        return int(self.coerce(value))

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.coerce(data)

    def to_json(self, value: Any) -> JSONValue:
        value = self.coerce(value)
        return _SCHEME_NAMES.get(value, int(value))

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self.coerce(data)


VERSION_SCHEME = _VersionSchemeKind()


@dataclasses.dataclass
class Version(Record):
    """version-map: ``{0: version, ? 1: version-scheme}``."""

    version: str = cbor_field(0, "value", TEXT, omitempty=False, default="")
    scheme: Optional[int] = cbor_field(1, "scheme", VERSION_SCHEME)

    def valid(self) -> None:
        if not self.version:
            raise ValueError("empty version")


# SVN


class _SVNValueVariant(Variant):
    def valid(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValueError(f"expected an unsigned integer, got {type_name(self.value)}")
        if self.value < 0:
            raise ValueError(f"negative SVN {self.value}")

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "_SVNValueVariant":
        if isinstance(data, bool) or not isinstance(data, int):
            raise ValueError(f"expected an unsigned integer, got {type_name(data)}")
        return cls(data)


class ExactSVNVariant(_SVNValueVariant):
    """SVN that must match exactly (tag 552)."""

    type_name = "exact-value"
    cbor_tag = cbor_utils.TAG_SVN


class MinSVNVariant(_SVNValueVariant):
    """Lowest acceptable SVN (tag 553)."""

    type_name = "min-value"
    cbor_tag = cbor_utils.TAG_MIN_SVN


class SVN(TypeChoice):
    """Security version number: exact, minimum, numeric expression or bare uint."""

    choice_name = "SVN"
    label = "SVN"

    @classmethod
    def exact(cls, value: int) -> "SVN":
        return cls.new(value, ExactSVNVariant.type_name)

    @classmethod
    def minimum(cls, value: int) -> "SVN":
        return cls.new(value, MinSVNVariant.type_name)

    @classmethod
    def expression(cls, operator: int, operand: Union[int, float]) -> "SVN":
        return cls(NumericExpressionVariant(numeric_expression(operator, operand)))

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "SVN":
        # {"cmp": "==" | ">=", "value": n} is the older JSON form
        if isinstance(data, dict) and "cmp" in data:
            cmp = data.get("cmp")
            value = data.get("value")
            if cmp == "==":
                return cls.exact(value)
            if cmp == ">=":
                return cls.minimum(value)
            raise ValueError(f"unknown comparison operator {cmp}")
        return super().from_json_value(data)


for _tag, _variant in (
    (cbor_utils.TAG_SVN, ExactSVNVariant),
    (cbor_utils.TAG_MIN_SVN, MinSVNVariant),
    (cbor_utils.TAG_NUMERIC_EXPRESSION, NumericExpressionVariant),
    (None, UintVariant),
):
    SVN.register_type(_tag, variant_factory(_variant))
del _tag, _variant


def register_svn_type(tag: Optional[int], factory: Any) -> None:
    SVN.register_type(tag, factory)


# Raw values


@dataclasses.dataclass
class MaskedRawValue(Record):
    """``[value, mask]`` where only the bits set in mask are compared."""

    _toarray = True

    value: bytes = cbor_field(0, "value", BYTES, omitempty=False, default=b"")
    mask: bytes = cbor_field(1, "mask", BYTES, omitempty=False, default=b"")

    def valid(self) -> None:
        if not self.value:
            raise ValueError("empty raw value")
        if len(self.value) != len(self.mask):
            raise ValueError(
                f"mask length {len(self.mask)} does not match value length {len(self.value)}"
            )


class MaskedRawValueVariant(RecordVariant):
    type_name = "masked-raw-value"
    cbor_tag = cbor_utils.TAG_MASKED_RAW_VALUE
    record_type = MaskedRawValue


class RawValue(TypeChoice):
    choice_name = "raw value"
    label = "raw-value"

    @classmethod
    def from_bytes(cls, value: bytes, mask: Optional[bytes] = None) -> "RawValue":
        if mask is None:
            return cls.new(value, BytesVariant.type_name)
        return cls(MaskedRawValueVariant(MaskedRawValue(value, mask)))


RawValue.register_type(cbor_utils.TAG_BYTES, variant_factory(BytesVariant))
RawValue.register_type(cbor_utils.TAG_MASKED_RAW_VALUE, variant_factory(MaskedRawValueVariant))


def register_raw_value_type(tag: Optional[int], factory: Any) -> None:
    RawValue.register_type(tag, factory)


# Operational flags


class Flag(enum.IntEnum):
    IS_CONFIGURED = 0
    IS_SECURE = 1
    IS_RECOVERY = 2
    IS_DEBUG = 3
    IS_REPLAY_PROTECTED = 4
    IS_INTEGRITY_PROTECTED = 5
    IS_RUNTIME_MEASURED = 6
    IS_IMMUTABLE = 7
    IS_TCB = 8


_FLAG_FIELDS = {
    Flag.IS_CONFIGURED: "is_configured",
    Flag.IS_SECURE: "is_secure",
    Flag.IS_RECOVERY: "is_recovery",
    Flag.IS_DEBUG: "is_debug",
    Flag.IS_REPLAY_PROTECTED: "is_replay_protected",
    Flag.IS_INTEGRITY_PROTECTED: "is_integrity_protected",
    Flag.IS_RUNTIME_MEASURED: "is_runtime_measured",
    Flag.IS_IMMUTABLE: "is_immutable",
    Flag.IS_TCB: "is_tcb",
}


@dataclasses.dataclass
class FlagsMap(Extensible, Record):
    """Boolean operational modes of the measured environment.

    A flag left as None means the mode is unknown.
    """

    extension_points = ("Flags",)

    is_configured: Optional[bool] = cbor_field(0, "is-configured", BOOL)
    is_secure: Optional[bool] = cbor_field(1, "is-secure", BOOL)
    is_recovery: Optional[bool] = cbor_field(2, "is-recovery", BOOL)
    is_debug: Optional[bool] = cbor_field(3, "is-debug", BOOL)
    is_replay_protected: Optional[bool] = cbor_field(4, "is-replay-protected", BOOL)
    is_integrity_protected: Optional[bool] = cbor_field(5, "is-integrity-protected", BOOL)
    is_runtime_measured: Optional[bool] = cbor_field(6, "is-runtime-meas", BOOL)
    is_immutable: Optional[bool] = cbor_field(7, "is-immutable", BOOL)
    is_tcb: Optional[bool] = cbor_field(8, "is-tcb", BOOL)
    extensions: Extensions = extensions_field()

    def any_set(self) -> bool:
        if any(getattr(self, name) is not None for name in _FLAG_FIELDS.values()):
            return True
        return not self.extensions.is_empty()

    def set_true(self, *flags: Flag) -> "FlagsMap":
        for flag in flags:
            setattr(self, _FLAG_FIELDS[Flag(flag)], True)
        return self

    def set_false(self, *flags: Flag) -> "FlagsMap":
        for flag in flags:
            setattr(self, _FLAG_FIELDS[Flag(flag)], False)
        return self

    def clear(self, *flags: Flag) -> "FlagsMap":
        for flag in flags:
            setattr(self, _FLAG_FIELDS[Flag(flag)], None)
        return self

    def get(self, flag: Flag) -> Optional[bool]:
        return getattr(self, _FLAG_FIELDS[Flag(flag)])

    def valid(self) -> None:
        self.extensions.valid()
        self.extensions.constrain("constrain_flags_map", self)


# MAC and IP addresses


class _MACAddrKind(Kind):
    """EUI-48 or EUI-64 address; JSON uses colon (or dash) separated hex."""

    name = "mac-addr"

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            parts = value.replace("-", ":").split(":")
            try:
                value = bytes(int(part, 16) for part in parts if len(part) == 2)
            except ValueError:
                raise ValueError(f"bad MAC address {value!r}") from None
            if len(value) != len(parts):
                raise ValueError("bad MAC address: malformed octet")
        if not isinstance(value, bytes):
            raise ValueError(f"expected a MAC address, got {type_name(value)}")
        if len(value) not in (6, 8):
            raise ValueError(f"invalid MAC address length: {len(value)}")
        return value

    def to_cbor(self, value: Any) -> Any:
        return self.coerce(value)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.coerce(data)

    def to_json(self, value: Any) -> JSONValue:
        return ":".join(f"{octet:02x}" for octet in self.coerce(value))

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"expected a MAC address string, got {type_name(data)}")
        return self.coerce(data)


class _IPAddrKind(Kind):
    """IPv4 or IPv6 address; CBOR carries the 4 or 16 raw bytes."""

    name = "ip-addr"

    def coerce(self, value: Any) -> Any:
        if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            return value
        if isinstance(value, bytes) and len(value) not in (4, 16):
            raise ValueError(f"invalid IP address length: {len(value)}")
        if isinstance(value, (bytes, str)):
            try:
                return ipaddress.ip_address(value)
            except ValueError as err:
                raise ValueError(f"bad IP address: {err}") from err
        raise ValueError(f"expected an IP address, got {type_name(value)}")

    def to_cbor(self, value: Any) -> Any:
        return self.coerce(value).packed

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        if not isinstance(data, bytes):
            raise ValueError(f"expected IP address bytes, got {type_name(data)}")
        return self.coerce(data)

    def to_json(self, value: Any) -> JSONValue:
        return str(self.coerce(value))

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        if not isinstance(data, str):
            raise ValueError(f"expected an IP address string, got {type_name(data)}")
        return self.coerce(data)


MAC_ADDR = _MACAddrKind()
IP_ADDR = _IPAddrKind()


# Integrity registers

UINT_INDEX = "uint"
TEXT_INDEX = "text"


class IntegrityRegisters:
    """Map of register index (uint or text) to the digests it holds."""

    def __init__(self, registers: Optional[dict[Union[int, str], Digests]] = None):
        self.registers: dict[Union[int, str], Digests] = {}
        for index, digests in (registers or {}).items():
            self.add_digests(index, digests)

    def __repr__(self) -> str:
        return f"IntegrityRegisters({self.registers!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntegrityRegisters):
            return NotImplemented
        return self.registers == other.registers

    def __len__(self) -> int:
        return len(self.registers)

    def is_empty_collection(self) -> bool:
        return not self.registers

    @staticmethod
    def _check_index(index: Any) -> None:
        if isinstance(index, bool) or not isinstance(index, (int, str)):
            raise ValueError(f"unexpected type for index: {type_name(index)}")
        if isinstance(index, int) and index < 0:
            raise ValueError("invalid negative integer key")

    def add_digest(self, index: Union[int, str], entry: HashEntry) -> "IntegrityRegisters":
        self._check_index(index)
        self.registers.setdefault(index, Digests()).append(entry)
        return self

    def add_digests(self, index: Union[int, str], digests: list) -> "IntegrityRegisters":
        """Append digests to a register.

        Raises:
            ValueError: If digests is empty or the index is not a uint or text
        """
        if not digests:
            raise ValueError("no digests to add")
        for entry in digests:
            self.add_digest(index, entry)
        return self

    def valid(self) -> None:
        for index, digests in self.registers.items():
            if not digests:
                raise ValueError(f"no digests in register {index!r}")
            try:
                digests.valid()
            except ValueError as err:
                raise ValueError(f"register {index!r}: {err}") from err

    def to_cbor_value(self) -> dict:
        return {index: digests.to_cbor_value() for index, digests in self.registers.items()}

    @classmethod
    def from_cbor_value(cls, data: Any) -> "IntegrityRegisters":
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a map of registers, got {type_name(data)}")
        regs = cls()
        for index, digests in data.items():
            regs.add_digests(index, Digests.from_cbor_value(digests))
        return regs

    def to_json_value(self) -> dict:
        out = {}
        for index, digests in self.registers.items():
            key_type = TEXT_INDEX if isinstance(index, str) else UINT_INDEX
            out[str(index)] = {"key_type": key_type, "value": digests.to_json_value()}
        return out

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "IntegrityRegisters":
        if not isinstance(data, dict):
            raise ValueError(f"register map decoding failure: got {type_name(data)}")
        regs = cls()
        for key, entry in data.items():
            if not isinstance(entry, dict):
                raise ValueError(f"unable to unmarshal register {key!r}: got {type_name(entry)}")
            key_type = entry.get("key_type")
            if key_type == UINT_INDEX:
                if not key.isdigit():
                    raise ValueError(f"unable to convert key to uint: {key!r}")
                index: Union[int, str] = int(key)
            elif key_type == TEXT_INDEX:
                index = key
            else:
                raise ValueError(f"unexpected key type for index: {key_type}")
            try:
                regs.add_digests(index, Digests.from_json_value(entry.get("value")))
            except ValueError as err:
                raise ValueError(f"unable to add digests into register set: {err}") from err
        return regs


# Measurement values


@dataclasses.dataclass
class Mval(Extensible, Record):
    """measurement-values-map.

    Hosts two extension points: ``Mval`` for fields of the map itself and
    ``Flags`` for fields of its operational flags map.
    """

    extension_points = ("Mval", "Flags")

    version: Optional[Version] = cbor_field(0, "version", Version)
    svn: Optional[SVN] = cbor_field(1, "svn", SVN)
    digests: Optional[Digests] = cbor_field(2, "digests", Digests)
    flags: Optional[FlagsMap] = cbor_field(3, "flags", FlagsMap)
    raw_value: Optional[RawValue] = cbor_field(4, "raw-value", RawValue)
    raw_value_mask: Optional[bytes] = cbor_field(5, "raw-value-mask", BYTES)
    mac_addr: Optional[bytes] = cbor_field(6, "mac-addr", MAC_ADDR)
    ip_addr: Any = cbor_field(7, "ip-addr", IP_ADDR)
    serial_number: Optional[str] = cbor_field(8, "serial-number", TEXT)
    ueid: Optional[bytes] = cbor_field(9, "ueid", BYTES)
    uuid: Any = cbor_field(10, "uuid", UUID_BYTES)
    name: Optional[str] = cbor_field(11, "name", TEXT)
    cryptokeys: Optional[CryptoKeys] = cbor_field(13, "cryptokeys", CryptoKeys)
    integrity_registers: Optional[IntegrityRegisters] = cbor_field(
        14, "integrity-registers", IntegrityRegisters
    )
    extensions: Extensions = extensions_field()
    flags_extension: Optional[Record] = dataclasses.field(
        default=None, repr=False, compare=False
    )

    def register_extensions(self, exts: Map) -> None:
        """Register ``Mval`` and ``Flags`` extension values.

        Raises:
            UnexpectedPointError: For any other point
        """
        for point, value in exts.items():
            if point == "Mval":
                self.extensions.register(value)
            elif point == "Flags":
                self.flags_extension = value
                if self.flags is not None:
                    self.flags.register_extensions(Map(Flags=value))
            else:
                raise UnexpectedPointError(point)
        logger.debug("Registered measurement value extensions for %s", sorted(exts))

    def _new_flags(self) -> FlagsMap:
        flags = FlagsMap()
        if self.flags_extension is not None:
            flags.register_extensions(Map(Flags=type(self.flags_extension)()))
        return flags

    def _field_template(self, name: str) -> Any:
        if name == "flags" and self.flags is None:
            return self._new_flags()
        return super()._field_template(name)

    def ensure_flags(self) -> FlagsMap:
        """Return the flags map, creating it (with any registered extension) if unset."""
        if self.flags is None:
            self.flags = self._new_flags()
        return self.flags

    def is_set(self) -> bool:
        for wf in self.wire_fields():
            value = getattr(self, wf.name)
            if isinstance(value, FlagsMap):
                if value.any_set():
                    return True
            elif not wf.is_empty(value):
                return True
        return not self.extensions.is_empty() or any(self.extensions.cached.values())

    def valid(self) -> None:
        if not self.is_set():
            raise ValueError("no measurement value set")

        checks = (
            ("version", self.version),
            ("svn", self.svn),
            ("digests", self.digests),
            ("flags", self.flags),
            ("raw-value", self.raw_value),
            ("cryptokeys", self.cryptokeys),
            ("integrity-registers", self.integrity_registers),
        )
        for what, value in checks:
            if value is None:
                continue
            try:
                value.valid()
            except ValueError as err:
                raise ValueError(f"{what}: {err}") from err

        if self.mac_addr is not None:
            MAC_ADDR.coerce(self.mac_addr)
        if self.ip_addr is not None:
            IP_ADDR.coerce(self.ip_addr)
        if self.ueid is not None:
            check_ueid(self.ueid)
        if self.uuid is not None:
            check_uuid(UUID_BYTES.coerce(self.uuid))

        self.extensions.valid()
        self.extensions.constrain("constrain_mval", self)


# Measured element keys


@dataclasses.dataclass
class PSARefValID(Record):
    """PSA software component identifier: label, version and signer ID."""

    label: Optional[str] = cbor_field(1, "label", TEXT)
    version: Optional[str] = cbor_field(4, "version", TEXT)
    signer_id: Optional[bytes] = cbor_field(5, "signer-id", BYTES, omitempty=False)

    def valid(self) -> None:
        if self.signer_id is None:
            raise ValueError("missing mandatory signer ID")
        if len(self.signer_id) not in (32, 48, 64):
            raise ValueError(f"want 32, 48 or 64 bytes, got {len(self.signer_id)}")


class PSARefValIDVariant(RecordVariant):
    type_name = "psa.refval-id"
    cbor_tag = cbor_utils.TAG_PSA_REFVAL_ID
    record_type = PSARefValID


class Mkey(TypeChoice):
    """Measured element identifier ($measured-element-type-choice)."""

    choice_name = "measurement key"
    label = "measurement-key"


for _tag, _variant in (
    (cbor_utils.TAG_UUID, UUIDVariant),
    (cbor_utils.TAG_OID, OIDVariant),
    (cbor_utils.TAG_PSA_REFVAL_ID, PSARefValIDVariant),
    (None, UintVariant),
    (None, StringVariant),
):
    Mkey.register_type(_tag, variant_factory(_variant))
del _tag, _variant


def register_mkey_type(tag: Optional[int], factory: Any) -> None:
    """Add a profile-defined measured element type."""
    Mkey.register_type(tag, factory)


# Measurement


@dataclasses.dataclass
class Measurement(Record):
    """measurement-map: ``{? 0: mkey, 1: mval, ? 2: authorized-by}``.

    Setters return the measurement so that calls can be chained, and raise
    ValueError for values that would not validate.
    """

    key: Optional[Mkey] = cbor_field(0, "key", Mkey)
    mval: Mval = cbor_field(1, "value", Mval, omitempty=False, default_factory=Mval)
    authorized_by: Optional[CryptoKeys] = cbor_field(2, "authorized-by", CryptoKeys)

    def register_extensions(self, exts: Map) -> None:
        self.mval.register_extensions(exts)

    def get_extensions(self) -> Optional[Record]:
        return self.mval.get_extensions()

    def valid(self) -> None:
        if self.key is not None:
            try:
                self.key.valid()
            except ValueError as err:
                raise ValueError(f"invalid measurement key: {err}") from err
        self.mval.valid()
        if self.authorized_by is not None:
            try:
                self.authorized_by.valid()
            except ValueError as err:
                raise ValueError(f"authorized-by: {err}") from err

    def set_key(self, value: Any, key_type: str) -> "Measurement":
        self.key = Mkey.new(value, key_type)
        return self

    def set_key_uuid(self, value: Any) -> "Measurement":
        return self.set_key(value, UUIDVariant.type_name)

    def set_key_psa_refval_id(self, value: PSARefValID) -> "Measurement":
        return self.set_key(value, PSARefValIDVariant.type_name)

    def set_version(self, version: str, scheme: Optional[int] = None) -> "Measurement":
        v = Version(version, VERSION_SCHEME.coerce(scheme) if scheme is not None else None)
        v.valid()
        self.mval.version = v
        return self

    def set_svn(self, value: int) -> "Measurement":
        self.mval.svn = SVN.exact(value)
        return self

    def set_min_svn(self, value: int) -> "Measurement":
        self.mval.svn = SVN.minimum(value)
        return self

    def set_svn_expression(self, expr: NumericExpression) -> "Measurement":
        expr.valid()
        self.mval.svn = SVN(NumericExpressionVariant(expr))
        return self

    def add_digest(self, alg_id: int, value: bytes) -> "Measurement":
        valid_hash_entry(alg_id, value)
        if self.mval.digests is None:
            self.mval.digests = Digests()
        self.mval.digests.add_digest(alg_id, value)
        return self

    def set_flags_true(self, *flags: Flag) -> "Measurement":
        self.mval.ensure_flags().set_true(*flags)
        return self

    def set_flags_false(self, *flags: Flag) -> "Measurement":
        self.mval.ensure_flags().set_false(*flags)
        return self

    def set_raw_value_bytes(self, value: bytes, mask: Optional[bytes] = None) -> "Measurement":
        self.mval.raw_value = RawValue.from_bytes(value, mask)
        return self

    def set_mac_addr(self, value: Union[bytes, str]) -> "Measurement":
        self.mval.mac_addr = MAC_ADDR.coerce(value)
        return self

    def set_ip_addr(self, value: Any) -> "Measurement":
        self.mval.ip_addr = IP_ADDR.coerce(value)
        return self

    def set_serial_number(self, value: str) -> "Measurement":
        self.mval.serial_number = TEXT.coerce(value)
        return self

    def set_ueid(self, value: bytes) -> "Measurement":
        check_ueid(value)
        self.mval.ueid = value
        return self

    def set_uuid(self, value: Any) -> "Measurement":
        u = UUID_BYTES.coerce(value)
        check_uuid(u)
        self.mval.uuid = u
        return self

    def set_name(self, value: str) -> "Measurement":
        self.mval.name = TEXT.coerce(value)
        return self

    def add_crypto_key(self, key: CryptoKey) -> "Measurement":
        key.valid()
        if self.mval.cryptokeys is None:
            self.mval.cryptokeys = CryptoKeys()
        self.mval.cryptokeys.add(key)
        return self

    def add_integrity_digests(self, index: Union[int, str], digests: list) -> "Measurement":
        if self.mval.integrity_registers is None:
            self.mval.integrity_registers = IntegrityRegisters()
        self.mval.integrity_registers.add_digests(index, digests)
        return self

    def add_authorized_by(self, key: CryptoKey) -> "Measurement":
        key.valid()
        if self.authorized_by is None:
            self.authorized_by = CryptoKeys()
        self.authorized_by.add(key)
        return self


class Measurements(Collection[Measurement]):
    """Ordered list of measurements sharing measurement value extensions."""

    item_type = Measurement
    item_label = "measurement"

    def valid(self) -> None:
        if not self.items:
            raise ValueError("no measurements")
        super().valid()
