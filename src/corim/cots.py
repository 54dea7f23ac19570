"""Concise Trust Anchor Stores (CoTS).

A CoTS binds a set of trust anchors (and optionally CA certificates) to the
environments, software or named stores that should use them, with optional
constraints on the EAT/CWT claims a verifier may accept under them.
"""

import dataclasses
import enum
from typing import Any, Optional, Union

from . import cbor_utils
from .comid import TagIdentity
from .coswid import AbbreviatedSwidTag, NamedCodeKind, TagID
from .encoding import (
    BOOL,
    BYTES,
    FLOAT,
    INT,
    TEXT,
    UINT,
    JSONValue,
    Record,
    cbor_field,
    extensions_field,
    json_dumps,
    json_loads,
    type_name,
)
from .environment import Environment
from .extensions import Extensible, Extensions
from .identifiers import Profile


class TaFormat(enum.IntEnum):
    CERTIFICATE = 0
    TRUST_ANCHOR_INFO = 1
    SUBJECT_PUBLIC_KEY_INFO = 2

    @property
    def json_name(self) -> str:
        return {0: "cert", 1: "ta", 2: "spki"}[self.value]


TA_FORMAT = NamedCodeKind("trust anchor format", TaFormat)


@dataclasses.dataclass
class TrustAnchor(Record):
    """``[format, data]``."""

    _toarray = True

    format: Any = cbor_field(0, "format", TA_FORMAT, omitempty=False, default=TaFormat.CERTIFICATE)
    data: bytes = cbor_field(1, "data", BYTES, omitempty=False, default=b"")

    def valid(self) -> None:
        if not self.data:
            raise ValueError("empty trust anchor data")


@dataclasses.dataclass
class TasAndCas(Record):
    """``{0: [trust-anchor...], ? 1: [ca-cert...]}``."""

    tas: list = cbor_field(0, "tas", [TrustAnchor], omitempty=False, default_factory=list)
    cas: list = cbor_field(1, "cas", [BYTES], default_factory=list)

    def add_ta_cert(self, cert: bytes) -> "TasAndCas":
        self.tas.append(TrustAnchor(TaFormat.CERTIFICATE, cert))
        return self

    def add_ca_cert(self, cert: bytes) -> "TasAndCas":
        self.cas.append(cert)
        return self

    def valid(self) -> None:
        if not self.tas:
            raise ValueError("empty TasAndCas")
        for i, ta in enumerate(self.tas):
            try:
                ta.valid()
            except ValueError as err:
                raise ValueError(f"invalid trust anchor at index {i}: {err}") from err


@dataclasses.dataclass
class Location(Record):
    """EAT location claim."""

    latitude: Optional[float] = cbor_field(1, "lat", FLOAT)
    longitude: Optional[float] = cbor_field(2, "long", FLOAT)
    altitude: Optional[float] = cbor_field(3, "alt", FLOAT)
    accuracy: Optional[float] = cbor_field(4, "accry", FLOAT)
    altitude_accuracy: Optional[float] = cbor_field(5, "alt-accry", FLOAT)
    heading: Optional[float] = cbor_field(6, "heading", FLOAT)
    speed: Optional[float] = cbor_field(7, "speed", FLOAT)


@dataclasses.dataclass
class EatCWTClaim(Extensible, Record):
    """A set of EAT and CWT claims used to constrain a trust anchor.

    Claims without a dedicated field are cached and re-emitted unchanged.
    """

    extension_points = ("EatCWTClaim",)

    iss: Optional[str] = cbor_field(1, "iss", TEXT)
    sub: Optional[str] = cbor_field(2, "sub", TEXT)
    aud: Optional[str] = cbor_field(3, "aud", TEXT)
    exp: Optional[int] = cbor_field(4, "exp", INT)
    nbf: Optional[int] = cbor_field(5, "nbf", INT)
    iat: Optional[int] = cbor_field(6, "iat", INT)
    cti: Optional[bytes] = cbor_field(7, "cti", BYTES)
    nonce: Optional[bytes] = cbor_field(10, "nonce", BYTES)
    ueid: Optional[bytes] = cbor_field(11, "ueid", BYTES)
    origination: Optional[str] = cbor_field(12, "origination", TEXT)
    oemid: Optional[bytes] = cbor_field(13, "oemid", BYTES)
    security_level: Optional[int] = cbor_field(14, "security-level", UINT)
    secure_boot: Optional[bool] = cbor_field(15, "secure-boot", BOOL)
    debug_disable: Optional[int] = cbor_field(16, "debug-disable", UINT)
    location: Optional[Location] = cbor_field(17, "location", Location)
    profile: Optional[Profile] = cbor_field(18, "eat-profile", Profile)
    uptime: Optional[int] = cbor_field(19, "uptime", UINT)
    hardware_model: Optional[bytes] = cbor_field(259, "hwmodel", BYTES)
    extensions: Extensions = extensions_field()


@dataclasses.dataclass
class EnvironmentGroup(Record):
    """``{? 1: environment, ? 2: abbreviated-swid-tag, ? 3: named-ta-store}``."""

    environment: Optional[Environment] = cbor_field(1, "environment", Environment)
    swid_tag: Optional[AbbreviatedSwidTag] = cbor_field(2, "swidtag", AbbreviatedSwidTag)
    named_ta_store: Optional[str] = cbor_field(3, "namedtastore", TEXT)

    def valid(self) -> None:
        if self.environment is None and self.swid_tag is None and self.named_ta_store is None:
            raise ValueError("empty environment group")
        if self.environment is not None:
            try:
                self.environment.valid()
            except ValueError as err:
                raise ValueError(f"invalid environment: {err}") from err
        if self.swid_tag is not None:
            try:
                self.swid_tag.valid()
            except ValueError as err:
                raise ValueError(f"invalid swidtag: {err}") from err


@dataclasses.dataclass
class ConciseTaStore(Record):
    """concise-ta-store-map."""

    language: Optional[str] = cbor_field(0, "language", TEXT)
    tag_identity: Optional[TagIdentity] = cbor_field(1, "tag-identity", TagIdentity)
    environments: list = cbor_field(
        2, "environments", [EnvironmentGroup], omitempty=False, default_factory=list
    )
    purposes: list = cbor_field(3, "purposes", [TEXT], default_factory=list)
    perm_claims: list = cbor_field(4, "permclaims", [EatCWTClaim], default_factory=list)
    excl_claims: list = cbor_field(5, "exclclaims", [EatCWTClaim], default_factory=list)
    keys: Optional[TasAndCas] = cbor_field(6, "keys", TasAndCas, omitempty=False)

    def set_language(self, language: str) -> "ConciseTaStore":
        self.language = language
        return self

    def set_tag_identity(self, tag_id: Any, version: Optional[int] = None) -> "ConciseTaStore":
        self.tag_identity = TagIdentity(TagID.from_value(tag_id), version or 0)
        return self

    def add_environment_group(self, group: EnvironmentGroup) -> "ConciseTaStore":
        self.environments.append(group)
        return self

    def add_purpose(self, purpose: str) -> "ConciseTaStore":
        self.purposes.append(purpose)
        return self

    def add_perm_claims(self, claim: EatCWTClaim) -> "ConciseTaStore":
        self.perm_claims.append(claim)
        return self

    def add_excl_claims(self, claim: EatCWTClaim) -> "ConciseTaStore":
        self.excl_claims.append(claim)
        return self

    def set_keys(self, keys: TasAndCas) -> "ConciseTaStore":
        self.keys = keys
        return self

    def valid(self) -> None:
        if not self.environments:
            raise ValueError("environmentGroups must be present")
        for i, group in enumerate(self.environments):
            try:
                group.valid()
            except ValueError as err:
                raise ValueError(f"invalid environmentGroups: group at index {i}: {err}") from err
        if self.tag_identity is not None:
            try:
                self.tag_identity.valid()
            except ValueError as err:
                raise ValueError(f"invalid TagIdentity: {err}") from err
        if self.keys is None or not self.keys.tas:
            raise ValueError("empty Keys")
        try:
            self.keys.valid()
        except ValueError as err:
            raise ValueError(f"invalid Keys: {err}") from err

    def to_tagged_cbor(self) -> bytes:
        """Encode as ``#6.507(concise-ta-store-map)`` for embedding in a CoRIM."""
        return cbor_utils.tag_prefix(cbor_utils.TAG_COTS) + self.to_cbor()

    def from_tagged_cbor(self, data: bytes) -> "ConciseTaStore":
        """Populate from ``#6.507(concise-ta-store-map)``, requiring the tag head."""
        self.from_cbor(cbor_utils.strip_tag_prefix(data, cbor_utils.TAG_COTS, "CoTS"))
        return self


class ConciseTaStores(list):
    """Non-empty array of trust anchor stores."""

    def add(self, store: ConciseTaStore) -> "ConciseTaStores":
        store.valid()
        self.append(store)
        return self

    def valid(self) -> None:
        if not self:
            raise ValueError("empty concise-ta-stores")
        for i, store in enumerate(self):
            try:
                store.valid()
            except ValueError as err:
                raise ValueError(f"bad ConciseTaStore group at index {i}: {err}") from err

    def to_cbor_value(self) -> list:
        return [store.to_cbor_value() for store in self]

    @classmethod
    def from_cbor_value(cls, data: Any) -> "ConciseTaStores":
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"expected an array of stores, got {type_name(data)}")
        return cls(ConciseTaStore.from_cbor_value(item) for item in data)

    def to_json_value(self) -> list:
        return [store.to_json_value() for store in self]

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "ConciseTaStores":
        if not isinstance(data, list):
            raise ValueError(f"expected an array of stores, got {type_name(data)}")
        return cls(ConciseTaStore.from_json_value(item) for item in data)

    def to_cbor(self) -> bytes:
        self.valid()
        return cbor_utils.encode(self.to_cbor_value())

    def from_cbor(self, data: bytes) -> "ConciseTaStores":
        self[:] = self.from_cbor_value(cbor_utils.decode(data))
        self.valid()
        return self

    def to_json(self, indent: Optional[int] = None) -> str:
        self.valid()
        return json_dumps(self.to_json_value(), indent=indent)

    def from_json(self, data: Union[str, bytes]) -> "ConciseTaStores":
        self[:] = self.from_json_value(json_loads(data))
        self.valid()
        return self
