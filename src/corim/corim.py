"""Concise Reference Integrity Manifests: unsigned and COSE-signed CoRIMs.

An unsigned CoRIM bundles CoMID, CoSWID and CoTS tags. Each embedded tag is
kept as a byte string holding the document's CBOR tag head followed by its
encoding, so a CoRIM can be decoded, inspected and re-encoded without
touching the tags it carries.
"""

import dataclasses
import datetime
import enum
import logging
from typing import Any, Iterator, NamedTuple, Optional

from . import cbor_utils
from .comid import Comid
from .cose_sign1 import (
    HEADER_ALG,
    HEADER_CONTENT_TYPE,
    Signer as COSESigner,
    Sign1Message,
    cose_sign1_sign,
    cose_sign1_verify,
    decode_sign1,
    verifier_from_public_key,
)
from .coswid import NamedCodeKind, SoftwareIdentity, TagID
from .cots import ConciseTaStore
from .digests import HashEntry
from .encoding import BYTES, TEXT, TIME, Record, cbor_field, extensions_field
from .extensions import Collection, Extensible, Extensions, Map, UnexpectedPointError
from .identifiers import URI, Profile, check_uri

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/rim+cbor"
HEADER_CORIM_META = 8

_TAG_NAMES = {
    cbor_utils.TAG_COMID: "CoMID",
    cbor_utils.TAG_COSWID: "CoSWID",
    cbor_utils.TAG_COTS: "CoTS",
}


class Role(enum.IntEnum):
    MANIFEST_CREATOR = 1

    @property
    def json_name(self) -> str:
        return "manifestCreator"


ROLE = NamedCodeKind("role", Role)


@dataclasses.dataclass
class Entity(Extensible, Record):
    """corim-entity-map: ``{0: name, ? 1: reg-id, 2: [role...]}``."""

    extension_points = ("CorimEntity",)

    name: str = cbor_field(0, "name", TEXT, omitempty=False, default="")
    reg_id: Optional[str] = cbor_field(1, "regid", URI)
    roles: list = cbor_field(2, "roles", [ROLE], omitempty=False, default_factory=list)
    extensions: Extensions = extensions_field()

    def valid(self) -> None:
        if not self.name:
            raise ValueError("invalid entity: empty entity-name")
        if self.reg_id is not None:
            if not self.reg_id:
                raise ValueError("invalid entity: empty reg-id")
            try:
                check_uri(self.reg_id)
            except ValueError as err:
                raise ValueError(f"invalid entity: {err}") from err
        if not self.roles:
            raise ValueError("invalid entity: empty roles")
        for i, role in enumerate(self.roles):
            if not isinstance(role, Role):
                raise ValueError(f"invalid entity: unknown role {role} at index {i}")
        self.extensions.valid()
        self.extensions.constrain("constrain_entity", self)


class Entities(Collection[Entity]):
    item_type = Entity

    def valid(self) -> None:
        for i, entity in enumerate(self):
            try:
                entity.valid()
            except ValueError as err:
                raise ValueError(f"entity at index {i}: {err}") from err


@dataclasses.dataclass
class Validity(Record):
    """validity-map: ``{? 0: not-before, 1: not-after}``."""

    not_before: Optional[datetime.datetime] = cbor_field(0, "not-before", TIME)
    not_after: Optional[datetime.datetime] = cbor_field(1, "not-after", TIME, omitempty=False)

    @classmethod
    def create(
        cls, not_after: datetime.datetime, not_before: Optional[datetime.datetime] = None
    ) -> "Validity":
        validity = cls(not_before=not_before, not_after=not_after)
        validity.valid()
        return validity

    def valid(self) -> None:
        if self.not_after is None:
            raise ValueError("missing not-after")
        if self.not_before is not None and self.not_after < self.not_before:
            delta = self.not_after - self.not_before
            raise ValueError(f"invalid not-before / not-after: negative delta ({delta})")


@dataclasses.dataclass
class Locator(Record):
    """corim-locator-map: ``{0: href, ? 1: thumbprint}``."""

    href: Optional[str] = cbor_field(0, "href", URI, omitempty=False)
    thumbprint: Optional[HashEntry] = cbor_field(1, "thumbprint", HashEntry)

    def valid(self) -> None:
        if not self.href:
            raise ValueError("empty href")
        if self.thumbprint is not None:
            try:
                self.thumbprint.valid()
            except ValueError as err:
                raise ValueError(f"invalid locator thumbprint: {err}") from err


class EmbeddedTag(NamedTuple):
    """A tag found in a CoRIM: its CBOR tag number and the untagged encoding."""

    number: int
    content: bytes

    @property
    def kind(self) -> str:
        return _TAG_NAMES.get(self.number, f"tag {self.number}")


def split_tag(tag: bytes) -> EmbeddedTag:
    """Split an embedded tag into its CBOR tag number and content.

    Raises:
        ValueError: If the bytes do not start with a CBOR tag head
    """
    if not tag:
        raise ValueError("empty tag")
    head = tag[0]
    if head >> 5 != 6:
        raise ValueError(f"expecting a CBOR tag, got initial byte 0x{head:02x}")
    info = head & 0x1F
    if info < 24:
        return EmbeddedTag(info, bytes(tag[1:]))
    size = {24: 1, 25: 2, 26: 4, 27: 8}.get(info)
    if size is None or len(tag) < 1 + size:
        raise ValueError("truncated CBOR tag head")
    return EmbeddedTag(int.from_bytes(tag[1 : 1 + size], "big"), bytes(tag[1 + size :]))


@dataclasses.dataclass
class UnsignedCorim(Extensible, Record):
    """unsigned-corim-map.

    Example:
        >>> rim = UnsignedCorim().set_id("5c57e8f4-46cd-421b-91c9-08cf93e13cfc")
        >>> rim.add_comid(comid).add_coswid(swid)
        >>> data = rim.to_tagged_cbor()
    """

    extension_points = ("UnsignedCorim", "CorimEntity")

    corim_id: Optional[TagID] = cbor_field(0, "corim-id", TagID, omitempty=False)
    tags: list = cbor_field(1, "tags", [BYTES], omitempty=False, default_factory=list)
    dependent_rims: list = cbor_field(2, "dependent-rims", [Locator], default_factory=list)
    profile: Optional[Profile] = cbor_field(3, "profile", Profile)
    rim_validity: Optional[Validity] = cbor_field(4, "validity", Validity)
    entities: Entities = cbor_field(5, "entities", Entities, default_factory=Entities)
    extensions: Extensions = extensions_field()

    def register_extensions(self, exts: Map) -> None:
        for point, value in exts.items():
            if point == "UnsignedCorim":
                self.extensions.register(value)
            elif point == "CorimEntity":
                self.entities.register_extensions(Map({point: value}))
            else:
                raise UnexpectedPointError(point)

    # builders

    def set_id(self, value: Any) -> "UnsignedCorim":
        """Set the corim-id from a string or a UUID (object or 16 bytes)."""
        self.corim_id = TagID.from_value(value)
        return self

    def get_id(self) -> str:
        return "" if self.corim_id is None else str(self.corim_id.value)

    def add_tag(self, number: int, encoded: bytes) -> "UnsignedCorim":
        """Append an already encoded document under the given CBOR tag."""
        self.tags.append(cbor_utils.tag_prefix(number) + encoded)
        return self

    def add_comid(self, comid: Comid) -> "UnsignedCorim":
        self.tags.append(comid.to_tagged_cbor())
        return self

    def add_coswid(self, swid: SoftwareIdentity) -> "UnsignedCorim":
        return self.add_tag(cbor_utils.TAG_COSWID, swid.to_cbor())

    def add_cots(self, store: ConciseTaStore) -> "UnsignedCorim":
        self.tags.append(store.to_tagged_cbor())
        return self

    def add_dependent_rim(self, href: str, thumbprint: Optional[HashEntry] = None) -> "UnsignedCorim":
        self.dependent_rims.append(Locator(URI.coerce(href), thumbprint))
        return self

    def set_profile(self, url_or_oid: str) -> "UnsignedCorim":
        self.profile = Profile(url_or_oid)
        return self

    def set_rim_validity(
        self, not_after: datetime.datetime, not_before: Optional[datetime.datetime] = None
    ) -> "UnsignedCorim":
        self.rim_validity = Validity.create(not_after, not_before)
        return self

    def add_entity(self, name: str, reg_id: Optional[str], *roles: Role) -> "UnsignedCorim":
        entity = Entity(
            name=name,
            reg_id=None if reg_id is None else URI.coerce(reg_id),
            roles=[ROLE.coerce(r) for r in roles],
        )
        entity.valid()
        self.entities.add(entity)
        return self

    # extraction

    def iter_tags(self) -> Iterator[EmbeddedTag]:
        for tag in self.tags:
            yield split_tag(tag)

    def _decode_tags(self, number: int, factory: Any) -> list:
        out = []
        for i, tag in enumerate(self.iter_tags()):
            if tag.number != number:
                continue
            try:
                out.append(factory().from_cbor(tag.content))
            except ValueError as err:
                raise ValueError(f"{_TAG_NAMES[number]} tag at index {i}: {err}") from err
        return out

    def comids(self) -> list[Comid]:
        return self._decode_tags(cbor_utils.TAG_COMID, Comid)

    def coswids(self) -> list[SoftwareIdentity]:
        return self._decode_tags(cbor_utils.TAG_COSWID, SoftwareIdentity)

    def cots(self) -> list[ConciseTaStore]:
        return self._decode_tags(cbor_utils.TAG_COTS, ConciseTaStore)

    # validation and serialization

    def valid(self) -> None:
        if self.corim_id is None:
            raise ValueError("empty id")
        try:
            self.corim_id.valid()
        except ValueError as err:
            raise ValueError(f"empty id: {err}") from err

        if not self.tags:
            raise ValueError("tags validation failed: no tags")
        for i, tag in enumerate(self.tags):
            if not tag:
                raise ValueError(f"tag validation failed at pos {i}: empty tag")

        for i, locator in enumerate(self.dependent_rims):
            try:
                locator.valid()
            except ValueError as err:
                raise ValueError(f"dependent RIM validation failed at pos {i}: {err}") from err

        if self.rim_validity is not None:
            try:
                self.rim_validity.valid()
            except ValueError as err:
                raise ValueError(f"RIM validity validation failed: {err}") from err

        for i, entity in enumerate(self.entities):
            try:
                entity.valid()
            except ValueError as err:
                raise ValueError(f"entity validation failed at pos {i}: {err}") from err

        self.extensions.valid()
        self.extensions.constrain("constrain_unsigned_corim", self)

    def to_tagged_cbor(self) -> bytes:
        """Encode as ``#6.501(unsigned-corim-map)``."""
        return cbor_utils.tag_prefix(cbor_utils.TAG_UNSIGNED_CORIM) + self.to_cbor()

    def from_cbor(self, data: bytes) -> "UnsignedCorim":
        """Populate from CBOR, with or without the 501 tag head, then validate."""
        prefix = cbor_utils.tag_prefix(cbor_utils.TAG_UNSIGNED_CORIM)
        if bytes(data[: len(prefix)]) == prefix:
            data = data[len(prefix) :]
        super().from_cbor(data)
        return self

    def from_tagged_cbor(self, data: bytes) -> "UnsignedCorim":
        """Populate from ``#6.501(unsigned-corim-map)``, requiring the tag head."""
        body = cbor_utils.strip_tag_prefix(data, cbor_utils.TAG_UNSIGNED_CORIM, "unsigned CoRIM")
        super().from_cbor(body)
        return self


@dataclasses.dataclass
class CorimSigner(Extensible, Record):
    """corim-signer-map: ``{0: signer-name, ? 1: signer-uri}``."""

    extension_points = ("Signer",)

    name: str = cbor_field(0, "name", TEXT, omitempty=False, default="")
    uri: Optional[str] = cbor_field(1, "uri", URI)
    extensions: Extensions = extensions_field()

    def valid(self) -> None:
        if not self.name:
            raise ValueError("empty name")
        if self.uri is not None:
            try:
                check_uri(self.uri)
            except ValueError as err:
                raise ValueError(f"invalid URI: {err}") from err
        self.extensions.valid()
        self.extensions.constrain("constrain_signer", self)


@dataclasses.dataclass
class Meta(Record):
    """corim-meta-map: ``{0: signer, ? 1: signature-validity}``."""

    signer: CorimSigner = cbor_field(
        0, "signer", CorimSigner, omitempty=False, default_factory=CorimSigner
    )
    validity: Optional[Validity] = cbor_field(1, "validity", Validity)

    def set_signer(self, name: str, uri: Optional[str] = None) -> "Meta":
        signer = CorimSigner(name=name, uri=None if uri is None else URI.coerce(uri))
        signer.extensions = self.signer.extensions
        signer.valid()
        self.signer = signer
        return self

    def set_validity(
        self, not_after: datetime.datetime, not_before: Optional[datetime.datetime] = None
    ) -> "Meta":
        self.validity = Validity.create(not_after, not_before)
        return self

    def valid(self) -> None:
        try:
            self.signer.valid()
        except ValueError as err:
            raise ValueError(f"invalid meta: {err}") from err
        if self.validity is not None:
            try:
                self.validity.valid()
            except ValueError as err:
                raise ValueError(f"invalid meta: {err}") from err


class SignedCorim:
    """A CoRIM wrapped in COSE_Sign1 with ``corim-meta`` in the protected header.

    Example:
        >>> signed = SignedCorim(rim)
        >>> signed.meta.set_signer("ACME Ltd.", "https://acme.example")
        >>> data = signed.sign(cose_sign1.signer_from_private_key(key))
        >>> SignedCorim().from_cose(data).verify(key.public_key())
    """

    extension_points = ("Signer", "UnsignedCorim", "CorimEntity")

    def __init__(self, unsigned_corim: Optional[UnsignedCorim] = None, meta: Optional[Meta] = None):
        self.unsigned_corim = unsigned_corim if unsigned_corim is not None else UnsignedCorim()
        self.meta = meta if meta is not None else Meta()
        self._encoded: Optional[bytes] = None
        self._message: Optional[Sign1Message] = None

    def register_extensions(self, exts: Map) -> None:
        corim_exts = Map()
        for point, value in exts.items():
            if point == "Signer":
                self.meta.signer.register_extensions(Map({point: value}))
            elif point in self.extension_points:
                corim_exts.add(point, value)
            else:
                raise UnexpectedPointError(point)
        if corim_exts:
            self.unsigned_corim.register_extensions(corim_exts)

    def sign(self, signer: COSESigner) -> bytes:
        """Validate, encode and sign the CoRIM.

        Returns:
            The tagged COSE_Sign1 message

        Raises:
            ValueError: If the CoRIM or its meta are not valid
        """
        if signer is None:
            raise ValueError("nil signer")
        try:
            self.unsigned_corim.valid()
        except ValueError as err:
            raise ValueError(f"failed validation of unsigned CoRIM: {err}") from err
        try:
            meta_cbor = self.meta.to_cbor()
        except ValueError as err:
            raise ValueError(f"failed CBOR encoding of CoRIM Meta: {err}") from err

        protected = {
            HEADER_ALG: signer.algorithm,
            HEADER_CONTENT_TYPE: CONTENT_TYPE,
            HEADER_CORIM_META: meta_cbor,
        }
        encoded = cose_sign1_sign(self.unsigned_corim.to_tagged_cbor(), signer, protected)
        self._encoded = encoded
        self._message = decode_sign1(encoded)
        logger.debug("signed CoRIM %s", self.unsigned_corim.get_id())
        return encoded

    def _process_headers(self, message: Sign1Message) -> None:
        protected = message.protected
        if not protected:
            raise ValueError("missing mandatory protected header")

        if HEADER_CONTENT_TYPE not in protected:
            raise ValueError("missing mandatory content type")
        content_type = protected[HEADER_CONTENT_TYPE]
        if content_type != CONTENT_TYPE:
            raise ValueError(f'expecting content type "{CONTENT_TYPE}", got "{content_type}" instead')

        if HEADER_CORIM_META not in protected:
            raise ValueError("missing mandatory corim.meta")
        meta_cbor = protected[HEADER_CORIM_META]
        if not isinstance(meta_cbor, bytes):
            raise ValueError(
                f"expecting CBOR-encoded CoRIM Meta, got {type(meta_cbor).__name__} instead"
            )
        try:
            self.meta.from_cbor(meta_cbor)
        except ValueError as err:
            raise ValueError(f"unable to decode CoRIM Meta: {err}") from err

    def from_cose(self, data: bytes) -> "SignedCorim":
        """Decode and validate a signed CoRIM; the signature is not checked.

        Returns:
            self, to allow chaining with :meth:`verify`
        """
        try:
            message = decode_sign1(data)
        except ValueError as err:
            raise ValueError(f"failed CBOR decoding for COSE-Sign1 signed CoRIM: {err}") from err

        try:
            self._process_headers(message)
        except ValueError as err:
            raise ValueError(f"processing COSE headers: {err}") from err

        payload = message.payload or b""
        prefix = cbor_utils.tag_prefix(cbor_utils.TAG_UNSIGNED_CORIM)
        if payload[: len(prefix)] == prefix:
            payload = payload[len(prefix) :]
        try:
            self.unsigned_corim.populate_cbor(cbor_utils.decode(payload))
        except ValueError as err:
            raise ValueError(f"failed CBOR decoding of unsigned CoRIM: {err}") from err
        try:
            self.unsigned_corim.valid()
        except ValueError as err:
            raise ValueError(f"failed validation of unsigned CoRIM: {err}") from err

        self._encoded = bytes(data)
        self._message = message
        return self

    def verify(self, public_key: Any) -> None:
        """Check the signature with a ``cryptography`` public key or certificate.

        Raises:
            ValueError: If there is no message, the algorithm does not match
                the key, or the signature is invalid
        """
        if self._encoded is None or self._message is None:
            raise ValueError("no Sign1 message found")

        alg = self._message.protected.get(HEADER_ALG)
        if alg is None:
            raise ValueError("unable to get verification algorithm: missing alg header")
        verifier = verifier_from_public_key(public_key)
        if verifier.algorithm != alg:
            raise ValueError(
                f"unable to get verification algorithm: key is for alg {verifier.algorithm}, "
                f"message uses {alg}"
            )

        ok, _ = cose_sign1_verify(self._encoded, verifier)
        if not ok:
            raise ValueError("verification error")
        logger.debug("verified signature on CoRIM %s", self.unsigned_corim.get_id())
