"""Concise Software Identification tags (CoSWID, RFC 9393), abbreviated.

Covers the parts of a CoSWID tag used by CoRIM, CoTS and Concise Evidence:
identity, entities, links, software metadata and the payload/evidence
resource collections. Map entries outside this subset are kept in the tag's
extension cache and re-emitted on encode.
"""

import dataclasses
import enum
import re
import uuid
from typing import Any, Optional

from . import cbor_utils
from .digests import HashEntry
from .encoding import (
    BOOL,
    INT,
    TEXT,
    TIME,
    UINT,
    JSONValue,
    Kind,
    Record,
    as_kind,
    cbor_field,
    extensions_field,
    type_name,
)
from .extensions import Extensible, Extensions
from .identifiers import StringVariant, parse_uuid, variant_factory
from .measurement import VERSION_SCHEME
from .typechoice import TypeChoice, Variant

# Tag identifiers

_UUID_STRING = re.compile(r"[0-9a-fA-F]{8}(-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12}")


class TagUUIDVariant(Variant):
    """Tag identifier carried as 16 raw bytes (untagged) in CBOR."""

    type_name = "uuid"
    cbor_types = (bytes,)

    def __init__(self, value: Any = None):
        super().__init__(None if value is None else parse_uuid(value))

    def valid(self) -> None:
        if self.value is None:
            raise ValueError("empty tag-id")

    def to_bytes(self) -> bytes:
        return b"" if self.value is None else self.value.bytes

    def to_cbor_value(self) -> Any:
        return self.value.bytes

    @classmethod
    def from_cbor_value(cls, data: Any) -> "TagUUIDVariant":
        if not isinstance(data, bytes):
            raise ValueError(f"expected tag-id bytes, got {type_name(data)}")
        if len(data) != 16:
            raise ValueError(f"tag-id must be 16 bytes when encoded as bytes, got {len(data)}")
        return cls(data)

    def to_json_value(self) -> JSONValue:
        return str(self.value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "TagUUIDVariant":
        if not isinstance(data, str):
            raise ValueError(f"bad UUID: expected a string, got {type_name(data)}")
        return cls(data)


class TagID(TypeChoice):
    """Text or UUID tag identifier.

    Strings in the canonical 8-4-4-4-12 UUID form are taken to be UUIDs and
    encode as 16 bytes. In JSON both variants are bare strings; the
    ``{"type": ..., "value": ...}`` form is also accepted on decode.
    """

    choice_name = "tag-id"
    label = "tag-id"

    @classmethod
    def from_value(cls, value: Any) -> "TagID":
        """Build an identifier from a string or a UUID (object, string or 16 bytes)."""
        if isinstance(value, str):
            if _UUID_STRING.fullmatch(value):
                return cls.new(value, TagUUIDVariant.type_name)
            return cls.new(value, StringVariant.type_name)
        if isinstance(value, (uuid.UUID, bytes)):
            return cls.new(value, TagUUIDVariant.type_name)
        raise ValueError(f"bad type for {cls.choice_name}: expecting string or UUID")

    def valid(self) -> None:
        if self.value is None or not self.value.to_bytes():
            raise ValueError(f"empty {self.choice_name}")
        self.value.valid()

    def to_json_value(self) -> JSONValue:
        if isinstance(self.value, (StringVariant, TagUUIDVariant)):
            return self.value.to_json_value()
        return super().to_json_value()

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "TagID":
        if isinstance(data, str):
            return cls.from_value(data)
        return super().from_json_value(data)


TagID.register_type(None, variant_factory(StringVariant))
TagID.register_type(None, variant_factory(TagUUIDVariant))


# one-or-more


class OneOrMore(Kind):
    """A single item or an array of items; a one-element list encodes as the item."""

    def __init__(self, item: Any):
        self.item = as_kind(item)
        self.name = f"one-or-more {self.item.name}"

    def _wrap(self, data: Any) -> list:
        return list(data) if isinstance(data, (list, tuple)) else [data]

    def to_cbor(self, value: Any) -> Any:
        out = [self.item.to_cbor(v) for v in value]
        return out[0] if len(out) == 1 else out

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return [self.item.from_cbor(v) for v in self._wrap(data)]

    def to_json(self, value: Any) -> JSONValue:
        out = [self.item.to_json(v) for v in value]
        return out[0] if len(out) == 1 else out

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return [self.item.from_json(v) for v in self._wrap(data)]

    def coerce(self, value: Any) -> Any:
        return [self.item.coerce(v) for v in self._wrap(value)]


class _Deferred(Kind):
    """Kind resolved on first use, for self-referencing records."""

    def __init__(self, resolve: Any):
        self._resolve = resolve
        self.name = "deferred"

    @property
    def kind(self) -> Kind:
        return as_kind(self._resolve())

    def to_cbor(self, value: Any) -> Any:
        return self.kind.to_cbor(value)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.kind.from_cbor(data)

    def to_json(self, value: Any) -> JSONValue:
        return self.kind.to_json(value)

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self.kind.from_json(data)

    def coerce(self, value: Any) -> Any:
        return self.kind.coerce(value)


class NamedCodeKind(Kind):
    """Integer code on CBOR, registered name in JSON."""

    def __init__(self, name: str, codes: type):
        self.name = name
        self.codes = codes

    def coerce(self, value: Any) -> Any:
        if isinstance(value, str):
            for code in self.codes:
                if code.json_name == value:
                    return code
            raise ValueError(f"unknown {self.name} {value!r}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"expected a {self.name}, got {type_name(value)}")
        try:
            return self.codes(value)
        except ValueError:
            return value

    def to_cbor(self, value: Any) -> Any:
        return int(self.coerce(value))

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.coerce(data)

    def to_json(self, value: Any) -> JSONValue:
        value = self.coerce(value)
        return value.json_name if isinstance(value, self.codes) else value

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self.coerce(data)


class Role(enum.IntEnum):
    TAG_CREATOR = 1
    SOFTWARE_CREATOR = 2
    AGGREGATOR = 3
    DISTRIBUTOR = 4
    LICENSOR = 5
    MAINTAINER = 6

    @property
    def json_name(self) -> str:
        head, *rest = self.name.lower().split("_")
        return head + "".join(part.capitalize() for part in rest)


class Rel(enum.IntEnum):
    ANCESTOR = 1
    COMPONENT = 2
    FEATURE = 3
    INSTALLATION_MEDIA = 4
    PACKAGE_INSTALLER = 5
    PARENT = 6
    PATCHES = 7
    REQUIRES = 8
    SEE_ALSO = 9
    SUPERSEDES = 10
    SUPPLEMENTAL = 11

    @property
    def json_name(self) -> str:
        if self is Rel.SEE_ALSO:
            return "see-also"
        return self.name.lower().replace("_", "")


ROLE = NamedCodeKind("role", Role)
REL = NamedCodeKind("rel", Rel)


# Records


@dataclasses.dataclass
class SWIDEntity(Record):
    """entity-entry: ``{31: entity-name, ? 32: reg-id, 33: role(s), ? 34: thumbprint}``."""

    entity_name: str = cbor_field(31, "entity-name", TEXT, omitempty=False, default="")
    reg_id: Optional[str] = cbor_field(32, "reg-id", TEXT)
    roles: list = cbor_field(33, "role", OneOrMore(ROLE), omitempty=False, default_factory=list)
    thumbprint: Optional[HashEntry] = cbor_field(34, "thumbprint", HashEntry)

    def valid(self) -> None:
        if not self.entity_name:
            raise ValueError("empty entity-name")
        if not self.roles:
            raise ValueError("no roles")


@dataclasses.dataclass
class Link(Record):
    """link-entry: ``{38: href, 40: rel, ...}``."""

    href: str = cbor_field(38, "href", TEXT, omitempty=False, default="")
    artifact: Optional[str] = cbor_field(37, "artifact", TEXT)
    media: Optional[str] = cbor_field(10, "media", TEXT)
    ownership: Optional[int] = cbor_field(39, "ownership", UINT)
    rel: Any = cbor_field(40, "rel", REL, omitempty=False)
    media_type: Optional[str] = cbor_field(41, "media-type", TEXT)
    use: Optional[int] = cbor_field(42, "use", UINT)

    def valid(self) -> None:
        if not self.href:
            raise ValueError("empty href")
        if self.rel is None:
            raise ValueError("missing rel")


@dataclasses.dataclass
class SoftwareMeta(Record):
    """software-meta-entry (descriptive metadata, all optional)."""

    activation_status: Optional[str] = cbor_field(43, "activation-status", TEXT)
    channel_type: Optional[str] = cbor_field(44, "channel-type", TEXT)
    colloquial_version: Optional[str] = cbor_field(45, "colloquial-version", TEXT)
    description: Optional[str] = cbor_field(46, "description", TEXT)
    edition: Optional[str] = cbor_field(47, "edition", TEXT)
    entitlement_data_required: Optional[bool] = cbor_field(48, "entitlement-data-required", BOOL)
    entitlement_key: Optional[str] = cbor_field(49, "entitlement-key", TEXT)
    generator: Optional[str] = cbor_field(50, "generator", TEXT)
    persistent_id: Optional[str] = cbor_field(51, "persistent-id", TEXT)
    product: Optional[str] = cbor_field(52, "product", TEXT)
    product_family: Optional[str] = cbor_field(53, "product-family", TEXT)
    revision: Optional[str] = cbor_field(54, "revision", TEXT)
    summary: Optional[str] = cbor_field(55, "summary", TEXT)
    unspsc_code: Optional[str] = cbor_field(56, "unspsc-code", TEXT)
    unspsc_version: Optional[str] = cbor_field(57, "unspsc-version", TEXT)


@dataclasses.dataclass
class File(Record):
    """file-entry."""

    fs_name: str = cbor_field(24, "fs-name", TEXT, omitempty=False, default="")
    key: Optional[bool] = cbor_field(22, "key", BOOL)
    location: Optional[str] = cbor_field(23, "location", TEXT)
    root: Optional[str] = cbor_field(25, "root", TEXT)
    size: Optional[int] = cbor_field(20, "size", UINT)
    file_version: Optional[str] = cbor_field(21, "file-version", TEXT)
    hash: Optional[HashEntry] = cbor_field(7, "hash", HashEntry)

    def valid(self) -> None:
        if not self.fs_name:
            raise ValueError("empty fs-name")
        if self.hash is not None:
            self.hash.valid()


@dataclasses.dataclass
class Process(Record):
    """process-entry."""

    process_name: str = cbor_field(27, "process-name", TEXT, omitempty=False, default="")
    pid: Optional[int] = cbor_field(28, "pid", INT)

    def valid(self) -> None:
        if not self.process_name:
            raise ValueError("empty process-name")


@dataclasses.dataclass
class Resource(Record):
    """resource-entry."""

    type: str = cbor_field(29, "type", TEXT, omitempty=False, default="")

    def valid(self) -> None:
        if not self.type:
            raise ValueError("empty resource type")


@dataclasses.dataclass
class PathElements(Record):
    directories: list = cbor_field(16, "directory", OneOrMore(_Deferred(lambda: Directory)), default_factory=list)
    files: list = cbor_field(17, "file", OneOrMore(File), default_factory=list)


@dataclasses.dataclass
class Directory(Record):
    """directory-entry; may nest further directories and files."""

    fs_name: str = cbor_field(24, "fs-name", TEXT, omitempty=False, default="")
    key: Optional[bool] = cbor_field(22, "key", BOOL)
    location: Optional[str] = cbor_field(23, "location", TEXT)
    root: Optional[str] = cbor_field(25, "root", TEXT)
    path_elements: Optional[PathElements] = cbor_field(26, "path-elements", PathElements)

    def valid(self) -> None:
        if not self.fs_name:
            raise ValueError("empty fs-name")
        if self.path_elements is not None:
            _valid_all("directory", self.path_elements.directories)
            _valid_all("file", self.path_elements.files)


def _valid_all(what: str, items: list) -> None:
    for i, item in enumerate(items):
        try:
            item.valid()
        except ValueError as err:
            raise ValueError(f"{what} at index {i}: {err}") from err


@dataclasses.dataclass
class ResourceCollection(Record):
    """Payload: the directories, files, processes and resources of a software component."""

    directories: list = cbor_field(16, "directory", OneOrMore(Directory), default_factory=list)
    files: list = cbor_field(17, "file", OneOrMore(File), default_factory=list)
    processes: list = cbor_field(18, "process", OneOrMore(Process), default_factory=list)
    resources: list = cbor_field(19, "resource", OneOrMore(Resource), default_factory=list)

    def is_empty(self) -> bool:
        return not (self.directories or self.files or self.processes or self.resources)

    def valid(self) -> None:
        if self.is_empty():
            raise ValueError("empty resource collection")
        _valid_all("directory", self.directories)
        _valid_all("file", self.files)
        _valid_all("process", self.processes)
        _valid_all("resource", self.resources)


@dataclasses.dataclass
class Evidence(ResourceCollection):
    """Evidence: a resource collection observed on a device at a given time."""

    date: Any = cbor_field(35, "date", TIME)
    device_id: Optional[str] = cbor_field(36, "device-id", TEXT)

    def valid(self) -> None:
        if self.is_empty() and self.date is None and self.device_id is None:
            raise ValueError("empty evidence")
        if not self.is_empty():
            super().valid()


@dataclasses.dataclass
class SoftwareIdentity(Extensible, Record):
    """A CoSWID tag (concise-swid-tag).

    Only the identity, entity, link, metadata, payload and evidence members
    are modelled; other map entries survive decode and re-encode through the
    extension cache.
    """

    extension_points = ("SoftwareIdentity",)

    tag_id: Optional[TagID] = cbor_field(0, "tag-id", TagID, omitempty=False)
    software_name: str = cbor_field(1, "software-name", TEXT, omitempty=False, default="")
    entities: list = cbor_field(2, "entity", OneOrMore(SWIDEntity), omitempty=False, default_factory=list)
    evidence: Optional[Evidence] = cbor_field(3, "evidence", Evidence)
    links: list = cbor_field(4, "link", OneOrMore(Link), default_factory=list)
    software_metas: list = cbor_field(5, "software-meta", OneOrMore(SoftwareMeta), default_factory=list)
    payload: Optional[ResourceCollection] = cbor_field(6, "payload", ResourceCollection)
    corpus: Optional[bool] = cbor_field(8, "corpus", BOOL, zero_is_empty=True)
    patch: Optional[bool] = cbor_field(9, "patch", BOOL, zero_is_empty=True)
    media: Optional[str] = cbor_field(10, "media", TEXT)
    supplemental: Optional[bool] = cbor_field(11, "supplemental", BOOL, zero_is_empty=True)
    tag_version: int = cbor_field(12, "tag-version", INT, omitempty=False, default=0)
    software_version: Optional[str] = cbor_field(13, "software-version", TEXT)
    version_scheme: Optional[int] = cbor_field(14, "version-scheme", VERSION_SCHEME)
    lang: Optional[str] = cbor_field(15, "lang", TEXT)
    extensions: Extensions = extensions_field()

    def add_entity(self, name: str, *roles: Role, reg_id: Optional[str] = None) -> "SoftwareIdentity":
        self.entities.append(SWIDEntity(name, reg_id, list(roles)))
        return self

    def add_link(self, href: str, rel: Rel) -> "SoftwareIdentity":
        self.links.append(Link(href=href, rel=rel))
        return self

    def _valid_identity(self) -> None:
        if self.tag_id is None:
            raise ValueError("empty tag-id")
        self.tag_id.valid()
        if not self.software_name:
            raise ValueError("empty software-name")

    def valid(self) -> None:
        self._valid_identity()
        if not self.entities:
            raise ValueError("at least one entity is required")
        try:
            _valid_all("entity", self.entities)
        except ValueError as err:
            raise ValueError(f"entities validation failed: {err}") from err
        if not any(Role.TAG_CREATOR in e.roles for e in self.entities):
            raise ValueError("no entity with tagCreator role")
        _valid_all("link", self.links)
        if self.payload is not None and self.evidence is not None:
            raise ValueError("payload and evidence are mutually exclusive")
        for what, part in (("payload", self.payload), ("evidence", self.evidence)):
            if part is None:
                continue
            try:
                part.valid()
            except ValueError as err:
                raise ValueError(f"{what} validation failed: {err}") from err
        self.extensions.valid()


@dataclasses.dataclass
class AbbreviatedSwidTag(SoftwareIdentity):
    """CoSWID tag with every identity member optional, as carried by CoTS."""

    tag_id: Optional[TagID] = cbor_field(0, "tag-id", TagID)
    software_name: Optional[str] = cbor_field(1, "software-name", TEXT)
    tag_version: Optional[int] = cbor_field(12, "tag-version", INT, zero_is_empty=True)

    def valid(self) -> None:
        if not self.entities:
            raise ValueError("no entities present, must have at least 1 entity")
        if self.tag_id is not None:
            self.tag_id.valid()
        _valid_all("entity", self.entities)
        if self.evidence is not None:
            try:
                self.evidence.valid()
            except ValueError as err:
                raise ValueError(f"evidence validation failed: {err}") from err


def tagged(tag: SoftwareIdentity) -> cbor_utils.CBORTag:
    """Wrap a tag in the CoSWID CBOR tag (505)."""
    tag.valid()
    return cbor_utils.create_tag(cbor_utils.TAG_COSWID, tag.to_cbor_value())
