"""Concise Module Identifier (CoMID) documents."""

import dataclasses
import enum
import logging
from typing import Any, Iterator, Optional

from . import cbor_utils
from .coswid import NamedCodeKind, TagID
from .encoding import TEXT, UINT, Record, cbor_field, extensions_field
from .extensions import Collection, Extensible, Extensions, Map
from .identifiers import URI
from .triples import CondEndorseSeriesTriple, KeyTriple, Triples, ValueTriple

logger = logging.getLogger(__name__)


class Role(enum.IntEnum):
    TAG_CREATOR = 0
    CREATOR = 1
    MAINTAINER = 2

    @property
    def json_name(self) -> str:
        return {0: "tagCreator", 1: "creator", 2: "maintainer"}[self.value]


class Rel(enum.IntEnum):
    SUPPLEMENTS = 0
    REPLACES = 1

    @property
    def json_name(self) -> str:
        return self.name.lower()


ROLE = NamedCodeKind("role", Role)
REL = NamedCodeKind("rel", Rel)


@dataclasses.dataclass
class TagIdentity(Record):
    """tag-identity-map: ``{0: tag-id, ? 1: tag-version}``."""

    tag_id: Optional[TagID] = cbor_field(0, "id", TagID, omitempty=False)
    tag_version: int = cbor_field(1, "version", UINT, zero_is_empty=True, default=0)

    def valid(self) -> None:
        if self.tag_id is None:
            raise ValueError("empty tag-id")
        self.tag_id.valid()


@dataclasses.dataclass
class Entity(Extensible, Record):
    """entity-map: ``{0: name, ? 1: reg-id, 2: [role...]}``."""

    extension_points = ("ComidEntity",)

    name: str = cbor_field(0, "name", TEXT, omitempty=False, default="")
    reg_id: Optional[str] = cbor_field(1, "regid", URI)
    roles: list = cbor_field(2, "roles", [ROLE], omitempty=False, default_factory=list)
    extensions: Extensions = extensions_field()

    def valid(self) -> None:
        if not self.name:
            raise ValueError("invalid entity: empty entity-name")
        if self.reg_id is not None and not self.reg_id:
            raise ValueError("invalid entity: empty reg-id")
        if not self.roles:
            raise ValueError("invalid entity: empty roles")
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
class LinkedTag(Record):
    """linked-tag-map: ``{0: linked-tag-id, 1: tag-rel}``."""

    linked_tag_id: Optional[TagID] = cbor_field(0, "target", TagID, omitempty=False)
    rel: Optional[Rel] = cbor_field(1, "rel", REL, omitempty=False)

    def valid(self) -> None:
        if self.linked_tag_id is None:
            raise ValueError("tag-id must be set in linked-tag")
        self.linked_tag_id.valid()
        if self.rel is None:
            raise ValueError("rel validation failed: rel is unset")


@dataclasses.dataclass
class Comid(Extensible, Record):
    """concise-mid-tag.

    Example:
        >>> comid = Comid().set_tag_identity("my-ns:acme-roadrunner", 0)
        >>> comid.add_entity("ACME Ltd.", None, Role.TAG_CREATOR)
    """

    extension_points = ("Comid", "ComidEntity") + Triples.extension_points

    language: Optional[str] = cbor_field(0, "lang", TEXT)
    tag_identity: TagIdentity = cbor_field(
        1, "tag-identity", TagIdentity, omitempty=False, default_factory=TagIdentity
    )
    entities: Entities = cbor_field(2, "entities", Entities, default_factory=Entities)
    linked_tags: list = cbor_field(3, "linked-tags", [LinkedTag], default_factory=list)
    triples: Triples = cbor_field(4, "triples", Triples, omitempty=False, default_factory=Triples)
    extensions: Extensions = extensions_field()

    def register_extensions(self, exts: Map) -> None:
        """Dispatch extension values to the CoMID, its entities and its triples."""
        triples_exts = Map()
        for point, value in exts.items():
            if point == "Comid":
                self.extensions.register(value)
            elif point == "ComidEntity":
                self.entities.register_extensions(Map({point: value}))
            else:
                triples_exts.add(point, value)
        if triples_exts:
            self.triples.register_extensions(triples_exts)

    # builders

    def set_language(self, language: str) -> "Comid":
        if not language:
            raise ValueError("empty language")
        self.language = language
        return self

    def set_tag_identity(self, tag_id: Any, version: int = 0) -> "Comid":
        """Set the tag identifier (a string or a UUID) and its version."""
        self.tag_identity = TagIdentity(TagID.from_value(tag_id), UINT.coerce(version))
        return self

    def add_entity(self, name: str, reg_id: Optional[str], *roles: Role) -> "Comid":
        if not roles:
            raise ValueError("empty roles")
        entity = Entity(
            name=name,
            reg_id=None if reg_id is None else URI.coerce(reg_id),
            roles=[ROLE.coerce(r) for r in roles],
        )
        entity.valid()
        self.entities.add(entity)
        return self

    def add_linked_tag(self, tag_id: Any, rel: Rel) -> "Comid":
        self.linked_tags.append(LinkedTag(TagID.from_value(tag_id), REL.coerce(rel)))
        return self

    def add_reference_value(self, triple: ValueTriple) -> "Comid":
        self.triples.add_reference_value(triple)
        return self

    def add_endorsed_value(self, triple: ValueTriple) -> "Comid":
        self.triples.add_endorsed_value(triple)
        return self

    def add_attest_verif_key(self, triple: KeyTriple) -> "Comid":
        self.triples.add_attest_verif_key(triple)
        return self

    def add_dev_identity_key(self, triple: KeyTriple) -> "Comid":
        self.triples.add_dev_identity_key(triple)
        return self

    def add_cond_endorse_series(self, triple: CondEndorseSeriesTriple) -> "Comid":
        self.triples.add_cond_endorse_series(triple)
        return self

    def iter_ref_vals(self) -> Iterator[ValueTriple]:
        return iter(self.triples.reference_values)

    def iter_end_vals(self) -> Iterator[ValueTriple]:
        return iter(self.triples.endorsed_values)

    def iter_attest_verif_keys(self) -> Iterator[KeyTriple]:
        return iter(self.triples.attest_verif_keys)

    def iter_dev_identity_keys(self) -> Iterator[KeyTriple]:
        return iter(self.triples.dev_identity_keys)

    # validation

    def valid(self) -> None:
        try:
            self.tag_identity.valid()
        except ValueError as err:
            raise ValueError(f"tag-identity validation failed: {err}") from err
        if not self.entities:
            raise ValueError("entities validation failed: no entities")
        try:
            self.entities.valid()
        except ValueError as err:
            raise ValueError(f"entities validation failed: {err}") from err
        for i, linked in enumerate(self.linked_tags):
            try:
                linked.valid()
            except ValueError as err:
                raise ValueError(
                    f"linked-tags validation failed: invalid linked-tag entry at index {i}: {err}"
                ) from err
        try:
            self.triples.valid()
        except ValueError as err:
            raise ValueError(f"triples validation failed: {err}") from err
        self.extensions.valid()
        self.extensions.constrain("constrain_comid", self)

    def to_tagged_cbor(self) -> bytes:
        """Encode as ``#6.506(concise-mid-tag)`` for embedding in a CoRIM."""
        return cbor_utils.tag_prefix(cbor_utils.TAG_COMID) + self.to_cbor()
