"""Environments: the class, instance and group an assertion is about."""

import dataclasses
from typing import Any, Optional

from . import cbor_utils
from .digests import CertThumbprintVariant, HashEntry
from .encoding import TEXT, UINT, Record, cbor_field
from .identifiers import (
    BytesVariant,
    ImplIDVariant,
    IntVariant,
    OIDVariant,
    UEIDVariant,
    UUIDVariant,
    variant_factory,
)
from .typechoice import TypeChoice


class ClassID(TypeChoice):
    """$class-id-type-choice."""

    choice_name = "class id"
    label = "class-id"


for _tag, _variant in (
    (cbor_utils.TAG_UUID, UUIDVariant),
    (cbor_utils.TAG_OID, OIDVariant),
    (cbor_utils.TAG_BYTES, BytesVariant),
    (cbor_utils.TAG_INT, IntVariant),
    (cbor_utils.TAG_PSA_IMPL_ID, ImplIDVariant),
):
    ClassID.register_type(_tag, variant_factory(_variant))


class Instance(TypeChoice):
    """$instance-id-type-choice."""

    choice_name = "instance"
    label = "instance-id"


for _tag, _variant in (
    (cbor_utils.TAG_UEID, UEIDVariant),
    (cbor_utils.TAG_UUID, UUIDVariant),
    (cbor_utils.TAG_BYTES, BytesVariant),
    (cbor_utils.TAG_CERT_THUMBPRINT, CertThumbprintVariant),
):
    Instance.register_type(_tag, variant_factory(_variant))


class Group(TypeChoice):
    """$group-id-type-choice."""

    choice_name = "group"
    label = "group-id"


for _tag, _variant in (
    (cbor_utils.TAG_UUID, UUIDVariant),
    (cbor_utils.TAG_BYTES, BytesVariant),
):
    Group.register_type(_tag, variant_factory(_variant))
del _tag, _variant


def register_class_id_type(tag: Optional[int], factory: Any) -> None:
    ClassID.register_type(tag, factory)


def register_instance_type(tag: Optional[int], factory: Any) -> None:
    Instance.register_type(tag, factory)


def register_group_type(tag: Optional[int], factory: Any) -> None:
    Group.register_type(tag, factory)


def instance_from_cert_thumbprint(entry: HashEntry) -> Instance:
    return Instance(CertThumbprintVariant(entry))


@dataclasses.dataclass
class Class(Record):
    """class-map: ``{? 0: class-id, ? 1: vendor, ? 2: model, ? 3: layer, ? 4: index}``."""

    class_id: Optional[ClassID] = cbor_field(0, "id", ClassID)
    vendor: Optional[str] = cbor_field(1, "vendor", TEXT)
    model: Optional[str] = cbor_field(2, "model", TEXT)
    layer: Optional[int] = cbor_field(3, "layer", UINT)
    index: Optional[int] = cbor_field(4, "index", UINT)

    @classmethod
    def with_id(cls, value: Any, id_type: str) -> "Class":
        """Build a class holding only a class-id of the named type."""
        return cls(class_id=ClassID.new(value, id_type))

    def valid(self) -> None:
        if (
            self.class_id is None
            and self.vendor is None
            and self.model is None
            and self.layer is None
            and self.index is None
        ):
            raise ValueError("class must not be empty")
        if self.class_id is not None:
            try:
                self.class_id.valid()
            except ValueError as err:
                raise ValueError(f"class-id validation failed: {err}") from err


@dataclasses.dataclass
class Environment(Record):
    """environment-map: ``{? 0: class, ? 1: instance, ? 2: group}``, at least one set."""

    klass: Optional[Class] = cbor_field(0, "class", Class)
    instance: Optional[Instance] = cbor_field(1, "instance", Instance)
    group: Optional[Group] = cbor_field(2, "group", Group)

    def valid(self) -> None:
        if self.klass is None and self.instance is None and self.group is None:
            raise ValueError("environment must not be empty")
        for part in (self.klass, self.instance, self.group):
            if part is None:
                continue
            try:
                part.valid()
            except ValueError as err:
                raise ValueError(f"environment validation failed: {err}") from err
