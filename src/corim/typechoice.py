"""Type choices: fields whose value is one of a registered set of variants.

On the CBOR wire a variant is identified by its tag (or, for the few
untagged variants, by the CBOR type of the item). In JSON every type choice
is the object ``{"type": <name>, "value": <variant JSON>}``.

Each :class:`TypeChoice` subclass owns its own register of variants so that
profiles can add new ones at start-up.
"""

import logging
from typing import Any, Callable, ClassVar, Optional

from . import cbor_utils
from .encoding import JSONValue, type_name

logger = logging.getLogger(__name__)


class Variant:
    """Base class for type choice variants.

    Subclasses set ``type_name`` and either ``cbor_tag`` (tagged variants) or
    ``cbor_types`` (untagged variants), hold their payload in ``value`` and
    implement the four wire conversions.
    """

    type_name: ClassVar[str] = ""
    cbor_tag: ClassVar[Optional[int]] = None
    cbor_types: ClassVar[tuple] = ()

    def __init__(self, value: Any = None):
        self.value = value

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self), self.to_bytes()))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"

    def __str__(self) -> str:
        return str(self.value)

    def valid(self) -> None:
        if self.value is None:
            raise ValueError(f"empty {self.type_name}")

    def to_bytes(self) -> bytes:
        if isinstance(self.value, bytes):
            return self.value
        return str(self).encode("utf-8")

    def payload_to_cbor(self) -> Any:
        return self.value

    def to_cbor_value(self) -> Any:
        if self.cbor_tag is None:
            return self.payload_to_cbor()
        return cbor_utils.create_tag(self.cbor_tag, self.payload_to_cbor())

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        return data

    @classmethod
    def from_cbor_value(cls, data: Any) -> "Variant":
        if cls.cbor_tag is not None:
            data = cbor_utils.untag(data, cls.cbor_tag, cls.type_name)
        return cls(cls.payload_from_cbor(data))

    def to_json_value(self) -> JSONValue:
        return self.value

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "Variant":
        return cls(data)


class RecordVariant(Variant):
    """Variant whose payload is a record (``record_type``)."""

    record_type: ClassVar[type]

    def __init__(self, value: Any = None):
        if isinstance(value, dict):
            value = self.record_type.from_json_value(value)
        super().__init__(value)

    def __hash__(self) -> int:
        return hash((type(self), repr(self.value)))

    def valid(self) -> None:
        if self.value is None:
            raise ValueError(f"empty {self.type_name}")
        self.value.valid()

    def to_bytes(self) -> bytes:
        return b"" if self.value is None else cbor_utils.encode(self.value.to_cbor_value())

    def payload_to_cbor(self) -> Any:
        return self.value.to_cbor_value()

    @classmethod
    def payload_from_cbor(cls, data: Any) -> Any:
        return cls.record_type.from_cbor_value(data)

    def to_json_value(self) -> JSONValue:
        return self.value.to_json_value()

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "RecordVariant":
        return cls(cls.record_type.from_json_value(data))


class TypeChoice:
    """A value holding exactly one variant out of a per-class register."""

    choice_name: ClassVar[str] = "type choice"
    label: ClassVar[str] = "type choice"

    _registry: ClassVar[dict[str, Callable[[Any], Variant]]] = {}
    _tags: ClassVar[dict[int, str]] = {}
    _untagged: ClassVar[list[str]] = []

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        cls._registry = {}
        cls._tags = {}
        cls._untagged = []

    def __init__(self, value: Optional[Variant] = None):
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeChoice):
            return NotImplemented
        return type(self) is type(other) and self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self), self.value))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"

    def __str__(self) -> str:
        return "" if self.value is None else str(self.value)

    @classmethod
    def register_type(cls, tag: Optional[int], factory: Callable[[Any], Variant]) -> None:
        """Add a variant to this type choice.

        Args:
            tag: CBOR tag identifying the variant, or None for an untagged one
            factory: Callable building the variant from a value; called with
                None it must return an empty variant

        Raises:
            ValueError: If a variant with the same type name or tag exists
        """
        empty = factory(None)
        name = empty.type_name
        if name in cls._registry:
            raise ValueError(f'type with name "{name}" already exists')
        if tag is not None and tag in cls._tags:
            raise ValueError(f"tag {tag} already registered for {cls.choice_name}")
        cls._registry[name] = factory
        if tag is None:
            cls._untagged.append(name)
        else:
            cls._tags[tag] = name
        logger.debug("Registered %s variant %s (tag %s)", cls.choice_name, name, tag)

    @classmethod
    def type_names(cls) -> list[str]:
        return list(cls._registry)

    @classmethod
    def new(cls, value: Any, type_name: str) -> "TypeChoice":
        """Build a type choice holding the named variant created from value.

        Raises:
            ValueError: If the type name is unknown or the variant is invalid
        """
        factory = cls._registry.get(type_name)
        if factory is None:
            raise ValueError(f"unknown {cls.choice_name} type: {type_name}")
        variant = factory(value)
        variant.valid()
        return cls(variant)

    @property
    def type(self) -> str:
        """JSON type name of the current variant."""
        return "" if self.value is None else self.value.type_name

    def variant(self, variant_type: type) -> Any:
        """Return the current variant if it is an instance of variant_type.

        Raises:
            ValueError: If another variant, or none, is held
        """
        if not isinstance(self.value, variant_type):
            raise ValueError(f"{self.label} type is: {type(self.value).__name__}")
        return self.value

    def valid(self) -> None:
        if self.value is None:
            raise ValueError("no value set")
        self.value.valid()

    def to_bytes(self) -> bytes:
        if self.value is None:
            return b""
        return self.value.to_bytes()

    def to_cbor_value(self) -> Any:
        if self.value is None:
            raise ValueError(f"no {self.choice_name} value set")
        return self.value.to_cbor_value()

    @classmethod
    def _decode_variant(cls, name: str, decode: Callable[[type], Variant]) -> Variant:
        empty = cls._registry[name](None)
        variant = decode(type(empty))
        try:
            variant.valid()
        except ValueError as err:
            raise ValueError(f"invalid {name}: {err}") from err
        return variant

    @classmethod
    def from_cbor_value(cls, data: Any) -> "TypeChoice":
        tag = cbor_utils.tag_of(data)
        if tag is not None:
            name = cls._tags.get(tag)
            if name is None:
                raise ValueError(f"unknown tag {tag} for {cls.choice_name}")
        else:
            name = cls._match_untagged(data)
        return cls(cls._decode_variant(name, lambda vt: vt.from_cbor_value(data)))

    @classmethod
    def _match_untagged(cls, data: Any) -> str:
        for name in cls._untagged:
            empty = cls._registry[name](None)
            if isinstance(data, empty.cbor_types) and not (
                isinstance(data, bool) and bool not in empty.cbor_types
            ):
                return name
        raise ValueError(f"unexpected {type_name(data)} for {cls.choice_name}")

    def to_json_value(self) -> JSONValue:
        if self.value is None:
            raise ValueError(f"no {self.choice_name} value set")
        return {"type": self.value.type_name, "value": self.value.to_json_value()}

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "TypeChoice":
        if not isinstance(data, dict):
            raise ValueError(f"expected a type-and-value object, got {type_name(data)}")
        extra = set(data) - {"type", "value"}
        if extra:
            raise ValueError(f"unexpected members {sorted(extra)} in type-and-value object")
        name = data.get("type")
        if not isinstance(name, str) or not name:
            raise ValueError("type not set")
        if name not in cls._registry:
            raise ValueError(f"unknown {cls.choice_name} type: {name}")
        if "value" not in data:
            raise ValueError(f"value not set for {name}")
        value = data["value"]
        return cls(cls._decode_variant(name, lambda vt: vt.from_json_value(value)))
