"""Profile-defined extension fields for document records.

An extensible record holds an :class:`Extensions` slot. A profile attaches an
*extension value* to the slot: a :class:`~corim.encoding.Record` instance
whose wire fields are merged into the host record's map. Map entries the
host does not know about are cached per wire format while no extension
value claims them, so that a later :meth:`Extensions.register` can hoist
them into typed fields and so that re-encoding preserves them.
"""

import logging
from typing import Any, Callable, ClassVar, Generic, Iterator, Optional, TypeVar, Union

from .encoding import JSONValue, Record, WireField, type_name

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExtensionNotFoundError(ValueError):
    """Raised when a named extension field does not exist."""

    def __init__(self, name: Any):
        super().__init__(f"extension not found: {name}")
        self.name = name


class UnexpectedPointError(ValueError):
    """Raised when a record is offered an extension point it does not have."""

    def __init__(self, point: str):
        super().__init__(f'unexpected extension point: "{point}"')
        self.point = point


class Map(dict):
    """Mapping of extension point names to extension values."""

    def add(self, point: str, value: Record) -> "Map":
        self[point] = value
        return self

    def clone(self) -> "Map":
        """Return a map holding fresh, empty instances of every extension value."""
        return Map((point, type(value)()) for point, value in self.items())


def check_extension_value(value: Any) -> None:
    if not isinstance(value, Record):
        raise TypeError(
            f"extension value must be a record instance, got {type(value).__name__}"
        )


class Extensions:
    """Extension slot embedded in an extensible record."""

    def __init__(self, value: Optional[Record] = None):
        self.value: Optional[Record] = None
        self._cache: dict[str, dict] = {"cbor": {}, "json": {}}
        if value is not None:
            self.register(value)

    def __repr__(self) -> str:
        return f"Extensions({self.value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Extensions):
            return NotImplemented
        return self.value == other.value and self._cache == other._cache

    def register(self, value: Record) -> None:
        """Attach an extension value, hoisting matching cached entries into it.

        Raises:
            TypeError: If value is not a record instance
        """
        check_extension_value(value)
        self.value = value
        self._hoist()

    def have_extensions(self) -> bool:
        return self.value is not None

    def is_empty(self) -> bool:
        if self.value is None:
            return True
        return all(wf.is_empty(getattr(self.value, wf.name)) for wf in self.value.wire_fields())

    def new(self) -> Optional[Record]:
        """Return a fresh instance of the registered extension value type."""
        if self.value is None:
            return None
        return type(self.value)()

    @property
    def cached(self) -> dict[str, dict]:
        """Unknown entries kept from decoding, per wire format."""
        return self._cache

    def _hoist(self) -> None:
        assert self.value is not None
        for wire in ("cbor", "json"):
            cache = self._cache[wire]
            for wf in self.value.wire_fields():
                key = wf.cbor if wire == "cbor" else wf.json
                if key not in cache:
                    continue
                raw = cache.pop(key)
                self._set_from_wire(wf, wire, raw)
                logger.debug("Hoisted cached %s entry %r into %s", wire, key, wf.name)

    def _set_from_wire(self, wf: WireField, wire: str, raw: Any) -> None:
        current = getattr(self.value, wf.name)
        try:
            if wire == "cbor":
                value = wf.kind.from_cbor(raw, current)
            else:
                value = wf.kind.from_json(raw, current)
        except (ValueError, TypeError) as err:
            raise ValueError(f'error unmarshalling extension "{wf.name}": {err}') from err
        setattr(self.value, wf.name, value)

    def _lookup(self, name: Union[str, int]) -> WireField:
        if self.value is not None:
            for wf in self.value.wire_fields():
                if name in (wf.name, wf.json) or str(name) == str(wf.cbor):
                    return wf
        raise ExtensionNotFoundError(name)

    # wire helpers used by Record

    def consume_cbor(self, key: Any, item: Any) -> None:
        if self.value is not None:
            for wf in self.value.wire_fields():
                if wf.cbor == key:
                    self._set_from_wire(wf, "cbor", item)
                    return
        logger.debug("Caching unknown CBOR map key %r", key)
        self._cache["cbor"][key] = item

    def consume_json(self, key: str, item: JSONValue) -> None:
        if self.value is not None:
            for wf in self.value.wire_fields():
                if wf.json == key:
                    self._set_from_wire(wf, "json", item)
                    return
        logger.debug("Caching unknown JSON member %r", key)
        self._cache["json"][key] = item

    def cbor_entries(self) -> dict:
        out = {}
        if self.value is not None:
            out.update(self.value.to_cbor_value())
        for key, item in self._cache["cbor"].items():
            if key in out:
                raise ValueError(f"duplicate cbor key {key!r}")
            out[key] = item
        return out

    def json_entries(self) -> dict:
        out = {}
        if self.value is not None:
            out.update(self.value.to_json_value())
        for key, item in self._cache["json"].items():
            if key in out:
                raise ValueError(f"duplicate JSON member {key!r}")
            out[key] = item
        return out

    # constraint hooks

    def constrain(self, hook: str, target: Any) -> None:
        """Invoke the named constraint hook of the extension value, if it has one."""
        if self.value is None:
            return
        method = getattr(self.value, hook, None)
        if method is not None:
            method(target)

    def valid(self) -> None:
        if self.value is not None:
            self.value.valid()

    # accessors

    def get(self, name: Union[str, int]) -> Any:
        """Return an extension field value by field name, JSON key or CBOR key.

        Raises:
            ExtensionNotFoundError: If no such field is registered
        """
        wf = self._lookup(name)
        return getattr(self.value, wf.name)

    def set(self, name: Union[str, int], value: Any) -> None:
        """Set an extension field, converting the value to the field's kind.

        Raises:
            ExtensionNotFoundError: If no such field is registered
            ValueError: If the value cannot be converted
        """
        wf = self._lookup(name)
        try:
            converted = wf.kind.coerce(value)
        except (ValueError, TypeError) as err:
            raise ValueError(
                f'cannot set field "{name}" (of type {wf.kind.name}) '
                f"to {value!r} ({type_name(value)})"
            ) from err
        setattr(self.value, wf.name, converted)

    def get_int(self, name: Union[str, int]) -> int:
        return to_int(self.get(name))

    def get_uint(self, name: Union[str, int]) -> int:
        value = to_int(self.get(name))
        if value < 0:
            raise ValueError(f"unable to cast negative value {value} to uint")
        return value

    def get_float(self, name: Union[str, int]) -> float:
        return to_float(self.get(name))

    def get_bool(self, name: Union[str, int]) -> bool:
        return to_bool(self.get(name))

    def get_string(self, name: Union[str, int]) -> str:
        return to_string(self.get(name))

    def get_slice(self, name: Union[str, int]) -> list:
        return to_slice(self.get(name))

    def get_int_slice(self, name: Union[str, int]) -> list[int]:
        return [to_int(v) for v in to_slice(self.get(name))]

    def get_string_slice(self, name: Union[str, int]) -> list[str]:
        return [to_string(v) for v in to_slice(self.get(name))]

    def get_string_map(self, name: Union[str, int]) -> dict[str, Any]:
        return to_string_map(self.get(name))

    def get_string_map_string(self, name: Union[str, int]) -> dict[str, str]:
        return {k: to_string(v) for k, v in to_string_map(self.get(name)).items()}

    def must_get_int(self, name: Union[str, int]) -> int:
        return _must(self.get_int, name, 0)

    def must_get_uint(self, name: Union[str, int]) -> int:
        return _must(self.get_uint, name, 0)

    def must_get_float(self, name: Union[str, int]) -> float:
        return _must(self.get_float, name, 0.0)

    def must_get_bool(self, name: Union[str, int]) -> bool:
        return _must(self.get_bool, name, False)

    def must_get_string(self, name: Union[str, int]) -> str:
        return _must(self.get_string, name, "")

    def must_get_slice(self, name: Union[str, int]) -> list:
        return _must(self.get_slice, name, [])

    def must_get_int_slice(self, name: Union[str, int]) -> list[int]:
        return _must(self.get_int_slice, name, [])

    def must_get_string_slice(self, name: Union[str, int]) -> list[str]:
        return _must(self.get_string_slice, name, [])

    def must_get_string_map(self, name: Union[str, int]) -> dict[str, Any]:
        return _must(self.get_string_map, name, {})

    def must_get_string_map_string(self, name: Union[str, int]) -> dict[str, str]:
        return _must(self.get_string_map_string, name, {})


def _must(getter: Callable[[Any], Any], name: Any, zero: Any) -> Any:
    try:
        return getter(name)
    except ValueError:
        return zero


def _cast_error(value: Any, target: str) -> ValueError:
    return ValueError(f"unable to cast {value!r} of type {type_name(value)} to {target}")


def to_int(value: Any) -> int:
    """Convert a value to int the way loosely typed extension data expects."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            raise _cast_error(value, "int") from None
    raise _cast_error(value, "int")


def to_float(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise _cast_error(value, "float") from None
    raise _cast_error(value, "float")


_TRUE_STRINGS = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_STRINGS = ("0", "f", "F", "FALSE", "false", "False")


def to_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
    raise _cast_error(value, "bool")


def to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if hasattr(value, "__str__") and type(value).__str__ is not object.__str__:
        return str(value)
    raise _cast_error(value, "string")


def to_slice(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    if hasattr(value, "is_empty_collection"):
        return list(value)
    raise _cast_error(value, "slice")


def to_string_map(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return {to_string(k): v for k, v in value.items()}
    raise _cast_error(value, "map")


class Extensible:
    """Mixin for records that accept extension values at named points.

    Subclasses list the points they host in ``extension_points`` and declare
    an ``extensions`` field with :func:`~corim.encoding.extensions_field`.
    """

    extension_points: ClassVar[tuple[str, ...]] = ()

    def register_extensions(self, exts: Map) -> None:
        """Register extension values for this record's points.

        Raises:
            UnexpectedPointError: If exts names a point this record lacks
            TypeError: If an extension value is not a record instance
        """
        for point, value in exts.items():
            if point not in self.extension_points:
                raise UnexpectedPointError(point)
            self.extensions.register(value)

    def get_extensions(self) -> Optional[Record]:
        return self.extensions.value


class Collection(Generic[T]):
    """Ordered sequence of records sharing a set of extension values.

    Extensions registered on the collection are applied to every element
    it holds, and to each element decoded into it.
    """

    item_type: ClassVar[Callable[[], Any]]
    item_label: ClassVar[str] = "element"

    def __init__(self, items: Optional[list[T]] = None):
        self.items: list[T] = []
        self._exts = Map()
        for item in items or []:
            self.add(item)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.items!r})"

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __getitem__(self, index: int) -> T:
        return self.items[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Collection):
            return self.items == other.items
        if isinstance(other, list):
            return self.items == other
        return NotImplemented

    def is_empty_collection(self) -> bool:
        return not self.items

    def add(self, item: T) -> "Collection[T]":
        if item is None:
            return self
        if self._exts and getattr(item, "get_extensions", None) is not None:
            if item.get_extensions() is None:
                item.register_extensions(self._exts.clone())
        self.items.append(item)
        return self

    def clear(self) -> None:
        """Remove all elements, keeping registered extensions."""
        self.items = []

    def get_extensions(self) -> Optional[Map]:
        if not self._exts:
            return None
        return self._exts.clone()

    def register_extensions(self, exts: Map) -> None:
        """Register extensions for current and future elements.

        Raises:
            UnexpectedPointError: If the element type does not host a point
        """
        self.item_type().register_extensions(exts.clone())
        self._exts = Map(exts)
        for i, item in enumerate(self.items):
            if item.get_extensions() is None:
                try:
                    item.register_extensions(self._exts.clone())
                except ValueError as err:
                    raise ValueError(f"error at index {i}: {err}") from err

    def valid(self) -> None:
        for i, item in enumerate(self.items):
            try:
                item.valid()
            except ValueError as err:
                raise ValueError(f"invalid {self.item_label} at index {i}: {err}") from err

    def _new_item(self) -> T:
        item = self.item_type()
        if self._exts:
            item.register_extensions(self._exts.clone())
        return item

    def _decode(self, data: Any, populate: str) -> None:
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"expected an array, got {type_name(data)}")
        items = []
        for i, raw in enumerate(data):
            item = self._new_item()
            try:
                getattr(item, populate)(raw)
            except (ValueError, TypeError) as err:
                raise ValueError(f"error at index {i}: {err}") from err
            items.append(item)
        self.items = items

    def to_cbor_value(self) -> list:
        return [item.to_cbor_value() for item in self.items]

    def populate_cbor(self, data: Any) -> None:
        self._decode(data, "populate_cbor")

    def to_json_value(self) -> list:
        return [item.to_json_value() for item in self.items]

    def populate_json(self, data: JSONValue) -> None:
        self._decode(data, "populate_json")

    @classmethod
    def from_cbor_value(cls, data: Any) -> "Collection[T]":
        obj = cls()
        obj.populate_cbor(data)
        return obj

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "Collection[T]":
        obj = cls()
        obj.populate_json(data)
        return obj
