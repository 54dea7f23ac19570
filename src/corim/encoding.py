"""Struct-driven CBOR and JSON mapping for document records.

A record is a dataclass whose fields carry a CBOR map key, a JSON member
name and a *kind* describing how the field value converts to and from each
wire format. Records that hold an ``extensions`` slot accept profile-defined
fields and keep unknown map entries so they can be re-emitted on encode;
all other records reject unknown keys.
"""

import base64
import binascii
import dataclasses
import datetime
import json
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, NamedTuple, Optional, Union

from . import cbor_utils

JSONValue = Any


def type_name(obj: Any) -> str:
    """Name of the Python type of a decoded wire value."""
    return cbor_utils.describe(obj)


def b64encode(data: bytes) -> str:
    """Standard base64 with padding, as used by the JSON forms."""
    return base64.b64encode(data).decode("ascii")


def b64decode(data: Any) -> bytes:
    """Decode standard base64 text.

    Raises:
        ValueError: If data is not a string or is not valid base64
    """
    if not isinstance(data, str):
        raise ValueError(f"expected a base64 string, got {type_name(data)}")
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as err:
        raise ValueError(f"illegal base64 data: {err}") from err


def format_time(value: datetime.datetime) -> str:
    """Render a datetime as RFC 3339, using ``Z`` for UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def parse_time(value: Any) -> datetime.datetime:
    """Parse an RFC 3339 timestamp.

    Raises:
        ValueError: If value is not a valid RFC 3339 string
    """
    if not isinstance(value, str):
        raise ValueError(f"expected an RFC 3339 string, got {type_name(value)}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError as err:
        raise ValueError(f"invalid RFC 3339 time {value!r}") from err
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def json_loads(data: Union[str, bytes]) -> JSONValue:
    """Parse JSON, rejecting objects with repeated member names."""
    return json.loads(data, object_pairs_hook=_reject_duplicates)


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate JSON member {key!r}")
        result[key] = value
    return result


def json_dumps(value: JSONValue, indent: Optional[int] = None) -> str:
    """Serialize a JSON value."""
    return json.dumps(value, indent=indent, ensure_ascii=False)


class Kind:
    """Conversion between a Python field value and its wire representations.

    The default kind passes values through unchanged.
    """

    name = "any"

    def to_cbor(self, value: Any) -> Any:
        return value

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return data

    def to_json(self, value: Any) -> JSONValue:
        return value

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return data

    def is_empty(self, value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, (list, tuple, dict)) or hasattr(value, "is_empty_collection"):
            return len(value) == 0
        return False

    def coerce(self, value: Any) -> Any:
        return value


class _Scalar(Kind):
    def __init__(self, name: str, types: tuple, exclude: tuple = ()):
        self.name = name
        self.types = types
        self.exclude = exclude

    def check(self, value: Any) -> Any:
        if not isinstance(value, self.types) or isinstance(value, self.exclude):
            raise ValueError(f"expected {self.name}, got {type_name(value)}")
        return value

    def to_cbor(self, value: Any) -> Any:
        return self.check(value)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self.check(data)

    def to_json(self, value: Any) -> JSONValue:
        return self.check(value)

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self.check(data)

    def coerce(self, value: Any) -> Any:
        return self.check(value)


class _Int(_Scalar):
    def __init__(self, name: str = "int", minimum: Optional[int] = None):
        super().__init__(name, (int,), (bool,))
        self.minimum = minimum

    def check(self, value: Any) -> Any:
        value = super().check(value)
        if self.minimum is not None and value < self.minimum:
            raise ValueError(f"expected {self.name}, got {value}")
        return value

    def coerce(self, value: Any) -> Any:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return self.check(value)


class _Float(_Scalar):
    def __init__(self) -> None:
        super().__init__("float", (int, float), (bool,))

    def coerce(self, value: Any) -> Any:
        return float(self.check(value))


class _Bytes(Kind):
    name = "bytes"

    def to_cbor(self, value: Any) -> Any:
        return bytes(self.coerce(value))

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        if not isinstance(data, bytes):
            raise ValueError(f"expected bytes, got {type_name(data)}")
        return data

    def to_json(self, value: Any) -> JSONValue:
        return b64encode(self.coerce(value))

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return b64decode(data)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, bytearray):
            return bytes(value)
        if not isinstance(value, bytes):
            raise ValueError(f"expected bytes, got {type_name(value)}")
        return value


class _Time(Kind):
    name = "time"

    def to_cbor(self, value: Any) -> Any:
        return self.coerce(value)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        if not isinstance(data, datetime.datetime):
            raise ValueError(f"expected a tagged time value, got {type_name(data)}")
        return data

    def to_json(self, value: Any) -> JSONValue:
        return format_time(self.coerce(value))

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return parse_time(data)

    def coerce(self, value: Any) -> Any:
        if not isinstance(value, datetime.datetime):
            raise ValueError(f"expected a datetime, got {type_name(value)}")
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value


ANY = Kind()
TEXT = _Scalar("text", (str,))
INT = _Int()
UINT = _Int("uint", minimum=0)
BOOL = _Scalar("bool", (bool,))
FLOAT = _Float()
BYTES = _Bytes()
TIME = _Time()


class ValueKind(Kind):
    """Kind for classes exposing the ``to_cbor_value``/``from_cbor_value`` protocol.

    When the host record already holds an instance that can be populated in
    place (for example a record with pre-registered extensions), decoding
    reuses it instead of building a fresh one.
    """

    def __init__(self, cls: type):
        self.cls = cls
        self.name = cls.__name__

    def to_cbor(self, value: Any) -> Any:
        return value.to_cbor_value()

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        if current is not None and hasattr(current, "populate_cbor"):
            current.populate_cbor(data)
            return current
        return self.cls.from_cbor_value(data)

    def to_json(self, value: Any) -> JSONValue:
        return value.to_json_value()

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        if current is not None and hasattr(current, "populate_json"):
            current.populate_json(data)
            return current
        return self.cls.from_json_value(data)

    def coerce(self, value: Any) -> Any:
        if not isinstance(value, self.cls):
            raise ValueError(f"expected {self.name}, got {type_name(value)}")
        return value


class ListOf(Kind):
    """Homogeneous array of another kind."""

    def __init__(self, item: Any):
        self.item = as_kind(item)
        self.name = f"[{self.item.name}]"

    def _items(self, data: Any) -> list:
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"expected an array, got {type_name(data)}")
        return list(data)

    def _convert(self, data: Any, convert: Callable[[Any], Any]) -> list:
        out = []
        for i, item in enumerate(self._items(data)):
            try:
                out.append(convert(item))
            except (ValueError, TypeError) as err:
                raise ValueError(f"error at index {i}: {err}") from err
        return out

    def to_cbor(self, value: Any) -> Any:
        return self._convert(value, self.item.to_cbor)

    def from_cbor(self, data: Any, current: Any = None) -> Any:
        return self._convert(data, self.item.from_cbor)

    def to_json(self, value: Any) -> JSONValue:
        return self._convert(value, self.item.to_json)

    def from_json(self, data: JSONValue, current: Any = None) -> Any:
        return self._convert(data, self.item.from_json)

    def coerce(self, value: Any) -> Any:
        return [self.item.coerce(v) for v in self._items(value)]


def as_kind(kind: Any) -> Kind:
    """Resolve a field kind declaration.

    Accepts a :class:`Kind`, a class implementing the value protocol, a
    one-element list ``[X]`` for arrays of X, or None for pass-through.
    """
    if kind is None:
        return ANY
    if isinstance(kind, Kind):
        return kind
    if isinstance(kind, list) and len(kind) == 1:
        return ListOf(kind[0])
    if isinstance(kind, type) and hasattr(kind, "from_cbor_value"):
        return ValueKind(kind)
    raise TypeError(f"cannot derive a codec kind from {kind!r}")


class WireField(NamedTuple):
    """Wire mapping of one record field."""

    name: str
    cbor: Union[int, str]
    json: str
    kind: Kind
    omitempty: bool
    zero_is_empty: bool

    def is_empty(self, value: Any) -> bool:
        if self.kind.is_empty(value):
            return True
        if self.zero_is_empty and value in (0, False, "", b""):
            return True
        return False


def cbor_field(
    key: Union[int, str],
    json_key: str,
    kind: Any = None,
    *,
    omitempty: bool = True,
    zero_is_empty: bool = False,
    default: Any = None,
    default_factory: Optional[Callable[[], Any]] = None,
) -> Any:
    """Declare a record field carried on the wire.

    Args:
        key: CBOR map key (or array position for array-shaped records)
        json_key: JSON member name
        kind: Conversion kind, see :func:`as_kind`
        omitempty: Skip the field on encode when it is empty; when False the
            field is mandatory and encoding fails if it is None
        zero_is_empty: Also treat 0, False and empty strings as empty
        default: Default value
        default_factory: Factory for mutable defaults

    Returns:
        A dataclass field
    """
    metadata = {
        "cbor": key,
        "json": json_key,
        "kind": kind,
        "omitempty": omitempty,
        "zero_is_empty": zero_is_empty,
    }
    if default_factory is not None:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(default=default, metadata=metadata)


def extensions_field() -> Any:
    """Declare the extensions slot of an extensible record."""
    from .extensions import Extensions

    return dataclasses.field(default_factory=Extensions, repr=False)


class Record:
    """Base class for map-shaped records.

    Subclasses are dataclasses whose wire fields are declared with
    :func:`cbor_field`. Setting ``_toarray = True`` turns the record into a
    CBOR array ordered by key (the JSON form stays an object).
    """

    _toarray: ClassVar[bool] = False

    @classmethod
    def wire_fields(cls) -> list[WireField]:
        cached = cls.__dict__.get("_wire_fields_cache")
        if cached is not None:
            return cached

        fields = []
        seen: set = set()
        for f in dataclasses.fields(cls):
            if "cbor" not in f.metadata:
                continue
            key = f.metadata["cbor"]
            if key in seen:
                raise ValueError(f"duplicate cbor key {key!r} in {cls.__name__}")
            seen.add(key)
            fields.append(
                WireField(
                    name=f.name,
                    cbor=key,
                    json=f.metadata["json"],
                    kind=as_kind(f.metadata["kind"]),
                    omitempty=f.metadata["omitempty"],
                    zero_is_empty=f.metadata["zero_is_empty"],
                )
            )
        if cls._toarray:
            fields.sort(key=lambda wf: wf.cbor)
        cls._wire_fields_cache = fields
        return fields

    def _extension_slot(self) -> Any:
        return getattr(self, "extensions", None)

    def _field_template(self, name: str) -> Any:
        """Return the object a decoded field should be populated into, if any."""
        return getattr(self, name, None)

    def valid(self) -> None:
        """Check the record invariants.

        Raises:
            ValueError: If the record is not valid
        """

    # CBOR

    def to_cbor_value(self) -> Any:
        entries = []
        for wf in self.wire_fields():
            value = getattr(self, wf.name)
            if value is None and not wf.omitempty:
                raise ValueError(f'missing mandatory field "{wf.name}" ({wf.cbor})')
            if wf.omitempty and wf.is_empty(value):
                continue
            try:
                entries.append((wf.cbor, wf.kind.to_cbor(value)))
            except (ValueError, TypeError) as err:
                raise ValueError(f'error marshaling field "{wf.name}": {err}') from err

        if self._toarray:
            return [item for _, item in entries]

        out: dict = {}
        for key, item in entries:
            out[key] = item

        exts = self._extension_slot()
        if exts is not None:
            for key, item in exts.cbor_entries().items():
                if key in out:
                    raise ValueError(f"duplicate cbor key {key!r}")
                out[key] = item
        return out

    def populate_cbor(self, data: Any) -> None:
        """Populate this record in place from a decoded CBOR item."""
        if self._toarray:
            self._populate_array(data)
            return

        if not isinstance(data, Mapping):
            raise ValueError(f"expected a map, got {type_name(data)}")

        by_key = {wf.cbor: wf for wf in self.wire_fields()}
        exts = self._extension_slot()
        for key, item in data.items():
            wf = by_key.get(key)
            if wf is None:
                if exts is None:
                    raise ValueError(f"unexpected map key {key!r}")
                exts.consume_cbor(key, item)
                continue
            try:
                value = wf.kind.from_cbor(item, self._field_template(wf.name))
            except (ValueError, TypeError) as err:
                raise ValueError(f'error unmarshalling field "{wf.name}": {err}') from err
            setattr(self, wf.name, value)

    def _populate_array(self, data: Any) -> None:
        fields = self.wire_fields()
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"expected an array, got {type_name(data)}")
        mandatory = len([wf for wf in fields if not wf.omitempty])
        if not mandatory <= len(data) <= len(fields):
            raise ValueError(
                f"expected an array of {len(fields)} items, got {len(data)}"
            )
        for wf, item in zip(fields, data):
            try:
                value = wf.kind.from_cbor(item, self._field_template(wf.name))
            except (ValueError, TypeError) as err:
                raise ValueError(f'error unmarshalling field "{wf.name}": {err}') from err
            setattr(self, wf.name, value)

    @classmethod
    def from_cbor_value(cls, data: Any) -> "Record":
        obj = cls()
        obj.populate_cbor(data)
        return obj

    def to_cbor(self) -> bytes:
        """Validate and serialize to deterministic CBOR."""
        self.valid()
        return cbor_utils.encode(self.to_cbor_value())

    def from_cbor(self, data: bytes) -> "Record":
        """Populate from CBOR bytes, then validate.

        Returns:
            self, to allow chaining
        """
        self.populate_cbor(cbor_utils.decode(data))
        self.valid()
        return self

    # JSON

    def to_json_value(self) -> JSONValue:
        out: dict = {}
        for wf in self.wire_fields():
            value = getattr(self, wf.name)
            if value is None and not wf.omitempty:
                raise ValueError(f'missing mandatory field "{wf.name}" ({wf.json!r})')
            if wf.omitempty and wf.is_empty(value):
                continue
            try:
                out[wf.json] = wf.kind.to_json(value)
            except (ValueError, TypeError) as err:
                raise ValueError(f'error marshaling field "{wf.name}": {err}') from err

        exts = self._extension_slot()
        if exts is not None:
            for key, item in exts.json_entries().items():
                if key in out:
                    raise ValueError(f"duplicate JSON member {key!r}")
                out[key] = item
        return out

    def populate_json(self, data: JSONValue) -> None:
        """Populate this record in place from a parsed JSON value."""
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type_name(data)}")

        by_key = {wf.json: wf for wf in self.wire_fields()}
        exts = self._extension_slot()
        for key, item in data.items():
            wf = by_key.get(key)
            if wf is None:
                if exts is None:
                    raise ValueError(f"unexpected member {key!r}")
                exts.consume_json(key, item)
                continue
            try:
                value = wf.kind.from_json(item, self._field_template(wf.name))
            except (ValueError, TypeError) as err:
                raise ValueError(f'error unmarshalling field "{wf.name}": {err}') from err
            setattr(self, wf.name, value)

    @classmethod
    def from_json_value(cls, data: JSONValue) -> "Record":
        obj = cls()
        obj.populate_json(data)
        return obj

    def to_json(self, indent: Optional[int] = None) -> str:
        """Validate and serialize to JSON text."""
        self.valid()
        return json_dumps(self.to_json_value(), indent=indent)

    def from_json(self, data: Union[str, bytes]) -> "Record":
        """Populate from JSON text, then validate.

        Returns:
            self, to allow chaining
        """
        self.populate_json(json_loads(data))
        self.valid()
        return self
