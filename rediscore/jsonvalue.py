"""A mutable, thread-safe JSON tree with typed access and in-place transforms."""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from typing import Any, Callable

from rediscore.kinds import Kind, NumberConversion, convert_value

_log = logging.getLogger(__name__)

_INTEGER_KINDS = frozenset(
    {
        Kind.INT,
        Kind.INT8,
        Kind.INT16,
        Kind.INT32,
        Kind.INT64,
        Kind.UINT,
        Kind.UINT8,
        Kind.UINT16,
        Kind.UINT32,
        Kind.UINT64,
    }
)
_FLOAT_KINDS = frozenset({Kind.FLOAT32, Kind.FLOAT64})
_NUMBER_KINDS = _INTEGER_KINDS | _FLOAT_KINDS

_RESULT_KINDS = {
    NumberConversion.TO_INT: Kind.INT,
    NumberConversion.TO_FLOAT: Kind.FLOAT64,
    NumberConversion.TO_UNSIGNED_INT: Kind.UINT,
    NumberConversion.TO_STRING: Kind.STRING,
}


class JSON:
    """One node of a JSON tree: a primitive, a map of nodes or a list of nodes."""

    __slots__ = ("_lock", "_kind", "_value", "_primitive")

    def __init__(self, kind: Kind = Kind.INVALID, value: Any = None, primitive: bool = True) -> None:
        self._lock = threading.RLock()
        self._kind = kind
        self._value = value
        self._primitive = primitive

    def __repr__(self) -> str:
        return f"JSON({self.to_unsafe_json_string() or self._kind.value})"

    @property
    def kind(self) -> Kind:
        """The kind of value this node holds."""
        return self._kind

    def _assign(self, other: "JSON") -> None:
        with self._lock:
            self._kind = other._kind
            self._value = other._value
            self._primitive = other._primitive

    # -- conversion -------------------------------------------------------

    def to_json(self) -> bytes:
        """Serialize to compact UTF-8 JSON with sorted object keys."""
        try:
            text = json.dumps(
                self.to_interface(),
                separators=(",", ":"),
                sort_keys=True,
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"cannot serialize JSON value: {exc}") from exc
        return text.encode("utf-8")

    def to_unsafe_json(self) -> bytes:
        """Like to_json, but an empty byte string when serialization fails."""
        try:
            return self.to_json()
        except ValueError:
            return b""

    def to_json_string(self) -> str:
        """Serialize to a JSON string."""
        return self.to_json().decode("utf-8")

    def to_unsafe_json_string(self) -> str:
        """Like to_json_string, but an empty string when serialization fails."""
        return self.to_unsafe_json().decode("utf-8")

    def to_interface(self) -> Any:
        """The whole tree as plain Python values."""
        with self._lock:
            if self._primitive:
                return self._value
            if self._kind is Kind.SLICE:
                return [item.to_interface() for item in self._value]
            if self._kind is Kind.MAP:
                return {key: item.to_interface() for key, item in self._value.items()}
            return None

    def clone(self) -> "JSON":
        """A deep copy of this node."""
        with self._lock:
            if self._primitive:
                return JSON(self._kind, self._value, True)
            if self._kind is Kind.SLICE:
                return JSON(Kind.SLICE, [item.clone() for item in self._value], False)
            if self._kind is Kind.MAP:
                return JSON(
                    Kind.MAP, {key: item.clone() for key, item in self._value.items()}, False
                )
            return new_empty_json()

    # -- navigation -------------------------------------------------------

    def at(self, key: Any, *args: Any) -> "JSON":
        """The node at a path of map keys (str) and list indexes (int).

        A path that does not exist gives an empty (null) node.
        """
        with self._lock:
            return self._at_locked(key, args)

    def _at_locked(self, key: Any, rest: tuple) -> "JSON":
        if key is None:
            _log.info("Key can not be nil")
            return new_empty_json()
        found: JSON | None = None
        if isinstance(key, int) and not isinstance(key, bool):
            if self._kind is Kind.SLICE and 0 <= key < len(self._value):
                found = self._value[key]
        elif isinstance(key, str):
            if self._kind is Kind.MAP:
                found = self._value.get(key)
        if found is None:
            return new_empty_json()
        if rest:
            with found._lock:
                return found._at_locked(rest[0], rest[1:])
        return found

    # -- type checks ------------------------------------------------------

    def is_number(self) -> bool:
        return self._primitive and self._kind in _NUMBER_KINDS

    def is_type(self, kind: Kind) -> bool:
        with self._lock:
            return self._kind is Kind(kind)

    def is_string(self) -> bool:
        return self.is_type(Kind.STRING)

    def is_int(self) -> bool:
        """True for any signed or unsigned integer kind."""
        with self._lock:
            return self._kind in _INTEGER_KINDS

    def is_bool(self) -> bool:
        return self.is_type(Kind.BOOL)

    def is_float(self) -> bool:
        with self._lock:
            return self._kind in _FLOAT_KINDS

    def is_nil(self) -> bool:
        return self._value is None

    def is_map(self) -> bool:
        return self.is_type(Kind.MAP)

    def is_slice(self) -> bool:
        return self.is_type(Kind.SLICE)

    def is_primitive(self) -> bool:
        return self._primitive

    # -- typed access -----------------------------------------------------

    def _typed(self, accepted: Callable[[Kind], bool], name: str) -> Any:
        with self._lock:
            if not accepted(self._kind):
                raise TypeError(f"JSON value of kind {self._kind.value} is not {name}")
            return self._value

    def get_int(self) -> int:
        """The integer value; TypeError if this node is not an integer."""
        return self._typed(lambda k: k in _INTEGER_KINDS, "an integer")

    def get_float(self) -> float:
        """The float value; TypeError if this node is not a float."""
        return self._typed(lambda k: k in _FLOAT_KINDS, "a float")

    def get_bool(self) -> bool:
        return self._typed(lambda k: k is Kind.BOOL, "a bool")

    def get_string(self) -> str:
        return self._typed(lambda k: k is Kind.STRING, "a string")

    def get_map(self) -> dict[str, "JSON"]:
        """The child nodes by key; TypeError if this node is not a map."""
        return self._typed(lambda k: k is Kind.MAP, "a map")

    def get_slice(self) -> list["JSON"]:
        """The child nodes in order; TypeError if this node is not a list."""
        return self._typed(lambda k: k is Kind.SLICE, "a slice")

    def get_object_keys(self) -> list[str] | None:
        """The keys of a map node, or None for other kinds."""
        with self._lock:
            if self._kind is not Kind.MAP:
                return None
            return list(self._value)

    def object_key_exists(self, key: str) -> bool:
        with self._lock:
            return self._kind is Kind.MAP and key in self._value

    def get_slice_len(self) -> int:
        """Length of a list node, 0 for other kinds."""
        with self._lock:
            return len(self._value) if self._kind is Kind.SLICE else 0

    # -- iteration --------------------------------------------------------

    def slice_for_each(self, cb: Callable[["JSON", int], Any]) -> "JSON":
        """Call cb(item, index) for every list item."""
        with self._lock:
            if self._kind is Kind.SLICE:
                for index, item in enumerate(self._value):
                    cb(item, index)
        return self

    def slice_map(self, cb: Callable[["JSON", int], "JSON"]) -> "JSON":
        """Replace every list item with cb(item, index)."""
        with self._lock:
            if self._kind is Kind.SLICE:
                self._value = [cb(item, index) for index, item in enumerate(self._value)]
        return self

    def slice_filter(self, cb: Callable[["JSON", int], bool]) -> "JSON":
        """Keep only the list items for which cb(item, index) is true."""
        with self._lock:
            if self._kind is Kind.SLICE:
                self._value = [item for index, item in enumerate(self._value) if cb(item, index)]
        return self

    def object_for_each(self, cb: Callable[["JSON", str], Any]) -> "JSON":
        """Call cb(value, key) for every map entry."""
        with self._lock:
            if self._kind is Kind.MAP:
                for key, item in self._value.items():
                    cb(item, key)
        return self

    def object_map(self, cb: Callable[["JSON", str], "JSON"]) -> "JSON":
        """Replace every map value with cb(value, key)."""
        with self._lock:
            if self._kind is Kind.MAP:
                self._value = {key: cb(item, key) for key, item in self._value.items()}
        return self

    def object_filter(self, cb: Callable[["JSON", str], bool]) -> "JSON":
        """Keep only the map entries for which cb(value, key) is true."""
        with self._lock:
            if self._kind is Kind.MAP:
                self._value = {key: item for key, item in self._value.items() if cb(item, key)}
        return self

    # -- mutation ---------------------------------------------------------

    def set(self, value: Any) -> "JSON":
        """Replace this node's value with a deep copy of value."""
        self._assign(_jsonize(value))
        return self

    def map_set(self, key: str, value: Any) -> "JSON":
        """Set a map entry; does nothing unless this node is a map."""
        with self._lock:
            if self._kind is Kind.MAP:
                self._value[key] = _jsonize(value)
        return self

    def delete_map_key(self, key: str) -> "JSON":
        with self._lock:
            if self._kind is Kind.MAP:
                self._value.pop(key, None)
        return self

    def slice_append(self, *args: Any) -> "JSON":
        """Append values in order; does nothing unless this node is a list."""
        with self._lock:
            if self._kind is Kind.SLICE:
                self._value.extend(_jsonize(item) for item in args)
        return self

    def slice_append_begin(self, *args: Any) -> "JSON":
        """Prepend each value in turn, so the last one ends up first."""
        with self._lock:
            if self._kind is Kind.SLICE:
                self._value[:0] = [_jsonize(item) for item in reversed(args)]
        return self

    def slice_set(self, index: int, value: Any) -> "JSON":
        """Replace a list item; IndexError if the index is out of range."""
        with self._lock:
            if self._kind is Kind.SLICE:
                if not 0 <= index < len(self._value):
                    raise IndexError(f"index {index} out of range")
                self._value[index] = _jsonize(value)
        return self

    def _mutate(self, target: NumberConversion) -> bool:
        with self._lock:
            if not self._primitive:
                return False
            try:
                converted = convert_value(self._kind, self._value, target)
            except ValueError:
                return False
            self._kind = _RESULT_KINDS[target]
            self._value = converted
            return True

    def mutate_to_int(self) -> bool:
        """Convert a number or numeric string to an int in place."""
        return self._mutate(NumberConversion.TO_INT)

    def mutate_to_float(self) -> bool:
        return self._mutate(NumberConversion.TO_FLOAT)

    def mutate_to_unsigned_int(self) -> bool:
        return self._mutate(NumberConversion.TO_UNSIGNED_INT)

    def mutate_to_string(self) -> bool:
        return self._mutate(NumberConversion.TO_STRING)


def _jsonize_struct(value: Any) -> JSON:
    fields: dict[str, Any] = {}
    for field in dataclasses.fields(value):
        tag = field.metadata.get("json")
        if tag == "-":
            continue
        fields[tag if tag is not None else field.name] = getattr(value, field.name)
    return _jsonize(fields)


def _jsonize(value: Any) -> JSON:
    if value is None:
        return new_empty_json()
    if isinstance(value, JSON):
        return value.clone()
    if isinstance(value, bool):
        return JSON(Kind.BOOL, value, True)
    if isinstance(value, int):
        return JSON(Kind.INT, value, True)
    if isinstance(value, float):
        return JSON(Kind.FLOAT64, value, True)
    if isinstance(value, str):
        return JSON(Kind.STRING, value, True)
    if isinstance(value, dict):
        return JSON(
            Kind.MAP,
            {key: _jsonize(item) for key, item in value.items() if isinstance(key, str)},
            False,
        )
    if isinstance(value, (list, tuple)):
        return JSON(Kind.SLICE, [_jsonize(item) for item in value], False)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _jsonize_struct(value)
    return new_empty_json()


def new(value: Any) -> JSON:
    """A JSON tree holding a deep copy of value.

    Accepts None, bool, int, float, str, dicts with str keys, lists, tuples,
    dataclass instances (field metadata "json" renames, "-" skips) and JSON.
    """
    return _jsonize(value)


def new_empty_json() -> JSON:
    """A null node."""
    return JSON()


def new_empty_json_map() -> JSON:
    return new({})


def new_empty_json_array() -> JSON:
    return new([])


def parse(data: bytes | str) -> JSON:
    """Parse JSON text; raises ValueError when it is not valid JSON."""
    return new(json.loads(data))


def parse_unsafe(data: bytes | str) -> JSON:
    """Parse JSON text, giving a null node when it is not valid JSON."""
    try:
        return parse(data)
    except ValueError:
        return new_empty_json()


def equals_deep(left: JSON, right: JSON) -> bool:
    """Structural equality of two trees, kinds included."""
    if left.kind is not right.kind:
        return False
    if left.is_primitive() and right.is_primitive():
        return left.to_unsafe_json() == right.to_unsafe_json()
    if left.is_slice() and right.is_slice():
        lefts, rights = left.get_slice(), right.get_slice()
        return len(lefts) == len(rights) and all(
            equals_deep(a, b) for a, b in zip(lefts, rights)
        )
    if left.is_map() and right.is_map():
        lmap, rmap = left.get_map(), right.get_map()
        if lmap.keys() != rmap.keys():
            return False
        return all(equals_deep(item, rmap[key]) for key, item in lmap.items())
    return False