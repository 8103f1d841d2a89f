"""Value kinds held by JSON nodes and the numeric conversions between them."""

from __future__ import annotations

import enum
import math
import re
import struct
from typing import Any, Callable


class Kind(enum.Enum):
    """The kind of value a JSON node holds."""

    INVALID = "invalid"
    BOOL = "bool"
    INT = "int"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT = "uint"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    MAP = "map"
    SLICE = "slice"


class NumberConversion(enum.IntEnum):
    """Target of a numeric conversion."""

    TO_INT = 0
    TO_FLOAT = 1
    TO_UNSIGNED_INT = 2
    TO_STRING = 3


_U64 = 1 << 64
_I64_SIGN = 1 << 63

_SIGNED_KINDS = frozenset({Kind.INT, Kind.INT8, Kind.INT16, Kind.INT32, Kind.INT64})
_UNSIGNED_KINDS = frozenset({Kind.UINT, Kind.UINT8, Kind.UINT16, Kind.UINT32, Kind.UINT64})
_FLOAT_KINDS = frozenset({Kind.FLOAT32, Kind.FLOAT64})

_INT_RE = re.compile(r"[+-]?[0-9]+")
_UINT_RE = re.compile(r"[0-9]+")
_DEC_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_HEX_FLOAT_RE = re.compile(
    r"[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?[0-9]+"
)
_INF_RE = re.compile(r"[+-]?(?:inf|infinity)", re.IGNORECASE)
_NAN_RE = re.compile(r"nan", re.IGNORECASE)


def _to_signed64(value: int) -> int:
    value %= _U64
    return value - _U64 if value >= _I64_SIGN else value


def _to_unsigned64(value: int) -> int:
    return value % _U64


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _truncate(value: float) -> int:
    if not math.isfinite(value):
        raise ValueError(f"cannot convert {value!r} to an integer")
    return int(value)


def _format_exponent(value: float, bits: int) -> str:
    """Shortest round-tripping scientific notation with an upper-case E."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if bits == 32:
        max_digits = 9

        def fits(text: str) -> bool:
            return _to_float32(float(text)) == value

    else:
        max_digits = 17

        def fits(text: str) -> bool:
            return float(text) == value

    text = format(value, f".{max_digits - 1}e")
    for digits in range(1, max_digits + 1):
        candidate = format(value, f".{digits - 1}e")
        if fits(candidate):
            text = candidate
            break
    mantissa, exponent = text.split("e")
    if "." in mantissa:
        mantissa = mantissa.rstrip("0").rstrip(".")
    return f"{mantissa}E{exponent}"


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer syntax: {text!r}")
    value = int(text)
    if not -_I64_SIGN <= value < _I64_SIGN:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _parse_uint(text: str) -> int:
    if not _UINT_RE.fullmatch(text):
        raise ValueError(f"invalid unsigned integer syntax: {text!r}")
    value = int(text)
    if value >= _U64:
        raise ValueError(f"unsigned integer out of range: {text!r}")
    return value


def _parse_float(text: str) -> float:
    if _INF_RE.fullmatch(text):
        return -math.inf if text.startswith("-") else math.inf
    if _NAN_RE.fullmatch(text):
        return math.nan
    if _HEX_FLOAT_RE.fullmatch(text):
        try:
            return float.fromhex(text)
        except OverflowError as exc:
            raise ValueError(f"float out of range: {text!r}") from exc
    if _DEC_FLOAT_RE.fullmatch(text):
        value = float(text)
        if math.isinf(value):
            raise ValueError(f"float out of range: {text!r}")
        return value
    raise ValueError(f"invalid float syntax: {text!r}")


def _convert_float(value: float, bits: int, target: NumberConversion) -> Any:
    if target is NumberConversion.TO_INT:
        return _truncate(value)
    if target is NumberConversion.TO_FLOAT:
        return float(value)
    if target is NumberConversion.TO_UNSIGNED_INT:
        return _to_unsigned64(_truncate(value))
    return _format_exponent(value, bits)


def _convert_integer(value: int, unsigned: bool, target: NumberConversion) -> Any:
    if target is NumberConversion.TO_INT:
        return _to_signed64(value) if unsigned else value
    if target is NumberConversion.TO_FLOAT:
        return float(value)
    if target is NumberConversion.TO_UNSIGNED_INT:
        return _to_unsigned64(value)
    return str(value)


_STRING_PARSERS: dict[NumberConversion, Callable[[str], Any]] = {
    NumberConversion.TO_INT: _parse_int,
    NumberConversion.TO_FLOAT: _parse_float,
    NumberConversion.TO_UNSIGNED_INT: _parse_uint,
    NumberConversion.TO_STRING: str,
}


def convert_value(kind: Kind, value: Any, target: NumberConversion) -> Any:
    """Convert a primitive value of the given kind to the requested target.

    Raises ValueError when the kind cannot be converted or a string does not
    parse as the requested number.
    """
    kind = Kind(kind)
    target = NumberConversion(target)
    if kind in _FLOAT_KINDS:
        bits = 32 if kind is Kind.FLOAT32 else 64
        number = _to_float32(float(value)) if bits == 32 else float(value)
        return _convert_float(number, bits, target)
    if kind in _UNSIGNED_KINDS:
        return _convert_integer(int(value), True, target)
    if kind in _SIGNED_KINDS:
        return _convert_integer(int(value), False, target)
    if kind is Kind.STRING:
        return _STRING_PARSERS[target](value)
    raise ValueError(f"values of kind {kind.value} cannot be converted")