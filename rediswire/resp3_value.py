"""RESP3 values and their conversion to and from RESP2 values."""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from rediswire.errors import RedisTypeError
from rediswire.values import (
    NULL,
    Array,
    BulkString,
    ErrorReply,
    Integer,
    NullValue,
    RespValue,
    SimpleString,
)

_INT_RE = re.compile(r"[+-]?[0-9]+")
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


class Resp3Type(enum.Enum):
    """The kinds of value RESP3 can carry, named as the protocol names them."""

    SIMPLE_STRING = "simple-string"
    SIMPLE_ERROR = "simple-error"
    NUMBER = "number"
    BLOB_STRING = "blob-string"
    ARRAY = "array"
    NULL = "null"
    BOOLEAN = "boolean"
    DOUBLE = "double"
    BIG_NUMBER = "big-number"
    BLOB_ERROR = "blob-error"
    VERBATIM_STRING = "verbatim-string"
    MAP = "map"
    SET = "set"
    ATTRIBUTE = "attribute"
    PUSH = "push"


def _format_double(number: float) -> str:
    """Render a float in plain decimal notation, without exponent."""
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "inf" if number > 0 else "-inf"
    text = format(Decimal(repr(number)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _parse_i64(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise RedisTypeError(f"Cannot parse '{text}' to i64: invalid digit found in string")
    number = int(text)
    if not _I64_MIN <= number <= _I64_MAX:
        raise RedisTypeError(f"Cannot parse '{text}' to i64: number too large to fit in target type")
    return number


def _parse_f64(text: str) -> float:
    if not text or "_" in text or text != text.strip():
        raise RedisTypeError(f"Cannot parse '{text}' to f64: invalid float literal")
    try:
        return float(text)
    except ValueError as exc:
        raise RedisTypeError(f"Cannot parse '{text}' to f64: invalid float literal") from exc


def _saturating_i64(number: float) -> int:
    if math.isnan(number):
        return 0
    if number >= 2**63:
        return _I64_MAX
    if number <= _I64_MIN:
        return _I64_MIN
    return math.trunc(number)


_SEQUENCE_KINDS = (Resp3Type.ARRAY, Resp3Type.PUSH)


@dataclass(frozen=True, eq=False)
class Resp3Value:
    """One RESP3 value.

    ``value`` holds the payload: ``str`` for the string kinds, ``int`` for
    numbers, ``bool``, ``float``, a tuple for arrays and pushes, a dict with
    string keys for maps, a frozenset for sets, ``None`` for null and the
    wrapped value for attributes. ``encoding`` belongs to verbatim strings and
    ``attrs`` to attributes.
    """

    kind: Resp3Type
    value: Any = None
    encoding: str = ""
    attrs: Optional[Mapping[str, "Resp3Value"]] = None

    def __post_init__(self) -> None:
        kind = self.kind
        if kind in _SEQUENCE_KINDS:
            object.__setattr__(self, "value", tuple(self.value or ()))
        elif kind is Resp3Type.MAP:
            object.__setattr__(self, "value", dict(self.value or {}))
        elif kind is Resp3Type.SET:
            object.__setattr__(self, "value", frozenset(self.value or ()))
        elif kind is Resp3Type.NUMBER:
            object.__setattr__(self, "value", int(self.value))
        elif kind is Resp3Type.DOUBLE:
            object.__setattr__(self, "value", float(self.value))
        elif kind is Resp3Type.BOOLEAN:
            object.__setattr__(self, "value", bool(self.value))
        elif kind is Resp3Type.NULL:
            object.__setattr__(self, "value", None)
        elif kind is Resp3Type.ATTRIBUTE:
            if not isinstance(self.value, Resp3Value):
                raise TypeError("An attribute must wrap a Resp3Value")
            object.__setattr__(self, "attrs", dict(self.attrs or {}))
        elif not isinstance(self.value, str):
            raise TypeError(f"A {kind.value} value must hold a str")

    # Constructors -------------------------------------------------------

    @classmethod
    def simple_string(cls, text: str) -> "Resp3Value":
        return cls(Resp3Type.SIMPLE_STRING, text)

    @classmethod
    def simple_error(cls, text: str) -> "Resp3Value":
        return cls(Resp3Type.SIMPLE_ERROR, text)

    @classmethod
    def number(cls, number: int) -> "Resp3Value":
        return cls(Resp3Type.NUMBER, number)

    @classmethod
    def blob_string(cls, text: str) -> "Resp3Value":
        return cls(Resp3Type.BLOB_STRING, text)

    @classmethod
    def array(cls, items: Iterable["Resp3Value"]) -> "Resp3Value":
        return cls(Resp3Type.ARRAY, tuple(items))

    @classmethod
    def null(cls) -> "Resp3Value":
        return cls(Resp3Type.NULL)

    @classmethod
    def boolean(cls, flag: bool) -> "Resp3Value":
        return cls(Resp3Type.BOOLEAN, flag)

    @classmethod
    def double(cls, number: float) -> "Resp3Value":
        return cls(Resp3Type.DOUBLE, number)

    @classmethod
    def big_number(cls, digits: str) -> "Resp3Value":
        return cls(Resp3Type.BIG_NUMBER, digits)

    @classmethod
    def blob_error(cls, text: str) -> "Resp3Value":
        return cls(Resp3Type.BLOB_ERROR, text)

    @classmethod
    def verbatim_string(cls, encoding: str, data: str) -> "Resp3Value":
        return cls(Resp3Type.VERBATIM_STRING, data, encoding=encoding)

    @classmethod
    def map(cls, entries: Mapping[str, "Resp3Value"]) -> "Resp3Value":
        return cls(Resp3Type.MAP, dict(entries))

    @classmethod
    def set(cls, items: Iterable["Resp3Value"]) -> "Resp3Value":
        return cls(Resp3Type.SET, frozenset(items))

    @classmethod
    def attribute(
        cls, attrs: Mapping[str, "Resp3Value"], data: "Resp3Value"
    ) -> "Resp3Value":
        return cls(Resp3Type.ATTRIBUTE, data, attrs=dict(attrs))

    @classmethod
    def push(cls, items: Iterable["Resp3Value"]) -> "Resp3Value":
        return cls(Resp3Type.PUSH, tuple(items))

    # Equality and hashing ----------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resp3Value):
            return NotImplemented
        return (
            self.kind is other.kind
            and self.value == other.value
            and self.encoding == other.encoding
            and self.attrs == other.attrs
        )

    def __hash__(self) -> int:
        if self.kind is Resp3Type.MAP:
            payload = frozenset(self.value.items())
        else:
            payload = self.value
        attrs = frozenset(self.attrs.items()) if self.attrs is not None else None
        return hash((self.kind, payload, self.encoding, attrs))

    # Conversions --------------------------------------------------------

    def as_string(self) -> str:
        """Return the value as text, or raise RedisTypeError."""
        kind = self.kind
        if kind in (
            Resp3Type.SIMPLE_STRING,
            Resp3Type.BLOB_STRING,
            Resp3Type.VERBATIM_STRING,
            Resp3Type.BIG_NUMBER,
        ):
            return self.value
        if kind is Resp3Type.NUMBER:
            return str(self.value)
        if kind is Resp3Type.DOUBLE:
            return _format_double(self.value)
        if kind is Resp3Type.BOOLEAN:
            return "true" if self.value else "false"
        if kind is Resp3Type.NULL:
            raise RedisTypeError("Value is null")
        raise RedisTypeError(f"Cannot convert {self!r} to string")

    def as_int(self) -> int:
        """Return the value as an integer, or raise RedisTypeError."""
        kind = self.kind
        if kind is Resp3Type.NUMBER:
            return self.value
        if kind in (Resp3Type.SIMPLE_STRING, Resp3Type.BLOB_STRING):
            return _parse_i64(self.value)
        if kind is Resp3Type.DOUBLE:
            return _saturating_i64(self.value)
        if kind is Resp3Type.BOOLEAN:
            return 1 if self.value else 0
        raise RedisTypeError(f"Cannot convert {self!r} to integer")

    def as_float(self) -> float:
        """Return the value as a float, or raise RedisTypeError."""
        kind = self.kind
        if kind is Resp3Type.DOUBLE:
            return self.value
        if kind is Resp3Type.NUMBER:
            return float(self.value)
        if kind in (Resp3Type.SIMPLE_STRING, Resp3Type.BLOB_STRING):
            return _parse_f64(self.value)
        raise RedisTypeError(f"Cannot convert {self!r} to float")

    def as_bool(self) -> bool:
        """Return the value as a boolean, or raise RedisTypeError."""
        kind = self.kind
        if kind is Resp3Type.BOOLEAN:
            return self.value
        if kind is Resp3Type.NUMBER and self.value in (0, 1):
            return self.value == 1
        if kind is Resp3Type.SIMPLE_STRING and self.value == "OK":
            return True
        raise RedisTypeError(f"Cannot convert {self!r} to bool")

    def is_null(self) -> bool:
        """Tell whether this is the null value."""
        return self.kind is Resp3Type.NULL

    def type_name(self) -> str:
        """Return the protocol's name for this value's kind."""
        return self.kind.value


def _blob(text: str) -> BulkString:
    return BulkString(text.encode("utf-8"))


def to_resp2(value: Resp3Value) -> RespValue:
    """Convert a RESP3 value to the nearest RESP2 value."""
    kind = value.kind
    if kind is Resp3Type.SIMPLE_STRING:
        return SimpleString(value.value)
    if kind in (Resp3Type.SIMPLE_ERROR, Resp3Type.BLOB_ERROR):
        return ErrorReply(value.value)
    if kind is Resp3Type.NUMBER:
        return Integer(value.value)
    if kind is Resp3Type.BOOLEAN:
        return Integer(1 if value.value else 0)
    if kind in (
        Resp3Type.BLOB_STRING,
        Resp3Type.BIG_NUMBER,
        Resp3Type.VERBATIM_STRING,
    ):
        return _blob(value.value)
    if kind is Resp3Type.DOUBLE:
        return _blob(_format_double(value.value))
    if kind is Resp3Type.NULL:
        return NULL
    if kind in (Resp3Type.ARRAY, Resp3Type.PUSH, Resp3Type.SET):
        return Array(to_resp2(item) for item in value.value)
    if kind is Resp3Type.MAP:
        flat: list[RespValue] = []
        for key, item in value.value.items():
            flat.append(_blob(key))
            flat.append(to_resp2(item))
        return Array(flat)
    if kind is Resp3Type.ATTRIBUTE:
        return to_resp2(value.value)
    raise TypeError(f"Cannot convert {value!r} to RESP2")


def from_resp2(value: RespValue) -> Resp3Value:
    """Convert a RESP2 value to the matching RESP3 value."""
    match value:
        case SimpleString(text):
            return Resp3Value.simple_string(text)
        case ErrorReply(message):
            return Resp3Value.simple_error(message)
        case Integer(number):
            return Resp3Value.number(number)
        case BulkString(data):
            return Resp3Value.blob_string(data.decode("utf-8", errors="replace"))
        case Array(items):
            return Resp3Value.array(from_resp2(item) for item in items)
        case NullValue():
            return Resp3Value.null()
        case _:
            raise TypeError(f"Cannot convert {value!r} to RESP3")