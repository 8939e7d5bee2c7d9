"""Encoding and decoding of the RESP3 wire format."""

from __future__ import annotations

import re
from typing import Callable, Iterator, Tuple, Union

from rediswire.errors import ProtocolError
from rediswire.resp3_value import Resp3Type, Resp3Value, _format_double

CRLF = b"\r\n"
_SIGNED_RE = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_RE = re.compile(r"\+?[0-9]+")
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

BytesLike = Union[bytes, bytearray, memoryview]
_Step = Tuple[Resp3Value, int]


def _header(marker: bytes, count: int) -> bytes:
    return marker + str(count).encode("ascii") + CRLF


def _length_prefixed(marker: bytes, text: str) -> Iterator[bytes]:
    raw = text.encode("utf-8")
    yield _header(marker, len(raw))
    yield raw
    yield CRLF


class Resp3Encoder:
    """Serializes RESP3 values to bytes."""

    def encode(self, value: Resp3Value) -> bytes:
        """Return the wire form of ``value``."""
        return b"".join(self._parts(value))

    def _pairs(self, entries) -> Iterator[bytes]:
        for key, item in entries.items():
            yield from self._parts(Resp3Value.blob_string(key))
            yield from self._parts(item)

    def _parts(self, value: Resp3Value) -> Iterator[bytes]:
        kind = value.kind
        if kind is Resp3Type.SIMPLE_STRING:
            yield b"+" + value.value.encode("utf-8") + CRLF
        elif kind is Resp3Type.SIMPLE_ERROR:
            yield b"-" + value.value.encode("utf-8") + CRLF
        elif kind is Resp3Type.NUMBER:
            yield b":%d\r\n" % value.value
        elif kind is Resp3Type.BLOB_STRING:
            yield from _length_prefixed(b"$", value.value)
        elif kind is Resp3Type.ARRAY:
            yield _header(b"*", len(value.value))
            for item in value.value:
                yield from self._parts(item)
        elif kind is Resp3Type.NULL:
            yield b"_\r\n"
        elif kind is Resp3Type.BOOLEAN:
            yield b"#t\r\n" if value.value else b"#f\r\n"
        elif kind is Resp3Type.DOUBLE:
            yield b"," + _format_double(value.value).encode("ascii") + CRLF
        elif kind is Resp3Type.BIG_NUMBER:
            yield b"(" + value.value.encode("utf-8") + CRLF
        elif kind is Resp3Type.BLOB_ERROR:
            yield from _length_prefixed(b"!", value.value)
        elif kind is Resp3Type.VERBATIM_STRING:
            yield from _length_prefixed(b"=", f"{value.encoding}:{value.value}")
        elif kind is Resp3Type.MAP:
            yield _header(b"%", len(value.value))
            yield from self._pairs(value.value)
        elif kind is Resp3Type.SET:
            yield _header(b"~", len(value.value))
            for item in value.value:
                yield from self._parts(item)
        elif kind is Resp3Type.ATTRIBUTE:
            yield _header(b"|", len(value.attrs))
            yield from self._pairs(value.attrs)
            yield from self._parts(value.value)
        elif kind is Resp3Type.PUSH:
            yield _header(b">", len(value.value))
            for item in value.value:
                yield from self._parts(item)
        else:
            raise TypeError(f"Cannot encode {value!r} as RESP3")


def _read_line(data: bytes, pos: int) -> Tuple[str, int]:
    end = data.find(CRLF, pos)
    if end < 0:
        raise ProtocolError("Incomplete line")
    try:
        line = data[pos:end].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"Invalid UTF-8 in line: {exc}") from exc
    return line, end + 2


def _signed(text: str, what: str) -> int:
    if not _SIGNED_RE.fullmatch(text):
        raise ProtocolError(f"Invalid {what}: {text!r}")
    number = int(text)
    if not _I64_MIN <= number <= _I64_MAX:
        raise ProtocolError(f"Invalid {what}: {text} is out of range")
    return number


def _unsigned(text: str, what: str) -> int:
    if not _UNSIGNED_RE.fullmatch(text):
        raise ProtocolError(f"Invalid {what}: {text!r}")
    return int(text)


def _read_payload(data: bytes, pos: int, length: int, what: str) -> Tuple[str, int]:
    if len(data) - pos < length + 2:
        raise ProtocolError(f"Incomplete {what}")
    raw = data[pos : pos + length]
    pos += length
    if data[pos : pos + 2] != CRLF:
        raise ProtocolError(f"Invalid {what} terminator")
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"Invalid UTF-8 in {what}: {exc}") from exc
    return text, pos + 2


class Resp3Decoder:
    """Decodes RESP3 values, keeping unconsumed bytes between calls."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._handlers: dict[bytes, Callable[[bytes, int], _Step]] = {
            b"+": self._simple_string,
            b"-": self._simple_error,
            b":": self._number,
            b"$": self._blob_string,
            b"*": self._array,
            b"_": self._null,
            b"#": self._boolean,
            b",": self._double,
            b"(": self._big_number,
            b"!": self._blob_error,
            b"=": self._verbatim_string,
            b"%": self._map,
            b"~": self._set,
            b"|": self._attribute,
            b">": self._push,
        }

    def decode(self, data: BytesLike) -> Resp3Value:
        """Append ``data`` and decode one value from the front of the buffer.

        Raises ProtocolError when the buffered data is malformed or holds no
        complete value; the buffered bytes are then kept for the next call.
        """
        self._buffer.extend(data)
        snapshot = bytes(self._buffer)
        value, consumed = self._value(snapshot, 0)
        del self._buffer[:consumed]
        return value

    def _value(self, data: bytes, pos: int) -> _Step:
        if pos >= len(data):
            raise ProtocolError("Incomplete data")
        type_byte = data[pos : pos + 1]
        handler = self._handlers.get(type_byte)
        if handler is None:
            raise ProtocolError(
                f"Unknown RESP3 type byte: {type_byte.decode('latin-1')}"
            )
        return handler(data, pos + 1)

    @staticmethod
    def _simple_string(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        return Resp3Value.simple_string(line), pos

    @staticmethod
    def _simple_error(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        return Resp3Value.simple_error(line), pos

    @staticmethod
    def _number(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        return Resp3Value.number(_signed(line, "number")), pos

    @staticmethod
    def _blob_string(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        length = _signed(line, "blob string length")
        if length == -1:
            return Resp3Value.null(), pos
        if length < 0:
            raise ProtocolError("Invalid blob string length")
        text, pos = _read_payload(data, pos, length, "blob string")
        return Resp3Value.blob_string(text), pos

    def _items(self, data: bytes, pos: int, count: int) -> Tuple[list, int]:
        items = []
        for _ in range(count):
            item, pos = self._value(data, pos)
            items.append(item)
        return items, pos

    def _array(self, data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        length = _signed(line, "array length")
        if length == -1:
            return Resp3Value.null(), pos
        if length < 0:
            raise ProtocolError("Invalid array length")
        items, pos = self._items(data, pos, length)
        return Resp3Value.array(items), pos

    @staticmethod
    def _null(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        if line:
            raise ProtocolError("Invalid null format")
        return Resp3Value.null(), pos

    @staticmethod
    def _boolean(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        if line == "t":
            return Resp3Value.boolean(True), pos
        if line == "f":
            return Resp3Value.boolean(False), pos
        raise ProtocolError(f"Invalid boolean: {line}")

    @staticmethod
    def _double(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        if not line or "_" in line or line != line.strip():
            raise ProtocolError(f"Invalid double: {line!r}")
        try:
            number = float(line)
        except ValueError as exc:
            raise ProtocolError(f"Invalid double: {line!r}") from exc
        return Resp3Value.double(number), pos

    @staticmethod
    def _big_number(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        return Resp3Value.big_number(line), pos

    @staticmethod
    def _blob_error(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        length = _unsigned(line, "blob error length")
        text, pos = _read_payload(data, pos, length, "blob error")
        return Resp3Value.blob_error(text), pos

    @staticmethod
    def _verbatim_string(data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        length = _unsigned(line, "verbatim string length")
        content, pos = _read_payload(data, pos, length, "verbatim string")
        encoding, colon, text = content.partition(":")
        if not colon:
            raise ProtocolError("Invalid verbatim string format")
        return Resp3Value.verbatim_string(encoding, text), pos

    def _pairs(self, data: bytes, pos: int, count: int) -> Tuple[dict, int]:
        entries: dict[str, Resp3Value] = {}
        for _ in range(count):
            key, pos = self._value(data, pos)
            item, pos = self._value(data, pos)
            entries[key.as_string()] = item
        return entries, pos

    def _map(self, data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        entries, pos = self._pairs(data, pos, _unsigned(line, "map length"))
        return Resp3Value.map(entries), pos

    def _set(self, data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        items, pos = self._items(data, pos, _unsigned(line, "set length"))
        return Resp3Value.set(items), pos

    def _attribute(self, data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        attrs, pos = self._pairs(data, pos, _unsigned(line, "attribute length"))
        inner, pos = self._value(data, pos)
        return Resp3Value.attribute(attrs, inner), pos

    def _push(self, data: bytes, pos: int) -> _Step:
        line, pos = _read_line(data, pos)
        items, pos = self._items(data, pos, _unsigned(line, "push length"))
        return Resp3Value.push(items), pos