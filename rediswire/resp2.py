"""Encoding and decoding of the RESP2 wire format."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, Optional, Tuple, Union

from rediswire.errors import ProtocolError
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

CRLF = b"\r\n"
_INT_RE = re.compile(r"[+-]?[0-9]+")
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

BytesLike = Union[bytes, bytearray, memoryview]
Decoded = Optional[Tuple[RespValue, int]]


def _encode_parts(value: RespValue) -> Iterator[bytes]:
    match value:
        case SimpleString(text):
            yield b"+" + text.encode("utf-8") + CRLF
        case ErrorReply(message):
            yield b"-" + message.encode("utf-8") + CRLF
        case Integer(number):
            yield b":%d\r\n" % number
        case BulkString(data):
            yield b"$%d\r\n" % len(data)
            yield data
            yield CRLF
        case NullValue():
            yield b"$-1\r\n"
        case Array(items):
            yield b"*%d\r\n" % len(items)
            for item in items:
                yield from _encode_parts(item)
        case _:
            raise TypeError(f"Cannot encode {value!r} as RESP2")


def encode(value: RespValue) -> bytes:
    """Serialize a RESP2 value to bytes."""
    return b"".join(_encode_parts(value))


def encode_command(command: str, args: Iterable[RespValue] = ()) -> bytes:
    """Serialize a command name and its arguments as a RESP2 array."""
    args = list(args)
    name = command.encode("utf-8")
    parts = [b"*%d\r\n" % (1 + len(args)), b"$%d\r\n" % len(name), name, CRLF]
    parts.extend(encode(arg) for arg in args)
    return b"".join(parts)


def _read_line(data: bytes, pos: int) -> Optional[Tuple[bytes, int]]:
    end = data.find(CRLF, pos)
    if end < 0:
        return None
    return data[pos:end], end + 2


def _text(line: bytes) -> str:
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"Invalid UTF-8: {exc}") from exc


def _parse_int(line: bytes, what: str) -> int:
    text = _text(line)
    if not _INT_RE.fullmatch(text):
        raise ProtocolError(f"Invalid {what}: {text!r}")
    number = int(text)
    if not _I64_MIN <= number <= _I64_MAX:
        raise ProtocolError(f"Invalid {what}: {text} is out of range")
    return number


def _decode_at(data: bytes, pos: int) -> Decoded:
    if pos >= len(data):
        return None
    type_byte = data[pos : pos + 1]
    if type_byte not in (b"+", b"-", b":", b"$", b"*"):
        raise ProtocolError(f"Invalid RESP type byte: {type_byte.decode('latin-1')}")

    read = _read_line(data, pos + 1)
    if read is None:
        return None
    line, pos = read

    if type_byte == b"+":
        return SimpleString(_text(line)), pos
    if type_byte == b"-":
        return ErrorReply(_text(line)), pos
    if type_byte == b":":
        return Integer(_parse_int(line, "integer")), pos

    if type_byte == b"$":
        length = _parse_int(line, "bulk string length")
        if length == -1:
            return NULL, pos
        if length < 0:
            raise ProtocolError(f"Invalid bulk string length: {length}")
        if len(data) - pos < length + 2:
            return None
        return BulkString(data[pos : pos + length]), pos + length + 2

    length = _parse_int(line, "array length")
    if length == -1:
        return NULL, pos
    if length < 0:
        raise ProtocolError(f"Invalid array length: {length}")
    items = []
    for _ in range(length):
        decoded = _decode_at(data, pos)
        if decoded is None:
            return None
        item, pos = decoded
        items.append(item)
    return Array(items), pos


def decode(data: BytesLike, offset: int = 0) -> Decoded:
    """Decode one value starting at ``offset``.

    Returns ``(value, next_offset)``, or ``None`` when the data holds only
    part of a value. Raises ProtocolError on malformed input.
    """
    if not isinstance(data, bytes):
        data = bytes(data)
    return _decode_at(data, offset)