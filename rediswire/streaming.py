"""Buffered RESP2 encoding and incremental decoding of a byte stream."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from rediswire import resp2
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

DEFAULT_CACHE_SIZE = 1000

_Step = Optional[Tuple[RespValue, int]]


def _length_header(count: int) -> int:
    return 1 + len(str(count)) + 2


def estimate_size(value: RespValue) -> int:
    """Return the number of bytes ``value`` takes once encoded."""
    match value:
        case SimpleString(text):
            return 1 + len(text.encode("utf-8")) + 2
        case ErrorReply(message):
            return 1 + len(message.encode("utf-8")) + 2
        case Integer(number):
            return 1 + len(str(number)) + 2
        case BulkString(data):
            return _length_header(len(data)) + len(data) + 2
        case NullValue():
            return 5
        case Array(items):
            return _length_header(len(items)) + sum(estimate_size(item) for item in items)
        case _:
            raise TypeError(f"Cannot size {value!r} as RESP2")


def estimate_command_size(command: str, args: Iterable[RespValue] = ()) -> int:
    """Return the number of bytes a command with ``args`` takes once encoded."""
    args = list(args)
    name_len = len(command.encode("utf-8"))
    command_size = _length_header(name_len) + name_len + 2
    return _length_header(1 + len(args)) + command_size + sum(
        estimate_size(arg) for arg in args
    )


class CommandEncoder:
    """Encodes values and commands into a reused, pre-sized buffer."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def _emit(self, size: int, payload: bytes) -> bytes:
        self._buffer.clear()
        if len(payload) != size:
            raise ProtocolError(
                f"Encoded size {len(payload)} differs from estimate {size}"
            )
        self._buffer.extend(payload)
        result = bytes(self._buffer)
        self._buffer.clear()
        return result

    def encode(self, value: RespValue) -> bytes:
        """Serialize one RESP2 value."""
        return self._emit(estimate_size(value), resp2.encode(value))

    def encode_command(self, command: str, args: Iterable[RespValue] = ()) -> bytes:
        """Serialize a command name and its arguments as a RESP2 array."""
        args = list(args)
        return self._emit(
            estimate_command_size(command, args), resp2.encode_command(command, args)
        )


def _utf8(raw: bytes, context: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"Invalid UTF-8{context}: {exc}") from exc


def _parse_number(line: bytes, context: str, what: str) -> int:
    text = _utf8(line, context)
    if not _INT_RE.fullmatch(text):
        raise ProtocolError(f"Invalid {what}: {text!r}")
    number = int(text)
    if not _I64_MIN <= number <= _I64_MAX:
        raise ProtocolError(f"Invalid {what}: {text} is out of range")
    return number


class StreamingDecoder:
    """Decodes RESP2 values from data that arrives in arbitrary chunks.

    Simple strings are cached by their raw bytes, up to ``max_cache_size``
    distinct entries.
    """

    def __init__(self, max_cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        self._buffer = bytearray()
        self._cache: dict[bytes, str] = {}
        self._max_cache_size = max_cache_size

    def feed(self, data: bytes) -> list[RespValue]:
        """Append ``data`` and return every value that is now complete.

        Incomplete trailing data stays buffered for the next call. Malformed
        data raises ProtocolError.
        """
        self._buffer.extend(data)
        snapshot = bytes(self._buffer)
        results: list[RespValue] = []
        pos = 0
        try:
            while pos < len(snapshot):
                step = self._decode_value(snapshot, pos)
                if step is None:
                    break
                value, pos = step
                results.append(value)
        finally:
            del self._buffer[:pos]
        return results

    def clear_cache(self) -> None:
        """Forget every cached simple string."""
        self._cache.clear()

    def cache_stats(self) -> tuple[int, int]:
        """Return ``(cached entries, maximum entries)``."""
        return len(self._cache), self._max_cache_size

    def _cached_text(self, raw: bytes) -> str:
        cached = self._cache.get(raw)
        if cached is not None:
            return cached
        text = _utf8(raw, "")
        if len(self._cache) < self._max_cache_size:
            self._cache[raw] = text
        return text

    def _decode_value(self, data: bytes, pos: int) -> _Step:
        if pos >= len(data):
            return None
        type_byte = data[pos : pos + 1]
        if type_byte not in (b"+", b"-", b":", b"$", b"*"):
            raise ProtocolError(
                f"Invalid RESP type byte: {type_byte.decode('latin-1')}"
            )
        end = data.find(CRLF, pos + 1)
        if end < 0:
            return None
        line = data[pos + 1 : end]
        pos = end + 2

        if type_byte == b"+":
            return SimpleString(self._cached_text(line)), pos
        if type_byte == b"-":
            return ErrorReply(_utf8(line, " in error")), pos
        if type_byte == b":":
            return Integer(_parse_number(line, " in integer", "integer format")), pos
        if type_byte == b"$":
            return self._decode_bulk(data, pos, line)
        return self._decode_array(data, pos, line)

    @staticmethod
    def _decode_bulk(data: bytes, pos: int, line: bytes) -> _Step:
        length = _parse_number(line, " in bulk string length", "bulk string length")
        if length == -1:
            return NULL, pos
        if length < 0:
            raise ProtocolError("Invalid bulk string length")
        if len(data) - pos < length + 2:
            return None
        payload = data[pos : pos + length]
        pos += length
        if data[pos : pos + 2] != CRLF:
            raise ProtocolError("Missing CRLF after bulk string")
        return BulkString(payload), pos + 2

    def _decode_array(self, data: bytes, pos: int, line: bytes) -> _Step:
        length = _parse_number(line, " in array length", "array length")
        if length == -1:
            return NULL, pos
        if length < 0:
            raise ProtocolError("Invalid array length")
        items = []
        for _ in range(length):
            step = self._decode_value(data, pos)
            if step is None:
                return None
            item, pos = step
            items.append(item)
        return Array(items), pos