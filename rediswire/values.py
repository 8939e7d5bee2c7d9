"""RESP2 value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from rediswire.errors import RedisTypeError


class RespValue:
    """Base class of every RESP2 value."""

    __slots__ = ()

    def as_string(self) -> str:
        """Return the value as text, or raise RedisTypeError."""
        raise RedisTypeError(f"Cannot convert {self!r} to string")


@dataclass(frozen=True)
class SimpleString(RespValue):
    """A status reply such as ``+OK``."""

    value: str

    def as_string(self) -> str:
        return self.value


@dataclass(frozen=True)
class ErrorReply(RespValue):
    """An error reply such as ``-ERR unknown command``."""

    message: str


@dataclass(frozen=True)
class Integer(RespValue):
    """A signed 64-bit integer reply."""

    value: int

    def as_string(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BulkString(RespValue):
    """A binary-safe string."""

    data: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)

    def as_string(self) -> str:
        try:
            return self.data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise RedisTypeError(f"Invalid UTF-8 in bulk string: {exc}") from exc


@dataclass(frozen=True)
class NullValue(RespValue):
    """The null bulk string or null array."""

    def as_string(self) -> str:
        raise RedisTypeError("Value is null")


@dataclass(frozen=True)
class Array(RespValue):
    """An ordered sequence of RESP values."""

    items: tuple[RespValue, ...] = field(default=())

    def __init__(self, items: Iterable[RespValue] = ()) -> None:
        object.__setattr__(self, "items", tuple(items))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[RespValue]:
        return iter(self.items)

    def __getitem__(self, index: int) -> RespValue:
        return self.items[index]


NULL = NullValue()


def from_text(text: str) -> BulkString:
    """Build a bulk string holding the UTF-8 encoding of ``text``."""
    return BulkString(text.encode("utf-8"))