"""Batching of commands so that they travel in a single round trip."""

from __future__ import annotations

import abc
import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterable, Iterator, Mapping, Optional, TypeVar, Union

from rediswire.errors import ProtocolError, RedisError, RedisTypeError
from rediswire.values import RespValue, from_text

T = TypeVar("T")
Converter = Callable[[RespValue], T]


@dataclass(frozen=True)
class PipelineCommand:
    """One queued command: its name, its arguments and the key it routes by."""

    name: str
    args: tuple[RespValue, ...] = field(default=())
    key: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))


class PipelineExecutor(abc.ABC):
    """Something that can run a batch of commands and return their replies."""

    @abc.abstractmethod
    async def execute_pipeline(self, commands: list[PipelineCommand]) -> list[RespValue]:
        """Run ``commands`` in order and return one reply for each."""


def _texts(values: Iterable[str]) -> list[RespValue]:
    return [from_text(str(value)) for value in values]


def _first(keys: list[str]) -> Optional[str]:
    return keys[0] if keys else None


def _whole_seconds(seconds: Union[timedelta, int, float]) -> int:
    if isinstance(seconds, timedelta):
        return int(seconds.total_seconds())
    return int(seconds)


def _convert(value: RespValue, convert: Optional[Converter]):
    if convert is None:
        return value
    try:
        return convert(value)
    except RedisError:
        raise
    except (TypeError, ValueError) as exc:
        raise RedisTypeError(f"Cannot convert {value!r}: {exc}") from exc


class Pipeline:
    """Queue of commands sent together when :meth:`execute` is awaited.

    Every queuing method returns the pipeline itself, so calls can be chained.
    """

    def __init__(
        self, executor: PipelineExecutor, lock: Optional[asyncio.Lock] = None
    ) -> None:
        self._commands: deque[PipelineCommand] = deque()
        self._executor = executor
        self._lock = lock if lock is not None else asyncio.Lock()

    def _queue(self, name: str, key: Optional[str], *args: str) -> "Pipeline":
        return self.add_command(PipelineCommand(name, _texts(args), key))

    def add_command(self, command: PipelineCommand) -> "Pipeline":
        """Append an arbitrary command."""
        self._commands.append(command)
        return self

    # Strings and keys

    def set(self, key: str, value: str) -> "Pipeline":
        return self._queue("SET", key, key, value)

    def get(self, key: str) -> "Pipeline":
        return self._queue("GET", key, key)

    def delete(self, keys: Iterable[str]) -> "Pipeline":
        keys = list(keys)
        return self._queue("DEL", _first(keys), *keys)

    def incr(self, key: str) -> "Pipeline":
        return self._queue("INCR", key, key)

    def decr(self, key: str) -> "Pipeline":
        return self._queue("DECR", key, key)

    def incr_by(self, key: str, increment: int) -> "Pipeline":
        return self._queue("INCRBY", key, key, str(int(increment)))

    def decr_by(self, key: str, decrement: int) -> "Pipeline":
        return self._queue("DECRBY", key, key, str(int(decrement)))

    def exists(self, keys: Iterable[str]) -> "Pipeline":
        keys = list(keys)
        return self._queue("EXISTS", _first(keys), *keys)

    def expire(self, key: str, seconds: Union[timedelta, int, float]) -> "Pipeline":
        return self._queue("EXPIRE", key, key, str(_whole_seconds(seconds)))

    def ttl(self, key: str) -> "Pipeline":
        return self._queue("TTL", key, key)

    # Hashes

    def hget(self, key: str, field: str) -> "Pipeline":
        return self._queue("HGET", key, key, field)

    def hset(self, key: str, field: str, value: str) -> "Pipeline":
        return self._queue("HSET", key, key, field, value)

    def hdel(self, key: str, fields: Iterable[str]) -> "Pipeline":
        return self._queue("HDEL", key, key, *fields)

    def hgetall(self, key: str) -> "Pipeline":
        return self._queue("HGETALL", key, key)

    def hmget(self, key: str, fields: Iterable[str]) -> "Pipeline":
        return self._queue("HMGET", key, key, *fields)

    def hmset(self, key: str, fields: Mapping[str, str]) -> "Pipeline":
        flat = [part for pair in fields.items() for part in pair]
        return self._queue("HMSET", key, key, *flat)

    def hlen(self, key: str) -> "Pipeline":
        return self._queue("HLEN", key, key)

    def hexists(self, key: str, field: str) -> "Pipeline":
        return self._queue("HEXISTS", key, key, field)

    # Lists

    def lpush(self, key: str, values: Iterable[str]) -> "Pipeline":
        return self._queue("LPUSH", key, key, *values)

    def rpush(self, key: str, values: Iterable[str]) -> "Pipeline":
        return self._queue("RPUSH", key, key, *values)

    def lrange(self, key: str, start: int, stop: int) -> "Pipeline":
        return self._queue("LRANGE", key, key, str(int(start)), str(int(stop)))

    def llen(self, key: str) -> "Pipeline":
        return self._queue("LLEN", key, key)

    # Sets

    def sadd(self, key: str, members: Iterable[str]) -> "Pipeline":
        return self._queue("SADD", key, key, *members)

    def smembers(self, key: str) -> "Pipeline":
        return self._queue("SMEMBERS", key, key)

    # Queue management

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[PipelineCommand]:
        return iter(tuple(self._commands))

    def is_empty(self) -> bool:
        """Tell whether no command is queued."""
        return not self._commands

    def clear(self) -> None:
        """Drop every queued command."""
        self._commands.clear()

    async def execute(self) -> list[RespValue]:
        """Send every queued command and return the replies in order.

        The queue is emptied before sending. Raises ProtocolError when the
        pipeline is empty; errors from the executor propagate.
        """
        if not self._commands:
            raise ProtocolError("Pipeline is empty")
        commands = list(self._commands)
        self._commands.clear()
        async with self._lock:
            return list(await self._executor.execute_pipeline(commands))

    async def execute_typed(self, convert: Converter) -> list:
        """Execute and pass every reply through ``convert``."""
        results = await self.execute()
        return [_convert(result, convert) for result in results]


class PipelineResult:
    """Replies of an executed pipeline, read in order or by index."""

    def __init__(self, results: Iterable[RespValue]) -> None:
        self._results = list(results)
        self._index = 0

    def __repr__(self) -> str:
        return f"PipelineResult({self._results!r}, index={self._index})"

    def __len__(self) -> int:
        return len(self._results)

    def next(self, convert: Optional[Converter] = None):
        """Return the next reply, converted when ``convert`` is given."""
        if self._index >= len(self._results):
            raise ProtocolError("No more results in pipeline")
        result = self._results[self._index]
        self._index += 1
        return _convert(result, convert)

    def get(self, index: int, convert: Optional[Converter] = None):
        """Return the reply at ``index``, converted when ``convert`` is given."""
        if not 0 <= index < len(self._results):
            raise ProtocolError(f"Index {index} out of bounds")
        return _convert(self._results[index], convert)

    def is_empty(self) -> bool:
        """Tell whether there are no replies."""
        return not self._results

    def into_results(self) -> list[RespValue]:
        """Return every reply as a list."""
        return list(self._results)