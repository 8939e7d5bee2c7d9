"""Publish/subscribe messaging on top of a pub/sub capable connection."""

from __future__ import annotations

import abc
import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Iterable, Mapping, Optional, Union

from rediswire.errors import ProtocolError, RedisError
from rediswire.values import Array, RespValue

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass(frozen=True)
class PubSubMessage:
    """A message received on a channel, with the pattern that matched if any."""

    channel: str
    payload: str
    pattern: Optional[str] = None


class PubSubConnection(abc.ABC):
    """A connection that speaks the publish/subscribe commands."""

    @abc.abstractmethod
    async def subscribe(self, channels: list[str]) -> None:
        """Subscribe to ``channels``."""

    @abc.abstractmethod
    async def unsubscribe(self, channels: list[str]) -> None:
        """Unsubscribe from ``channels``."""

    @abc.abstractmethod
    async def psubscribe(self, patterns: list[str]) -> None:
        """Subscribe to glob-style ``patterns``."""

    @abc.abstractmethod
    async def punsubscribe(self, patterns: list[str]) -> None:
        """Unsubscribe from ``patterns``."""

    @abc.abstractmethod
    async def listen(self, queue: "asyncio.Queue[PubSubMessage]") -> None:
        """Put every incoming message on ``queue`` until the connection ends."""

    @abc.abstractmethod
    async def publish(self, channel: str, message: str) -> int:
        """Publish ``message`` and return the number of receivers."""


def _seconds(timeout: Union[timedelta, int, float]) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class Subscriber:
    """Receives messages from subscribed channels and patterns.

    The background listener starts on :meth:`start`, on entering the
    subscriber as an async context manager, or on the first read.
    """

    def __init__(
        self, connection: PubSubConnection, lock: Optional[asyncio.Lock] = None
    ) -> None:
        self._connection = connection
        self._lock = lock if lock is not None else asyncio.Lock()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._channels: dict[str, bool] = {}
        self._patterns: dict[str, bool] = {}
        self._listener: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the background listener; calling it again does nothing."""
        if self._listener is None:
            self._listener = asyncio.get_running_loop().create_task(self._listen())

    async def _listen(self) -> None:
        try:
            async with self._lock:
                await self._connection.listen(self._queue)
        except (RedisError, OSError) as exc:
            logger.error("Pub/Sub listener error: %s", exc)
        finally:
            self._queue.put_nowait(_CLOSED)

    async def __aenter__(self) -> "Subscriber":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        listener, self._listener = self._listener, None
        if listener is not None and not listener.done():
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass

    async def subscribe(self, channels: Iterable[str]) -> None:
        """Subscribe to one or more channels."""
        channels = list(channels)
        async with self._lock:
            await self._connection.subscribe(list(channels))
        for channel in channels:
            self._channels[channel] = True

    async def unsubscribe(self, channels: Iterable[str]) -> None:
        """Unsubscribe from one or more channels."""
        channels = list(channels)
        async with self._lock:
            await self._connection.unsubscribe(list(channels))
        for channel in channels:
            self._channels.pop(channel, None)

    async def psubscribe(self, patterns: Iterable[str]) -> None:
        """Subscribe to one or more glob-style patterns."""
        patterns = list(patterns)
        async with self._lock:
            await self._connection.psubscribe(list(patterns))
        for pattern in patterns:
            self._patterns[pattern] = True

    async def punsubscribe(self, patterns: Iterable[str]) -> None:
        """Unsubscribe from one or more patterns."""
        patterns = list(patterns)
        async with self._lock:
            await self._connection.punsubscribe(list(patterns))
        for pattern in patterns:
            self._patterns.pop(pattern, None)

    def _unwrap(self, item: object) -> Optional[PubSubMessage]:
        if item is _CLOSED:
            # Keep the marker so later reads also see the closed stream.
            self._queue.put_nowait(_CLOSED)
            return None
        return item  # type: ignore[return-value]

    async def next_message(self) -> Optional[PubSubMessage]:
        """Wait for the next message; return None once the listener has ended."""
        self.start()
        return self._unwrap(await self._queue.get())

    async def next_message_timeout(
        self, timeout: Union[timedelta, int, float]
    ) -> Optional[PubSubMessage]:
        """Like :meth:`next_message`, but return None when ``timeout`` passes."""
        self.start()
        try:
            item = await asyncio.wait_for(self._queue.get(), _seconds(timeout))
        except asyncio.TimeoutError:
            return None
        return self._unwrap(item)

    def __aiter__(self) -> AsyncIterator[PubSubMessage]:
        return self

    async def __anext__(self) -> PubSubMessage:
        message = await self.next_message()
        if message is None:
            raise StopAsyncIteration
        return message

    def subscribed_channels(self) -> list[str]:
        """Return the channels currently subscribed to."""
        return list(self._channels)

    def subscribed_patterns(self) -> list[str]:
        """Return the patterns currently subscribed to."""
        return list(self._patterns)

    def is_subscribed_to_channel(self, channel: str) -> bool:
        """Tell whether ``channel`` is subscribed to."""
        return channel in self._channels

    def is_subscribed_to_pattern(self, pattern: str) -> bool:
        """Tell whether ``pattern`` is subscribed to."""
        return pattern in self._patterns


class Publisher:
    """Sends messages to channels."""

    def __init__(
        self, connection: PubSubConnection, lock: Optional[asyncio.Lock] = None
    ) -> None:
        self._connection = connection
        self._lock = lock if lock is not None else asyncio.Lock()

    async def publish(self, channel: str, message: str) -> int:
        """Publish ``message`` on ``channel``; return the number of receivers."""
        async with self._lock:
            return await self._connection.publish(str(channel), str(message))

    async def publish_multiple(self, messages: Mapping[str, str]) -> dict[str, int]:
        """Publish one message per channel; return receivers per channel."""
        results: dict[str, int] = {}
        for channel, message in messages.items():
            results[channel] = await self.publish(channel, message)
        return results


class _MessageKind(enum.Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    MESSAGE = "message"
    PSUBSCRIBE = "psubscribe"
    PUNSUBSCRIBE = "punsubscribe"
    PMESSAGE = "pmessage"


_CONFIRMATIONS = frozenset(
    {
        _MessageKind.SUBSCRIBE,
        _MessageKind.UNSUBSCRIBE,
        _MessageKind.PSUBSCRIBE,
        _MessageKind.PUNSUBSCRIBE,
    }
)


def parse_pubsub_message(response: RespValue) -> Optional[PubSubMessage]:
    """Turn a pub/sub reply into a message.

    Returns None for subscription confirmations and raises ProtocolError for
    anything that is not a pub/sub reply.
    """
    if not isinstance(response, Array) or len(response) < 3:
        raise ProtocolError(f"Invalid pub/sub message format: {response!r}")
    items = response.items
    message_type = items[0].as_string()
    try:
        kind: Optional[_MessageKind] = _MessageKind(message_type)
    except ValueError:
        kind = None

    if kind is _MessageKind.MESSAGE:
        return PubSubMessage(items[1].as_string(), items[2].as_string())
    if kind is _MessageKind.PMESSAGE and len(items) >= 4:
        return PubSubMessage(
            channel=items[2].as_string(),
            payload=items[3].as_string(),
            pattern=items[1].as_string(),
        )
    if kind in _CONFIRMATIONS:
        return None
    raise ProtocolError(f"Unknown pub/sub message type: {message_type}")