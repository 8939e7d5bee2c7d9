"""Selection between the RESP2 and RESP3 protocols."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field

from rediswire.errors import ProtocolError, RedisError
from rediswire.values import Array, BulkString, RespValue


class ProtocolVersion(enum.Enum):
    """Wire protocol versions."""

    RESP2 = "RESP2"
    RESP3 = "RESP3"

    def __str__(self) -> str:
        return self.value


@dataclass
class ProtocolNegotiation:
    """The outcome of protocol negotiation."""

    version: ProtocolVersion
    capabilities: list[str] = field(default_factory=list)

    @classmethod
    def resp3_with_capabilities(cls, capabilities) -> "ProtocolNegotiation":
        """Build a RESP3 result carrying the given server capabilities."""
        return cls(ProtocolVersion.RESP3, list(capabilities))

    def has_capability(self, capability: str) -> bool:
        """Tell whether the server announced ``capability``."""
        return capability in self.capabilities


class ProtocolConnection(abc.ABC):
    """A connection able to send a command and read one reply."""

    @abc.abstractmethod
    async def send_command(self, command: RespValue) -> None:
        """Send a command to the server."""

    @abc.abstractmethod
    async def read_response(self) -> RespValue:
        """Read one reply from the server."""


class ProtocolNegotiator:
    """Negotiates the preferred protocol, falling back to RESP2."""

    def __init__(self, preferred_version: ProtocolVersion = ProtocolVersion.RESP2) -> None:
        self.preferred_version = preferred_version

    async def negotiate(self, connection: ProtocolConnection) -> ProtocolNegotiation:
        """Agree on a protocol version with the server behind ``connection``."""
        if self.preferred_version is ProtocolVersion.RESP2:
            return ProtocolNegotiation(ProtocolVersion.RESP2)
        try:
            return await self._negotiate_resp3(connection)
        except (RedisError, OSError):
            return ProtocolNegotiation(ProtocolVersion.RESP2)

    @staticmethod
    async def _negotiate_resp3(connection: ProtocolConnection) -> ProtocolNegotiation:
        hello = Array([BulkString(b"HELLO"), BulkString(b"3")])
        await connection.send_command(hello)
        response = await connection.read_response()
        if not isinstance(response, Array):
            raise ProtocolError("Invalid HELLO response")

        capabilities = []
        if len(response) >= 4:
            for item in response.items[3:]:
                if not isinstance(item, BulkString):
                    continue
                try:
                    capabilities.append(item.data.decode("utf-8"))
                except UnicodeDecodeError:
                    continue
        return ProtocolNegotiation.resp3_with_capabilities(capabilities)