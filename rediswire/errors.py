"""Exceptions raised by the wire protocol layer."""


class RedisError(Exception):
    """Base class for every error raised by this package."""


class ProtocolError(RedisError):
    """Malformed data on the wire or a misuse of the protocol."""


class RedisTypeError(RedisError):
    """A value could not be converted to the requested type."""


class RedisConnectionError(RedisError):
    """The underlying connection is closed or unusable."""