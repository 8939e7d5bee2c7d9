# rediswire

A Redis wire protocol toolkit written in pure Python. It needs only the
standard library. It provides:

- RESP2 value types (`rediswire.values`) and a codec for them (`rediswire.resp2`)
- a streaming RESP2 decoder and a command encoder (`rediswire.streaming`)
- RESP3 values (`rediswire.resp3_value`) and a RESP3 codec (`rediswire.resp3_codec`)
- protocol negotiation through `HELLO 3` (`rediswire.negotiation`)
- command pipelines (`rediswire.pipeline`)
- publish/subscribe helpers and a pub/sub reply parser (`rediswire.pubsub`)

## What it does not do

rediswire does not open sockets, and it has no client class and no
command-line tool. You provide the transport by implementing
`PipelineExecutor`, `ProtocolConnection` or `PubSubConnection`. The
package then builds the commands, encodes and decodes the bytes, and
interprets the replies.

## Installation

```
pip install rediswire
```

## RESP2 values and codec

The `rediswire.values` module defines frozen dataclasses: `SimpleString`,
`ErrorReply`, `Integer`, `BulkString`, `NullValue` (shared as `NULL`) and
`Array`. Calling `as_string()` returns text when the value has a textual
form and raises `RedisTypeError` when it does not. `from_text(text)` builds
a `BulkString` from the UTF-8 bytes of `text`.

```python
from rediswire.resp2 import encode, encode_command, decode
from rediswire.values import Array, BulkString, Integer

wire = encode_command("GET", [BulkString(b"mykey")])
assert wire == b"*2\r\n$3\r\nGET\r\n$5\r\nmykey\r\n"

value, next_offset = decode(encode(Array([Integer(42)])))
assert decode(b"+OK\r") is None      # incomplete: more data is needed
```

`decode(data, offset=0)` returns `(value, next_offset)`. It returns `None`
when the data holds only part of a value. Malformed data raises
`ProtocolError`.

## Streaming decoding

```python
from rediswire.streaming import CommandEncoder, StreamingDecoder

decoder = StreamingDecoder()
first = decoder.feed(b"+OK\r\n:42\r\n$5\r\nhel")   # two complete values
rest = decoder.feed(b"lo\r\n")                     # BulkString(b"hello")
```

`feed` buffers any incomplete trailing data until the next call. The
decoder caches decoded simple strings, up to `max_cache_size` entries
(1000 by default). `cache_stats()` returns `(entries, maximum)` and
`clear_cache()` empties the cache.

`CommandEncoder.encode(value)` and `CommandEncoder.encode_command(command, args)`
produce the same bytes as the functions in `rediswire.resp2`.
`estimate_size(value)` and `estimate_command_size(command, args)` return the
exact length of the encoded bytes.

## RESP3

```python
from rediswire.resp3_codec import Resp3Decoder, Resp3Encoder
from rediswire.resp3_value import Resp3Value, from_resp2, to_resp2

value = Resp3Value.map({"name": Resp3Value.blob_string("Alice"),
                        "age": Resp3Value.number(30)})
wire = Resp3Encoder().encode(value)
assert Resp3Decoder().decode(wire) == value
```

Each `Resp3Value` has a `kind`, which is a `Resp3Type`. Class methods build
every kind: `simple_string`, `simple_error`, `number`, `blob_string`, `array`,
`null`, `boolean`, `double`, `big_number`, `blob_error`, `verbatim_string`,
`map`, `set`, `attribute` and `push`. Values are hashable, so they can be
members of sets.

Conversions are `as_string()`, `as_int()`, `as_float()` and `as_bool()`.
Each raises `RedisTypeError` when the value cannot be converted.
`is_null()` and `type_name()` are also available, and `type_name()` returns
names such as `"blob-string"`.

`to_resp2` maps booleans to integers. Doubles, big numbers and verbatim
strings become bulk strings. Maps become flat key/value arrays, and sets
and pushes become arrays. An attribute becomes its wrapped value.
`from_resp2` performs the reverse conversion.

`Resp3Decoder.decode(data)` appends `data` to its buffer and decodes one
value. It raises `ProtocolError` when the data is malformed or incomplete,
and in that case the bytes stay buffered.

## Protocol negotiation

```python
from rediswire.negotiation import ProtocolNegotiator, ProtocolVersion

negotiation = await ProtocolNegotiator(ProtocolVersion.RESP3).negotiate(connection)
negotiation.version                  # RESP3, or RESP2 after a fallback
negotiation.has_capability("push")
```

When RESP2 is preferred, the negotiator returns at once and sends nothing.
When RESP3 is preferred, it sends `HELLO 3` and reads the capabilities from
the bulk strings after the third reply element. If that fails with a
`RedisError` or an `OSError`, it falls back to RESP2.

## Pipelines

```python
from rediswire.pipeline import Pipeline, PipelineResult

pipeline = Pipeline(executor)
pipeline.set("key1", "value1").get("key1").incr("counter")
results = await pipeline.execute()
```

Every queuing method returns the pipeline, so calls can be chained. The
queuing methods are `set`, `get`, `delete` (DEL), `incr`, `decr`, `incr_by`,
`decr_by`, `exists`, `expire` (seconds or a `timedelta`), `ttl`, `hget`,
`hset`, `hdel`, `hgetall`, `hmget`, `hmset`, `hlen`, `hexists`, `lpush`,
`rpush`, `lrange`, `llen`, `sadd`, `smembers` and `add_command`.

`execute()` empties the queue and returns the replies in the order the
commands were queued. It raises `ProtocolError` when the pipeline is empty.
`execute_typed(convert)` passes each reply through `convert`. If `convert`
raises `TypeError` or `ValueError`, that error is re-raised as
`RedisTypeError`.

`PipelineResult(results)` reads replies in order with `next(convert=None)`
or by position with `get(index, convert=None)`. Both raise `ProtocolError`
when no reply is left or the index is out of range.

## Pub/Sub

```python
from rediswire.pubsub import Publisher, Subscriber, parse_pubsub_message

async with Subscriber(connection) as subscriber:
    await subscriber.subscribe(["news", "updates"])
    message = await subscriber.next_message_timeout(5.0)

count = await Publisher(connection).publish("news", "Breaking news!")
```

The subscriber starts its background listener when any of these happens:
`start()` is called, the subscriber is entered as an async context manager,
or a message is first read. Messages can also be read with `async for`.
`next_message()` and `next_message_timeout()` return `None` once the
listener has ended, and `next_message_timeout()` also returns `None` when
the timeout passes.

`Publisher.publish_multiple(messages)` publishes one message per channel and
returns the receiver count for each channel.

`parse_pubsub_message(reply)` returns a `PubSubMessage` for `message` and
`pmessage` replies and `None` for subscription confirmations. Any other
reply raises `ProtocolError`.

## Errors

Every error this package raises derives from `rediswire.errors.RedisError`.
The subclasses are `ProtocolError`, `RedisTypeError` and
`RedisConnectionError`.

## Running the tests

```
pip install -e .[test]
python -m pytest
```