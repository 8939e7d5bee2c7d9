from datetime import timedelta

import pytest

from rediswire.errors import ProtocolError, RedisTypeError
from rediswire.pipeline import (
    Pipeline,
    PipelineCommand,
    PipelineExecutor,
    PipelineResult,
)
from rediswire.values import NULL, BulkString, Integer, SimpleString


class MockExecutor(PipelineExecutor):
    def __init__(self):
        self.batches = []

    async def execute_pipeline(self, commands):
        self.batches.append(list(commands))
        return [SimpleString("OK") for _ in commands]


class FakeRedis(PipelineExecutor):
    """A tiny in-memory server for the commands the tests use."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def execute_pipeline(self, commands):
        return [self._run(cmd) for cmd in commands]

    def _run(self, cmd):
        args = [arg.as_string() for arg in cmd.args]
        name = cmd.name
        if name == "SET":
            self.store[args[0]] = args[1]
            return SimpleString("OK")
        if name == "GET":
            value = self.store.get(args[0])
            return NULL if value is None else BulkString(value.encode())
        if name in ("INCR", "DECR", "INCRBY", "DECRBY"):
            step = int(args[1]) if len(args) > 1 else 1
            if name.startswith("DECR"):
                step = -step
            number = int(self.store.get(args[0], "0")) + step
            self.store[args[0]] = str(number)
            return Integer(number)
        if name == "EXISTS":
            return Integer(sum(key in self.store for key in args))
        if name == "DEL":
            removed = [key for key in args if self.store.pop(key, None) is not None]
            return Integer(len(removed))
        if name == "EXPIRE":
            if args[0] not in self.store:
                return Integer(0)
            self.ttls[args[0]] = int(args[1])
            return Integer(1)
        if name == "TTL":
            if args[0] not in self.store:
                return Integer(-2)
            return Integer(self.ttls.get(args[0], -1))
        raise AssertionError(f"unexpected command {name}")


def as_text(value):
    return value.as_string()


@pytest.mark.asyncio
async def test_pipeline_creation():
    pipeline = Pipeline(MockExecutor())
    assert pipeline.is_empty()
    assert len(pipeline) == 0


@pytest.mark.asyncio
async def test_pipeline_add_commands():
    pipeline = Pipeline(MockExecutor())
    pipeline.set("key1", "value1")
    pipeline.get("key1")
    assert len(pipeline) == 2
    assert not pipeline.is_empty()


@pytest.mark.asyncio
async def test_pipeline_execute_consumes_commands():
    executor = MockExecutor()
    pipeline = Pipeline(executor)
    pipeline.set("key1", "value1").get("key1")

    results = await pipeline.execute()

    assert len(results) == 2
    assert len(executor.batches) == 1
    assert len(executor.batches[0]) == 2
    assert pipeline.is_empty()


@pytest.mark.asyncio
async def test_pipeline_clear():
    pipeline = Pipeline(MockExecutor())
    pipeline.set("key1", "value1")
    pipeline.get("key1")
    assert len(pipeline) == 2

    pipeline.clear()
    assert pipeline.is_empty()
    assert len(pipeline) == 0
    with pytest.raises(ProtocolError):
        await pipeline.execute()


@pytest.mark.asyncio
async def test_pipeline_empty_raises():
    executor = MockExecutor()
    pipeline = Pipeline(executor)
    with pytest.raises(ProtocolError, match="Pipeline is empty"):
        await pipeline.execute()
    assert executor.batches == []


def test_pipeline_result():
    result = PipelineResult(
        [SimpleString("OK"), BulkString(b"value1"), Integer(42)]
    )
    assert len(result) == 3
    assert not result.is_empty()
    assert result.next(as_text) == "OK"
    assert result.get(1, as_text) == "value1"
    assert result.next(as_text) == "value1"
    assert result.next() == Integer(42)


def test_pipeline_result_exhausted():
    result = PipelineResult([SimpleString("OK")])
    result.next()
    with pytest.raises(ProtocolError, match="No more results"):
        result.next()


def test_pipeline_result_index_out_of_bounds():
    result = PipelineResult([SimpleString("OK")])
    with pytest.raises(ProtocolError, match="Index 5 out of bounds"):
        result.get(5)


def test_pipeline_result_conversion_error():
    result = PipelineResult([NULL])
    with pytest.raises(RedisTypeError):
        result.get(0, as_text)


def test_pipeline_result_into_results():
    values = [SimpleString("OK"), Integer(1)]
    result = PipelineResult(values)
    assert result.into_results() == values
    assert PipelineResult([]).is_empty()


def test_command_shapes():
    pipeline = Pipeline(MockExecutor())
    pipeline.set("k", "v")
    pipeline.expire("k", timedelta(seconds=60))
    pipeline.lrange("list", 0, -1)
    pipeline.hmset("h", {"a": "1", "b": "2"})
    pipeline.delete([])

    commands = list(pipeline)
    assert commands[0] == PipelineCommand(
        "SET", (BulkString(b"k"), BulkString(b"v")), "k"
    )
    assert [a.as_string() for a in commands[1].args] == ["k", "60"]
    assert commands[2].name == "LRANGE"
    assert [a.as_string() for a in commands[2].args] == ["list", "0", "-1"]
    assert [a.as_string() for a in commands[3].args] == ["h", "a", "1", "b", "2"]
    assert commands[4].key is None


@pytest.mark.parametrize(
    "method, args, name",
    [
        ("hget", ("h", "f"), "HGET"),
        ("hset", ("h", "f", "v"), "HSET"),
        ("hdel", ("h", ["f"]), "HDEL"),
        ("hgetall", ("h",), "HGETALL"),
        ("hmget", ("h", ["f"]), "HMGET"),
        ("hlen", ("h",), "HLEN"),
        ("hexists", ("h", "f"), "HEXISTS"),
        ("lpush", ("h", ["x"]), "LPUSH"),
        ("rpush", ("h", ["x"]), "RPUSH"),
        ("llen", ("h",), "LLEN"),
        ("sadd", ("h", ["m"]), "SADD"),
        ("smembers", ("h",), "SMEMBERS"),
        ("ttl", ("h",), "TTL"),
    ],
)
def test_command_names(method, args, name):
    pipeline = Pipeline(MockExecutor())
    getattr(pipeline, method)(*args)
    (command,) = list(pipeline)
    assert command.name == name
    assert command.key == "h"
    assert command.args[0].as_string() == "h"


@pytest.mark.asyncio
async def test_pipeline_basic_operations():
    pipeline = Pipeline(FakeRedis())
    pipeline.set("pipeline_test1", "value1")
    pipeline.set("pipeline_test2", "value2")
    pipeline.get("pipeline_test1")
    pipeline.get("pipeline_test2")

    results = await pipeline.execute()

    assert len(results) == 4
    assert results[0] == SimpleString("OK")
    assert results[1] == SimpleString("OK")
    assert results[2] == BulkString(b"value1")
    assert results[3] == BulkString(b"value2")


@pytest.mark.asyncio
async def test_pipeline_counter_operations():
    pipeline = Pipeline(FakeRedis())
    pipeline.set("pipeline_counter", "10")
    pipeline.incr("pipeline_counter")
    pipeline.incr_by("pipeline_counter", 5)
    pipeline.decr("pipeline_counter")
    pipeline.decr_by("pipeline_counter", 2)
    pipeline.get("pipeline_counter")

    results = await pipeline.execute()

    assert len(results) == 6
    assert results[0] == SimpleString("OK")
    assert results[1] == Integer(11)
    assert results[2] == Integer(16)
    assert results[3] == Integer(15)
    assert results[4] == Integer(13)
    assert results[5].as_string() == "13"


@pytest.mark.asyncio
async def test_pipeline_exists_and_expire():
    pipeline = Pipeline(FakeRedis())
    pipeline.set("pipeline_exists1", "value1")
    pipeline.set("pipeline_exists2", "value2")
    pipeline.exists(["pipeline_exists1", "pipeline_exists2"])
    pipeline.expire("pipeline_exists1", timedelta(seconds=60))
    pipeline.ttl("pipeline_exists1")
    pipeline.delete(["pipeline_exists2"])
    pipeline.exists(["pipeline_exists1", "pipeline_exists2"])

    results = await pipeline.execute()

    assert len(results) == 7
    assert results[0] == SimpleString("OK")
    assert results[1] == SimpleString("OK")
    assert results[2] == Integer(2)
    assert results[3] == Integer(1)
    assert 0 < results[4].value <= 60
    assert results[5] == Integer(1)
    assert results[6] == Integer(1)


@pytest.mark.asyncio
async def test_pipeline_reuse():
    pipeline = Pipeline(FakeRedis())
    pipeline.set("pipeline_reuse1", "value1")
    pipeline.get("pipeline_reuse1")
    first = await pipeline.execute()
    assert len(first) == 2
    assert pipeline.is_empty()

    pipeline.set("pipeline_reuse2", "value2")
    pipeline.get("pipeline_reuse2")
    second = await pipeline.execute()
    assert second == [SimpleString("OK"), BulkString(b"value2")]


@pytest.mark.asyncio
async def test_execute_typed():
    pipeline = Pipeline(FakeRedis())
    pipeline.set("n", "3").incr("n").get("n")
    assert await pipeline.execute_typed(as_text) == ["OK", "4", "4"]


@pytest.mark.asyncio
async def test_execute_typed_conversion_failure():
    pipeline = Pipeline(FakeRedis())
    pipeline.get("missing")
    with pytest.raises(RedisTypeError):
        await pipeline.execute_typed(as_text)


@pytest.mark.asyncio
async def test_execute_typed_value_error_is_wrapped():
    pipeline = Pipeline(FakeRedis())
    pipeline.set("k", "v")
    with pytest.raises(RedisTypeError):
        await pipeline.execute_typed(lambda v: int(v.as_string()))