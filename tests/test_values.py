import pytest

from rediswire.errors import RedisTypeError
from rediswire.values import (
    NULL,
    Array,
    BulkString,
    ErrorReply,
    Integer,
    NullValue,
    SimpleString,
    from_text,
)


def test_simple_string_as_string():
    assert SimpleString("OK").as_string() == "OK"


def test_bulk_string_as_string():
    assert BulkString(b"value1").as_string() == "value1"


def test_integer_as_string():
    assert Integer(42).as_string() == "42"


def test_null_as_string_raises():
    with pytest.raises(RedisTypeError):
        NullValue().as_string()


def test_array_as_string_raises():
    with pytest.raises(RedisTypeError):
        Array([SimpleString("OK")]).as_string()


def test_error_reply_as_string_raises():
    with pytest.raises(RedisTypeError):
        ErrorReply("ERR unknown").as_string()


def test_invalid_utf8_bulk_string_raises():
    with pytest.raises(RedisTypeError):
        BulkString(b"\xff\xfe").as_string()


def test_from_text_builds_bulk_string():
    assert from_text("news") == BulkString("news".encode())
    assert from_text("Breaking news!").as_string() == "Breaking news!"


def test_bulk_string_accepts_bytearray():
    value = BulkString(bytearray(b"foobar"))
    assert value == BulkString(b"foobar")
    assert len(value) == len(b"foobar")


def test_array_is_sequence_like():
    items = [BulkString(b"foo"), BulkString(b"bar")]
    array = Array(items)
    assert len(array) == 2
    assert list(array) == items
    assert array[1] == items[1]
    assert array == Array(tuple(items))


def test_null_values_are_equal():
    assert NullValue() == NULL


def test_values_are_hashable():
    values = {SimpleString("OK"), SimpleString("OK"), Integer(1), Array([NULL])}
    assert len(values) == 3