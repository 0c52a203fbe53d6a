"""
Body codecs.

Tests JsonCodec encoding, decoding and type conversion.
"""

import datetime
import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest

from talon.codecs import Codec, JsonCodec, convert, to_primitive
from talon.faults import DeserializationError, SerializationError


class Status(enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class Owner:
    name: str


@dataclass
class Account:
    id: str
    balance: float
    status: Status = Status.ACTIVE
    owner: Optional[Owner] = None
    tags: List[str] = field(default_factory=list)


@pytest.fixture
def codec():
    return JsonCodec()


class TestSerialize:

    def test_is_codec(self, codec):
        assert isinstance(codec, Codec)

    def test_json_dataclass(self, codec):
        body = codec.serialize(Account(id="7", balance=1.5, owner=Owner("ada")), "json")
        assert json.loads(body) == {
            "id": "7",
            "balance": 1.5,
            "status": "active",
            "owner": {"name": "ada"},
            "tags": [],
        }

    def test_json_keeps_unicode(self, codec):
        assert codec.serialize({"name": "zoë"}, "json") == '{"name": "zoë"}'.encode("utf-8")

    def test_form(self, codec):
        assert codec.serialize({"a": 1, "b": [1, 2]}, "form") == b"a=1&b=1&b=2"

    def test_content_types(self, codec):
        assert codec.content_type("json") == "application/json"
        assert codec.content_type("form") == "application/x-www-form-urlencoded"

    def test_unsupported_format(self, codec):
        with pytest.raises(SerializationError):
            codec.serialize({}, "xml")

    def test_unserializable_value(self, codec):
        with pytest.raises(SerializationError):
            codec.serialize({"x": object()}, "json")

    def test_to_primitive_dates(self):
        assert to_primitive(datetime.date(2024, 1, 2)) == "2024-01-02"


class TestDeserialize:

    def test_dataclass(self, codec):
        data = b'{"id": "7", "balance": 10, "status": "closed", "owner": {"name": "ada"}, "extra": 1}'
        account = codec.deserialize(data, Account)
        assert account == Account(id="7", balance=10.0, status=Status.CLOSED, owner=Owner("ada"))

    def test_list_of_dataclasses(self, codec):
        data = b'[{"id": "1", "balance": 0}, {"id": "2", "balance": 1}]'
        accounts = codec.deserialize(data, List[Account])
        assert [a.id for a in accounts] == ["1", "2"]

    def test_raw_text_and_bytes(self, codec):
        assert codec.deserialize(b"plain", str) == "plain"
        assert codec.deserialize(b"\x00\x01", bytes) == b"\x00\x01"

    def test_empty_body(self, codec):
        assert codec.deserialize(b"", Optional[Account]) is None
        assert codec.deserialize(b"  ", Any) is None
        with pytest.raises(DeserializationError):
            codec.deserialize(b"", Account)

    def test_invalid_json(self, codec):
        with pytest.raises(DeserializationError):
            codec.deserialize(b"{not json", Account)

    def test_missing_required_field(self, codec):
        with pytest.raises(DeserializationError, match="balance"):
            codec.deserialize(b'{"id": "7"}', Account)

    def test_wrong_field_type(self, codec):
        with pytest.raises(DeserializationError, match="Account.balance"):
            codec.deserialize(b'{"id": "7", "balance": "lots"}', Account)


class TestConvert:

    def test_primitives(self):
        assert convert(1, int) == 1
        assert convert(1, float) == 1.0
        assert convert(True, bool) is True
        with pytest.raises(DeserializationError):
            convert(True, int)
        with pytest.raises(DeserializationError):
            convert(1, bool)

    def test_union(self):
        assert convert("x", Union[int, str]) == "x"
        with pytest.raises(DeserializationError):
            convert([], Union[int, str])

    def test_containers(self):
        assert convert([1, 2], Tuple[int, ...]) == (1, 2)
        assert convert([1, "a"], Tuple[int, str]) == (1, "a")
        assert convert({"a": 1}, Dict[str, int]) == {"a": 1}
        assert convert([1, 2], tuple) == (1, 2)
        assert convert({"a": 1}, dict) == {"a": 1}

    def test_datetime(self):
        assert convert("2024-01-02T03:04:05", datetime.datetime) == datetime.datetime(2024, 1, 2, 3, 4, 5)

    def test_enum(self):
        assert convert("active", Status) is Status.ACTIVE
        with pytest.raises(DeserializationError):
            convert("gone", Status)
