from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
from pydantic import BaseModel

from queuewatch.codec.engine import ContentCodec, validate
from queuewatch.codec.serialization import (
    BINARY_DESERIALIZE_REFUSED,
    BINARY_SERIALIZE_REFUSED,
    deserialize,
    serialize,
)
from queuewatch.models.payload import BodyFormat, MessagePayload
from queuewatch.models.results import ErrorKind


class Line(BaseModel):
    sku: str
    quantity: int


class Order(BaseModel):
    id: int
    customer: str
    notes: str = ""
    tags: List[str] = []
    lines: List[Line] = []
    shipped_at: Optional[datetime] = None
    express: bool = False


@dataclass
class Ping:
    source: str
    sequence: int
    hops: List[str] = field(default_factory=list)


ORDERS = [
    Order(id=1, customer="ACME"),
    Order(id=2, customer="Initech", tags=["priority"], lines=[Line(sku="A-1", quantity=3)]),
    Order(
        id=3,
        customer="Globex",
        notes="leave at door",
        tags=["a", "b", "c"],
        lines=[Line(sku="B-2", quantity=1), Line(sku="C-3", quantity=9)],
        shipped_at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        express=True,
    ),
]


@pytest.mark.parametrize("fmt", [BodyFormat.JSON, BodyFormat.XML])
@pytest.mark.parametrize("order", ORDERS)
def test_model_round_trip(fmt, order):
    serialized = serialize(order, fmt)
    assert serialized.success, serialized.error

    restored = deserialize(serialized.data, Order, fmt)
    assert restored.success, restored.error
    assert restored.data == order


@pytest.mark.parametrize("fmt", [BodyFormat.JSON, BodyFormat.XML])
def test_dataclass_round_trip(fmt):
    ping = Ping(source="node-a", sequence=4, hops=["b"])
    restored = deserialize(serialize(ping, fmt).data, Ping, fmt)
    assert restored.data == ping


def test_list_round_trip_through_xml():
    values = [1, 2, 3]
    serialized = serialize(values, BodyFormat.XML)
    assert "<list>" in serialized.data.text

    assert deserialize(serialized.data, List[int], BodyFormat.XML).data == values
    assert deserialize(serialize([], BodyFormat.XML).data, List[int], BodyFormat.XML).data == []


def test_dict_round_trip_through_json():
    values = {"alpha": 1, "beta": 2}
    restored = deserialize(serialize(values, BodyFormat.JSON).data, Dict[str, int])
    assert restored.data == values


def test_xml_root_element_is_type_name():
    serialized = serialize(Order(id=9, customer="X"), BodyFormat.XML)
    assert "<Order>" in serialized.data.text
    assert serialized.data.format == BodyFormat.XML


def test_json_output_is_indented_unless_disabled():
    assert serialize({"a": 1}, BodyFormat.JSON).data.text == '{\n  "a": 1\n}'
    assert serialize({"a": 1}, BodyFormat.JSON, indent=False).data.text == '{"a":1}'


def test_format_is_detected_when_omitted():
    payload = MessagePayload.from_text('{"id": 5, "customer": "Hooli"}')
    assert deserialize(payload, Order).data == Order(id=5, customer="Hooli")


def test_binary_deserialization_is_always_refused():
    payload = MessagePayload.from_bytes(b"\x00\x01\x02")
    result = deserialize(payload, bytes)

    assert not result.success
    assert result.kind == ErrorKind.UNSUPPORTED
    assert result.error == BINARY_DESERIALIZE_REFUSED

    forced = deserialize(MessagePayload.from_text('{"a": 1}'), dict, BodyFormat.BINARY)
    assert forced.error == BINARY_DESERIALIZE_REFUSED


def test_binary_serialization_is_always_refused():
    result = serialize(Order(id=1, customer="A"), BodyFormat.BINARY)

    assert not result.success
    assert result.kind == ErrorKind.UNSUPPORTED
    assert result.error == BINARY_SERIALIZE_REFUSED


def test_text_deserializes_only_to_str():
    payload = MessagePayload.from_text("hello there")

    assert deserialize(payload, str).data == "hello there"
    refused = deserialize(payload, int)
    assert not refused.success
    assert refused.kind == ErrorKind.UNSUPPORTED


def test_text_serialization_uses_str():
    assert serialize(42, BodyFormat.TEXT).data.text == "42"


def test_validation_error_is_reported_as_malformed():
    payload = MessagePayload.from_text('{"id": "not a number", "customer": "A"}')
    result = deserialize(payload, Order)

    assert not result.success
    assert result.kind == ErrorKind.MALFORMED
    assert result.exception is not None


def test_malformed_xml_is_reported():
    result = deserialize(MessagePayload.from_text("<Order><id>1</Order>"), Order, BodyFormat.XML)
    assert not result.success
    assert result.kind == ErrorKind.MALFORMED


def test_xml_entities_are_not_expanded():
    hostile = (
        '<?xml version="1.0"?><!DOCTYPE r [<!ENTITY e "boom">]>'
        "<Order><id>1</id><customer>&e;</customer></Order>"
    )
    result = deserialize(MessagePayload.from_text(hostile), Order, BodyFormat.XML)
    assert result.data is None or "boom" not in result.data.customer


def test_serialize_none_is_a_programming_error():
    with pytest.raises(ValueError):
        serialize(None, BodyFormat.JSON)


def test_validate_reports_parser_errors():
    assert validate(MessagePayload.from_text('{"a": 1}'), BodyFormat.JSON).data is True
    broken = validate(MessagePayload.from_text('{"a": }'), BodyFormat.JSON)
    assert broken.data is False
    assert broken.error.startswith("Invalid JSON")

    assert validate(MessagePayload.from_text("<a/>"), BodyFormat.XML).success
    assert not validate(MessagePayload.from_text("<a>"), BodyFormat.XML).success

    assert validate(MessagePayload.from_bytes(b"\x00"), BodyFormat.BINARY).success
    assert not validate(MessagePayload.from_bytes(b""), BodyFormat.BINARY).success
    assert not validate(MessagePayload.from_text("a\x07"), BodyFormat.TEXT).success


def test_codec_facade_applies_its_render_limit():
    codec = ContentCodec(max_render_length=5)
    result = codec.format_for_display(MessagePayload.from_text("abcdefghij"))
    assert result.data == "abcde... (truncated)"
    assert codec.format_for_display(MessagePayload.from_text("abcdefghij"), 0).data == "abcdefghij"


class Note(BaseModel):
    title: str
    memo: Optional[str] = None


@dataclass
class Reading:
    sensor: str
    comment: Optional[str]
    samples: List[Optional[int]] = field(default_factory=list)


@pytest.mark.parametrize(
    "note",
    [
        Note(title="  padded  ", memo=""),
        Note(title="plain", memo=None),
        Note(title="\tindented\n", memo="  "),
    ],
)
def test_xml_keeps_whitespace_and_tells_empty_from_none(note):
    restored = deserialize(serialize(note, BodyFormat.XML).data, Note, BodyFormat.XML)
    assert restored.success, restored.error
    assert restored.data == note


def test_xml_round_trips_none_without_defaults():
    reading = Reading(sensor="thermo-1", comment=None, samples=[1, None, 3])
    restored = deserialize(serialize(reading, BodyFormat.XML).data, Reading, BodyFormat.XML)
    assert restored.success, restored.error
    assert restored.data == reading


def test_xml_round_trips_mapping_with_none_values():
    values = {"alpha": None, "beta": 2}
    serialized = serialize(values, BodyFormat.XML)
    restored = deserialize(serialized.data, Dict[str, Optional[int]], BodyFormat.XML)
    assert restored.data == values


@pytest.mark.parametrize(
    "body, target",
    [
        ("<r>hello</r>", Dict[str, int]),
        ("<r>hello</r>", List[int]),
        ("<r>hello</r>", Order),
        ("<r><a>1</a><a>2</a></r>", Dict[str, int]),
    ],
)
def test_xml_of_the_wrong_shape_is_malformed(body, target):
    result = deserialize(MessagePayload.from_text(body), target, BodyFormat.XML)
    assert not result.success
    assert result.kind == ErrorKind.MALFORMED
