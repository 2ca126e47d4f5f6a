import codecs

import pytest

from queuewatch.codec.detect import detect_format, is_printable_text
from queuewatch.models.payload import BodyFormat, MessagePayload


@pytest.mark.parametrize(
    "text, expected",
    [
        ("<order id='1'><line/></order>", BodyFormat.XML),
        ("  \n<?xml version='1.0'?><a/>", BodyFormat.XML),
        ('{"a": 1}', BodyFormat.JSON),
        ("[1, 2, 3]", BodyFormat.JSON),
        ("  {\"nested\": {\"b\": [true]}}  \r\n", BodyFormat.JSON),
        ("plain text message", BodyFormat.TEXT),
        ("line one\r\nline two\tindented", BodyFormat.TEXT),
        ("{not closed", BodyFormat.TEXT),
        ("", BodyFormat.UNKNOWN),
        ("   \r\n\t ", BodyFormat.UNKNOWN),
        ("abc\x00def", BodyFormat.BINARY),
    ],
)
def test_detect_format_from_text(text, expected):
    assert detect_format(MessagePayload.from_text(text)) == expected


def test_xml_wins_over_json_when_both_could_match():
    assert detect_format(MessagePayload.from_text("<[1]>")) == BodyFormat.XML


def test_undecodable_bytes_are_binary():
    payload = MessagePayload.from_bytes(bytes([0xFF, 0xFE, 0xFD, 0x00, 0x81]), encoding="UTF-8")
    # 0xFF 0xFE is a UTF-16 LE byte order mark; the remainder is an odd byte count
    assert detect_format(payload) == BodyFormat.BINARY


def test_raw_control_bytes_are_binary():
    payload = MessagePayload.from_bytes(bytes(range(0x00, 0x14)))
    assert detect_format(payload) == BodyFormat.BINARY


def test_empty_payload_is_unknown():
    assert detect_format(MessagePayload()) == BodyFormat.UNKNOWN
    assert detect_format(MessagePayload.from_bytes(b"")) == BodyFormat.UNKNOWN


def test_byte_order_mark_overrides_declared_encoding():
    raw = codecs.BOM_UTF16_LE + '{"a": 1}'.encode("utf-16-le")
    assert detect_format(MessagePayload.from_bytes(raw, encoding="UTF-8")) == BodyFormat.JSON


def test_declared_encoding_is_used_for_decoding():
    raw = "<note>café</note>".encode("latin-1")
    assert detect_format(MessagePayload.from_bytes(raw, encoding="latin-1")) == BodyFormat.XML
    assert detect_format(MessagePayload.from_bytes(raw, encoding="UTF-8")) == BodyFormat.BINARY


def test_detection_is_deterministic():
    payload = MessagePayload.from_text("hello")
    assert {detect_format(payload) for _ in range(5)} == {BodyFormat.TEXT}


def test_every_payload_gets_exactly_one_format():
    samples = [bytes([value]) * length for value in (0x00, 0x20, 0x41, 0x7B, 0x3C, 0xC3, 0xFF) for length in (1, 3)]
    for raw in samples:
        assert detect_format(MessagePayload.from_bytes(raw)) in set(BodyFormat)


def test_is_printable_text_allows_only_cr_lf_tab_controls():
    assert is_printable_text("a\r\nb\tc")
    assert not is_printable_text("a\x07b")
    assert is_printable_text("ünïcödé ✓")
