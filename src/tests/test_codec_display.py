import math

import pytest

from queuewatch.codec.display import (
    TRUNCATION_MARKER,
    format_for_display,
    hex_dump,
    to_hex_dump,
    truncate,
)
from queuewatch.models.payload import BodyFormat, MessagePayload


def test_json_is_pretty_printed_with_two_space_indent():
    result = format_for_display(MessagePayload.from_text('{"a":1}'))

    assert result.success
    assert result.error is None
    assert result.data == '{\n  "a": 1\n}'


def test_xml_is_pretty_printed():
    result = format_for_display(MessagePayload.from_text("<order><id>7</id><item>book</item></order>"))

    assert result.success
    lines = result.data.split("\n")
    assert lines[0].startswith("<?xml")
    assert lines[1] == "<order>"
    assert lines[2] == "  <id>7</id>"
    assert lines[3] == "  <item>book</item>"
    assert lines[4] == "</order>"


def test_text_is_returned_verbatim():
    text = "line one\r\nline two"
    assert format_for_display(MessagePayload.from_text(text)).data == text


def test_binary_is_rendered_as_hex_dump():
    payload = MessagePayload.from_bytes(bytes(range(0x00, 0x14)))
    result = format_for_display(payload)

    lines = result.data.split("\n")
    assert len(lines) == 2
    assert lines[0].startswith("00000000  ")
    assert lines[1].startswith("00000010  ")
    assert lines[1] == "00000010  10 11 12 13" + " " * 39 + "...."


def test_hex_dump_line_layout():
    data = b"ABCDEFGHIJKLMNOP"
    line = hex_dump(data)

    assert line == (
        "00000000  41 42 43 44 45 46 47 48  49 4A 4B 4C 4D 4E 4F 50  ABCDEFGHIJKLMNOP"
    )


@pytest.mark.parametrize("size", [1, 15, 16, 17, 64, 100])
def test_hex_dump_shape(size):
    data = bytes((index * 7) % 256 for index in range(size))
    lines = hex_dump(data).split("\n")

    assert len(lines) == math.ceil(size / 16)
    for index, line in enumerate(lines):
        assert line[:8] == f"{16 * index:08X}"
        chunk = data[16 * index : 16 * index + 16]
        gloss = line[-len(chunk):]
        assert gloss == "".join(chr(b) if 0x20 <= b <= 0x7E else "." for b in chunk)


def test_to_hex_dump_notes_omitted_bytes():
    payload = MessagePayload.from_bytes(bytes(40))
    dump = to_hex_dump(payload, max_bytes=16)

    assert dump.split("\n")[-1] == "... (24 more bytes)"
    assert len(dump.split("\n")) == 2


@pytest.mark.parametrize(
    "payload",
    [
        MessagePayload.from_text('{"items": [' + ",".join(str(i) for i in range(200)) + "]}"),
        MessagePayload.from_text("<root>" + "<v>x</v>" * 100 + "</root>"),
        MessagePayload.from_text("word " * 200),
        MessagePayload.from_bytes(bytes(range(256)) * 4),
    ],
)
@pytest.mark.parametrize("limit", [1, 10, 100, 500])
def test_truncated_output_ends_with_marker_and_respects_limit(payload, limit):
    result = format_for_display(payload, limit)

    assert result.success
    assert result.data.endswith(TRUNCATION_MARKER)
    assert len(result.data) - len(TRUNCATION_MARKER) <= limit


def test_short_output_is_not_truncated():
    result = format_for_display(MessagePayload.from_text("short"), 100)
    assert result.data == "short"


def test_zero_or_negative_limit_is_unlimited():
    text = "x" * 5000
    assert format_for_display(MessagePayload.from_text(text), 0).data == text
    assert format_for_display(MessagePayload.from_text(text), -1).data == text


def test_truncate_helper():
    assert truncate("abcdef", 3, "") == "abc" + TRUNCATION_MARKER
    assert truncate("abcdef", 3) == "ab\n" + TRUNCATION_MARKER
    assert truncate("abc", 3) == "abc"


def test_malformed_xml_degrades_to_raw_content():
    payload = MessagePayload.from_text("<order><id>7</order>", format=BodyFormat.XML)
    result = format_for_display(payload)

    assert result.success
    assert result.data == "<order><id>7</order>"
    assert "Xml" in result.error


def test_malformed_json_degrades_to_raw_content():
    payload = MessagePayload.from_text('{"a": }')
    result = format_for_display(payload, 4)

    assert result.success
    assert result.data == '{"a"' + TRUNCATION_MARKER
    assert result.error is not None


def test_declared_text_that_is_not_decodable_falls_back_to_hex():
    payload = MessagePayload.from_bytes(b"\xff\xfe\xfd", format=BodyFormat.TEXT)
    result = format_for_display(payload)

    assert result.success
    assert result.data.startswith("00000000  FF FE FD")
    assert result.error is not None


def test_unknown_format_renders_empty_string():
    assert format_for_display(MessagePayload()).data == ""


def test_xml_display_keeps_sibling_order_and_mixed_content():
    source = "<r><a>1</a><b>2</b><a>3</a><!-- note --><p>Hello <i>x</i> world</p></r>"
    result = format_for_display(MessagePayload.from_text(source, format=BodyFormat.XML))

    assert result.error is None
    lines = result.data.split("\n")
    assert lines[1:] == [
        "<r>",
        "  <a>1</a>",
        "  <b>2</b>",
        "  <a>3</a>",
        "  <!-- note -->",
        "  <p>Hello <i>x</i> world</p>",
        "</r>",
    ]


def test_xml_display_does_not_expand_entities():
    hostile = '<?xml version="1.0"?><!DOCTYPE r [<!ENTITY e "boom">]><r><c>&e;</c></r>'
    result = format_for_display(MessagePayload.from_text(hostile, format=BodyFormat.XML))

    assert "boom" not in result.data.split("]>")[-1]


def test_json_with_integers_wider_than_64_bits_is_shown_raw():
    text = '{"id": 123456789012345678901234567890, "n": 1}'
    result = format_for_display(MessagePayload.from_text(text))

    assert result.success
    assert result.data == text
    assert "123456789012345678901234567890" in result.data
    assert result.error is not None


def test_json_with_64_bit_integers_is_pretty_printed():
    text = '{"big": 9223372036854775807, "label": "12345678901234567890123"}'
    result = format_for_display(MessagePayload.from_text(text))

    assert result.error is None
    assert result.data == '{\n  "big": 9223372036854775807,\n  "label": "12345678901234567890123"\n}'
