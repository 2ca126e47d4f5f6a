"""Human-readable rendering of message bodies"""

import re

import orjson
from loguru import logger
from lxml import etree

from queuewatch.codec.detect import detect_format
from queuewatch.codec.encoding import extract_text
from queuewatch.models.payload import BodyFormat, MessagePayload
from queuewatch.models.results import OperationResult

TRUNCATION_MARKER = "... (truncated)"
NEWLINE = "\n"
BYTES_PER_LINE = 16
# offset(8) + 2 + 16 * 3 + 1 + 1 + gloss(16) + newline
HEX_LINE_WIDTH = 77
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
# widest integers orjson keeps exact
INT_MIN, INT_MAX = -(2**63), 2**63 - 1

_JSON_TOKEN = re.compile(r'"(?:\\.|[^"\\])*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?')


def truncate(text: str, max_length: int, separator: str = NEWLINE) -> str:
    """Cut ``text`` so that it fits in ``max_length`` characters, then append the truncation marker.

    The kept text and separator together never exceed ``max_length``; <= 0 is unlimited.
    """
    if max_length <= 0 or len(text) <= max_length:
        return text
    keep = max(0, max_length - len(separator))
    return f"{text[:keep]}{separator}{TRUNCATION_MARKER}"


def hex_dump(data: bytes) -> str:
    lines = []
    for offset in range(0, len(data), BYTES_PER_LINE):
        chunk = data[offset : offset + BYTES_PER_LINE]
        columns = []
        for index in range(BYTES_PER_LINE):
            columns.append(f"{chunk[index]:02X} " if index < len(chunk) else "   ")
            if index == 7:
                columns.append(" ")
        gloss = "".join(chr(byte) if 0x20 <= byte <= 0x7E else "." for byte in chunk)
        lines.append(f"{offset:08X}  {''.join(columns)} {gloss}")
    return NEWLINE.join(lines)


def to_hex_dump(payload: MessagePayload, max_bytes: int = 0) -> str:
    """Hex dump of the first ``max_bytes`` bytes (all when <= 0), noting how many were left out."""
    data = payload.raw
    if max_bytes <= 0 or len(data) <= max_bytes:
        return hex_dump(data)
    return f"{hex_dump(data[:max_bytes])}{NEWLINE}... ({len(data) - max_bytes} more bytes)"


def pretty_xml(text: str) -> str:
    """Re-indent an XML document, keeping element order, inner comments and mixed content as written."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True, encoding="utf-8")
    root = etree.fromstring(text.encode("utf-8"), parser)
    body = etree.tostring(root, pretty_print=True, encoding="unicode").rstrip(NEWLINE)
    return f"{XML_DECLARATION}{NEWLINE}{body}"


def _check_integer_width(text: str) -> None:
    for match in _JSON_TOKEN.finditer(text):
        token = match.group()
        if token.startswith('"') or any(char in token for char in ".eE"):
            continue
        if not INT_MIN <= int(token) <= INT_MAX:
            raise ValueError(f"Integer {token} is too wide to reformat without losing precision")


def pretty_json(text: str) -> str:
    _check_integer_width(text)
    return orjson.dumps(orjson.loads(text), option=orjson.OPT_INDENT_2).decode("utf-8")


def _text_or_fail(payload: MessagePayload) -> str:
    text = extract_text(payload)
    if text is None:
        raise UnicodeError(f"Content is not valid {payload.encoding} text")
    return text


def _hex_for_limit(payload: MessagePayload, max_length: int) -> str:
    if max_length <= 0:
        return hex_dump(payload.raw)
    # enough lines to exceed max_length whenever bytes are left out
    lines = max_length // HEX_LINE_WIDTH + 2
    return hex_dump(payload.raw[: lines * BYTES_PER_LINE])


def resolve_format(payload: MessagePayload) -> BodyFormat:
    if payload.format != BodyFormat.UNKNOWN:
        return payload.format
    return detect_format(payload)


def format_for_display(payload: MessagePayload, max_length: int = 0) -> OperationResult[str]:
    """
    Render a payload for reading.

    XML and JSON are re-indented with two spaces and ``\\n`` newlines, text is
    returned verbatim and binary becomes a hex dump. Output longer than
    ``max_length`` is cut and ends with the truncation marker. When the
    content cannot be formatted as its format claims, the raw content is
    returned instead with the reason in ``error``; the result is still a
    success.
    """
    fmt = resolve_format(payload)
    try:
        match fmt:
            case BodyFormat.XML:
                return OperationResult.ok(truncate(pretty_xml(_text_or_fail(payload)), max_length))
            case BodyFormat.JSON:
                return OperationResult.ok(truncate(pretty_json(_text_or_fail(payload)), max_length))
            case BodyFormat.BINARY:
                return OperationResult.ok(truncate(_hex_for_limit(payload, max_length), max_length))
            case BodyFormat.TEXT:
                return OperationResult.ok(truncate(_text_or_fail(payload), max_length, ""))
            case _:
                return OperationResult.ok(truncate(extract_text(payload) or "", max_length, ""))
    except (etree.XMLSyntaxError, orjson.JSONDecodeError, ValueError, UnicodeError) as e:
        logger.log("CODEC", f"Falling back to raw content, {fmt.value} formatting failed: {e}")
        text = extract_text(payload)
        if text is not None:
            fallback = truncate(text, max_length, "")
        else:
            fallback = truncate(_hex_for_limit(payload, max_length), max_length)
        return OperationResult.ok(fallback, error=f"Could not format content as {fmt.value}: {e}")
