"""Body format detection"""

import unicodedata

from queuewatch.codec.encoding import extract_text
from queuewatch.models.payload import BodyFormat, MessagePayload

_ALLOWED_CONTROL = frozenset("\r\n\t")


def is_printable_text(text: str) -> bool:
    """True when every character is printable or one of CR, LF, TAB."""
    return all(ch in _ALLOWED_CONTROL or unicodedata.category(ch) != "Cc" for ch in text)


def looks_like_xml(trimmed: str) -> bool:
    return trimmed.startswith("<") and ">" in trimmed


def looks_like_json(trimmed: str) -> bool:
    return (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    )


def detect_format(payload: MessagePayload) -> BodyFormat:
    """
    Classify a payload by content.

    Checks run in a fixed order (XML, JSON, printable text) over the trimmed
    text; bytes that do not decode in the payload's encoding are binary.
    Empty and whitespace-only payloads are unknown. Never raises.
    """
    if payload.is_empty:
        return BodyFormat.UNKNOWN

    text = extract_text(payload)
    if text is None:
        return BodyFormat.BINARY

    trimmed = text.strip()
    if not trimmed:
        return BodyFormat.UNKNOWN
    if looks_like_xml(trimmed):
        return BodyFormat.XML
    if looks_like_json(trimmed):
        return BodyFormat.JSON
    if is_printable_text(text):
        return BodyFormat.TEXT
    return BodyFormat.BINARY
