"""Codec facade over the closed set of body formats"""

from typing import Any, TypeVar
from xml.parsers.expat import ExpatError

import orjson
import xmltodict

from queuewatch.codec import display, encoding, serialization
from queuewatch.codec.detect import detect_format, is_printable_text
from queuewatch.codec.encoding import extract_text
from queuewatch.models.payload import BodyFormat, MessagePayload
from queuewatch.models.results import ErrorKind, OperationResult

T = TypeVar("T")


def validate(payload: MessagePayload, fmt: BodyFormat) -> OperationResult[bool]:
    """Check that a payload is well-formed for ``fmt``; the parser's message is reported in ``error``."""
    if fmt == BodyFormat.BINARY:
        if not payload.raw:
            return OperationResult.fail("Binary content is empty", kind=ErrorKind.MALFORMED, data=False)
        return OperationResult.ok(True)
    if fmt == BodyFormat.UNKNOWN:
        return OperationResult.fail("No handler for format Unknown", kind=ErrorKind.UNSUPPORTED, data=False)

    text = extract_text(payload)
    if text is None:
        return OperationResult.fail(
            f"Content is not valid {payload.encoding} text", kind=ErrorKind.MALFORMED, data=False
        )

    match fmt:
        case BodyFormat.TEXT:
            if not is_printable_text(text):
                return OperationResult.fail(
                    "Content contains non-printable characters", kind=ErrorKind.MALFORMED, data=False
                )
        case BodyFormat.XML:
            try:
                xmltodict.parse(text, disable_entities=True)
            except ExpatError as e:
                return OperationResult.fail(f"Invalid XML: {e}", kind=ErrorKind.MALFORMED, data=False)
        case BodyFormat.JSON:
            try:
                orjson.loads(text)
            except orjson.JSONDecodeError as e:
                return OperationResult.fail(f"Invalid JSON: {e}", kind=ErrorKind.MALFORMED, data=False)
    return OperationResult.ok(True)


class ContentCodec:
    """
    Stateless classifier and codec for message bodies.

    Carries only the render limit applied when callers do not pass one, so a
    single instance is shared freely between threads.
    """

    def __init__(self, max_render_length: int = 0):
        self.max_render_length = max_render_length

    def detect_format(self, payload: MessagePayload) -> BodyFormat:
        return detect_format(payload)

    def validate(self, payload: MessagePayload, fmt: BodyFormat | None = None) -> OperationResult[bool]:
        return validate(payload, fmt or detect_format(payload))

    def format_for_display(self, payload: MessagePayload, max_length: int | None = None) -> OperationResult[str]:
        limit = self.max_render_length if max_length is None else max_length
        return display.format_for_display(payload, limit)

    def to_hex_dump(self, payload: MessagePayload, max_bytes: int = 0) -> str:
        return display.to_hex_dump(payload, max_bytes)

    def deserialize(self, payload: MessagePayload, target: type[T], fmt: BodyFormat | None = None) -> OperationResult[T]:
        return serialization.deserialize(payload, target, fmt)

    def serialize(self, obj: Any, fmt: BodyFormat, indent: bool = True) -> OperationResult[MessagePayload]:
        return serialization.serialize(obj, fmt, indent)

    def extract_text(self, payload: MessagePayload) -> str | None:
        return extract_text(payload)

    def detect_encoding(self, payload: MessagePayload) -> str:
        return encoding.detect_encoding(payload)

    def convert_encoding(self, payload: MessagePayload, source: str, target: str) -> OperationResult[MessagePayload]:
        return encoding.convert_encoding(payload, source, target)
