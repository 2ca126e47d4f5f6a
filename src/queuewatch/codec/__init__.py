from queuewatch.codec.detect import detect_format
from queuewatch.codec.display import TRUNCATION_MARKER, format_for_display, hex_dump, to_hex_dump
from queuewatch.codec.encoding import convert_encoding, detect_encoding, extract_text
from queuewatch.codec.engine import ContentCodec, validate
from queuewatch.codec.serialization import deserialize, serialize

__all__ = [
    "ContentCodec",
    "TRUNCATION_MARKER",
    "convert_encoding",
    "deserialize",
    "detect_encoding",
    "detect_format",
    "extract_text",
    "format_for_display",
    "hex_dump",
    "serialize",
    "to_hex_dump",
    "validate",
]
