"""Text encoding helpers for message bodies"""

import codecs
import re

from queuewatch.models.payload import DEFAULT_ENCODING, MessagePayload
from queuewatch.models.results import ErrorKind, OperationResult

_BOMS = (
    (codecs.BOM_UTF32_LE, "UTF-32-LE"),
    (codecs.BOM_UTF32_BE, "UTF-32-BE"),
    (codecs.BOM_UTF8, "UTF-8"),
    (codecs.BOM_UTF16_LE, "UTF-16-LE"),
    (codecs.BOM_UTF16_BE, "UTF-16-BE"),
)

_XML_DECLARATION_ENCODING = re.compile(rb"""^\s*<\?xml[^>]*encoding\s*=\s*["']([A-Za-z0-9._-]+)["']""")


def sniff_bom(raw: bytes) -> tuple[str, int] | None:
    """Encoding named by a byte order mark and the mark's length."""
    for bom, name in _BOMS:
        if raw.startswith(bom):
            return name, len(bom)
    return None


def is_known_encoding(name: str) -> bool:
    try:
        codecs.lookup(name)
    except LookupError:
        return False
    return True


def decode_strict(raw: bytes, encoding: str) -> str:
    """
    Decode bytes, letting a byte order mark override the declared label.

    Raises:
        UnicodeDecodeError: When the bytes are not valid in the chosen encoding
        LookupError: When the encoding is unknown
    """
    bom = sniff_bom(raw)
    if bom:
        name, length = bom
        return raw[length:].decode(name, errors="strict")
    return raw.decode(encoding or DEFAULT_ENCODING, errors="strict")


def detect_encoding(payload: MessagePayload) -> str:
    """Best guess of the encoding of a payload's raw bytes."""
    raw = payload.raw
    if not raw:
        return payload.encoding or DEFAULT_ENCODING
    bom = sniff_bom(raw)
    if bom:
        return bom[0]
    declared = _XML_DECLARATION_ENCODING.match(raw)
    if declared:
        name = declared.group(1).decode("ascii")
        if is_known_encoding(name):
            return name.upper()
    try:
        raw.decode("utf-8", errors="strict")
        return DEFAULT_ENCODING
    except UnicodeDecodeError:
        pass
    if payload.encoding and is_known_encoding(payload.encoding):
        return payload.encoding
    return DEFAULT_ENCODING


def extract_text(payload: MessagePayload) -> str | None:
    """Decoded text of a payload, or None when its bytes are not text in its encoding."""
    if payload.text is not None:
        return payload.text
    try:
        return decode_strict(payload.raw, payload.encoding)
    except (UnicodeDecodeError, LookupError):
        return None


def convert_encoding(payload: MessagePayload, source: str, target: str) -> OperationResult[MessagePayload]:
    """Re-encode a payload's bytes from ``source`` to ``target``."""
    for name in (source, target):
        if not is_known_encoding(name):
            return OperationResult.fail(f"Unknown encoding: {name}", kind=ErrorKind.INVALID_ARGUMENT)
    try:
        text = payload.raw.decode(source, errors="strict")
        converted = text.encode(target, errors="strict")
    except UnicodeError as e:
        return OperationResult.fail(
            f"Cannot convert content from {source} to {target}: {e}", kind=ErrorKind.MALFORMED, exception=e
        )
    return OperationResult.ok(
        MessagePayload(raw=converted, text=text, format=payload.format, encoding=target)
    )
