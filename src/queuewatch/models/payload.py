"""Message body payloads"""

from dataclasses import dataclass, replace
from enum import Enum

from queuewatch.utils import format_size

DEFAULT_ENCODING = "UTF-8"


class BodyFormat(str, Enum):
    """Closed set of body formats the codec understands"""
    UNKNOWN = "Unknown"
    TEXT = "Text"
    XML = "Xml"
    JSON = "Json"
    BINARY = "Binary"


@dataclass(frozen=True)
class MessagePayload:
    """Immutable message body: raw bytes plus an optional decoded text view."""
    raw: bytes = b""
    text: str | None = None
    format: BodyFormat = BodyFormat.UNKNOWN
    encoding: str = DEFAULT_ENCODING

    @classmethod
    def from_text(
        cls,
        text: str,
        encoding: str = DEFAULT_ENCODING,
        format: BodyFormat = BodyFormat.UNKNOWN,
    ) -> "MessagePayload":
        try:
            raw = text.encode(encoding)
        except (LookupError, UnicodeEncodeError):
            raw = text.encode("utf-8")
            encoding = DEFAULT_ENCODING
        return cls(raw=raw, text=text, format=format, encoding=encoding)

    @classmethod
    def from_bytes(
        cls,
        raw: bytes,
        encoding: str = DEFAULT_ENCODING,
        format: BodyFormat = BodyFormat.UNKNOWN,
    ) -> "MessagePayload":
        return cls(raw=bytes(raw), text=None, format=format, encoding=encoding)

    def with_format(self, format: BodyFormat) -> "MessagePayload":
        return replace(self, format=format)

    @property
    def size_bytes(self) -> int:
        return len(self.raw)

    @property
    def is_empty(self) -> bool:
        return not self.raw and not self.text

    @property
    def formatted_size(self) -> str:
        return format_size(self.size_bytes)
