"""Message export documents"""

import base64
import csv
import io
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Sequence
from xml.parsers.expat import ExpatError

import xmltodict
from pydantic import BaseModel, Field

from queuewatch.codec.detect import detect_format, is_printable_text
from queuewatch.codec.engine import ContentCodec
from queuewatch.codec.encoding import extract_text
from queuewatch.codec.serialization import conform
from queuewatch.models.message import MessagePriority, MessageRecord
from queuewatch.models.payload import BodyFormat, MessagePayload

XML_ROOT = "message_export"
CSV_COLUMNS = (
    "Id",
    "Label",
    "QueuePath",
    "Priority",
    "ArrivedTime",
    "SentTime",
    "CorrelationId",
    "Recoverable",
    "Authenticated",
    "BodyFormat",
    "BodySize",
)


class ExportFormat(str, Enum):
    JSON = "Json"
    XML = "Xml"
    CSV = "Csv"
    TEXT = "Text"
    BINARY = "Binary"

    @property
    def extension(self) -> str:
        return {
            ExportFormat.JSON: ".json",
            ExportFormat.XML: ".xml",
            ExportFormat.CSV: ".csv",
            ExportFormat.TEXT: ".txt",
            ExportFormat.BINARY: ".bin",
        }[self]


class ExportedBody(BaseModel):
    format: BodyFormat = BodyFormat.UNKNOWN
    encoding: str = "UTF-8"
    size: int = 0
    content_encoding: Literal["text", "base64"] = "text"
    content: str = ""

    @classmethod
    def from_payload(cls, payload: MessagePayload) -> "ExportedBody":
        fmt = payload.format if payload.format != BodyFormat.UNKNOWN else detect_format(payload)
        text = extract_text(payload) if fmt != BodyFormat.BINARY else None
        # CR and control characters do not survive XML parsing
        if text is not None and "\r" not in text and is_printable_text(text):
            return cls(format=fmt, encoding=payload.encoding, size=payload.size_bytes, content=text)
        return cls(
            format=fmt,
            encoding=payload.encoding,
            size=payload.size_bytes,
            content_encoding="base64",
            content=base64.b64encode(payload.raw).decode("ascii"),
        )

    def to_payload(self) -> MessagePayload:
        if self.content_encoding == "base64":
            return MessagePayload.from_bytes(base64.b64decode(self.content), self.encoding, self.format)
        return MessagePayload.from_text(self.content, self.encoding, self.format)


class ExportedMessage(BaseModel):
    """Self-describing form of a message: every metadata field plus the body"""
    id: str = ""
    lookup_id: Optional[int] = None
    label: str = ""
    queue_path: str = ""
    priority: int = Field(default=3, ge=0, le=7)
    priority_text: str = ""
    sent_time: Optional[datetime] = None
    arrived_time: Optional[datetime] = None
    correlation_id: str = ""
    response_queue: str = ""
    administration_queue: str = ""
    app_specific: int = 0
    source_machine: str = ""
    is_transactional: bool = False
    recoverable: bool = False
    authenticated: bool = False
    use_journal_queue: bool = False
    use_dead_letter_queue: bool = False
    unreadable_fields: List[str] = Field(default_factory=list)
    body: ExportedBody = Field(default_factory=ExportedBody)

    @classmethod
    def from_record(cls, message: MessageRecord) -> "ExportedMessage":
        return cls(
            id=message.id,
            lookup_id=message.lookup_id,
            label=message.label,
            queue_path=message.queue_path,
            priority=int(message.priority),
            priority_text=message.priority_text,
            sent_time=message.sent_time,
            arrived_time=message.arrived_time,
            correlation_id=message.correlation_id,
            response_queue=message.response_queue,
            administration_queue=message.administration_queue,
            app_specific=message.app_specific,
            source_machine=message.source_machine,
            is_transactional=message.is_transactional,
            recoverable=message.recoverable,
            authenticated=message.authenticated,
            use_journal_queue=message.use_journal_queue,
            use_dead_letter_queue=message.use_dead_letter_queue,
            unreadable_fields=sorted(message.unreadable_fields),
            body=ExportedBody.from_payload(message.body),
        )

    def to_record(self) -> MessageRecord:
        return MessageRecord(
            id=self.id,
            lookup_id=self.lookup_id,
            label=self.label,
            queue_path=self.queue_path,
            priority=MessagePriority(self.priority),
            sent_time=self.sent_time,
            arrived_time=self.arrived_time,
            correlation_id=self.correlation_id,
            response_queue=self.response_queue,
            administration_queue=self.administration_queue,
            app_specific=self.app_specific,
            source_machine=self.source_machine,
            is_transactional=self.is_transactional,
            recoverable=self.recoverable,
            authenticated=self.authenticated,
            use_journal_queue=self.use_journal_queue,
            use_dead_letter_queue=self.use_dead_letter_queue,
            body=self.body.to_payload(),
            unreadable_fields=frozenset(self.unreadable_fields),
        )


class MessageExport(BaseModel):
    exported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    queue_path: str = ""
    message_count: int = 0
    messages: List[ExportedMessage] = Field(default_factory=list)


def build_export(messages: Sequence[MessageRecord], queue_path: str = "") -> MessageExport:
    return MessageExport(
        queue_path=queue_path,
        message_count=len(messages),
        messages=[ExportedMessage.from_record(message) for message in messages],
    )


def to_json(messages: Sequence[MessageRecord], queue_path: str = "") -> bytes:
    return build_export(messages, queue_path).model_dump_json(indent=2).encode("utf-8")


def to_xml(messages: Sequence[MessageRecord], queue_path: str = "") -> bytes:
    document = {XML_ROOT: build_export(messages, queue_path).model_dump(mode="json")}
    return xmltodict.unparse(document, pretty=True, indent="  ", newl="\n").encode("utf-8")


def to_csv(messages: Sequence[MessageRecord]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for message in messages:
        writer.writerow(
            [
                message.id,
                message.label,
                message.queue_path,
                message.priority_text,
                message.arrived_time.isoformat() if message.arrived_time else "",
                message.sent_time.isoformat() if message.sent_time else "",
                message.correlation_id,
                message.recoverable,
                message.authenticated,
                (message.body.format if message.body.format != BodyFormat.UNKNOWN else detect_format(message.body)).value,
                message.body.size_bytes,
            ]
        )
    return buffer.getvalue().encode("utf-8")


def _text_report(message: MessageRecord, codec: ContentCodec) -> List[str]:
    rendered = codec.format_for_display(message.body)
    fmt = message.body.format if message.body.format != BodyFormat.UNKNOWN else detect_format(message.body)
    return [
        "=== Message Details ===",
        f"Id: {message.id}",
        f"Lookup Id: {message.lookup_id if message.lookup_id is not None else ''}",
        f"Label: {message.label}",
        f"Queue: {message.queue_path}",
        f"Priority: {message.priority_text}",
        f"Sent Time: {message.sent_time.isoformat() if message.sent_time else ''}",
        f"Arrived Time: {message.arrived_time.isoformat() if message.arrived_time else ''}",
        f"Correlation Id: {message.correlation_id}",
        f"Response Queue: {message.response_queue}",
        f"Source Machine: {message.source_machine}",
        f"Transactional: {message.is_transactional}",
        f"Recoverable: {message.recoverable}",
        "",
        "=== Message Body ===",
        f"Format: {fmt.value}",
        f"Size: {message.formatted_size}",
        f"Encoding: {message.body.encoding}",
        "Content:",
        rendered.data or "",
    ]


def to_text(messages: Sequence[MessageRecord], codec: ContentCodec) -> bytes:
    if len(messages) == 1:
        return "\n".join(_text_report(messages[0], codec)).encode("utf-8")
    lines: List[str] = []
    for index, message in enumerate(messages, start=1):
        lines.append(f"--- Message {index} ---")
        lines.extend(_text_report(message, codec))
        lines.append("")
    return "\n".join(lines).encode("utf-8")


def render_export(
    messages: Sequence[MessageRecord],
    fmt: ExportFormat,
    codec: ContentCodec,
    queue_path: str = "",
) -> bytes:
    """
    Render messages as an export file.

    Raises:
        ValueError: For a binary export of anything but exactly one message
    """
    match fmt:
        case ExportFormat.JSON:
            return to_json(messages, queue_path)
        case ExportFormat.XML:
            return to_xml(messages, queue_path)
        case ExportFormat.CSV:
            return to_csv(messages)
        case ExportFormat.TEXT:
            return to_text(messages, codec)
        case ExportFormat.BINARY:
            if len(messages) != 1:
                raise ValueError("Binary format is not supported for bulk exports")
            return messages[0].body.raw
    raise ValueError(f"Unknown export format: {fmt}")


def parse_export(content: bytes | str, fmt: ExportFormat) -> List[MessageRecord]:
    """
    Read a JSON or XML export back into messages.

    Raises:
        ValueError: When the content is not a valid export document or the format cannot be read back
    """
    match fmt:
        case ExportFormat.JSON:
            export = MessageExport.model_validate_json(content)
        case ExportFormat.XML:
            try:
                document = xmltodict.parse(content, disable_entities=True, strip_whitespace=False)
            except ExpatError as e:
                raise ValueError(f"Malformed XML: {e}") from e
            if XML_ROOT not in document:
                raise ValueError(f"Missing <{XML_ROOT}> root element")
            export = MessageExport.model_validate(conform(document[XML_ROOT], MessageExport))
        case _:
            raise ValueError(f"{fmt.value} exports cannot be read back")
    return [message.to_record() for message in export.messages]
