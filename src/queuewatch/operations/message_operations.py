"""
Queue and message operations.

Thin sequencing over a queue driver and the content codec. Destructive
operations require an explicit ``confirm=True`` and report what they did;
nothing here raises for a runtime failure. Every driver call can be
cancelled through an optional ``cancel_event``; bulk operations report the
items they did not reach as cancelled.
"""

import os
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from loguru import logger

from queuewatch.codec.engine import ContentCodec
from queuewatch.driver.base import QueueDriver
from queuewatch.driver.errors import DriverError, OperationCancelled, check_cancelled, error_kind
from queuewatch.models.message import MessagePriority, MessageRecord
from queuewatch.models.payload import BodyFormat
from queuewatch.models.queue import derive_journal_path
from queuewatch.models.results import (
    BulkOperationResult,
    ErrorKind,
    ItemOutcome,
    MoveOutcome,
    OperationResult,
)
from queuewatch.operations.export import ExportFormat, parse_export, render_export
from queuewatch.settings.manager import settings_manager

T = TypeVar("T")

CancelEvent = Optional[threading.Event]


def _require(value: str, name: str) -> None:
    if not value or not str(value).strip():
        raise ValueError(f"{name} cannot be empty")


def _is_cancelled(cancel_event: CancelEvent) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _skip_remaining(result: BulkOperationResult, remaining: Sequence[str]) -> None:
    for item in remaining:
        result.add(ItemOutcome(item=item, success=False, error="Cancelled before processing", kind=ErrorKind.CANCELLED))


class MessageOperations:
    def __init__(
        self,
        driver: QueueDriver,
        codec: Optional[ContentCodec] = None,
        page_size: Optional[int] = None,
    ):
        settings = settings_manager.settings
        self.driver = driver
        self.codec = codec or ContentCodec(settings.messages.max_body_render_bytes)
        self.page_size = page_size or settings.messages.page_size

    def _run(self, context: str, fn: Callable[[], T], cancel_event: CancelEvent = None) -> OperationResult[T]:
        try:
            check_cancelled(cancel_event)
            return OperationResult.ok(fn())
        except OperationCancelled as e:
            logger.log("OPERATION", f"{context}: cancelled")
            return OperationResult.from_exception(e, context)
        except (DriverError, OSError) as e:
            logger.error(f"{context}: {e}")
            return OperationResult.from_exception(e, context)

    def _missing_queue(self, queue_path: str) -> Optional[OperationResult]:
        try:
            exists = self.driver.queue_exists(queue_path)
        except (DriverError, OSError) as e:
            return OperationResult.from_exception(e, f"Failed to check queue {queue_path}")
        if not exists:
            return OperationResult.fail(f"Queue {queue_path} does not exist", kind=ErrorKind.NOT_FOUND)
        return None

    @staticmethod
    def _confirmation_required(action: str) -> OperationResult:
        return OperationResult.fail(
            f"{action} is destructive and requires confirm=True", kind=ErrorKind.CONFIRMATION_REQUIRED
        )

    @staticmethod
    def _bulk(result: BulkOperationResult) -> OperationResult[BulkOperationResult]:
        error = None
        if result.failed_count:
            error = f"{result.failed_count} of {result.total_count} items failed"
        return OperationResult(
            success=result.success,
            data=result,
            error=error,
            kind=result.kind,
            metadata=result.to_dict(),
        )

    # reading

    def get_messages(
        self,
        queue_path: str,
        peek_only: bool = True,
        max_messages: Optional[int] = None,
        cancel_event: CancelEvent = None,
    ) -> OperationResult[List[MessageRecord]]:
        """Read up to one page of messages, leaving them in the queue unless ``peek_only`` is False."""
        _require(queue_path, "Queue path")
        limit = max_messages or self.page_size
        return self._run(
            f"Failed to read messages from {queue_path}",
            lambda: self.driver.peek_or_receive(queue_path, limit, peek_only),
            cancel_event,
        )

    def get_journal_messages(
        self, queue_path: str, max_messages: Optional[int] = None, cancel_event: CancelEvent = None
    ) -> OperationResult[List[MessageRecord]]:
        _require(queue_path, "Queue path")
        return self.get_messages(derive_journal_path(queue_path), True, max_messages, cancel_event)

    def get_message(
        self, queue_path: str, message_id: str, cancel_event: CancelEvent = None
    ) -> OperationResult[MessageRecord]:
        _require(queue_path, "Queue path")
        _require(message_id, "Message id")
        result = self._run(
            f"Failed to read message {message_id}",
            lambda: self.driver.get_by_id(queue_path, message_id, True),
            cancel_event,
        )
        if result.success and result.data is None:
            return OperationResult.fail(f"Message {message_id} not found in {queue_path}", kind=ErrorKind.NOT_FOUND)
        return result

    def get_message_by_lookup_id(
        self, queue_path: str, lookup_id: int, cancel_event: CancelEvent = None
    ) -> OperationResult[MessageRecord]:
        _require(queue_path, "Queue path")
        result = self._run(
            f"Failed to read message {lookup_id}",
            lambda: self.driver.get_by_lookup_id(queue_path, lookup_id, True),
            cancel_event,
        )
        if result.success and result.data is None:
            return OperationResult.fail(
                f"Message with lookup id {lookup_id} not found in {queue_path}", kind=ErrorKind.NOT_FOUND
            )
        return result

    def render_body(self, message: MessageRecord, max_length: Optional[int] = None) -> OperationResult[str]:
        return self.codec.format_for_display(message.body, max_length)

    # sending

    def send_message(
        self, queue_path: str, message: MessageRecord, cancel_event: CancelEvent = None
    ) -> OperationResult[str]:
        _require(queue_path, "Queue path")
        result = self._run(
            f"Failed to send message to {queue_path}", lambda: self.driver.send(queue_path, message), cancel_event
        )
        if result.success:
            logger.log("OPERATION", f"Sent message {result.data} to {queue_path}")
        return result

    def send_body(
        self,
        queue_path: str,
        obj: Any,
        fmt: BodyFormat = BodyFormat.JSON,
        label: str = "",
        priority: MessagePriority = MessagePriority.NORMAL,
        cancel_event: CancelEvent = None,
    ) -> OperationResult[str]:
        """Serialize ``obj`` with the codec and send it as a new message."""
        serialized = self.codec.serialize(obj, fmt)
        if not serialized.success:
            return OperationResult.fail(serialized.error, kind=serialized.kind, exception=serialized.exception)
        return self.send_message(
            queue_path, MessageRecord(label=label, priority=priority, body=serialized.data), cancel_event
        )

    # deleting

    def delete_message(
        self, queue_path: str, message_id: str, confirm: bool = False, cancel_event: CancelEvent = None
    ) -> OperationResult[str]:
        _require(queue_path, "Queue path")
        _require(message_id, "Message id")
        if not confirm:
            return self._confirmation_required("Deleting a message")
        missing = self._missing_queue(queue_path)
        if missing is not None:
            return missing
        result = self._run(
            f"Failed to delete message {message_id}",
            lambda: self.driver.delete(queue_path, message_id),
            cancel_event,
        )
        if not result.success:
            return result
        logger.log("OPERATION", f"Deleted message {message_id} from {queue_path}")
        return OperationResult.ok(message_id)

    def delete_messages(
        self,
        queue_path: str,
        message_ids: Sequence[str],
        confirm: bool = False,
        cancel_event: CancelEvent = None,
    ) -> OperationResult[BulkOperationResult]:
        """
        Delete messages one by one, reporting each.

        Once ``cancel_event`` is set the messages not yet deleted are reported
        as cancelled and left in the queue.
        """
        _require(queue_path, "Queue path")
        if not confirm:
            return self._confirmation_required("Deleting messages")
        missing = self._missing_queue(queue_path)
        if missing is not None:
            return missing

        message_ids = list(message_ids)
        result = BulkOperationResult()
        for index, message_id in enumerate(message_ids):
            if _is_cancelled(cancel_event):
                _skip_remaining(result, message_ids[index:])
                logger.log("OPERATION", f"Bulk delete from {queue_path} cancelled after {index} messages")
                break
            try:
                self.driver.delete(queue_path, message_id)
                result.add(ItemOutcome(item=message_id, success=True))
            except (DriverError, OSError) as e:
                logger.warning(f"Failed to delete message {message_id}: {e}")
                result.add(ItemOutcome(item=message_id, success=False, error=str(e), kind=error_kind(e)))
        logger.log("OPERATION", f"Deleted {result.success_count}/{result.total_count} messages from {queue_path}")
        return self._bulk(result)

    # moving

    def move_message(
        self, source_queue: str, destination_queue: str, message_id: str, cancel_event: CancelEvent = None
    ) -> OperationResult[MoveOutcome]:
        """
        Move a message by copying it to the destination and deleting the original.

        The two steps are not atomic. When the copy succeeds but the delete
        fails, the result is still a success with ``MovedDuplicated`` and the
        reason in ``error``: the message then exists in both queues. A
        cancellation is honoured up to the copy; once copied, the original is
        always deleted.
        """
        _require(source_queue, "Source queue")
        _require(destination_queue, "Destination queue")
        _require(message_id, "Message id")
        if source_queue.lower() == destination_queue.lower():
            return OperationResult.fail("Source and destination queues are the same", kind=ErrorKind.INVALID_ARGUMENT)
        for path in (source_queue, destination_queue):
            missing = self._missing_queue(path)
            if missing is not None:
                return missing

        found = self.get_message(source_queue, message_id, cancel_event)
        if not found.success:
            return OperationResult.fail(found.error, kind=found.kind, exception=found.exception)

        copied = self._run(
            f"Failed to copy message {message_id} to {destination_queue}",
            lambda: self.driver.send(destination_queue, found.data.copy_for_send()),
            cancel_event,
        )
        if not copied.success:
            return OperationResult.fail(copied.error, kind=copied.kind, exception=copied.exception)

        try:
            self.driver.delete(source_queue, message_id)
        except (DriverError, OSError) as e:
            logger.warning(f"Message {message_id} copied to {destination_queue} but not removed from {source_queue}: {e}")
            return OperationResult(
                success=True,
                data=MoveOutcome.MOVED_DUPLICATED,
                error=f"Copied to {destination_queue} but the original could not be deleted: {e}",
                kind=ErrorKind.PARTIAL,
                exception=e,
                metadata={"new_message_id": copied.data},
            )
        logger.log("OPERATION", f"Moved message {message_id} from {source_queue} to {destination_queue}")
        return OperationResult.ok(MoveOutcome.MOVED_CLEANLY, new_message_id=copied.data)

    def move_messages(
        self,
        source_queue: str,
        destination_queue: str,
        message_ids: Sequence[str],
        cancel_event: CancelEvent = None,
    ) -> OperationResult[BulkOperationResult]:
        message_ids = list(message_ids)
        result = BulkOperationResult()
        for index, message_id in enumerate(message_ids):
            if _is_cancelled(cancel_event):
                _skip_remaining(result, message_ids[index:])
                logger.log("OPERATION", f"Bulk move from {source_queue} cancelled after {index} messages")
                break
            moved = self.move_message(source_queue, destination_queue, message_id, cancel_event)
            result.add(
                ItemOutcome(item=message_id, success=moved.success, error=moved.error, kind=moved.kind, data=moved.data)
            )
        result.metadata["duplicated"] = [
            item.item for item in result.items if item.data == MoveOutcome.MOVED_DUPLICATED
        ]
        return self._bulk(result)

    def resend_message(
        self,
        source_queue: str,
        message_id: str,
        destination_queue: Optional[str] = None,
        cancel_event: CancelEvent = None,
    ) -> OperationResult[str]:
        """Send a copy of a message, to its own queue unless a destination is given; the original stays."""
        found = self.get_message(source_queue, message_id, cancel_event)
        if not found.success:
            return OperationResult.fail(found.error, kind=found.kind, exception=found.exception)
        return self.send_message(destination_queue or source_queue, found.data.copy_for_send(), cancel_event)

    # purging

    def purge_preview(self, queue_path: str, cancel_event: CancelEvent = None) -> OperationResult[int]:
        """Number of messages a purge would remove."""
        _require(queue_path, "Queue path")
        result = self._run(
            f"Failed to count messages in {queue_path}",
            lambda: self.driver.get_message_count(queue_path),
            cancel_event,
        )
        if result.success:
            result.metadata["description"] = f"Purging {queue_path} would affect {result.data} messages"
        return result

    def purge_queue(
        self, queue_path: str, confirm: bool = False, cancel_event: CancelEvent = None
    ) -> OperationResult[int]:
        _require(queue_path, "Queue path")
        if not confirm:
            return self._confirmation_required("Purging a queue")
        missing = self._missing_queue(queue_path)
        if missing is not None:
            return missing
        result = self._run(f"Failed to purge {queue_path}", lambda: self.driver.purge(queue_path), cancel_event)
        if result.success:
            result.metadata["purged_count"] = result.data
            logger.log("OPERATION", f"Purged {result.data} messages from {queue_path}")
        return result

    # exporting

    def _write(self, file_path: Path, content: bytes) -> OperationResult[Path]:
        try:
            os.makedirs(file_path.parent, exist_ok=True)
            file_path.write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to write export {file_path}: {e}")
            return OperationResult.fail(f"Failed to write {file_path}: {e}", exception=e)
        return OperationResult.ok(file_path)

    def export_message(
        self,
        queue_path: str,
        message_id: str,
        file_path: str | Path,
        fmt: ExportFormat = ExportFormat.JSON,
        cancel_event: CancelEvent = None,
    ) -> OperationResult[Path]:
        _require(queue_path, "Queue path")
        _require(message_id, "Message id")
        missing = self._missing_queue(queue_path)
        if missing is not None:
            return missing
        found = self.get_message(queue_path, message_id, cancel_event)
        if not found.success:
            return OperationResult.fail(found.error, kind=found.kind, exception=found.exception)

        result = self._write(Path(file_path), render_export([found.data], fmt, self.codec, queue_path))
        if result.success:
            result.metadata["message_count"] = 1
            logger.log("EXPORT", f"Exported message {message_id} as {fmt.value} to {file_path}")
        return result

    def export_messages(
        self,
        queue_path: str,
        message_ids: Sequence[str],
        file_path: str | Path,
        fmt: ExportFormat = ExportFormat.JSON,
        cancel_event: CancelEvent = None,
    ) -> OperationResult[Path]:
        """
        Export several messages into one file.

        Messages that cannot be read are listed in ``metadata["failed_ids"]``;
        the file is written as long as at least one message was read. A
        cancelled export writes nothing and lists the messages it did not
        reach in ``metadata["cancelled_ids"]``.
        """
        _require(queue_path, "Queue path")
        if fmt == ExportFormat.BINARY:
            return OperationResult.fail("Binary format is not supported for bulk exports", kind=ErrorKind.UNSUPPORTED)
        missing = self._missing_queue(queue_path)
        if missing is not None:
            return missing

        message_ids = list(message_ids)
        messages: List[MessageRecord] = []
        failed_ids: List[str] = []
        for index, message_id in enumerate(message_ids):
            if _is_cancelled(cancel_event):
                logger.log("EXPORT", f"Export from {queue_path} cancelled after {index} messages")
                return OperationResult.fail(
                    f"Export from {queue_path} was cancelled",
                    kind=ErrorKind.CANCELLED,
                    cancelled_ids=message_ids[index:],
                    failed_ids=failed_ids,
                )
            found = self.get_message(queue_path, message_id)
            if found.success:
                messages.append(found.data)
            else:
                failed_ids.append(message_id)
        if not messages:
            return OperationResult.fail(
                "None of the requested messages could be retrieved", kind=ErrorKind.NOT_FOUND, failed_ids=failed_ids
            )

        result = self._write(Path(file_path), render_export(messages, fmt, self.codec, queue_path))
        result.metadata.update(message_count=len(messages), failed_count=len(failed_ids), failed_ids=failed_ids)
        if result.success:
            if failed_ids:
                result.kind = ErrorKind.PARTIAL
                result.error = f"{len(failed_ids)} messages could not be retrieved"
            logger.log("EXPORT", f"Exported {len(messages)} messages as {fmt.value} to {file_path}")
        return result

    def read_export(self, content: bytes | str, fmt: ExportFormat) -> OperationResult[List[MessageRecord]]:
        """Read a JSON or XML export back into messages."""
        try:
            return OperationResult.ok(parse_export(content, fmt))
        except ValueError as e:
            return OperationResult.fail(f"Invalid {fmt.value} export: {e}", kind=ErrorKind.MALFORMED, exception=e)
