"""
In-process queue driver.

Holds queues and messages in memory behind a single lock. Used for the local
endpoint during development and as the driver double in tests; faults and
latency can be injected per operation to exercise the supervisor's failure
paths.
"""

import threading
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from loguru import logger

from queuewatch.driver.base import QueueDriver
from queuewatch.driver.errors import (
    DriverError,
    MessageNotFoundError,
    QueueNotFoundError,
    TransientDriverError,
)
from queuewatch.models.message import MessageRecord
from queuewatch.models.queue import (
    FORMAT_NAME_PREFIX,
    JOURNAL_SUFFIX,
    QueueCategory,
    QueueDescriptor,
    categorize_queue_path,
)
from queuewatch.utils import normalize_endpoint

FAULT_OPERATIONS = frozenset(
    {"enumerate", "test_connection", "message_count", "journal_count", "read", "send", "delete", "purge"}
)


@dataclass
class _MemoryQueue:
    path: str
    label: str = ""
    transactional: bool = False
    use_journal: bool = False
    messages: List[MessageRecord] = field(default_factory=list)
    journal: List[MessageRecord] = field(default_factory=list)


def endpoint_of(queue_path: str) -> str:
    """Endpoint part of a queue path such as ``host\\private$\\orders``."""
    path = queue_path
    if path.startswith(FORMAT_NAME_PREFIX):
        path = path[len(FORMAT_NAME_PREFIX):]
    if path.upper().startswith("DIRECT="):
        path = path.split(":", 1)[-1]
    return normalize_endpoint(path.split("\\", 1)[0] or ".")


def _split_journal(queue_path: str) -> tuple[str, bool]:
    if queue_path.endswith(JOURNAL_SUFFIX):
        path = queue_path[: -len(JOURNAL_SUFFIX)]
        if path.startswith(FORMAT_NAME_PREFIX):
            path = path[len(FORMAT_NAME_PREFIX):]
        return path, True
    return queue_path, False


class InMemoryQueueDriver(QueueDriver):
    """Thread-safe in-memory implementation of ``QueueDriver``"""

    def __init__(self, latency: float = 0.0):
        self._lock = threading.RLock()
        self._queues: Dict[str, _MemoryQueue] = {}
        self._faults: Dict[str, Dict[str, DriverError]] = defaultdict(dict)
        self._lookup_counter = 0
        self.latency = latency
        self.enumerate_hook: Optional[Callable[[str], None]] = None
        self.calls: Dict[str, int] = defaultdict(int)

    # setup and fault injection

    def create_queue(
        self,
        path: str,
        label: str = "",
        transactional: bool = False,
        use_journal: bool = False,
    ) -> None:
        with self._lock:
            self._queues[self._key(path)] = _MemoryQueue(
                path=path, label=label, transactional=transactional, use_journal=use_journal
            )

    def delete_queue(self, path: str) -> None:
        with self._lock:
            self._queues.pop(self._key(path), None)

    def inject_fault(self, operation: str, key: str, error: DriverError) -> None:
        """Make ``operation`` raise ``error`` for a queue path, endpoint or message id."""
        if operation not in FAULT_OPERATIONS:
            raise ValueError(f"Unknown driver operation: {operation}")
        with self._lock:
            self._faults[operation][key.lower()] = error

    def clear_fault(self, operation: str, key: str) -> None:
        with self._lock:
            self._faults[operation].pop(key.lower(), None)

    def clear_faults(self) -> None:
        with self._lock:
            self._faults.clear()

    # QueueDriver

    def enumerate_queues(self, endpoint: str, include_system: bool = False) -> List[QueueDescriptor]:
        endpoint = normalize_endpoint(endpoint)
        self._enter("enumerate", endpoint)
        if self.enumerate_hook:
            self.enumerate_hook(endpoint)
        with self._lock:
            descriptors = []
            for queue in self._queues.values():
                if endpoint_of(queue.path) != endpoint:
                    continue
                category = categorize_queue_path(queue.path)
                if category == QueueCategory.SYSTEM and not include_system:
                    continue
                descriptors.append(
                    QueueDescriptor(
                        path=queue.path,
                        category=category,
                        message_count=len(queue.messages),
                        computer_name=endpoint,
                        format_name=f"DIRECT=OS:{queue.path}",
                        label=queue.label,
                        is_transactional=queue.transactional,
                        use_journal_queue=queue.use_journal,
                    )
                )
        logger.log("DRIVER", f"Enumerated {len(descriptors)} queues on {endpoint}")
        return descriptors

    def get_message_count(self, queue_path: str) -> int:
        self._enter("message_count", queue_path)
        with self._lock:
            return len(self._messages(queue_path))

    def get_journal_message_count(self, queue_path: str) -> int:
        self._enter("journal_count", queue_path)
        with self._lock:
            return len(self._queue(queue_path).journal)

    def peek_or_receive(self, queue_path: str, max_messages: int, peek_only: bool = True) -> List[MessageRecord]:
        self._enter("read", queue_path)
        with self._lock:
            messages = self._messages(queue_path)
            selected = list(messages[: max(0, max_messages)])
            if not peek_only:
                for message in selected:
                    self._take(queue_path, message)
            return selected

    def get_by_id(self, queue_path: str, message_id: str, peek_only: bool = True) -> Optional[MessageRecord]:
        self._enter("read", queue_path)
        with self._lock:
            for message in self._messages(queue_path):
                if message.id == message_id:
                    if not peek_only:
                        self._take(queue_path, message)
                    return message
        return None

    def get_by_lookup_id(self, queue_path: str, lookup_id: int, peek_only: bool = True) -> Optional[MessageRecord]:
        self._enter("read", queue_path)
        with self._lock:
            for message in self._messages(queue_path):
                if message.lookup_id == lookup_id:
                    if not peek_only:
                        self._take(queue_path, message)
                    return message
        return None

    def send(self, queue_path: str, message: MessageRecord) -> str:
        self._enter("send", queue_path)
        with self._lock:
            queue = self._queue(queue_path)
            self._lookup_counter += 1
            now = datetime.now(timezone.utc)
            stored = replace(
                message,
                id=f"{uuid.uuid4()}\\{self._lookup_counter}",
                lookup_id=self._lookup_counter,
                queue_path=queue.path,
                sent_time=message.sent_time or now,
                arrived_time=now,
                source_machine=message.source_machine or endpoint_of(queue.path),
                is_transactional=queue.transactional,
            )
            queue.messages.append(stored)
            return stored.id

    def delete(self, queue_path: str, message_id: str) -> None:
        self._enter("delete", queue_path)
        self._check_fault("delete", message_id)
        with self._lock:
            for message in self._messages(queue_path):
                if message.id == message_id:
                    self._take(queue_path, message)
                    return
        raise MessageNotFoundError(f"Message {message_id} not found in {queue_path}", queue_path)

    def purge(self, queue_path: str) -> int:
        self._enter("purge", queue_path)
        with self._lock:
            messages = self._messages(queue_path)
            count = len(messages)
            messages.clear()
            return count

    def queue_exists(self, queue_path: str) -> bool:
        path, _ = _split_journal(queue_path)
        with self._lock:
            return self._key(path) in self._queues

    def test_connection(self, endpoint: str, timeout: float) -> None:
        endpoint = normalize_endpoint(endpoint)
        self._enter("test_connection", endpoint)
        if self.latency > timeout:
            raise TransientDriverError(f"Endpoint {endpoint} did not answer within {timeout} seconds")

    # helpers

    @staticmethod
    def _key(path: str) -> str:
        return path.lower()

    def _enter(self, operation: str, key: str) -> None:
        with self._lock:
            self.calls[operation] += 1
        if self.latency:
            time.sleep(self.latency)
        self._check_fault(operation, key)
        if operation not in ("enumerate", "test_connection"):
            self._check_fault(operation, endpoint_of(key))

    def _check_fault(self, operation: str, key: str) -> None:
        with self._lock:
            error = self._faults.get(operation, {}).get(key.lower())
        if error is not None:
            raise error

    def _queue(self, queue_path: str) -> _MemoryQueue:
        path, _ = _split_journal(queue_path)
        queue = self._queues.get(self._key(path))
        if queue is None:
            raise QueueNotFoundError(f"Queue {queue_path} does not exist", queue_path)
        return queue

    def _messages(self, queue_path: str) -> List[MessageRecord]:
        _, is_journal = _split_journal(queue_path)
        queue = self._queue(queue_path)
        return queue.journal if is_journal else queue.messages

    def _take(self, queue_path: str, message: MessageRecord) -> None:
        _, is_journal = _split_journal(queue_path)
        queue = self._queue(queue_path)
        messages = queue.journal if is_journal else queue.messages
        messages.remove(message)
        if queue.use_journal and not is_journal:
            queue.journal.append(message)
