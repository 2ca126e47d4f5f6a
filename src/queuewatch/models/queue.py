"""Queue descriptors and path helpers"""

from dataclasses import dataclass, replace
from enum import Enum

FORMAT_NAME_PREFIX = "FormatName:"
JOURNAL_SUFFIX = ";journal"


class QueueCategory(str, Enum):
    PRIVATE = "Private"
    PUBLIC = "Public"
    SYSTEM = "System"
    JOURNAL = "Journal"
    DEAD_LETTER = "DeadLetter"
    TRANSACTIONAL_DEAD_LETTER = "TransactionalDeadLetter"


def categorize_queue_path(path: str) -> QueueCategory:
    """Infer the queue category from its path."""
    lowered = (path or "").lower()
    if "private$" in lowered:
        return QueueCategory.PRIVATE
    if "deadletter" in lowered:
        if "xact" in lowered:
            return QueueCategory.TRANSACTIONAL_DEAD_LETTER
        return QueueCategory.DEAD_LETTER
    if "journal" in lowered:
        return QueueCategory.JOURNAL
    if "system" in lowered:
        return QueueCategory.SYSTEM
    return QueueCategory.PUBLIC


def derive_journal_path(path: str) -> str:
    """Journal sub-queue path for a queue path."""
    if not path:
        raise ValueError("Queue path cannot be empty")
    if path.startswith(FORMAT_NAME_PREFIX):
        return f"{path}{JOURNAL_SUFFIX}"
    return f"{FORMAT_NAME_PREFIX}{path}{JOURNAL_SUFFIX}"


def queue_name_from_path(path: str) -> str:
    return path.rsplit("\\", 1)[-1] if path else ""


@dataclass(frozen=True)
class QueueDescriptor:
    """Snapshot of one queue as seen during the last refresh"""
    path: str
    name: str = ""
    category: QueueCategory | None = None
    message_count: int = 0
    journal_message_count: int = 0
    computer_name: str = "."
    format_name: str = ""
    label: str = ""
    is_transactional: bool = False
    use_journal_queue: bool = False
    is_accessible: bool = True
    error: str | None = None

    def __post_init__(self):
        if not self.path:
            raise ValueError("Queue path cannot be empty")
        if not self.name:
            object.__setattr__(self, "name", queue_name_from_path(self.path))
        if self.category is None:
            object.__setattr__(self, "category", categorize_queue_path(self.path))

    @property
    def journal_path(self) -> str:
        return derive_journal_path(self.path)

    @property
    def display_name(self) -> str:
        if self.computer_name in (".", "", None):
            return self.name
        return f"{self.computer_name}\\{self.name}"

    @property
    def is_system_queue(self) -> bool:
        return self.category == QueueCategory.SYSTEM

    @property
    def is_journal_queue(self) -> bool:
        return self.category == QueueCategory.JOURNAL

    @property
    def has_journal(self) -> bool:
        return self.use_journal_queue and not self.is_journal_queue

    @property
    def is_empty(self) -> bool:
        return self.message_count == 0

    def with_journal_count(self, count: int) -> "QueueDescriptor":
        return replace(self, journal_message_count=count)

    def with_error(self, error: str) -> "QueueDescriptor":
        return replace(self, error=error)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "name": self.name,
            "category": self.category.value,
            "message_count": self.message_count,
            "journal_message_count": self.journal_message_count,
            "computer_name": self.computer_name,
            "label": self.label,
            "is_transactional": self.is_transactional,
            "use_journal_queue": self.use_journal_queue,
            "is_accessible": self.is_accessible,
            "error": self.error,
        }
