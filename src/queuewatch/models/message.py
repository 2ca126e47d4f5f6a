"""Message records"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum

from queuewatch.models.payload import MessagePayload


class MessagePriority(IntEnum):
    LOWEST = 0
    VERY_LOW = 1
    LOW = 2
    NORMAL = 3
    ABOVE_NORMAL = 4
    HIGH = 5
    VERY_HIGH = 6
    HIGHEST = 7

    @property
    def text(self) -> str:
        label = "".join(part.capitalize() for part in self.name.split("_"))
        return f"{label} ({self.value})"


class FieldState(Enum):
    PRESENT = "present"
    EMPTY = "empty"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class MessageRecord:
    """
    One message as read from a queue.

    Fields the driver could not read are listed in ``unreadable_fields`` and
    keep their empty default, so ``field_state`` can tell an unreadable
    property apart from one that is legitimately empty.
    """
    id: str = ""
    lookup_id: int | None = None
    label: str = ""
    queue_path: str = ""
    priority: MessagePriority = MessagePriority.NORMAL
    sent_time: datetime | None = None
    arrived_time: datetime | None = None
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
    body: MessagePayload = field(default_factory=MessagePayload)
    unreadable_fields: frozenset[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "priority", MessagePriority(self.priority))
        object.__setattr__(self, "unreadable_fields", frozenset(self.unreadable_fields))
        unknown = self.unreadable_fields - _FIELD_NAMES
        if unknown:
            raise ValueError(f"Unknown message fields marked unreadable: {sorted(unknown)}")

    def field_state(self, name: str) -> FieldState:
        if name not in _FIELD_NAMES:
            raise ValueError(f"Unknown message field: {name}")
        if name in self.unreadable_fields:
            return FieldState.UNREADABLE
        value = getattr(self, name)
        if value is None or value == "" or (isinstance(value, MessagePayload) and value.is_empty):
            return FieldState.EMPTY
        return FieldState.PRESENT

    @property
    def priority_text(self) -> str:
        return self.priority.text

    @property
    def has_correlation_id(self) -> bool:
        return bool(self.correlation_id)

    @property
    def has_response_queue(self) -> bool:
        return bool(self.response_queue)

    @property
    def formatted_size(self) -> str:
        return self.body.formatted_size

    @property
    def age(self) -> timedelta | None:
        if self.arrived_time is None:
            return None
        arrived = self.arrived_time
        if arrived.tzinfo is None:
            arrived = arrived.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - arrived

    def copy_for_send(self) -> "MessageRecord":
        """Copy carrying content and send options only; identity and arrival data are assigned by the queue."""
        return replace(
            self,
            id="",
            lookup_id=None,
            queue_path="",
            sent_time=None,
            arrived_time=None,
            source_machine="",
            authenticated=False,
            unreadable_fields=frozenset(),
        )


_FIELD_NAMES = frozenset(f.name for f in fields(MessageRecord)) - {"unreadable_fields"}
