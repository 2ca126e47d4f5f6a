from queuewatch.models.connection import (
    ConnectionSnapshot,
    ConnectionState,
    EndpointConnection,
    InvalidStateTransition,
)
from queuewatch.models.message import FieldState, MessagePriority, MessageRecord
from queuewatch.models.payload import BodyFormat, MessagePayload
from queuewatch.models.queue import (
    QueueCategory,
    QueueDescriptor,
    categorize_queue_path,
    derive_journal_path,
)
from queuewatch.models.results import (
    BulkOperationResult,
    ErrorKind,
    ItemOutcome,
    MoveOutcome,
    OperationResult,
)

__all__ = [
    "BodyFormat",
    "BulkOperationResult",
    "ConnectionSnapshot",
    "ConnectionState",
    "EndpointConnection",
    "ErrorKind",
    "FieldState",
    "InvalidStateTransition",
    "ItemOutcome",
    "MessagePayload",
    "MessagePriority",
    "MessageRecord",
    "MoveOutcome",
    "OperationResult",
    "QueueCategory",
    "QueueDescriptor",
    "categorize_queue_path",
    "derive_journal_path",
]
