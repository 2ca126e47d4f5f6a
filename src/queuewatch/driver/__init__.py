from queuewatch.driver.base import QueueDriver
from queuewatch.driver.errors import (
    AccessDeniedError,
    ConnectionTimeout,
    DriverError,
    MessageNotFoundError,
    OperationCancelled,
    QueueNotFoundError,
    TransientDriverError,
    error_kind,
)
from queuewatch.driver.memory import InMemoryQueueDriver

__all__ = [
    "AccessDeniedError",
    "ConnectionTimeout",
    "DriverError",
    "InMemoryQueueDriver",
    "MessageNotFoundError",
    "OperationCancelled",
    "QueueDriver",
    "QueueNotFoundError",
    "TransientDriverError",
    "error_kind",
]
