from abc import ABC, abstractmethod
from typing import List, Optional

from queuewatch.models.message import MessageRecord
from queuewatch.models.queue import QueueDescriptor


class QueueDriver(ABC):
    """The abstract base class for all queuing subsystem drivers.

    Implementations raise ``DriverError`` subclasses on failure and must be
    safe to call from several threads at once.
    """

    @abstractmethod
    def enumerate_queues(self, endpoint: str, include_system: bool = False) -> List[QueueDescriptor]:
        """
        List the queues hosted on an endpoint

        Args:
            endpoint: Normalized endpoint name, '.' for the local machine
            include_system: Whether system queues are included

        Returns:
            List[QueueDescriptor]: One descriptor per queue, with message counts
        """

    @abstractmethod
    def get_message_count(self, queue_path: str) -> int:
        """Number of messages currently in a queue"""

    @abstractmethod
    def get_journal_message_count(self, queue_path: str) -> int:
        """
        Number of messages in the journal of a queue

        Args:
            queue_path: Path of the owning queue, not the journal path
        """

    @abstractmethod
    def peek_or_receive(self, queue_path: str, max_messages: int, peek_only: bool = True) -> List[MessageRecord]:
        """
        Read messages from the head of a queue

        Args:
            queue_path: Path of the queue or journal
            max_messages: Upper bound on the number of messages returned
            peek_only: Leave the messages in place when True, consume them otherwise

        Returns:
            List[MessageRecord]: Messages in queue order
        """

    @abstractmethod
    def get_by_id(self, queue_path: str, message_id: str, peek_only: bool = True) -> Optional[MessageRecord]:
        """Fetch one message by its id, or None when it is not in the queue"""

    @abstractmethod
    def get_by_lookup_id(self, queue_path: str, lookup_id: int, peek_only: bool = True) -> Optional[MessageRecord]:
        """Fetch one message by its lookup id, or None when it is not in the queue"""

    @abstractmethod
    def send(self, queue_path: str, message: MessageRecord) -> str:
        """
        Send a message

        Returns:
            str: The id assigned to the new message
        """

    @abstractmethod
    def delete(self, queue_path: str, message_id: str) -> None:
        """Remove one message; raises MessageNotFoundError when it is absent"""

    @abstractmethod
    def purge(self, queue_path: str) -> int:
        """Remove every message from a queue and return how many were removed"""

    @abstractmethod
    def queue_exists(self, queue_path: str) -> bool:
        """Whether the queue path resolves to an existing queue"""

    @abstractmethod
    def test_connection(self, endpoint: str, timeout: float) -> None:
        """
        Lightweight reachability probe

        Raises:
            TransientDriverError: When the endpoint does not answer in time
            AccessDeniedError: When the caller lacks rights on the endpoint
        """
