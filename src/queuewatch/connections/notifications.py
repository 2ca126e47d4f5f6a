"""
Connection notifications.

The supervisor publishes immutable notification records on a bus; each
subscriber owns a channel (``queue.Queue``) and drains it at its own pace.
Publishing never blocks and never calls back into subscriber code.
"""

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Union

from loguru import logger

from queuewatch.models.connection import ConnectionState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConnectionStateChanged:
    connection_id: str
    endpoint: str
    previous: ConnectionState
    current: ConnectionState
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ConnectionRefreshed:
    connection_id: str
    queue_count: int
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ConnectionFailed:
    connection_id: str
    error: str
    will_retry: bool
    retry_attempt: int
    timestamp: datetime = field(default_factory=_utcnow)


Notification = Union[ConnectionStateChanged, ConnectionRefreshed, ConnectionFailed]


class Subscription:
    """A subscriber's channel on a ``NotificationBus``"""

    def __init__(self, bus: "NotificationBus", maxsize: int = 0):
        self._bus = bus
        self._channel: queue.Queue = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def offer(self, notification: Notification) -> None:
        try:
            self._channel.put_nowait(notification)
        except queue.Full:
            self.dropped += 1

    def get(self, timeout: Optional[float] = None) -> Optional[Notification]:
        """Next notification, or None when none arrives within ``timeout``."""
        try:
            return self._channel.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[Notification]:
        items = []
        while True:
            try:
                items.append(self._channel.get_nowait())
            except queue.Empty:
                return items

    def __iter__(self) -> Iterator[Notification]:
        return iter(self.drain())

    def close(self) -> None:
        self.closed = True
        self._bus.unsubscribe(self)


class NotificationBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        self._closed = False

    def subscribe(self, maxsize: int = 0) -> Subscription:
        """Open a channel. A bounded channel drops notifications once full instead of blocking publishers."""
        subscription = Subscription(self, maxsize=maxsize)
        with self._lock:
            if not self._closed:
                self._subscriptions.append(subscription)
            else:
                subscription.closed = True
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, notification: Notification) -> None:
        with self._lock:
            if self._closed:
                return
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.offer(notification)
        logger.trace(f"Published {type(notification).__name__} to {len(subscriptions)} subscribers")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.closed = True

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)
