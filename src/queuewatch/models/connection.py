"""Endpoint connection state"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from queuewatch.models.queue import QueueDescriptor
from queuewatch.utils import is_local_endpoint, normalize_endpoint

MIN_REFRESH_INTERVAL = 1
MAX_REFRESH_INTERVAL = 60


class ConnectionState(str, Enum):
    NOT_CONNECTED = "NotConnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    FAILED = "Failed"
    DISCONNECTED = "Disconnected"


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.NOT_CONNECTED: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.FAILED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.FAILED, ConnectionState.DISCONNECTED}),
    ConnectionState.FAILED: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
}


class InvalidStateTransition(Exception):
    def __init__(self, current: ConnectionState, requested: ConnectionState):
        super().__init__(f"Cannot move connection from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


def validate_refresh_interval(seconds: int) -> int:
    if not MIN_REFRESH_INTERVAL <= seconds <= MAX_REFRESH_INTERVAL:
        raise ValueError(
            f"Auto-refresh interval must be between {MIN_REFRESH_INTERVAL} and {MAX_REFRESH_INTERVAL} seconds"
        )
    return seconds


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Consistent read-only copy of a connection taken under its lock"""
    id: str
    endpoint: str
    display_name: str
    is_local: bool
    state: ConnectionState
    connected_at: datetime | None
    last_refreshed_at: datetime | None
    last_error: str | None
    queues: tuple[QueueDescriptor, ...]
    auto_refresh_enabled: bool
    auto_refresh_interval: int
    auto_refresh_paused: bool
    auto_reconnect: bool
    retry_count: int
    show_system_queues: bool
    show_journal_queues: bool
    is_pinned: bool
    is_refreshing: bool

    @property
    def total_queues(self) -> int:
        return len(self.queues)

    @property
    def total_messages(self) -> int:
        return sum(queue.message_count for queue in self.queues)

    @property
    def filtered_queues(self) -> tuple[QueueDescriptor, ...]:
        return tuple(
            queue
            for queue in self.queues
            if (self.show_system_queues or not queue.is_system_queue)
            and (self.show_journal_queues or not queue.is_journal_queue)
        )

    @property
    def status_description(self) -> str:
        match self.state:
            case ConnectionState.CONNECTED:
                return f"Connected ({self.total_queues} queues, {self.total_messages} messages)"
            case ConnectionState.CONNECTING:
                return "Connecting..."
            case ConnectionState.FAILED:
                return f"Failed: {self.last_error or 'unknown error'}"
            case ConnectionState.DISCONNECTED:
                return "Disconnected"
            case _:
                return "Not connected"

    @property
    def formatted_display_name(self) -> str:
        if self.is_local or self.display_name.lower() == self.endpoint:
            return self.display_name
        return f"{self.display_name} ({self.endpoint})"

    @property
    def uptime(self) -> timedelta | None:
        if self.state != ConnectionState.CONNECTED or self.connected_at is None:
            return None
        return datetime.now(timezone.utc) - self.connected_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "display_name": self.display_name,
            "is_local": self.is_local,
            "state": self.state.value,
            "status_description": self.status_description,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "last_refreshed_at": self.last_refreshed_at.isoformat() if self.last_refreshed_at else None,
            "last_error": self.last_error,
            "total_queues": self.total_queues,
            "total_messages": self.total_messages,
            "retry_count": self.retry_count,
            "auto_refresh_enabled": self.auto_refresh_enabled,
            "auto_refresh_interval": self.auto_refresh_interval,
            "auto_refresh_paused": self.auto_refresh_paused,
        }


@dataclass(eq=False)
class EndpointConnection:
    """
    A supervised link to one endpoint.

    Every mutation goes through a method holding the entry's own lock, and
    readers use ``snapshot()``. ``refresh_lock`` serializes refresh runs and
    is separate so state reads never wait on a slow enumeration.
    """
    endpoint: str
    display_name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    is_local: bool = False
    state: ConnectionState = ConnectionState.NOT_CONNECTED
    connected_at: datetime | None = None
    last_refreshed_at: datetime | None = None
    last_error: str | None = None
    queues: tuple[QueueDescriptor, ...] = ()
    auto_refresh_enabled: bool = True
    auto_refresh_interval: int = 5
    auto_refresh_paused: bool = False
    auto_reconnect: bool = True
    retry_count: int = 0
    show_system_queues: bool = False
    show_journal_queues: bool = False
    is_pinned: bool = False
    next_reconnect_at: datetime | None = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    refresh_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        raw_name = self.endpoint
        self.endpoint = normalize_endpoint(raw_name)
        self.is_local = is_local_endpoint(self.endpoint)
        if not self.display_name:
            self.display_name = "Local Computer" if self.is_local else raw_name.strip()
        validate_refresh_interval(self.auto_refresh_interval)

    def transition(self, new_state: ConnectionState, error: str | None = None) -> ConnectionState:
        """Move to ``new_state``, returning the previous state."""
        with self.lock:
            previous = self.state
            if new_state not in ALLOWED_TRANSITIONS[previous]:
                raise InvalidStateTransition(previous, new_state)
            self.state = new_state
            if new_state == ConnectionState.CONNECTED:
                now = datetime.now(timezone.utc)
                self.connected_at = now
                self.last_error = None
                self.retry_count = 0
                self.next_reconnect_at = None
            elif new_state in (ConnectionState.FAILED, ConnectionState.DISCONNECTED):
                if error is not None:
                    self.last_error = error
                if new_state == ConnectionState.DISCONNECTED and error is None:
                    self.next_reconnect_at = None
            return previous

    def replace_queues(self, queues: list[QueueDescriptor] | tuple[QueueDescriptor, ...]) -> None:
        with self.lock:
            self.queues = tuple(queues)
            self.last_refreshed_at = datetime.now(timezone.utc)

    def schedule_reconnect(self, delay_seconds: float) -> int:
        """Bump the retry counter and set the next attempt time; returns the attempt number."""
        with self.lock:
            self.retry_count += 1
            self.next_reconnect_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
            return self.retry_count

    def cancel_reconnect(self) -> None:
        with self.lock:
            self.next_reconnect_at = None

    def reconnect_due(self, now: datetime | None = None) -> bool:
        with self.lock:
            if self.next_reconnect_at is None:
                return False
            if self.state not in (ConnectionState.FAILED, ConnectionState.DISCONNECTED):
                return False
            return (now or datetime.now(timezone.utc)) >= self.next_reconnect_at

    def update_settings(
        self,
        auto_refresh_enabled: bool | None = None,
        auto_refresh_interval: int | None = None,
        show_system_queues: bool | None = None,
        show_journal_queues: bool | None = None,
        auto_reconnect: bool | None = None,
        is_pinned: bool | None = None,
    ) -> None:
        if auto_refresh_interval is not None:
            validate_refresh_interval(auto_refresh_interval)
        with self.lock:
            if auto_refresh_enabled is not None:
                self.auto_refresh_enabled = auto_refresh_enabled
            if auto_refresh_interval is not None:
                self.auto_refresh_interval = auto_refresh_interval
            if show_system_queues is not None:
                self.show_system_queues = show_system_queues
            if show_journal_queues is not None:
                self.show_journal_queues = show_journal_queues
            if auto_reconnect is not None:
                self.auto_reconnect = auto_reconnect
            if is_pinned is not None:
                self.is_pinned = is_pinned

    def set_paused(self, paused: bool) -> None:
        with self.lock:
            self.auto_refresh_paused = paused

    @property
    def is_refreshing(self) -> bool:
        return self.refresh_lock.locked()

    def snapshot(self) -> ConnectionSnapshot:
        with self.lock:
            return ConnectionSnapshot(
                id=self.id,
                endpoint=self.endpoint,
                display_name=self.display_name,
                is_local=self.is_local,
                state=self.state,
                connected_at=self.connected_at,
                last_refreshed_at=self.last_refreshed_at,
                last_error=self.last_error,
                queues=self.queues,
                auto_refresh_enabled=self.auto_refresh_enabled,
                auto_refresh_interval=self.auto_refresh_interval,
                auto_refresh_paused=self.auto_refresh_paused,
                auto_reconnect=self.auto_reconnect,
                retry_count=self.retry_count,
                show_system_queues=self.show_system_queues,
                show_journal_queues=self.show_journal_queues,
                is_pinned=self.is_pinned,
                is_refreshing=self.is_refreshing,
            )
