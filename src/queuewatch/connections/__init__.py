from queuewatch.connections.health import HealthChecker, HealthStatus
from queuewatch.connections.notifications import (
    ConnectionFailed,
    ConnectionRefreshed,
    ConnectionStateChanged,
    NotificationBus,
    Subscription,
)
from queuewatch.connections.persistence import ConnectionStore, JsonConnectionStore, SavedConnection
from queuewatch.connections.supervisor import ConnectionSupervisor

__all__ = [
    "ConnectionFailed",
    "ConnectionRefreshed",
    "ConnectionStateChanged",
    "ConnectionStore",
    "ConnectionSupervisor",
    "HealthChecker",
    "HealthStatus",
    "JsonConnectionStore",
    "NotificationBus",
    "SavedConnection",
    "Subscription",
]
