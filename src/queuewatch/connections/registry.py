import threading
from typing import Dict, List, Optional

from queuewatch.models.connection import ConnectionState, EndpointConnection
from queuewatch.utils import normalize_endpoint


class ConnectionRegistry:
    """
    Arena of supervised connections, indexed by endpoint identity and by id.

    The registry lock guards membership only; each entry guards its own
    state with its own lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._by_endpoint: Dict[str, EndpointConnection] = {}
        self._by_id: Dict[str, EndpointConnection] = {}

    def get_or_create(self, endpoint: str, display_name: str = "", **settings) -> tuple[EndpointConnection, bool]:
        """Return the entry for ``endpoint``, creating it when absent; the flag tells whether it is new."""
        identity = normalize_endpoint(endpoint)
        with self._lock:
            existing = self._by_endpoint.get(identity)
            if existing is not None:
                return existing, False
            connection = EndpointConnection(endpoint=endpoint, display_name=display_name, **settings)
            self._by_endpoint[connection.endpoint] = connection
            self._by_id[connection.id] = connection
            return connection, True

    def get(self, connection_id: str) -> Optional[EndpointConnection]:
        with self._lock:
            return self._by_id.get(connection_id)

    def get_by_endpoint(self, endpoint: str) -> Optional[EndpointConnection]:
        with self._lock:
            return self._by_endpoint.get(normalize_endpoint(endpoint))

    def remove(self, connection_id: str) -> Optional[EndpointConnection]:
        with self._lock:
            connection = self._by_id.pop(connection_id, None)
            if connection is not None:
                self._by_endpoint.pop(connection.endpoint, None)
            return connection

    def contains(self, connection: EndpointConnection) -> bool:
        """True while this exact entry is still registered."""
        with self._lock:
            return self._by_id.get(connection.id) is connection

    def all(self) -> List[EndpointConnection]:
        with self._lock:
            return list(self._by_id.values())

    def by_state(self, state: ConnectionState) -> List[EndpointConnection]:
        return [connection for connection in self.all() if connection.state == state]
