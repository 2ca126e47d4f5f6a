"""
Per-connection auto-refresh.

Each connection gets its own worker thread waiting on its own interval, so a
slow endpoint never delays the others. A tick is skipped while a refresh of
that connection is already running. Workers also perform reconnect attempts
once they fall due.
"""

import threading
from typing import Callable, Dict, Iterable

from loguru import logger

from queuewatch.models.connection import ConnectionState, EndpointConnection


class RefreshWorker(threading.Thread):
    def __init__(
        self,
        connection: EndpointConnection,
        refresh: Callable[[EndpointConnection], object],
        reconnect: Callable[[EndpointConnection], object],
    ):
        super().__init__(name=f"queuewatch-refresh-{connection.endpoint}", daemon=True)
        self.connection = connection
        self._refresh = refresh
        self._reconnect = reconnect
        self.stop_event = threading.Event()
        self.ticks = 0

    def run(self):
        while not self.stop_event.wait(self.connection.snapshot().auto_refresh_interval):
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"Auto-refresh of {self.connection.endpoint} failed: {e}")

    def tick(self) -> None:
        self.ticks += 1
        if self.connection.reconnect_due():
            self._reconnect(self.connection)
            return

        snapshot = self.connection.snapshot()
        if not snapshot.auto_refresh_enabled or snapshot.auto_refresh_paused:
            return
        if snapshot.state != ConnectionState.CONNECTED:
            return
        if snapshot.is_refreshing:
            logger.log("REFRESH", f"Skipping auto-refresh of {snapshot.endpoint}, previous refresh still running")
            return
        self._refresh(self.connection)

    def stop(self) -> None:
        self.stop_event.set()


class AutoRefreshScheduler:
    def __init__(
        self,
        refresh: Callable[[EndpointConnection], object],
        reconnect: Callable[[EndpointConnection], object],
    ):
        self._refresh = refresh
        self._reconnect = reconnect
        self._lock = threading.Lock()
        self._workers: Dict[str, RefreshWorker] = {}
        self._running = False

    def start(self, connections: Iterable[EndpointConnection]) -> None:
        """Start workers for ``connections``; a second call while running changes nothing."""
        with self._lock:
            if self._running:
                return
            self._running = True
        for connection in connections:
            self.add(connection)
        logger.log("REFRESH", "Auto-refresh started")

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            self._running = False
            workers, self._workers = list(self._workers.values()), {}
        for worker in workers:
            worker.stop()
        for worker in workers:
            if worker is not threading.current_thread():
                worker.join(timeout)
        if workers:
            logger.log("REFRESH", "Auto-refresh stopped")

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def add(self, connection: EndpointConnection) -> None:
        with self._lock:
            if not self._running or connection.id in self._workers:
                return
            worker = RefreshWorker(connection, self._refresh, self._reconnect)
            self._workers[connection.id] = worker
        worker.start()

    def remove(self, connection_id: str) -> None:
        with self._lock:
            worker = self._workers.pop(connection_id, None)
        if worker is not None:
            worker.stop()

    def has_worker(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._workers
