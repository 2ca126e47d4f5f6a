"""
Connection supervision.

The supervisor owns the registry of endpoint connections, drives their state
machine, refreshes their cached queue lists and publishes notifications on
its bus. Every public operation returns an ``OperationResult`` instead of
raising for runtime failures.
"""

import concurrent.futures
import threading
from typing import List, Optional

from loguru import logger

from queuewatch.connections.health import HealthChecker, HealthStatus, overall_health
from queuewatch.connections.notifications import (
    ConnectionFailed,
    ConnectionRefreshed,
    ConnectionStateChanged,
    NotificationBus,
    Subscription,
)
from queuewatch.connections.persistence import ConnectionStore, JsonConnectionStore, SavedConnection
from queuewatch.connections.registry import ConnectionRegistry
from queuewatch.connections.scheduler import AutoRefreshScheduler
from queuewatch.driver.base import QueueDriver
from queuewatch.driver.errors import DriverError, OperationCancelled, check_cancelled, error_kind
from queuewatch.models.connection import (
    ALLOWED_TRANSITIONS,
    ConnectionSnapshot,
    ConnectionState,
    EndpointConnection,
)
from queuewatch.models.queue import QueueDescriptor
from queuewatch.models.results import BulkOperationResult, ErrorKind, ItemOutcome, OperationResult
from queuewatch.settings.manager import settings_manager
from queuewatch.utils import benchmark, data_dir_path


class ConnectionSupervisor:
    """Maintains connections to queue endpoints and keeps their queue lists current"""

    def __init__(
        self,
        driver: QueueDriver,
        bus: Optional[NotificationBus] = None,
        store: Optional[ConnectionStore] = None,
        timeout: Optional[float] = None,
        reconnect_delay: Optional[float] = None,
        auto_reconnect: Optional[bool] = None,
        default_interval: Optional[int] = None,
        probe_workers: Optional[int] = None,
    ):
        settings = settings_manager.settings
        self.driver = driver
        self.bus = bus or NotificationBus()
        self.store = store or JsonConnectionStore(
            data_dir_path / settings.connections.saved_connections_file
        )
        self.registry = ConnectionRegistry()
        self.timeout = settings.connections.timeout_seconds if timeout is None else timeout
        self.reconnect_delay = (
            settings.connections.reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self.auto_reconnect = settings.connections.auto_reconnect if auto_reconnect is None else auto_reconnect
        self.default_interval = (
            settings.refresh.default_interval_seconds if default_interval is None else default_interval
        )
        self.health = HealthChecker(
            driver,
            self.timeout,
            max_workers=probe_workers or settings.connections.probe_workers,
        )
        self.scheduler = AutoRefreshScheduler(
            refresh=self._scheduled_refresh,
            reconnect=self._scheduled_reconnect,
        )

    # notifications

    def subscribe(self, maxsize: int = 0) -> Subscription:
        return self.bus.subscribe(maxsize=maxsize)

    def _transition(
        self, connection: EndpointConnection, state: ConnectionState, error: Optional[str] = None
    ) -> ConnectionState:
        previous = connection.transition(state, error)
        if previous != state:
            logger.log("CONNECTION", f"{connection.display_name}: {previous.value} -> {state.value}")
            self.bus.publish(ConnectionStateChanged(connection.id, connection.endpoint, previous, state))
        return previous

    def _handle_failure(
        self,
        connection: EndpointConnection,
        error: str,
        kind: ErrorKind,
        target: ConnectionState,
        retry_allowed: bool,
    ) -> None:
        with connection.lock:
            if not self.registry.contains(connection):
                return
            if target not in ALLOWED_TRANSITIONS[connection.state]:
                # settled by another thread in the meantime
                return
            self._transition(connection, target, error)
            will_retry = retry_allowed and kind.is_transient and connection.auto_reconnect
            if will_retry:
                attempt = connection.schedule_reconnect(self.reconnect_delay)
            else:
                connection.cancel_reconnect()
                attempt = connection.retry_count
        if will_retry:
            logger.log(
                "CONNECTION",
                f"{connection.display_name} will retry in {self.reconnect_delay}s (attempt {attempt})",
            )
        self.bus.publish(ConnectionFailed(connection.id, error, will_retry, attempt))

    # connecting

    def connect(
        self,
        endpoint: str,
        display_name: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> OperationResult[ConnectionSnapshot]:
        """
        Connect to an endpoint, or return the existing connection for it.

        Connecting is idempotent per endpoint identity: a connection that is
        already connected or connecting is returned as is. Otherwise one
        enumeration probe runs under the connection timeout and its result
        becomes the cached queue list.
        """
        if not endpoint or not endpoint.strip():
            raise ValueError("Endpoint name cannot be empty")

        connection, created = self.registry.get_or_create(
            endpoint,
            display_name or "",
            auto_refresh_interval=self.default_interval,
            auto_reconnect=self.auto_reconnect,
        )
        if created:
            logger.log("CONNECTION", f"Registered connection to {connection.display_name}")

        with connection.lock:
            if connection.state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                return OperationResult.ok(connection.snapshot())
            self._transition(connection, ConnectionState.CONNECTING)
        return self._open(connection, cancel_event, retrying=False)

    def get_local_connection(self) -> OperationResult[ConnectionSnapshot]:
        return self.connect(".")

    def reconnect(
        self, connection_id: str, cancel_event: Optional[threading.Event] = None
    ) -> OperationResult[ConnectionSnapshot]:
        connection = self.registry.get(connection_id)
        if connection is None:
            return OperationResult.fail(f"Connection {connection_id} not found", kind=ErrorKind.NOT_FOUND)
        return self._reconnect(connection, cancel_event, retrying=False)

    def _reconnect(
        self,
        connection: EndpointConnection,
        cancel_event: Optional[threading.Event],
        retrying: bool,
    ) -> OperationResult[ConnectionSnapshot]:
        with connection.lock:
            state = connection.state
            if state == ConnectionState.CONNECTING:
                return OperationResult.ok(connection.snapshot())
            if state != ConnectionState.CONNECTED:
                self._transition(connection, ConnectionState.CONNECTING)
        if state == ConnectionState.CONNECTED:
            return self._refresh(connection, None, cancel_event)
        logger.log("CONNECTION", f"Reconnecting to {connection.display_name}")
        return self._open(connection, cancel_event, retrying=retrying)

    def _open(
        self,
        connection: EndpointConnection,
        cancel_event: Optional[threading.Event],
        retrying: bool,
    ) -> OperationResult[ConnectionSnapshot]:
        """Probe a connection in the Connecting state and settle it as Connected, Failed or Disconnected."""
        include_system = connection.snapshot().show_system_queues
        with connection.refresh_lock:
            try:
                queues = self._collect(connection, include_system, cancel_event)
            except OperationCancelled as e:
                with connection.lock:
                    if self.registry.contains(connection):
                        self._transition(connection, ConnectionState.DISCONNECTED)
                return OperationResult.fail(
                    f"Connection to {connection.display_name} was cancelled", kind=ErrorKind.CANCELLED, exception=e
                )
            except (DriverError, OSError) as e:
                kind = error_kind(e)
                message = f"Failed to connect to {connection.display_name}: {e}"
                logger.error(message)
                self._handle_failure(connection, message, kind, ConnectionState.FAILED, retry_allowed=retrying)
                return OperationResult.fail(message, kind=kind, exception=e)

            with connection.lock:
                if not self.registry.contains(connection):
                    return OperationResult.fail(
                        f"Connection to {connection.display_name} was closed while connecting",
                        kind=ErrorKind.CANCELLED,
                    )
                connection.replace_queues(queues)
                self._transition(connection, ConnectionState.CONNECTED)
                snapshot = connection.snapshot()

        self.bus.publish(ConnectionRefreshed(connection.id, len(queues)))
        self.scheduler.add(connection)
        logger.log("CONNECTION", f"Connected to {connection.display_name} ({len(queues)} queues)")
        return OperationResult.ok(snapshot)

    # disconnecting

    def disconnect(self, connection_id: str) -> OperationResult[ConnectionSnapshot]:
        """Close a connection and drop it from the active set; a refresh in flight is discarded."""
        connection = self.registry.remove(connection_id)
        if connection is None:
            return OperationResult.fail(f"Connection {connection_id} not found", kind=ErrorKind.NOT_FOUND)
        self.scheduler.remove(connection.id)
        with connection.lock:
            self._transition(connection, ConnectionState.DISCONNECTED)
            connection.cancel_reconnect()
            snapshot = connection.snapshot()
        logger.log("CONNECTION", f"Disconnected from {connection.display_name}")
        return OperationResult.ok(snapshot)

    def disconnect_all(self) -> BulkOperationResult:
        result = BulkOperationResult()
        for connection in self.registry.all():
            outcome = self.disconnect(connection.id)
            result.add(ItemOutcome(item=connection.endpoint, success=outcome.success, error=outcome.error))
        return result

    # lookups

    def get_connection(self, connection_id: str) -> Optional[ConnectionSnapshot]:
        connection = self.registry.get(connection_id)
        return connection.snapshot() if connection else None

    def get_connection_by_endpoint(self, endpoint: str) -> Optional[ConnectionSnapshot]:
        connection = self.registry.get_by_endpoint(endpoint)
        return connection.snapshot() if connection else None

    def get_all_connections(self) -> List[ConnectionSnapshot]:
        return [connection.snapshot() for connection in self.registry.all()]

    def get_connections_by_state(self, state: ConnectionState) -> List[ConnectionSnapshot]:
        return [connection.snapshot() for connection in self.registry.by_state(state)]

    # refreshing

    def _collect(
        self,
        connection: EndpointConnection,
        include_system: bool,
        cancel_event: Optional[threading.Event],
    ) -> List[QueueDescriptor]:
        """
        Build a fresh queue list for a connection without touching its cache.

        Raises:
            OperationCancelled: When ``cancel_event`` is set between steps
            DriverError: When the queues cannot be enumerated at all
        """
        check_cancelled(cancel_event)
        queues = self.health.call(
            connection.endpoint, self.driver.enumerate_queues, connection.endpoint, include_system
        )
        collected = []
        for queue in queues:
            check_cancelled(cancel_event)
            if queue.has_journal:
                try:
                    count = self.health.call(
                        connection.endpoint, self.driver.get_journal_message_count, queue.path
                    )
                    queue = queue.with_journal_count(count)
                except (DriverError, OSError) as e:
                    logger.warning(f"Could not read journal of {queue.path}: {e}")
                    queue = queue.with_error(f"Failed to read journal: {e}")
            collected.append(queue)
        check_cancelled(cancel_event)
        return collected

    def refresh_connection(
        self,
        connection_id: str,
        include_system_queues: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> OperationResult[ConnectionSnapshot]:
        """
        Re-enumerate the queues of a connected endpoint.

        Refreshes of one connection run one at a time. The cached list is
        replaced only when a run completes; a cancelled or failed run leaves
        the previous list in place. A queue whose journal cannot be read keeps
        its entry with the error recorded on it.
        """
        connection = self.registry.get(connection_id)
        if connection is None:
            return OperationResult.fail(f"Connection {connection_id} not found", kind=ErrorKind.NOT_FOUND)
        return self._refresh(connection, include_system_queues, cancel_event)

    def _refresh(
        self,
        connection: EndpointConnection,
        include_system_queues: Optional[bool],
        cancel_event: Optional[threading.Event],
        blocking: bool = True,
    ) -> OperationResult[ConnectionSnapshot]:
        snapshot = connection.snapshot()
        if snapshot.state != ConnectionState.CONNECTED:
            return OperationResult.fail(
                f"{snapshot.display_name} is not connected ({snapshot.state.value})",
                kind=ErrorKind.INVALID_ARGUMENT,
            )
        if not connection.refresh_lock.acquire(blocking=blocking):
            return OperationResult.fail(
                f"A refresh of {snapshot.display_name} is already running", kind=ErrorKind.TRANSIENT
            )
        include_system = snapshot.show_system_queues if include_system_queues is None else include_system_queues
        try:
            with benchmark(log=lambda elapsed: logger.log("REFRESH", f"Refreshed {snapshot.display_name} in {elapsed}s")):
                queues = self._collect(connection, include_system, cancel_event)

            with connection.lock:
                if not self.registry.contains(connection) or connection.state != ConnectionState.CONNECTED:
                    logger.log("REFRESH", f"Discarding refresh of {snapshot.display_name}, connection closed")
                    return OperationResult.fail(
                        f"{snapshot.display_name} was disconnected during the refresh", kind=ErrorKind.CANCELLED
                    )
                connection.replace_queues(queues)
                snapshot = connection.snapshot()
        except OperationCancelled as e:
            logger.log("REFRESH", f"Refresh of {snapshot.display_name} cancelled")
            return OperationResult.fail(
                f"Refresh of {snapshot.display_name} was cancelled", kind=ErrorKind.CANCELLED, exception=e
            )
        except (DriverError, OSError) as e:
            kind = error_kind(e)
            message = f"Failed to refresh {snapshot.display_name}: {e}"
            logger.error(message)
            self._handle_failure(connection, message, kind, ConnectionState.FAILED, retry_allowed=True)
            return OperationResult.fail(message, kind=kind, exception=e)
        finally:
            connection.refresh_lock.release()

        self.bus.publish(ConnectionRefreshed(connection.id, len(queues)))
        return OperationResult.ok(snapshot, queue_count=len(queues))

    def refresh_all_connections(
        self,
        include_system_queues: Optional[bool] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BulkOperationResult:
        """Refresh every connected endpoint in parallel, one outcome per endpoint."""
        connections = self.registry.by_state(ConnectionState.CONNECTED)
        result = BulkOperationResult()
        if not connections:
            return result
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=len(connections), thread_name_prefix="queuewatch-refresh-all"
        ) as executor:
            futures = {
                executor.submit(self._refresh, connection, include_system_queues, cancel_event): connection
                for connection in connections
            }
            for future in concurrent.futures.as_completed(futures):
                connection = futures[future]
                outcome = future.result()
                result.add(
                    ItemOutcome(
                        item=connection.endpoint,
                        success=outcome.success,
                        error=outcome.error,
                        kind=outcome.kind,
                        data=outcome.data,
                    )
                )
        return result

    def _scheduled_refresh(self, connection: EndpointConnection) -> None:
        outcome = self._refresh(connection, None, None, blocking=False)
        if not outcome.success:
            logger.log("REFRESH", f"Auto-refresh of {connection.display_name} did not complete: {outcome.error}")

    def _scheduled_reconnect(self, connection: EndpointConnection) -> None:
        self._reconnect(connection, None, retrying=True)

    def process_due_reconnects(self) -> int:
        """Run every reconnect attempt that has fallen due; returns how many were attempted."""
        attempted = 0
        for connection in self.registry.all():
            if connection.reconnect_due():
                self._reconnect(connection, None, retrying=True)
                attempted += 1
        return attempted

    # health

    def test_connection_health(self, connection_id: str) -> OperationResult[HealthStatus]:
        """
        Probe a connection.

        A failed probe moves a connected entry to Disconnected when the error
        is transient and to Failed otherwise. Transient failures schedule a
        reconnect when auto-reconnect is enabled.
        """
        connection = self.registry.get(connection_id)
        if connection is None:
            return OperationResult.fail(f"Connection {connection_id} not found", kind=ErrorKind.NOT_FOUND)

        status = self.health.probe(connection.endpoint)
        if status.is_healthy:
            return OperationResult.ok(status)

        if connection.state == ConnectionState.CONNECTED:
            target = ConnectionState.DISCONNECTED if status.error_kind.is_transient else ConnectionState.FAILED
            self._handle_failure(
                connection,
                f"Health check of {connection.display_name} failed: {status.error_message}",
                status.error_kind,
                target,
                retry_allowed=True,
            )
        return OperationResult.ok(status, error=status.error_message)

    def overall_health(self) -> str:
        statuses = [self.health.probe(connection.endpoint) for connection in self.registry.all()]
        return overall_health(statuses)

    # settings

    def update_connection_settings(
        self,
        connection_id: str,
        auto_refresh_enabled: Optional[bool] = None,
        auto_refresh_interval: Optional[int] = None,
        show_system_queues: Optional[bool] = None,
        show_journal_queues: Optional[bool] = None,
        auto_reconnect: Optional[bool] = None,
        is_pinned: Optional[bool] = None,
    ) -> OperationResult[ConnectionSnapshot]:
        connection = self.registry.get(connection_id)
        if connection is None:
            return OperationResult.fail(f"Connection {connection_id} not found", kind=ErrorKind.NOT_FOUND)
        try:
            connection.update_settings(
                auto_refresh_enabled=auto_refresh_enabled,
                auto_refresh_interval=auto_refresh_interval,
                show_system_queues=show_system_queues,
                show_journal_queues=show_journal_queues,
                auto_reconnect=auto_reconnect,
                is_pinned=is_pinned,
            )
        except ValueError as e:
            return OperationResult.fail(str(e), kind=ErrorKind.INVALID_ARGUMENT, exception=e)

        if auto_refresh_interval is not None and self.scheduler.has_worker(connection.id):
            # restart the worker so the new interval applies to the current wait
            self.scheduler.remove(connection.id)
            self.scheduler.add(connection)
        return OperationResult.ok(connection.snapshot())

    # auto-refresh

    def start_auto_refresh(self) -> None:
        self.scheduler.start(self.registry.all())

    def stop_auto_refresh(self) -> None:
        self.scheduler.stop()

    def is_auto_refresh_running(self) -> bool:
        return self.scheduler.is_running()

    def pause_auto_refresh(self, connection_id: str) -> OperationResult[ConnectionSnapshot]:
        return self._set_paused(connection_id, True)

    def resume_auto_refresh(self, connection_id: str) -> OperationResult[ConnectionSnapshot]:
        return self._set_paused(connection_id, False)

    def _set_paused(self, connection_id: str, paused: bool) -> OperationResult[ConnectionSnapshot]:
        connection = self.registry.get(connection_id)
        if connection is None:
            return OperationResult.fail(f"Connection {connection_id} not found", kind=ErrorKind.NOT_FOUND)
        connection.set_paused(paused)
        logger.log("REFRESH", f"Auto-refresh of {connection.display_name} {'paused' if paused else 'resumed'}")
        return OperationResult.ok(connection.snapshot())

    # persistence

    def save_connections(self) -> OperationResult[int]:
        saved = [SavedConnection.from_snapshot(snapshot) for snapshot in self.get_all_connections()]
        try:
            self.store.save(saved)
        except OSError as e:
            return OperationResult.fail(f"Failed to save connections: {e}", kind=ErrorKind.UNKNOWN, exception=e)
        return OperationResult.ok(len(saved))

    def load_connections(self, auto_connect: bool = True) -> BulkOperationResult:
        """Restore saved connections, connecting each one when ``auto_connect`` is set."""
        result = BulkOperationResult()
        for saved in self.store.load():
            connection, _ = self.registry.get_or_create(saved.endpoint, saved.display_name)
            connection.update_settings(
                auto_refresh_enabled=saved.auto_refresh_enabled,
                auto_refresh_interval=saved.auto_refresh_interval,
                show_system_queues=saved.show_system_queues,
                show_journal_queues=saved.show_journal_queues,
                auto_reconnect=saved.auto_reconnect,
                is_pinned=saved.is_pinned,
            )
            if auto_connect:
                outcome = self.connect(saved.endpoint)
                result.add(ItemOutcome(item=connection.endpoint, success=outcome.success, error=outcome.error, kind=outcome.kind))
            else:
                result.add(ItemOutcome(item=connection.endpoint, success=True))
        logger.log("CONNECTION", f"Loaded {result.total_count} saved connections")
        return result

    def clear_saved_connections(self) -> OperationResult[bool]:
        try:
            self.store.clear()
        except OSError as e:
            return OperationResult.fail(f"Failed to clear saved connections: {e}", exception=e)
        return OperationResult.ok(True)

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.bus.close()
        self.health.shutdown()
