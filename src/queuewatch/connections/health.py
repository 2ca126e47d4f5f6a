"""
Endpoint health probing.

Driver calls are blocking, so every probe runs on a per-endpoint worker pool
and the caller waits at most the configured timeout. A timed-out call keeps
running on its worker until the driver returns; its result is ignored.
"""

import concurrent.futures
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Set, TypeVar

from loguru import logger

from queuewatch.driver.base import QueueDriver
from queuewatch.driver.errors import ConnectionTimeout, DriverError, error_kind
from queuewatch.models.results import ErrorKind

T = TypeVar("T")


@dataclass
class HealthStatus:
    """Health status for an endpoint"""
    endpoint: str
    status: str  # healthy, unhealthy, unknown
    last_check: datetime
    response_time_ms: Optional[float] = None
    error_message: Optional[str] = None
    error_kind: ErrorKind = ErrorKind.NONE
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "status": self.status,
            "last_check": self.last_check.isoformat(),
            "response_time_ms": self.response_time_ms,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value,
            "details": self.details,
        }


class HealthChecker:
    """
    Runs driver calls under a timeout and turns probe outcomes into ``HealthStatus``

    Each endpoint gets its own worker pool, so a host that never answers can
    only tie up its own workers. While a timed-out call to an endpoint is
    still running, further calls to that endpoint fail at once instead of
    queueing behind it.
    """

    def __init__(self, driver: QueueDriver, timeout: float, max_workers: int = 8):
        self.driver = driver
        self.timeout = timeout
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._executors: Dict[str, concurrent.futures.ThreadPoolExecutor] = {}
        self._stalled: Dict[str, Set[concurrent.futures.Future]] = {}
        self._closed = False

    def _executor_for(self, endpoint: str) -> concurrent.futures.ThreadPoolExecutor:
        with self._lock:
            if self._closed:
                raise RuntimeError("Health checker has been shut down")
            stalled = {future for future in self._stalled.get(endpoint, ()) if not future.done()}
            self._stalled[endpoint] = stalled
            if stalled:
                raise ConnectionTimeout(f"{endpoint} has not answered an earlier call yet", path=endpoint)
            executor = self._executors.get(endpoint)
            if executor is None:
                executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix=f"queuewatch-probe-{endpoint}"
                )
                self._executors[endpoint] = executor
            return executor

    def call(self, endpoint: str, fn: Callable[..., T], *args, timeout: Optional[float] = None) -> T:
        """
        Run ``fn(*args)`` on the worker pool of ``endpoint`` and wait for it

        Raises:
            ConnectionTimeout: When the call does not finish within the timeout,
                or an earlier timed-out call to the endpoint is still running
            DriverError: Whatever the driver raised
        """
        limit = self.timeout if timeout is None else timeout
        future = self._executor_for(endpoint).submit(fn, *args)
        try:
            return future.result(timeout=limit)
        except concurrent.futures.TimeoutError:
            if not future.cancel():
                with self._lock:
                    self._stalled.setdefault(endpoint, set()).add(future)
            raise ConnectionTimeout(f"Operation timed out after {limit} seconds", path=endpoint) from None

    def probe(self, endpoint: str, timeout: Optional[float] = None) -> HealthStatus:
        limit = self.timeout if timeout is None else timeout
        start_time = datetime.now(timezone.utc)
        try:
            self.call(endpoint, self.driver.test_connection, endpoint, limit, timeout=limit)
        except (DriverError, OSError) as e:
            logger.log("CONNECTION", f"Health probe for {endpoint} failed: {e}")
            return HealthStatus(
                endpoint=endpoint,
                status="unhealthy",
                last_check=datetime.now(timezone.utc),
                error_message=str(e),
                error_kind=error_kind(e),
            )
        response_time = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
        return HealthStatus(
            endpoint=endpoint,
            status="healthy",
            last_check=datetime.now(timezone.utc),
            response_time_ms=response_time,
        )

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            executors = list(self._executors.values())
            self._executors.clear()
            self._stalled.clear()
        for executor in executors:
            executor.shutdown(wait=False, cancel_futures=True)


def overall_health(statuses: Iterable[HealthStatus]) -> str:
    """Aggregate endpoint statuses: healthy, degraded, unhealthy or unknown."""
    statuses = list(statuses)
    if not statuses:
        return "unknown"
    healthy = sum(1 for status in statuses if status.is_healthy)
    if healthy == len(statuses):
        return "healthy"
    if healthy == 0:
        return "unhealthy"
    return "degraded"
