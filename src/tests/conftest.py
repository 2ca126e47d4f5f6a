import os
import tempfile
from collections.abc import Iterator

_data_dir = tempfile.mkdtemp(prefix="queuewatch-tests-")
os.environ.setdefault("QUEUEWATCH_DATA_DIR", _data_dir)
os.environ.setdefault("QUEUEWATCH_LOGGING_ENABLED", "false")

import pytest  # noqa: E402

from queuewatch.codec.engine import ContentCodec  # noqa: E402
from queuewatch.connections.persistence import JsonConnectionStore  # noqa: E402
from queuewatch.connections.supervisor import ConnectionSupervisor  # noqa: E402
from queuewatch.driver.memory import InMemoryQueueDriver  # noqa: E402
from queuewatch.operations.message_operations import MessageOperations  # noqa: E402
from queuewatch.utils.logging import setup_logger  # noqa: E402

# Setup logger for tests to ensure custom log levels are available
setup_logger("DEBUG")

LOCAL_ORDERS = ".\\private$\\orders"
LOCAL_AUDIT = ".\\private$\\audit"
LOCAL_ERRORS = ".\\private$\\errors"
REMOTE_BILLING = "billing01\\private$\\invoices"


@pytest.fixture
def driver() -> InMemoryQueueDriver:
    driver = InMemoryQueueDriver()
    driver.create_queue(LOCAL_ORDERS, label="Orders", use_journal=True)
    driver.create_queue(LOCAL_AUDIT, label="Audit", use_journal=True)
    driver.create_queue(LOCAL_ERRORS, label="Errors")
    driver.create_queue(REMOTE_BILLING, label="Invoices", transactional=True)
    return driver


@pytest.fixture
def store(tmp_path) -> JsonConnectionStore:
    return JsonConnectionStore(tmp_path / "connections.json")


@pytest.fixture
def supervisor(driver, store) -> Iterator[ConnectionSupervisor]:
    supervisor = ConnectionSupervisor(
        driver,
        store=store,
        timeout=2,
        reconnect_delay=0,
        auto_reconnect=True,
        default_interval=1,
        probe_workers=4,
    )
    yield supervisor
    supervisor.shutdown()


@pytest.fixture
def codec() -> ContentCodec:
    return ContentCodec()


@pytest.fixture
def operations(driver, codec) -> MessageOperations:
    return MessageOperations(driver, codec=codec, page_size=50)
