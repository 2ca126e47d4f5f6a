from kink import di

from queuewatch.codec.engine import ContentCodec
from queuewatch.connections.persistence import ConnectionStore, JsonConnectionStore
from queuewatch.connections.supervisor import ConnectionSupervisor
from queuewatch.driver.base import QueueDriver
from queuewatch.driver.memory import InMemoryQueueDriver
from queuewatch.operations.message_operations import MessageOperations
from queuewatch.settings.manager import settings_manager
from queuewatch.utils import data_dir_path
from queuewatch.utils.logging import log_cleaner, setup_logger


def bootstrap(driver: QueueDriver | None = None):
    """Register the shared services in the container; the in-memory driver is used when none is given."""
    __setup_logging()
    __setup_driver(driver)
    __setup_codec()
    __setup_store()
    __setup_supervisor()
    __setup_operations()


def __setup_logging():
    settings_manager.register_observer(lambda: setup_logger(settings_manager.settings.log_level))


def __setup_driver(driver: QueueDriver | None):
    di[QueueDriver] = driver or InMemoryQueueDriver()


def __setup_codec():
    di[ContentCodec] = ContentCodec(settings_manager.settings.messages.max_body_render_bytes)


def __setup_store():
    di[ConnectionStore] = JsonConnectionStore(
        data_dir_path / settings_manager.settings.connections.saved_connections_file
    )


def __setup_supervisor():
    di[ConnectionSupervisor] = ConnectionSupervisor(di[QueueDriver], store=di[ConnectionStore])


def __setup_operations():
    di[MessageOperations] = MessageOperations(di[QueueDriver], codec=di[ContentCodec])


def shutdown():
    if ConnectionSupervisor in di:
        di[ConnectionSupervisor].shutdown()
    log_cleaner()
