"""QueueWatch: message queue monitoring core"""

# registers the custom log levels used across the package
from queuewatch.utils import logging as _logging  # noqa: F401
