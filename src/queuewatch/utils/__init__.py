import os
import socket
import re

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from importlib import metadata
from time import time
from loguru import logger
from pathlib import Path

root_dir = Path(__file__).resolve().parents[3]

data_dir_path = Path(os.getenv("QUEUEWATCH_DATA_DIR", root_dir / "data"))


def get_version() -> str:
    try:
        return metadata.version("queuewatch")
    except metadata.PackageNotFoundError:
        pass

    with open(root_dir / "pyproject.toml") as file:
        pyproject_toml = file.read()

    match = re.search(r'version = "(.+)"', pyproject_toml)
    if match:
        version = match.group(1)
    else:
        raise ValueError("Could not find version in pyproject.toml")
    return version


def normalize_endpoint(endpoint: str) -> str:
    """Fold an endpoint name to its identity: lower-cased, with localhost aliases mapped to '.'."""
    if endpoint is None or not endpoint.strip():
        raise ValueError("Endpoint name cannot be empty")
    name = endpoint.strip().lower()
    if name in (".", "localhost", "127.0.0.1", local_machine_name()):
        return "."
    return name


def local_machine_name() -> str:
    return (os.getenv("COMPUTERNAME") or socket.gethostname() or "localhost").lower()


def is_local_endpoint(endpoint: str) -> bool:
    return normalize_endpoint(endpoint) == "."


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes / (1024 * 1024):.2f} MB"


@contextmanager
def benchmark(
    *,
    log: Callable[[float], None] | None,
    decimal_places: int = 3,
) -> Iterator[None]:
    """Context manager for benchmarking code execution time."""

    start_time = time()

    try:
        yield
    finally:
        end_time = time()
        elapsed = end_time - start_time

        if log:
            log(round(elapsed, decimal_places))
        else:
            logger.debug(f"Execution time: {elapsed:.{decimal_places}f} seconds")
