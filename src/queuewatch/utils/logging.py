"""Logging utils"""

import os
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

from queuewatch.settings.manager import settings_manager
from queuewatch.utils import data_dir_path

LOGS_DIR = data_dir_path / "logs"
LOG_FILE_PREFIX = "queuewatch-"
CLEAN_INTERVAL_SECONDS = 3600

# name: (severity, colour, icon); severities sit on loguru's scale (TRACE 5, DEBUG 10, INFO 20)
CUSTOM_LEVELS = {
    "PROGRAM": (20, "cc6600", "🤖"),
    "CONNECTION": (20, "3D5A80", "🔌"),
    "REFRESH": (10, "92a1cf", "🔄"),
    "DRIVER": (5, "999999", "⚙️"),
    "CODEC": (5, "9B59B6", "🧬"),
    "OPERATION": (20, "ce7fab", "📨"),
    "EXPORT": (20, "FFFFE0", "🗃️ "),
}

BUILTIN_STYLES = {
    "TRACE": ("27F5E7", "✏️ "),
    "DEBUG": ("98C1D9", "🐞"),
    "INFO": ("818589", "📰"),
    "SUCCESS": ("00ff00", "✔️ "),
    "WARNING": ("ffcc00", "⚠️ "),
    "CRITICAL": ("ff0000", ""),
}

LOG_FORMAT = (
    "<fg #818589>{time:YY-MM-DD} {time:HH:mm:ss}</fg #818589> | "
    "<level>{level.icon}</level> <level>{level: <10}</level> | "
    "<fg #e7e7e7>{thread.name}</fg #e7e7e7> "
    "<fg #e7e7e7>{module}</fg #e7e7e7>.<fg #e7e7e7>{function}</fg #e7e7e7> - <level>{message}</level>"
)

_last_cleaned: datetime | None = None


def _style(name: str, color: str, icon: str) -> tuple[str, str]:
    """Colour and icon of a level, overridable with QUEUEWATCH_LOGGER_<NAME>_FG / _ICON."""
    color = os.getenv(f"QUEUEWATCH_LOGGER_{name}_FG", color)
    icon = os.getenv(f"QUEUEWATCH_LOGGER_{name}_ICON", icon)
    return f"<fg #{color}>", icon


def _file_handler(level: str) -> dict:
    log_settings = settings_manager.settings.logging
    os.makedirs(LOGS_DIR, exist_ok=True)
    return {
        "sink": LOGS_DIR / f"{LOG_FILE_PREFIX}{datetime.now().strftime('%Y%m%d-%H%M')}.log",
        "level": level,
        "format": LOG_FORMAT,
        "rotation": f"{log_settings.rotation_mb} MB" if log_settings.rotation_mb > 0 else None,
        "retention": f"{log_settings.retention_hours} hours",
        "compression": None if log_settings.compression == "disabled" else log_settings.compression,
        "backtrace": False,
        "diagnose": True,
        "enqueue": True,
    }


def setup_logger(level):
    """Register the queuewatch levels and (re)configure the handlers."""
    level = (level or "INFO").upper()

    for name, (no, color, icon) in CUSTOM_LEVELS.items():
        color, icon = _style(name, color, icon)
        try:
            logger.level(name)
        except ValueError:
            logger.level(name, no=no, color=color, icon=icon)
        else:
            # severity of an existing level is fixed, only its style can change
            logger.level(name, color=color, icon=icon)
    for name, (color, icon) in BUILTIN_STYLES.items():
        color, icon = _style(name, color, icon)
        logger.level(name, color=color, icon=icon)

    handlers = [
        {
            "sink": sys.stderr,
            "level": level,
            "format": LOG_FORMAT,
            "backtrace": False,
            "diagnose": False,
            "enqueue": True,
        }
    ]
    if settings_manager.settings.logging.enabled:
        handlers.append(_file_handler(level))

    logger.configure(handlers=handlers)


def log_cleaner(logs_dir: Path | None = None, force: bool = False) -> int:
    """
    Delete log files older than the retention window, always keeping the newest one.

    Runs at most once per hour unless ``force`` is set. Returns the number of files removed.
    """
    global _last_cleaned
    log_settings = settings_manager.settings.logging
    if not log_settings.enabled:
        return 0
    now = datetime.now()
    if not force and _last_cleaned and (now - _last_cleaned).total_seconds() < CLEAN_INTERVAL_SECONDS:
        return 0

    logs_dir = logs_dir or LOGS_DIR
    if not logs_dir.exists():
        return 0

    retention_hours = max(0, int(log_settings.retention_hours))
    removed = 0
    try:
        # rotated files may be compressed (.log.gz, .log.zip)
        log_files = sorted(logs_dir.glob(f"{LOG_FILE_PREFIX}*.log*"), key=lambda path: path.stat().st_mtime)
        for log_file in log_files[:-1]:
            age_hours = (now - datetime.fromtimestamp(log_file.stat().st_mtime)).total_seconds() / 3600
            if age_hours > retention_hours:
                log_file.unlink()
                removed += 1
    except OSError as e:
        logger.error(f"Failed to clean old logs in {logs_dir}: {e}")

    _last_cleaned = now
    if removed:
        logger.debug(f"Removed {removed} log files older than {retention_hours} hours")
    return removed


setup_logger(settings_manager.settings.log_level)
