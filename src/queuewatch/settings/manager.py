import json
import os
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from queuewatch.settings.models import AppModel, Observable
from queuewatch.utils import data_dir_path

ENV_PREFIX = "QUEUEWATCH"


def _coerce(default: Any, raw: str) -> Any:
    """Parse an environment value into the type of the setting it overrides."""
    if isinstance(default, bool):
        return raw.lower() == "true" or raw == "1"
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, (list, dict)):
        return json.loads(raw)
    return raw


def _force_env() -> bool:
    return os.environ.get(f"{ENV_PREFIX}_FORCE_ENV", "false").lower() == "true"


class SettingsManager:
    """
    Owns the application settings.

    Settings live in ``settings.json`` under the data directory and are
    validated against ``AppModel`` on every load. When there is no file yet,
    defaults are built and ``QUEUEWATCH_<SECTION>_<KEY>`` environment
    variables are applied; ``QUEUEWATCH_FORCE_ENV=true`` applies them on top of
    an existing file too.
    """

    def __init__(self, settings_file=None):
        self.observers: list[Callable[[], None]] = []
        self.settings_file = settings_file or data_dir_path / "settings.json"

        Observable.set_notify_observers(self.notify_observers)

        if self.settings_file.exists():
            self.load()
        else:
            defaults = json.loads(AppModel().model_dump_json())
            self.settings = AppModel.model_validate(self.check_environment(defaults, ENV_PREFIX))
            self.notify_observers()

    def register_observer(self, observer: Callable[[], None]):
        self.observers.append(observer)

    def notify_observers(self):
        for observer in self.observers:
            observer()

    def check_environment(self, settings: dict, prefix: str = ENV_PREFIX, separator: str = "_") -> dict:
        """Return ``settings`` with every leaf replaced by its environment override, when one is set."""
        checked = {}
        for key, value in settings.items():
            variable = f"{prefix}{separator}{key}"
            if isinstance(value, dict):
                checked[key] = self.check_environment(value, variable, separator)
                continue
            raw = os.getenv(variable.upper())
            checked[key] = _coerce(value, raw) if raw else value
        return checked

    def load(self, settings_dict: dict | None = None):
        """
        Validate settings from ``settings_dict``, or from the settings file, and save them back.

        Raises:
            ValidationError: When the settings do not match the schema
            json.JSONDecodeError: When the settings file is not valid JSON
            FileNotFoundError: When there is no settings file to read
        """
        try:
            if not settings_dict:
                settings_dict = json.loads(self.settings_file.read_text(encoding="utf-8"))
                if _force_env():
                    settings_dict = self.check_environment(settings_dict, ENV_PREFIX)
            self.settings = AppModel.model_validate(settings_dict)
        except ValidationError as e:
            logger.error(f"Settings validation failed:\n{format_validation_error(e)}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Settings file {self.settings_file} is not valid JSON: {e}")
            raise
        except FileNotFoundError:
            logger.warning(f"Settings file {self.settings_file} does not exist")
            raise
        self.save()
        self.notify_observers()

    def save(self):
        os.makedirs(self.settings_file.parent, exist_ok=True)
        self.settings_file.write_text(self.settings.model_dump_json(indent=4), encoding="utf-8")


def format_validation_error(e: ValidationError) -> str:
    """One bullet per invalid field, e.g. ``• refresh.default_interval_seconds: ...``"""
    return "\n".join(
        f"• {'.'.join(str(part) for part in error['loc'])}: {error.get('msg')}" for error in e.errors()
    )


settings_manager = SettingsManager()
