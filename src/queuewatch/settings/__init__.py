from queuewatch.settings.manager import settings_manager

__all__ = ["settings_manager"]
