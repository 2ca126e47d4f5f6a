import pytest
from pydantic import ValidationError

from queuewatch.settings.manager import format_validation_error, settings_manager
from queuewatch.settings.models import AppModel


def test_defaults():
    settings = AppModel()
    assert settings.refresh.default_interval_seconds == 5
    assert settings.connections.timeout_seconds == 30
    assert settings.connections.auto_reconnect
    assert settings.messages.max_body_render_bytes == 1048576


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("QUEUEWATCH_REFRESH_DEFAULT_INTERVAL_SECONDS", "15")
    monkeypatch.setenv("QUEUEWATCH_CONNECTIONS_AUTO_RECONNECT", "false")
    monkeypatch.setenv("QUEUEWATCH_LOG_LEVEL", "INFO")

    checked = settings_manager.check_environment(
        {"log_level": "DEBUG", "refresh": {"default_interval_seconds": 5}, "connections": {"auto_reconnect": True}},
        "QUEUEWATCH",
    )

    assert checked == {
        "log_level": "INFO",
        "refresh": {"default_interval_seconds": 15},
        "connections": {"auto_reconnect": False},
    }


def test_invalid_interval_is_reported():
    with pytest.raises(ValidationError) as error:
        AppModel.model_validate({"refresh": {"default_interval_seconds": 0}})

    formatted = format_validation_error(error.value)
    assert formatted.startswith("• refresh.default_interval_seconds:")


def test_observers_notified_on_change():
    calls = []
    settings_manager.register_observer(lambda: calls.append(True))
    try:
        settings_manager.settings.refresh.default_interval_seconds = 7
        assert calls
    finally:
        settings_manager.observers.pop()
        settings_manager.settings.refresh.default_interval_seconds = 5


@pytest.fixture
def isolated_manager(tmp_path):
    from queuewatch.settings.manager import SettingsManager
    from queuewatch.settings.models import Observable

    try:
        yield lambda: SettingsManager(settings_file=tmp_path / "settings.json")
    finally:
        Observable.set_notify_observers(settings_manager.notify_observers)


def test_settings_file_round_trip(isolated_manager, tmp_path, monkeypatch):
    monkeypatch.setenv("QUEUEWATCH_MESSAGES_PAGE_SIZE", "250")
    first = isolated_manager()
    assert first.settings.messages.page_size == 250
    first.save()

    monkeypatch.delenv("QUEUEWATCH_MESSAGES_PAGE_SIZE")
    second = isolated_manager()
    assert second.settings.messages.page_size == 250


def test_force_env_applies_over_file(isolated_manager, monkeypatch):
    isolated_manager().save()
    monkeypatch.setenv("QUEUEWATCH_CONNECTIONS_TIMEOUT_SECONDS", "3")

    assert isolated_manager().settings.connections.timeout_seconds == 30

    monkeypatch.setenv("QUEUEWATCH_FORCE_ENV", "true")
    assert isolated_manager().settings.connections.timeout_seconds == 3


def test_invalid_settings_file_raises(isolated_manager, tmp_path):
    (tmp_path / "settings.json").write_text('{"refresh": {"default_interval_seconds": 90}}')
    with pytest.raises(ValidationError):
        isolated_manager()


def test_observable_config_is_pydantic_v2_style():
    from queuewatch.settings.models import Observable

    assert Observable.model_config.get("arbitrary_types_allowed") is True
    assert "Config" not in Observable.__dict__
