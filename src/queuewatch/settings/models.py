"""QueueWatch settings models"""

from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from queuewatch.utils import get_version


class Observable(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    _notify_observers: Callable | None = None

    @classmethod
    def set_notify_observers(cls, notify_observers_callable):
        cls._notify_observers = notify_observers_callable

    def __setattr__(self, name, value):
        super().__setattr__(name, value)
        if self.__class__._notify_observers:
            self.__class__._notify_observers()


class ServerModel(Observable):
    port: int = Field(default=8080, ge=1, le=65535, description="Listening port of the hosting process")


class RefreshModel(Observable):
    default_interval_seconds: int = Field(
        default=5, ge=1, le=60, description="Default auto-refresh interval for new connections"
    )


class MessagesModel(Observable):
    max_body_render_bytes: int = Field(
        default=1024 * 1024,
        ge=0,
        description="Upper bound on rendered message body length (0 for unlimited)",
    )
    page_size: int = Field(default=100, ge=1, description="Messages returned per listing page")


class ConnectionsModel(Observable):
    timeout_seconds: int = Field(default=30, ge=1, description="Remote connection probe timeout")
    auto_reconnect: bool = Field(default=True, description="Reconnect automatically after transient failures")
    reconnect_delay_seconds: int = Field(
        default=10, ge=0, description="Delay before an automatic reconnect attempt"
    )
    probe_workers: int = Field(default=8, ge=1, le=64, description="Threads used for connection probes")
    saved_connections_file: str = Field(
        default="connections.json", description="File in the data directory holding saved connections"
    )


class LoggingModel(Observable):
    enabled: bool = Field(default=True, description="Enable file logging")
    retention_hours: int = Field(
        default=24, description="Log retention period in hours"
    )
    rotation_mb: int = Field(default=10, description="Log file rotation size in MB")
    compression: Literal["zip", "gz", "bz2", "xz", "disabled"] = Field(
        default="disabled",
        description="Log compression format (empty for no compression)",
    )

    @field_validator("compression", mode="before")
    def check_compression(cls, v):
        if v == "" or not v:
            return "disabled"
        return v


class AppModel(Observable):
    version: str = Field(default_factory=get_version, description="Application version")
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = (
        Field(default="INFO", description="Logging level")
    )
    server: ServerModel = Field(
        default_factory=lambda: ServerModel(), description="Hosting configuration"
    )
    refresh: RefreshModel = Field(
        default_factory=lambda: RefreshModel(), description="Auto-refresh configuration"
    )
    messages: MessagesModel = Field(
        default_factory=lambda: MessagesModel(), description="Message listing and rendering"
    )
    connections: ConnectionsModel = Field(
        default_factory=lambda: ConnectionsModel(), description="Connection supervision"
    )
    logging: LoggingModel = Field(
        default_factory=lambda: LoggingModel(), description="Logging configuration"
    )

    @field_validator("log_level", mode="before")
    def check_debug(cls, v):
        if v is True:
            return "DEBUG"
        elif v is False:
            return "INFO"
        return v.upper() if isinstance(v, str) else v
