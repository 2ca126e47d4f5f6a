import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from loguru import logger
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from queuewatch.models.connection import ConnectionSnapshot


class SavedConnection(BaseModel):
    """Identity and display preferences of a connection. Credentials are never stored."""
    endpoint: str
    display_name: str = ""
    auto_refresh_enabled: bool = True
    auto_refresh_interval: int = Field(default=5, ge=1, le=60)
    auto_reconnect: bool = True
    show_system_queues: bool = False
    show_journal_queues: bool = False
    is_pinned: bool = False

    @classmethod
    def from_snapshot(cls, snapshot: ConnectionSnapshot) -> "SavedConnection":
        return cls(
            endpoint=snapshot.endpoint,
            display_name=snapshot.display_name,
            auto_refresh_enabled=snapshot.auto_refresh_enabled,
            auto_refresh_interval=snapshot.auto_refresh_interval,
            auto_reconnect=snapshot.auto_reconnect,
            show_system_queues=snapshot.show_system_queues,
            show_journal_queues=snapshot.show_journal_queues,
            is_pinned=snapshot.is_pinned,
        )


_saved_list = TypeAdapter(List[SavedConnection])


class ConnectionStore(ABC):
    """Where saved connections live between runs"""

    @abstractmethod
    def save(self, connections: List[SavedConnection]) -> None:
        """Replace the saved set"""

    @abstractmethod
    def load(self) -> List[SavedConnection]:
        """Saved connections, empty when nothing was saved"""

    @abstractmethod
    def clear(self) -> None:
        """Forget every saved connection"""


class JsonConnectionStore(ConnectionStore):
    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, connections: List[SavedConnection]) -> None:
        os.makedirs(self.path.parent, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "wb") as file:
            file.write(_saved_list.dump_json(connections, indent=4))
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved {len(connections)} connections to {self.path}")

    def load(self) -> List[SavedConnection]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "rb") as file:
                return _saved_list.validate_json(file.read())
        except ValidationError as e:
            logger.error(f"Saved connections file {self.path} is invalid: {e}")
            raise

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
