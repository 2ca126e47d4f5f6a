"""Result types returned by public operations"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NONE = "none"
    TRANSIENT = "transient"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    UNSUPPORTED = "unsupported"
    CANCELLED = "cancelled"
    INVALID_ARGUMENT = "invalid_argument"
    CONFIRMATION_REQUIRED = "confirmation_required"
    PARTIAL = "partial"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        return self == ErrorKind.TRANSIENT


class MoveOutcome(str, Enum):
    MOVED_CLEANLY = "MovedCleanly"
    # copy landed in the destination but the original could not be removed
    MOVED_DUPLICATED = "MovedDuplicated"


@dataclass
class OperationResult(Generic[T]):
    """Outcome of an operation: success flag, payload and diagnostic."""
    success: bool
    data: T | None = None
    error: str | None = None
    kind: ErrorKind = ErrorKind.NONE
    exception: BaseException | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T | None = None, error: str | None = None, **metadata) -> "OperationResult[T]":
        return cls(success=True, data=data, error=error, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        exception: BaseException | None = None,
        data: T | None = None,
        **metadata,
    ) -> "OperationResult[T]":
        return cls(success=False, data=data, error=error, kind=kind, exception=exception, metadata=metadata)

    @classmethod
    def from_exception(cls, exc: BaseException, context: str = "") -> "OperationResult[T]":
        kind = getattr(exc, "kind", ErrorKind.UNKNOWN)
        message = f"{context}: {exc}" if context else str(exc)
        return cls.fail(message, kind=kind, exception=exc)

    def __bool__(self) -> bool:
        return self.success


@dataclass
class ItemOutcome:
    item: str
    success: bool
    error: str | None = None
    kind: ErrorKind = ErrorKind.NONE
    data: Any = None


@dataclass
class BulkOperationResult:
    """Per-item outcomes of a bulk operation"""
    items: list[ItemOutcome] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add(self, outcome: ItemOutcome) -> None:
        self.items.append(outcome)

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed_count(self) -> int:
        return self.total_count - self.success_count

    @property
    def failed_items(self) -> list[str]:
        return [item.item for item in self.items if not item.success]

    @property
    def success(self) -> bool:
        return self.success_count > 0 or self.total_count == 0

    @property
    def all_succeeded(self) -> bool:
        return self.failed_count == 0

    @property
    def kind(self) -> ErrorKind:
        if self.all_succeeded:
            return ErrorKind.NONE
        if self.success_count:
            return ErrorKind.PARTIAL
        if all(item.kind == ErrorKind.CANCELLED for item in self.items if not item.success):
            return ErrorKind.CANCELLED
        return ErrorKind.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "total_count": self.total_count,
            "failed_items": self.failed_items,
            **self.metadata,
        }
