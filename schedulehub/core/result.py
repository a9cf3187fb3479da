"""
Result values for repository calls.

Repositories return ``Success``/``Failure`` instead of raising so callers can
decide which storage failures are fatal:

    result = await uow.requests.get(request_id)
    match result:
        case Success(request):
            ...
        case Failure(error):
            logger.warning("lookup failed: %s", error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, _default: T) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self):
        """Raise the carried error (wrapped in RuntimeError when it is not an exception)."""
        if isinstance(self.error, BaseException):
            raise self.error
        raise RuntimeError(f"Operation failed: {self.error}")

    def unwrap_or(self, default):
        return default


Result = Union[Success[T], Failure[E]]


def success(value: T) -> Success[T]:
    return Success(value)


def failure(error: E) -> Failure[E]:
    return Failure(error)


@dataclass(frozen=True, slots=True)
class RecordNotFound:
    """No row with the given primary key."""

    entity_type: str
    entity_id: str
    message: str | None = None

    def __str__(self) -> str:
        if self.message:
            return self.message
        return f"{self.entity_type} with id={self.entity_id} not found"


@dataclass(frozen=True, slots=True)
class DatabaseError:
    """Storage-level failure; ``constraint_violation`` marks integrity errors."""

    operation: str
    message: str
    constraint_violation: bool = False
    original_exception: Exception | None = None

    def __str__(self) -> str:
        return f"Database error during {self.operation}: {self.message}"


__all__ = [
    "DatabaseError",
    "Failure",
    "RecordNotFound",
    "Result",
    "Success",
    "failure",
    "success",
]
