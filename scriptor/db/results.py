"""Result type returned by the backend adapter's data helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Lookup(Generic[T]):
    """Outcome of a single backend read or write.

    ``NOT_FOUND`` means the backend answered and nothing matched; ``ERROR``
    means the backend could not be asked or refused the operation. Callers
    map the former to 404 and the latter to a server error.
    """

    status: LookupStatus
    value: T | None = None
    error: str | None = None

    @classmethod
    def found(cls, value: T) -> Lookup[T]:
        return cls(LookupStatus.FOUND, value=value)

    @classmethod
    def not_found(cls) -> Lookup[T]:
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def failed(cls, error: str) -> Lookup[T]:
        return cls(LookupStatus.ERROR, error=error)

    @property
    def is_found(self) -> bool:
        return self.status is LookupStatus.FOUND

    @property
    def is_not_found(self) -> bool:
        return self.status is LookupStatus.NOT_FOUND

    @property
    def is_error(self) -> bool:
        return self.status is LookupStatus.ERROR

    def value_or_none(self) -> T | None:
        return self.value if self.is_found else None
