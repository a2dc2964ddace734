"""Explicit success/failure values for primitives that may return nothing."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ResultStatus(Enum):
    """Outcome of a primitive call."""

    ok = "ok"
    unavailable = "unavailable"
    rejected = "rejected"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value of a call, or the reason there is none.

    Attributes:
        status: Outcome of the call
        value: Returned value, only set when status is ok
        reason: Human readable cause for unavailable/rejected results
    """

    status: ResultStatus
    value: T | None = None
    reason: str = ""

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(ResultStatus.ok, value)

    @classmethod
    def unavailable(cls, reason: str = "") -> Result[T]:
        return cls(ResultStatus.unavailable, None, reason)

    @classmethod
    def rejected(cls, reason: str = "") -> Result[T]:
        return cls(ResultStatus.rejected, None, reason)

    @property
    def is_ok(self) -> bool:
        return self.status is ResultStatus.ok

    def unwrap(self) -> T:
        """Return the value.

        Raises:
            ValueError: If the result carries no value
        """
        if self.status is not ResultStatus.ok:
            raise ValueError(f"Result is {self.status.value}: {self.reason}")
        return self.value  # type: ignore[return-value]
