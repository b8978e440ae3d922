from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Generic, Optional, TypeVar

from .constants import MAX_RETRIES, RETRY_INTERVAL_S

T = TypeVar("T")


class Failure(enum.Enum):
    CONNECTION_TIMEOUT = "connection timeout"
    CONNECTION_REFUSED = "connection refused"
    CONNECTION_OTHER = "connection failed"
    CONNECTION_EXHAUSTED = "connection attempts exhausted"
    SEND_ERROR = "send failed"
    PARTIAL_SEND = "partial send"
    PEER_CLOSED = "connection closed by peer"
    RECEIVE_ERROR = "receive failed"
    MESSAGE_TOO_LARGE = "message too large"
    ACK_TIMEOUT = "no acknowledgment before timeout"
    ACK_FRAMING_INCOMPLETE = "acknowledgment framing incomplete"
    ACK_EXHAUSTED = "acknowledgment attempts exhausted"

    @property
    def terminal(self) -> bool:
        return self in (Failure.CONNECTION_EXHAUSTED, Failure.ACK_EXHAUSTED)


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of one transport operation.

    Timeouts, refusals and broken framing are ordinary results here, not
    exceptions; callers branch on ``ok``.
    """

    value: Optional[T] = None
    failure: Failure | None = None
    detail: str = ""
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.failure is None

    @staticmethod
    def success(value: T, attempts: int = 1) -> "Result[T]":
        return Result(value=value, attempts=attempts)

    @staticmethod
    def fail(failure: Failure, detail: str = "", attempts: int = 1) -> "Result[T]":
        return Result(failure=failure, detail=detail, attempts=attempts)

    def describe(self) -> str:
        if self.failure is None:
            return "ok"
        if self.detail:
            return f"{self.failure.value}: {self.detail}"
        return self.failure.value


@dataclass(frozen=True, slots=True)
class RetryBudget:
    attempts: int = 0
    max_attempts: int = MAX_RETRIES
    delay_s: float = RETRY_INTERVAL_S

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.delay_s < 0:
            raise ValueError(f"delay_s must be non-negative, got {self.delay_s}")

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def spend(self) -> "RetryBudget":
        return replace(self, attempts=self.attempts + 1)
