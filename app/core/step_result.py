"""Result type connecting the steps of a workflow."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")
E = TypeVar("E")


class StepStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult(Generic[T, E]):
    """Either the value a step produced or the reason it failed."""
    status: StepStatus
    value: Optional[T] = None
    error: Optional[E] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, value: T = None) -> "StepResult[T, E]":
        return cls(StepStatus.COMPLETED, value=value)

    @classmethod
    def failed(cls, error: E, detail: Optional[str] = None) -> "StepResult[T, E]":
        return cls(StepStatus.FAILED, error=error, detail=detail)

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.COMPLETED
