"""Gateway interface for the local execution engine."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

JOB_ID_PARAMETER = "JOB_ID"


class ExecutorError(RuntimeError):
    """Submission refused by the executor."""


class TargetNotFoundError(ExecutorError):
    """No executable target exists under the requested name."""


class TargetNotParameterizedError(ExecutorError):
    """Target exists but cannot accept build parameters."""


class SubmissionState(str, Enum):
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    PENDING = "pending"
    STARTED = "started"


class ExecutionState(str, Enum):
    NOT_FOUND = "not_found"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass(slots=True)
class TargetResolution:
    """Result of looking a target up by name."""

    name: str
    found: bool
    parameterized: bool = False
    url: str | None = None


@dataclass(slots=True)
class Submission:
    """Handle for work queued on the executor."""

    handle: str
    url: str | None = None


@dataclass(slots=True)
class SubmissionView:
    """State of a queued submission."""

    handle: str
    state: SubmissionState
    execution_id: str | None = None


@dataclass(slots=True)
class ExecutionView:
    """State of a started execution."""

    target: str
    execution_id: str
    state: ExecutionState
    result: str | None = None
    parameters: dict[str, str] = field(default_factory=dict)
    url: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.target} #{self.execution_id}"


CompletionCallback = Callable[[ExecutionView], None]


class ExecutorGateway(Protocol):
    """Protocol implemented by local executor adapters."""

    def resolve_target(self, name: str) -> TargetResolution:
        """Look an executable target up by name."""

    def submit(self, name: str, parameters: Mapping[str, str]) -> Submission | None:
        """Queue the target; ``None`` when the executor returned no handle."""

    def get_submission(self, handle: str) -> SubmissionView:
        """Inspect a queued submission."""

    def get_execution(self, target: str, execution_id: str) -> ExecutionView:
        """Inspect a started or finished execution."""
