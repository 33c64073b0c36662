"""Bookkeeping models for tracked jobs and cycle reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class TrackedJobState(str, Enum):
    """Where a claimed job sits on the local executor."""

    QUEUED = "queued"
    RUNNING = "running"


@dataclass(slots=True)
class TrackedJob:
    """Links one remote job id to its local submission and execution."""

    job_id: str
    target: str
    submission_handle: str
    submission_url: str | None = None
    execution_id: str | None = None
    state: TrackedJobState = TrackedJobState.QUEUED
    claimed_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def with_execution(self, execution_id: str) -> TrackedJob:
        return TrackedJob(
            job_id=self.job_id,
            target=self.target,
            submission_handle=self.submission_handle,
            submission_url=self.submission_url,
            execution_id=execution_id,
            state=TrackedJobState.RUNNING,
            claimed_at=self.claimed_at,
        )


@dataclass(slots=True)
class DispatchSummary:
    """Counters for one claim-and-trigger pass."""

    fetched: int = 0
    claimed: int = 0
    skipped: int = 0
    errored: int = 0


@dataclass(slots=True)
class ReconcileSummary:
    """Counters for one reconciliation pass."""

    checked: int = 0
    finalized: int = 0
    still_active: int = 0
    errors: int = 0


@dataclass(slots=True)
class CycleReport:
    """What one scheduler cycle did, or why it was skipped."""

    skipped_reason: str | None = None
    reconcile: ReconcileSummary | None = None
    dispatch: DispatchSummary | None = None

    @property
    def ran(self) -> bool:
        return self.skipped_reason is None

    def describe(self) -> str:
        if self.skipped_reason is not None:
            return f"Cycle skipped: {self.skipped_reason}"
        parts = ["Cycle finished:"]
        if self.reconcile is not None:
            parts.append(
                f"checked={self.reconcile.checked} finalized={self.reconcile.finalized} "
                f"active={self.reconcile.still_active} reconcile_errors={self.reconcile.errors}",
            )
        if self.dispatch is not None:
            parts.append(
                f"claimed={self.dispatch.claimed} skipped={self.dispatch.skipped} "
                f"errored={self.dispatch.errored}",
            )
        else:
            parts.append("dispatch=off")
        return " ".join(parts)
