"""Re-check tracked jobs against the executor and report terminal outcomes."""

from __future__ import annotations

import logging
from enum import Enum

from ctrlplane_agent.api.base import RemoteQueue
from ctrlplane_agent.api.models import JobStatus, StatusUpdate
from ctrlplane_agent.poller.active_jobs import ActiveJobTable
from ctrlplane_agent.poller.executor.base import (
    ExecutionState,
    ExecutorGateway,
    SubmissionState,
)
from ctrlplane_agent.poller.models import ReconcileSummary, TrackedJob
from ctrlplane_agent.poller.outcome import completion_update

logger = logging.getLogger(__name__)


class _Step(str, Enum):
    ACTIVE = "active"
    FINALIZED = "finalized"
    REPORT_FAILED = "report_failed"


class Reconciler:
    """Walks the active-job table once per cycle."""

    def __init__(
        self,
        *,
        queue: RemoteQueue,
        gateway: ExecutorGateway,
        active_jobs: ActiveJobTable,
    ) -> None:
        self.queue = queue
        self.gateway = gateway
        self.active_jobs = active_jobs

    def reconcile(self) -> ReconcileSummary:
        summary = ReconcileSummary()
        for job in self.active_jobs.snapshot():
            if job.job_id not in self.active_jobs:
                continue
            summary.checked += 1
            try:
                step = self._check(job)
            except Exception:
                logger.exception("Error reconciling job %s", job.job_id)
                summary.errors += 1
                summary.still_active += 1
                continue
            if step == _Step.FINALIZED:
                summary.finalized += 1
            else:
                summary.still_active += 1
                if step == _Step.REPORT_FAILED:
                    summary.errors += 1
        if summary.checked:
            logger.info(
                "Reconciled %d job(s): finalized=%d active=%d errors=%d",
                summary.checked,
                summary.finalized,
                summary.still_active,
                summary.errors,
            )
        return summary

    def _check(self, job: TrackedJob) -> _Step:
        if job.execution_id is None:
            submission = self.gateway.get_submission(job.submission_handle)
            if submission.state == SubmissionState.NOT_FOUND:
                return self._finalize(
                    job,
                    StatusUpdate(
                        status=JobStatus.FAILURE,
                        message=(
                            f"Queue item {job.submission_handle} for {job.target} "
                            "was lost before it started"
                        ),
                    ),
                )
            if submission.state == SubmissionState.CANCELLED:
                return self._finalize(
                    job,
                    StatusUpdate(
                        status=JobStatus.CANCELLED,
                        message=(
                            f"Queue item {job.submission_handle} for {job.target} was cancelled"
                        ),
                    ),
                )
            if submission.state == SubmissionState.PENDING or submission.execution_id is None:
                return _Step.ACTIVE
            job = job.with_execution(submission.execution_id)
            if not self.active_jobs.replace(job):
                return _Step.FINALIZED
            logger.info("Job %s started as %s #%s", job.job_id, job.target, job.execution_id)

        execution_id = job.execution_id
        execution = self.gateway.get_execution(job.target, execution_id)
        if execution.state == ExecutionState.NOT_FOUND:
            return self._finalize(
                job,
                StatusUpdate(
                    status=JobStatus.FAILURE,
                    message=f"{job.target} #{execution_id} could not be found",
                    external_id=execution_id,
                ),
            )
        if execution.state == ExecutionState.RUNNING:
            return _Step.ACTIVE
        return self._finalize(job, completion_update(execution))

    def _finalize(self, job: TrackedJob, update: StatusUpdate) -> _Step:
        if not self.queue.update_status(job.job_id, update):
            logger.warning(
                "Could not report %s for job %s; will retry next cycle.",
                update.status.value,
                job.job_id,
            )
            return _Step.REPORT_FAILED
        if not self.active_jobs.discard(job.job_id):
            logger.debug("Job %s was already finalized by the completion listener.", job.job_id)
        return _Step.FINALIZED
