"""Claim pending jobs from the queue and trigger them on the executor."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import NamedTuple

from ctrlplane_agent.api.base import RemoteQueue
from ctrlplane_agent.api.models import JobStatus, RemoteJob, StatusUpdate
from ctrlplane_agent.poller.active_jobs import ActiveJobTable
from ctrlplane_agent.poller.executor.base import (
    JOB_ID_PARAMETER,
    ExecutorError,
    ExecutorGateway,
    TargetNotFoundError,
    TargetNotParameterizedError,
)
from ctrlplane_agent.poller.locator import parse_job_locator
from ctrlplane_agent.poller.models import DispatchSummary, TrackedJob

logger = logging.getLogger(__name__)

SUBMISSION_LINK_NAME = "Executor queue item"


class ClaimOutcome(NamedTuple):
    claimed: bool
    skipped: bool
    errored: bool


_CLAIMED = ClaimOutcome(claimed=True, skipped=False, errored=False)
_SKIPPED = ClaimOutcome(claimed=False, skipped=True, errored=False)
_ERRORED = ClaimOutcome(claimed=False, skipped=False, errored=True)


@dataclass(slots=True)
class ClaimableJob:
    """A remote job that passed validation."""

    job_id: str
    target: str


def validate_job(job: RemoteJob) -> ClaimableJob | None:
    """Return the claimable form of ``job`` or ``None`` when it must be skipped."""

    try:
        uuid.UUID(job.id)
    except ValueError:
        logger.warning("Skipping job: missing or invalid UUID id %r.", job.id)
        return None
    if job.status != JobStatus.PENDING.value:
        logger.debug("Skipping job %s: status is %r, not pending.", job.id, job.status)
        return None
    target = parse_job_locator(job.job_url)
    if target is None:
        logger.warning("Skipping job %s: invalid or missing jobUrl %r.", job.id, job.job_url)
        return None
    return ClaimableJob(job_id=job.id, target=target)


class Dispatcher:
    """Runs the claim-and-trigger pass of a cycle."""

    def __init__(
        self,
        *,
        queue: RemoteQueue,
        gateway: ExecutorGateway,
        active_jobs: ActiveJobTable,
        agent_name: str,
    ) -> None:
        self.queue = queue
        self.gateway = gateway
        self.active_jobs = active_jobs
        self.agent_name = agent_name

    def claim_and_trigger(self, agent_id: str) -> DispatchSummary:
        summary = DispatchSummary()
        jobs = self.queue.next_jobs(agent_id)
        if not jobs:
            logger.debug("No pending jobs for agent %s.", agent_id)
            return summary

        summary.fetched = len(jobs)
        logger.info("Polled queue. Found %d job(s) to process.", len(jobs))
        for job in jobs:
            outcome = self._process(job)
            summary.claimed += int(outcome.claimed)
            summary.skipped += int(outcome.skipped)
            summary.errored += int(outcome.errored)

        logger.info(
            "Dispatch finished. Claimed: %d, Skipped: %d, Errors: %d",
            summary.claimed,
            summary.skipped,
            summary.errored,
        )
        return summary

    def _process(self, job: RemoteJob) -> ClaimOutcome:
        claimable = validate_job(job)
        if claimable is None:
            return _SKIPPED
        if claimable.job_id in self.active_jobs:
            logger.debug("Skipping already triggered job %s.", claimable.job_id)
            return _SKIPPED

        try:
            return self._trigger(claimable)
        except Exception as error:
            logger.exception("Error processing job %s", claimable.job_id)
            self._fail(claimable, f"Exception during processing: {error}")
            return _ERRORED

    def _trigger(self, job: ClaimableJob) -> ClaimOutcome:
        """Mark, resolve, submit and track one job.

        The second ``in_progress`` write that links the queue item is sent only
        when the executor returned a URL. Without one it would carry nothing new,
        and an executor with a completion channel may already have reported the
        terminal status, which a late ``in_progress`` write would overwrite.
        """

        logger.info("Processing new job %s -> target %r", job.job_id, job.target)
        marked = self.queue.update_status(
            job.job_id,
            StatusUpdate(
                status=JobStatus.IN_PROGRESS,
                message=f"Triggered by: {self.agent_name}",
            ),
        )
        if not marked:
            logger.warning(
                "Could not mark job %s in_progress. Proceeding with trigger attempt anyway.",
                job.job_id,
            )

        resolution = self.gateway.resolve_target(job.target)
        if not resolution.found:
            self._fail(job, f"Executor job not found: {job.target}")
            return _ERRORED
        if not resolution.parameterized:
            self._fail(job, f"Executor job not parameterizable: {job.target}")
            return _ERRORED

        try:
            submission = self.gateway.submit(job.target, {JOB_ID_PARAMETER: job.job_id})
        except TargetNotFoundError:
            self._fail(job, f"Executor job not found: {job.target}")
            return _ERRORED
        except TargetNotParameterizedError:
            self._fail(job, f"Executor job not parameterizable: {job.target}")
            return _ERRORED
        except ExecutorError as error:
            self._fail(job, f"Executor rejected submission of {job.target}: {error}")
            return _ERRORED
        if submission is None:
            self._fail(job, f"Executor returned no queue handle for {job.target}")
            return _ERRORED

        tracked = TrackedJob(
            job_id=job.job_id,
            target=job.target,
            submission_handle=submission.handle,
            submission_url=submission.url,
        )
        if not self.active_jobs.add_if_absent(tracked):
            logger.warning("Job %s was tracked concurrently; keeping existing entry.", job.job_id)
        logger.info(
            "Scheduled %r for job %s (queue item %s)",
            job.target,
            job.job_id,
            submission.handle,
        )

        if submission.url:
            self.queue.update_status(
                job.job_id,
                StatusUpdate(
                    status=JobStatus.IN_PROGRESS,
                    message=f"Queued {job.target} (queue item {submission.handle})",
                    links={SUBMISSION_LINK_NAME: submission.url},
                ),
            )
        return _CLAIMED

    def _fail(self, job: ClaimableJob, reason: str) -> None:
        logger.warning("Job %s failed to trigger: %s", job.job_id, reason)
        self.queue.update_status(
            job.job_id,
            StatusUpdate(status=JobStatus.FAILURE, message=reason),
        )
