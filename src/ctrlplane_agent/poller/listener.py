"""Report finished executions as soon as the executor announces them."""

from __future__ import annotations

import logging
import uuid

from ctrlplane_agent.api.base import RemoteQueue
from ctrlplane_agent.api.models import JobStatus
from ctrlplane_agent.poller.active_jobs import ActiveJobTable
from ctrlplane_agent.poller.executor.base import JOB_ID_PARAMETER, ExecutionView
from ctrlplane_agent.poller.outcome import completion_update

logger = logging.getLogger(__name__)


class CompletionListener:
    """Fast path that races the reconciler; both may report the same status."""

    def __init__(self, *, queue: RemoteQueue, active_jobs: ActiveJobTable) -> None:
        self.queue = queue
        self.active_jobs = active_jobs

    def __call__(self, execution: ExecutionView) -> JobStatus | None:
        return self.on_completed(execution)

    def on_completed(self, execution: ExecutionView) -> JobStatus | None:
        job_id = execution.parameters.get(JOB_ID_PARAMETER)
        if not job_id:
            logger.debug("No %s parameter on %s.", JOB_ID_PARAMETER, execution.display_name)
            return None
        try:
            uuid.UUID(job_id)
        except ValueError:
            logger.error("Invalid job id %r on %s", job_id, execution.display_name)
            return None

        update = completion_update(execution)
        if not self.queue.update_status(job_id, update):
            logger.error(
                "Failed to report job %s after %s completed; the poller will retry.",
                job_id,
                execution.display_name,
            )
            return None
        self.active_jobs.discard(job_id)
        logger.info(
            "Reported job %s as %s after %s completed",
            job_id,
            update.status.value,
            execution.display_name,
        )
        return update.status
