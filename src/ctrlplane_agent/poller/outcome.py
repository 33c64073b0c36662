"""Map finished executions to remote job statuses."""

from __future__ import annotations

import logging

from ctrlplane_agent.api.models import JobStatus, StatusUpdate
from ctrlplane_agent.poller.executor.base import ExecutionView

logger = logging.getLogger(__name__)

_RESULT_STATUS = {
    "SUCCESS": JobStatus.SUCCESSFUL,
    "UNSTABLE": JobStatus.SUCCESSFUL,
    "FAILURE": JobStatus.FAILURE,
    "ABORTED": JobStatus.CANCELLED,
}


def status_for_result(result: str | None) -> JobStatus:
    """Success-like results are successful, aborts are cancelled, the rest fail."""

    if result is None:
        return JobStatus.FAILURE
    status = _RESULT_STATUS.get(result.strip().upper())
    if status is None:
        logger.warning("Unknown execution result %r, reporting as failure.", result)
        return JobStatus.FAILURE
    return status


def completion_update(execution: ExecutionView) -> StatusUpdate:
    result = execution.result or "UNKNOWN"
    return StatusUpdate(
        status=status_for_result(execution.result),
        message=f"{execution.display_name} completed with result: {result}",
        external_id=execution.execution_id,
    )
