"""Executor gateway implementations."""

from ctrlplane_agent.poller.executor.base import (
    JOB_ID_PARAMETER,
    CompletionCallback,
    ExecutionState,
    ExecutionView,
    ExecutorError,
    ExecutorGateway,
    Submission,
    SubmissionState,
    SubmissionView,
    TargetNotFoundError,
    TargetNotParameterizedError,
    TargetResolution,
)
from ctrlplane_agent.poller.executor.jenkins import ExecutorUnavailableError, JenkinsGateway
from ctrlplane_agent.poller.executor.local import LocalProcessGateway

__all__ = [
    "JOB_ID_PARAMETER",
    "CompletionCallback",
    "ExecutionState",
    "ExecutionView",
    "ExecutorError",
    "ExecutorGateway",
    "ExecutorUnavailableError",
    "JenkinsGateway",
    "LocalProcessGateway",
    "Submission",
    "SubmissionState",
    "SubmissionView",
    "TargetNotFoundError",
    "TargetNotParameterizedError",
    "TargetResolution",
]
