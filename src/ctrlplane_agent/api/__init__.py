"""Ctrlplane remote queue client."""

from ctrlplane_agent.api.base import RemoteQueue
from ctrlplane_agent.api.client import CtrlplaneClient, api_base_url
from ctrlplane_agent.api.models import JobStatus, RemoteJob, StatusUpdate

__all__ = [
    "CtrlplaneClient",
    "JobStatus",
    "RemoteJob",
    "RemoteQueue",
    "StatusUpdate",
    "api_base_url",
]
