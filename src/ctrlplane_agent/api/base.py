"""Capability interface the poller needs from the remote job queue."""

from __future__ import annotations

from typing import Any, Protocol

from ctrlplane_agent.api.models import RemoteJob, StatusUpdate


class RemoteQueue(Protocol):
    """Protocol implemented by remote queue clients.

    Implementations never raise on transport or HTTP errors; failures are
    signalled by ``None``, an empty list or ``False``.
    """

    def register(self, *, name: str, workspace_id: str) -> str | None:
        """Upsert the agent and return its identity token."""

    def next_jobs(self, agent_id: str) -> list[RemoteJob]:
        """Return the next batch of jobs assigned to the agent."""

    def get_job(self, job_id: str) -> dict[str, Any] | None:
        """Return one job object."""

    def update_status(self, job_id: str, update: StatusUpdate) -> bool:
        """Write a status for one job; ``True`` on a 2xx response."""
