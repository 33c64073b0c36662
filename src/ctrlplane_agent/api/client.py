"""HTTP client for the Ctrlplane job-agent API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ctrlplane_agent.api.models import AGENT_TYPE, RemoteJob, StatusUpdate
from ctrlplane_agent.config import AgentSettings
from ctrlplane_agent.http import JsonSession

logger = logging.getLogger(__name__)


def api_base_url(api_url: str) -> str:
    """Append ``/api`` to the configured URL unless it is already there."""

    cleaned = api_url.strip().rstrip("/")
    if cleaned.endswith("/api"):
        return cleaned
    return f"{cleaned}/api"


class CtrlplaneClient:
    """Register, claim, fetch and update jobs through the Ctrlplane REST API."""

    def __init__(
        self,
        settings: AgentSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._session = JsonSession(
            api_base_url(settings.api_url),
            settings=settings.http,
            headers={"X-API-Key": settings.api_key},
            transport=transport,
        )

    def register(self, *, name: str, workspace_id: str) -> str | None:
        path = "/v1/job-agents/name"
        result = self._session.request(
            "PATCH",
            path,
            json_body={"name": name, "type": AGENT_TYPE, "workspaceId": workspace_id},
        )
        if not result.is_success:
            logger.error("Failed to upsert agent %s via PATCH %s: %s", name, path, result.error)
            return None
        agent_id = result.payload.get("id") if isinstance(result.payload, Mapping) else None
        if not isinstance(agent_id, str) or not agent_id:
            logger.error("Agent upsert for %s returned no agent id.", name)
            return None
        logger.info("Agent upsert via PATCH %s succeeded. Agent ID: %s", path, agent_id)
        return agent_id

    def next_jobs(self, agent_id: str) -> list[RemoteJob]:
        result = self._session.request("GET", f"/v1/job-agents/{agent_id}/queue/next")
        if not result.is_success:
            logger.warning("Failed to fetch jobs for agent %s: %s", agent_id, result.error)
            return []
        payload = result.payload
        jobs = payload.get("jobs") if isinstance(payload, Mapping) else None
        if not isinstance(jobs, list):
            logger.error("Unexpected response format from jobs endpoint for agent %s", agent_id)
            return []
        parsed = [RemoteJob.from_payload(item) for item in jobs if isinstance(item, Mapping)]
        if len(parsed) != len(jobs):
            logger.warning(
                "Dropped %d non-object entries from jobs response",
                len(jobs) - len(parsed),
            )
        logger.debug("Fetched %d jobs for agent %s", len(parsed), agent_id)
        return parsed

    def get_job(self, job_id: str) -> dict[str, Any] | None:
        result = self._session.request("GET", f"/v1/jobs/{job_id}")
        if not result.is_success or not isinstance(result.payload, Mapping):
            logger.warning("Failed to retrieve details for job %s: %s", job_id, result.error)
            return None
        return dict(result.payload)

    def update_status(self, job_id: str, update: StatusUpdate) -> bool:
        result = self._session.request(
            "PATCH",
            f"/v1/jobs/{job_id}",
            json_body=update.to_body(),
        )
        if result.is_success:
            logger.info("Updated status for job %s to %s", job_id, update.status.value)
            return True
        logger.error(
            "Failed to update status for job %s to %s. Response code: %s",
            job_id,
            update.status.value,
            result.status_code or "N/A",
        )
        return False

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> CtrlplaneClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
