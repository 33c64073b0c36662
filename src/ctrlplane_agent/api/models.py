"""Wire models for the Ctrlplane job queue API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

AGENT_TYPE = "jenkins"
LINKS_KEY = "ctrlplane/links"


class JobStatus(str, Enum):
    """Remote job lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESSFUL = "successful"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class RemoteJob:
    """Job record as returned by the queue; fields are kept raw until validated."""

    id: str
    status: str
    job_agent_config: dict[str, Any]
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemoteJob:
        raw_id = payload.get("id")
        raw_status = payload.get("status")
        raw_config = payload.get("jobAgentConfig")
        return cls(
            id=raw_id if isinstance(raw_id, str) else "",
            status=raw_status if isinstance(raw_status, str) else "",
            job_agent_config=dict(raw_config) if isinstance(raw_config, Mapping) else {},
            raw=dict(payload),
        )

    @property
    def job_url(self) -> str | None:
        value = self.job_agent_config.get("jobUrl")
        return value if isinstance(value, str) else None


@dataclass(slots=True)
class StatusUpdate:
    """Body of ``PATCH /v1/jobs/{jobId}``."""

    status: JobStatus
    message: str | None = None
    external_id: str | None = None
    links: dict[str, str] | None = None

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status.value}
        if self.external_id is not None:
            body["externalId"] = self.external_id
        if self.message is not None:
            body["message"] = self.message
        if self.links:
            body[LINKS_KEY] = dict(self.links)
        return body
