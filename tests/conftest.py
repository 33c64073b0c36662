"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Mapping
from itertools import count
from typing import Any

import pytest

from ctrlplane_agent.api.models import JobStatus, RemoteJob, StatusUpdate
from ctrlplane_agent.config import AgentSettings
from ctrlplane_agent.poller.executor.base import (
    ExecutionState,
    ExecutionView,
    Submission,
    SubmissionState,
    SubmissionView,
    TargetResolution,
)

JOB_ID = "6f1c2a4e-9a53-4c8e-8d7a-0f3d52b0a111"


class FakeQueue:
    """In-memory remote queue recording every call."""

    def __init__(self) -> None:
        self.agent_id: str | None = "agent-1"
        self.batches: list[list[dict[str, Any]]] = []
        self.records: dict[str, dict[str, Any]] = {}
        self.accept_updates = True
        self.register_calls: list[tuple[str, str]] = []
        self.next_calls: list[str] = []
        self.updates: list[tuple[str, StatusUpdate]] = []
        self.closed = False

    def register(self, *, name: str, workspace_id: str) -> str | None:
        self.register_calls.append((name, workspace_id))
        return self.agent_id

    def next_jobs(self, agent_id: str) -> list[RemoteJob]:
        self.next_calls.append(agent_id)
        batch = self.batches.pop(0) if self.batches else []
        return [RemoteJob.from_payload(payload) for payload in batch]

    def get_job(self, job_id: str) -> dict[str, Any] | None:
        return self.records.get(job_id)

    def update_status(self, job_id: str, update: StatusUpdate) -> bool:
        self.updates.append((job_id, update))
        return self.accept_updates

    def close(self) -> None:
        self.closed = True

    def statuses(self, job_id: str) -> list[JobStatus]:
        return [update.status for updated_id, update in self.updates if updated_id == job_id]


class FakeGateway:
    """In-memory executor whose submissions and executions are driven by the test."""

    def __init__(self) -> None:
        self.targets: dict[str, bool] = {}
        self.submit_error: Exception | None = None
        self.resolve_error: Exception | None = None
        self.return_no_handle = False
        self.return_no_url = False
        self.submitted: list[tuple[str, dict[str, str]]] = []
        self.calls: list[tuple[str, str]] = []
        self._handles = count(1)
        self._parameters: dict[str, dict[str, str]] = {}
        self._submissions: dict[str, SubmissionView] = {}
        self._executions: dict[tuple[str, str], ExecutionView] = {}

    def resolve_target(self, name: str) -> TargetResolution:
        self.calls.append(("resolve", name))
        if self.resolve_error is not None:
            raise self.resolve_error
        return TargetResolution(
            name=name,
            found=name in self.targets,
            parameterized=self.targets.get(name, False),
        )

    def submit(self, name: str, parameters: Mapping[str, str]) -> Submission | None:
        self.calls.append(("submit", name))
        if self.submit_error is not None:
            raise self.submit_error
        if self.return_no_handle:
            return None
        handle = str(next(self._handles))
        self.submitted.append((name, dict(parameters)))
        self._parameters[handle] = dict(parameters)
        self._submissions[handle] = SubmissionView(handle=handle, state=SubmissionState.PENDING)
        if self.return_no_url:
            return Submission(handle=handle)
        return Submission(handle=handle, url=f"http://executor.local/queue/item/{handle}/")

    def get_submission(self, handle: str) -> SubmissionView:
        self.calls.append(("submission", handle))
        return self._submissions.get(
            handle,
            SubmissionView(handle=handle, state=SubmissionState.NOT_FOUND),
        )

    def get_execution(self, target: str, execution_id: str) -> ExecutionView:
        self.calls.append(("execution", f"{target}#{execution_id}"))
        return self._executions.get(
            (target, execution_id),
            ExecutionView(target=target, execution_id=execution_id, state=ExecutionState.NOT_FOUND),
        )

    def start(self, handle: str, target: str, execution_id: str) -> None:
        self._submissions[handle] = SubmissionView(
            handle=handle,
            state=SubmissionState.STARTED,
            execution_id=execution_id,
        )
        self._executions[(target, execution_id)] = ExecutionView(
            target=target,
            execution_id=execution_id,
            state=ExecutionState.RUNNING,
            parameters=dict(self._parameters.get(handle, {})),
        )

    def finish(self, target: str, execution_id: str, result: str | None) -> ExecutionView:
        running = self._executions[(target, execution_id)]
        finished = ExecutionView(
            target=target,
            execution_id=execution_id,
            state=ExecutionState.COMPLETED,
            result=result,
            parameters=dict(running.parameters),
        )
        self._executions[(target, execution_id)] = finished
        return finished

    def cancel(self, handle: str) -> None:
        self._submissions[handle] = SubmissionView(handle=handle, state=SubmissionState.CANCELLED)

    def forget(self, handle: str) -> None:
        self._submissions.pop(handle, None)


def job_payload(
    job_id: str = JOB_ID,
    *,
    status: str = "pending",
    job_url: str | None = "http://jenkins.local/job/team/job/deploy/",
) -> dict[str, Any]:
    config: dict[str, Any] = {}
    if job_url is not None:
        config["jobUrl"] = job_url
    return {"id": job_id, "status": status, "jobAgentConfig": config}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop any CTRLPLANE_* variables inherited from the developer shell."""
    for name in list(os.environ):
        if name.startswith("CTRLPLANE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    gateway = FakeGateway()
    gateway.targets["team/deploy"] = True
    return gateway


@pytest.fixture()
def make_job():
    return job_payload


@pytest.fixture()
def make_queue():
    return FakeQueue


@pytest.fixture()
def agent_settings() -> AgentSettings:
    return AgentSettings(
        api_url="https://ctrlplane.local",
        api_key="secret",
        agent_name="test-agent",
        workspace_id="ws-1",
    )
