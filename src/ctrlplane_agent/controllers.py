"""Controllers for agent CLI commands."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from ctrlplane_agent.api.client import CtrlplaneClient
from ctrlplane_agent.config import EXECUTOR_JENKINS, AgentSettings
from ctrlplane_agent.poller.executor import (
    ExecutorGateway,
    JenkinsGateway,
    LocalProcessGateway,
)
from ctrlplane_agent.poller.scheduler import CycleScheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AgentRunCommand:
    """CLI inputs for the long-running poller."""

    max_cycles: int | None
    quiesce: bool = False


@dataclass(slots=True)
class AgentCycleCommand:
    """CLI inputs for a single polling cycle."""

    dispatch: bool = True


@dataclass(slots=True)
class RegisterCommand:
    """CLI inputs for the registration check."""


@dataclass(slots=True)
class GetJobCommand:
    """CLI inputs for fetching one job record."""

    job_id: str


class AgentCliController:
    """Builds the runtime graph from the environment and runs CLI commands."""

    def __init__(
        self,
        *,
        settings_provider: Callable[[], AgentSettings] = AgentSettings.from_env,
    ) -> None:
        self.settings_provider = settings_provider

    def run(self, command: AgentRunCommand) -> list[str]:
        settings = self._load_settings()
        with _scheduler(settings, self.settings_provider) as scheduler:
            if command.quiesce:
                scheduler.request_quiesce()
            logger.info(
                "Starting %s polling every %ss (executor: %s)",
                settings.agent_name,
                settings.poll_interval_seconds,
                settings.executor.kind,
            )
            cycles = scheduler.run_forever(max_cycles=command.max_cycles)
            remaining = len(scheduler.active_jobs)
        return [f"Agent stopped after {cycles} cycle(s); tracked jobs remaining: {remaining}"]

    def cycle(self, command: AgentCycleCommand) -> list[str]:
        settings = self._load_settings()
        with _scheduler(settings, self.settings_provider) as scheduler:
            if not command.dispatch:
                scheduler.request_quiesce()
            report = scheduler.run_cycle(settings)
        if not report.ran:
            raise ValueError(report.describe())
        return [report.describe()]

    def register(self, _command: RegisterCommand) -> list[str]:
        settings = self.settings_provider()
        settings.validate_for_cycle()
        if not settings.workspace_id:
            raise ValueError("CTRLPLANE_WORKSPACE_ID is not configured.")
        with CtrlplaneClient(settings) as client:
            agent_id = client.register(
                name=settings.agent_name,
                workspace_id=settings.workspace_id,
            )
        if agent_id is None:
            raise ValueError(f"Registration of agent {settings.agent_name!r} failed.")
        return [
            f"Agent: {settings.agent_name}",
            f"Workspace: {settings.workspace_id}",
            f"Agent ID: {agent_id}",
        ]

    def get_job(self, command: GetJobCommand) -> list[str]:
        try:
            uuid.UUID(command.job_id)
        except ValueError as error:
            raise ValueError(f"Invalid job id: {command.job_id!r}") from error
        settings = self.settings_provider()
        settings.validate_for_cycle()
        with CtrlplaneClient(settings) as client:
            job = client.get_job(command.job_id)
        if job is None:
            raise ValueError(f"Job {command.job_id} could not be retrieved.")
        return json.dumps(job, indent=2, sort_keys=True).splitlines()

    def _load_settings(self) -> AgentSettings:
        settings = self.settings_provider()
        settings.validate_executor()
        return settings


def build_gateway(settings: AgentSettings) -> ExecutorGateway:
    """Create the executor gateway selected by ``CTRLPLANE_EXECUTOR``."""

    executor = settings.executor
    if executor.kind == EXECUTOR_JENKINS:
        return JenkinsGateway(settings)
    return LocalProcessGateway(
        targets=executor.local_targets,
        max_workers=executor.local_max_workers,
        timeout_seconds=executor.local_timeout_seconds,
    )


@contextmanager
def _scheduler(
    settings: AgentSettings,
    settings_provider: Callable[[], AgentSettings],
) -> Iterator[CycleScheduler]:
    gateway = build_gateway(settings)
    scheduler = CycleScheduler(gateway=gateway, settings_provider=settings_provider)
    if isinstance(gateway, LocalProcessGateway):
        gateway.add_completion_listener(scheduler.on_execution_completed)
    try:
        yield scheduler
    finally:
        if isinstance(gateway, LocalProcessGateway):
            gateway.shutdown(wait=True)
            scheduler.drain()
        else:
            gateway.close()
        scheduler.close()
