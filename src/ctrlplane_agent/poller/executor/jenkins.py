"""Jenkins REST adapter for the executor gateway."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from ctrlplane_agent.config import AgentSettings
from ctrlplane_agent.http import HttpResult, JsonSession
from ctrlplane_agent.poller.executor.base import (
    ExecutionState,
    ExecutionView,
    ExecutorError,
    Submission,
    SubmissionState,
    SubmissionView,
    TargetResolution,
)

logger = logging.getLogger(__name__)

_QUEUE_ITEM_RE = re.compile(r"/queue/item/(\d+)/?$")
_JOB_TREE = "_class,url,buildable,property[_class,parameterDefinitions[name]]"
_BUILD_TREE = "number,building,result,url,actions[parameters[name,value]]"


class ExecutorUnavailableError(ExecutorError):
    """Executor could not be queried; the caller should retry later."""


def job_path(name: str) -> str:
    """Map ``team/project`` to ``/job/team/job/project``."""

    segments = [segment for segment in name.split("/") if segment]
    return "".join(f"/job/{quote(segment, safe='')}" for segment in segments)


class JenkinsGateway:
    """Resolve, trigger and inspect Jenkins jobs over the JSON API."""

    def __init__(
        self,
        settings: AgentSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        executor = settings.executor
        auth = None
        if executor.jenkins_user:
            auth = (executor.jenkins_user, executor.jenkins_api_token)
        self._session = JsonSession(
            executor.jenkins_url,
            settings=settings.http,
            auth=auth,
            transport=transport,
        )

    def resolve_target(self, name: str) -> TargetResolution:
        result = self._session.request(
            "GET",
            f"{job_path(name)}/api/json",
            params={"tree": _JOB_TREE},
        )
        if result.status_code == httpx.codes.NOT_FOUND:
            return TargetResolution(name=name, found=False)
        payload = _require_payload(result, what=f"job {name!r}")
        if "buildable" not in payload:
            # Folders and views resolve to an item that cannot be built.
            return TargetResolution(name=name, found=False)
        return TargetResolution(
            name=name,
            found=True,
            parameterized=_has_parameter_definitions(payload.get("property")),
            url=payload.get("url") if isinstance(payload.get("url"), str) else None,
        )

    def submit(self, name: str, parameters: Mapping[str, str]) -> Submission | None:
        result = self._session.request(
            "POST",
            f"{job_path(name)}/buildWithParameters",
            data=dict(parameters),
        )
        if not result.is_success:
            raise ExecutorError(f"Jenkins rejected build request for {name}: {result.error}")
        location = result.headers.get("location", "")
        match = _QUEUE_ITEM_RE.search(location)
        if match is None:
            logger.error(
                "Jenkins accepted %s but returned no queue item (Location=%r)",
                name,
                location,
            )
            return None
        handle = match.group(1)
        return Submission(handle=handle, url=self._session.url_for(f"queue/item/{handle}/"))

    def get_submission(self, handle: str) -> SubmissionView:
        result = self._session.request("GET", f"/queue/item/{handle}/api/json")
        if result.status_code == httpx.codes.NOT_FOUND:
            return SubmissionView(handle=handle, state=SubmissionState.NOT_FOUND)
        payload = _require_payload(result, what=f"queue item {handle}")
        if payload.get("cancelled") is True:
            return SubmissionView(handle=handle, state=SubmissionState.CANCELLED)
        executable = payload.get("executable")
        if isinstance(executable, Mapping) and executable.get("number") is not None:
            return SubmissionView(
                handle=handle,
                state=SubmissionState.STARTED,
                execution_id=str(executable["number"]),
            )
        return SubmissionView(handle=handle, state=SubmissionState.PENDING)

    def get_execution(self, target: str, execution_id: str) -> ExecutionView:
        result = self._session.request(
            "GET",
            f"{job_path(target)}/{quote(execution_id, safe='')}/api/json",
            params={"tree": _BUILD_TREE},
        )
        if result.status_code == httpx.codes.NOT_FOUND:
            return ExecutionView(
                target=target,
                execution_id=execution_id,
                state=ExecutionState.NOT_FOUND,
            )
        payload = _require_payload(result, what=f"build {target} #{execution_id}")
        raw_result = payload.get("result")
        return ExecutionView(
            target=target,
            execution_id=execution_id,
            state=ExecutionState.RUNNING if payload.get("building") else ExecutionState.COMPLETED,
            result=raw_result if isinstance(raw_result, str) else None,
            parameters=_build_parameters(payload.get("actions")),
            url=payload.get("url") if isinstance(payload.get("url"), str) else None,
        )

    def close(self) -> None:
        self._session.close()


def _require_payload(result: HttpResult, *, what: str) -> Mapping[str, Any]:
    if not result.is_success:
        raise ExecutorUnavailableError(f"Jenkins lookup of {what} failed: {result.error}")
    if not isinstance(result.payload, Mapping):
        raise ExecutorUnavailableError(f"Jenkins returned a non-object body for {what}")
    return result.payload


def _has_parameter_definitions(properties: Any) -> bool:
    if not isinstance(properties, list):
        return False
    for prop in properties:
        if not isinstance(prop, Mapping):
            continue
        definitions = prop.get("parameterDefinitions")
        if isinstance(definitions, list) and definitions:
            return True
    return False


def _build_parameters(actions: Any) -> dict[str, str]:
    parameters: dict[str, str] = {}
    if not isinstance(actions, list):
        return parameters
    for action in actions:
        if not isinstance(action, Mapping):
            continue
        for parameter in action.get("parameters") or ():
            if not isinstance(parameter, Mapping):
                continue
            name = parameter.get("name")
            value = parameter.get("value")
            if isinstance(name, str) and value is not None:
                parameters[name] = str(value)
    return parameters
