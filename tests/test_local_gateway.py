from __future__ import annotations

import shlex
import sys
import threading
import time

import allure
import pytest

from ctrlplane_agent.api.models import JobStatus
from ctrlplane_agent.config import AgentSettings
from ctrlplane_agent.poller.executor import (
    ExecutionState,
    ExecutionView,
    LocalProcessGateway,
    SubmissionState,
    TargetNotFoundError,
)
from ctrlplane_agent.poller.scheduler import CycleScheduler

pytestmark = [
    allure.epic("Executor"),
    allure.feature("Local Process Gateway"),
]

JOB_ID = "6f1c2a4e-9a53-4c8e-8d7a-0f3d52b0a111"
SLOW_JOB_ID = "0b7d0f0e-3c0b-4f8a-9a6e-52f4d1c3e222"
WAIT_SECONDS = 30


def _python(code: str) -> str:
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


CHECK_JOB_ID = _python(
    f"import os, sys; sys.exit(0 if os.environ.get('JOB_ID') == {JOB_ID!r} else 3)",
)
FAIL = _python("import sys; sys.exit(2)")
SLOW = _python("import time; time.sleep(1)")


class _Completions:
    """Collects completion callbacks and lets the test wait for them."""

    def __init__(self, expected: int = 1) -> None:
        self.views: list[ExecutionView] = []
        self._expected = expected
        self._done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, view: ExecutionView) -> None:
        with self._lock:
            self.views.append(view)
            if len(self.views) >= self._expected:
                self._done.set()

    def wait(self) -> None:
        assert self._done.wait(WAIT_SECONDS), "local execution did not finish in time"


def _wait_started(gateway: LocalProcessGateway, handle: str) -> None:
    deadline = time.monotonic() + WAIT_SECONDS
    while gateway.get_submission(handle).state != SubmissionState.STARTED:
        assert time.monotonic() < deadline, f"submission {handle} did not start in time"
        time.sleep(0.01)


@pytest.fixture()
def gateway():
    gateway = LocalProcessGateway(
        targets={"check": CHECK_JOB_ID, "fail": FAIL, "slow": SLOW, "missing": "no-such-cmd-xyz"},
        max_workers=1,
        timeout_seconds=WAIT_SECONDS,
    )
    yield gateway
    gateway.shutdown(wait=True)


def test_resolve_target_knows_configured_targets(gateway) -> None:
    assert gateway.resolve_target("check").found is True
    assert gateway.resolve_target("check").parameterized is True
    assert gateway.resolve_target("other").found is False


def test_submit_unknown_target_raises(gateway) -> None:
    with pytest.raises(TargetNotFoundError):
        gateway.submit("other", {"JOB_ID": JOB_ID})


def test_parameters_reach_the_command_environment(gateway) -> None:
    completions = _Completions()
    gateway.add_completion_listener(completions)

    submission = gateway.submit("check", {"JOB_ID": JOB_ID})
    completions.wait()

    view = completions.views[0]
    assert view.state == ExecutionState.COMPLETED
    assert view.result == "SUCCESS"
    assert view.parameters == {"JOB_ID": JOB_ID}
    started = gateway.get_submission(submission.handle)
    assert started.state == SubmissionState.STARTED
    assert started.execution_id == view.execution_id
    assert gateway.get_execution("check", view.execution_id).result == "SUCCESS"


@pytest.mark.parametrize("target", ["fail", "missing"])
def test_failing_commands_report_failure(gateway, target: str) -> None:
    completions = _Completions()
    gateway.add_completion_listener(completions)

    gateway.submit(target, {"JOB_ID": JOB_ID})
    completions.wait()

    assert completions.views[0].result == "FAILURE"


def test_execution_ids_increase_per_target(gateway) -> None:
    completions = _Completions(expected=3)
    gateway.add_completion_listener(completions)

    gateway.submit("fail", {})
    gateway.submit("fail", {})
    gateway.submit("check", {"JOB_ID": JOB_ID})
    completions.wait()

    ids = sorted((view.target, view.execution_id) for view in completions.views)
    assert ids == [("check", "1"), ("fail", "1"), ("fail", "2")]


def test_queued_submission_can_be_cancelled(gateway) -> None:
    completions = _Completions()
    gateway.add_completion_listener(completions)

    gateway.submit("slow", {})
    queued = gateway.submit("check", {"JOB_ID": JOB_ID})

    assert gateway.cancel(queued.handle) is True
    assert gateway.get_submission(queued.handle).state == SubmissionState.CANCELLED
    completions.wait()
    assert [view.target for view in completions.views] == ["slow"]


def test_unknown_handles_are_not_found(gateway) -> None:
    assert gateway.get_submission("404").state == SubmissionState.NOT_FOUND
    assert gateway.get_execution("check", "404").state == ExecutionState.NOT_FOUND
    assert gateway.cancel("404") is False


def test_listener_errors_do_not_break_other_listeners(gateway) -> None:
    completions = _Completions()

    def _broken(_view: ExecutionView) -> None:
        raise RuntimeError("listener bug")

    gateway.add_completion_listener(_broken)
    gateway.add_completion_listener(completions)

    gateway.submit("check", {"JOB_ID": JOB_ID})
    completions.wait()

    assert completions.views[0].result == "SUCCESS"


def test_completion_is_pushed_to_the_queue_without_another_cycle(
    gateway,
    fake_queue,
    make_job,
) -> None:
    settings = AgentSettings(api_key="secret", workspace_id="ws-1")
    scheduler = CycleScheduler(
        gateway=gateway,
        settings_provider=lambda: settings,
        queue_factory=lambda _settings: fake_queue,
    )
    completions = _Completions()
    gateway.add_completion_listener(scheduler.on_execution_completed)
    gateway.add_completion_listener(completions)
    fake_queue.batches.append([make_job(job_url="http://agent.local/job/check/")])

    report = scheduler.run_cycle()
    completions.wait()

    assert report.dispatch is not None
    assert report.dispatch.claimed == 1
    assert fake_queue.statuses(JOB_ID)[-1] == JobStatus.SUCCESSFUL
    assert len(scheduler.active_jobs) == 0


def test_shutdown_cancels_submissions_that_never_started(gateway) -> None:
    running = gateway.submit("slow", {})
    _wait_started(gateway, running.handle)
    queued = gateway.submit("check", {"JOB_ID": JOB_ID})

    gateway.shutdown(wait=True)

    assert gateway.get_submission(running.handle).state == SubmissionState.STARTED
    assert gateway.get_submission(queued.handle).state == SubmissionState.CANCELLED


def test_jobs_dropped_on_shutdown_are_reported_cancelled(
    gateway,
    fake_queue,
    make_job,
) -> None:
    settings = AgentSettings(api_key="secret", workspace_id="ws-1")
    scheduler = CycleScheduler(
        gateway=gateway,
        settings_provider=lambda: settings,
        queue_factory=lambda _settings: fake_queue,
    )
    gateway.add_completion_listener(scheduler.on_execution_completed)
    fake_queue.batches.append(
        [
            make_job(SLOW_JOB_ID, job_url="http://agent.local/job/slow/"),
            make_job(job_url="http://agent.local/job/check/"),
        ],
    )

    scheduler.run_cycle()
    _wait_started(gateway, "1")
    gateway.shutdown(wait=True)
    summary = scheduler.drain()

    assert summary is not None
    assert summary.finalized == 1
    assert fake_queue.statuses(SLOW_JOB_ID)[-1] == JobStatus.SUCCESSFUL
    assert fake_queue.statuses(JOB_ID)[-1] == JobStatus.CANCELLED
    assert len(scheduler.active_jobs) == 0


def test_old_finished_work_is_forgotten() -> None:
    gateway = LocalProcessGateway(targets={"fail": FAIL}, max_workers=1, history_limit=1)
    completions = _Completions(expected=2)
    gateway.add_completion_listener(completions)
    try:
        first = gateway.submit("fail", {})
        second = gateway.submit("fail", {})
        completions.wait()

        assert gateway.get_execution("fail", "1").state == ExecutionState.NOT_FOUND
        assert gateway.get_execution("fail", "2").state == ExecutionState.COMPLETED
        assert gateway.get_submission(first.handle).state == SubmissionState.NOT_FOUND
        assert gateway.get_submission(second.handle).state == SubmissionState.STARTED
    finally:
        gateway.shutdown(wait=True)
