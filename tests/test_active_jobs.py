from __future__ import annotations

import allure

from ctrlplane_agent.poller.active_jobs import ActiveJobTable
from ctrlplane_agent.poller.models import TrackedJob, TrackedJobState

pytestmark = [
    allure.epic("Job Tracking"),
    allure.feature("Active Job Table"),
]


def _job(job_id: str = "job-1") -> TrackedJob:
    return TrackedJob(job_id=job_id, target="deploy", submission_handle="7")


def test_add_if_absent_keeps_first_entry() -> None:
    table = ActiveJobTable()
    first = _job()

    assert table.add_if_absent(first) is True
    assert table.add_if_absent(_job()) is False
    assert table.get("job-1") is first
    assert len(table) == 1
    assert "job-1" in table


def test_replace_only_updates_tracked_jobs() -> None:
    table = ActiveJobTable()
    job = _job()

    assert table.replace(job.with_execution("3")) is False

    table.add_if_absent(job)
    assert table.replace(job.with_execution("3")) is True
    started = table.get("job-1")
    assert started is not None
    assert started.execution_id == "3"
    assert started.state == TrackedJobState.RUNNING
    assert started.claimed_at == job.claimed_at


def test_discard_reports_whether_entry_was_removed() -> None:
    table = ActiveJobTable()
    table.add_if_absent(_job())

    assert table.discard("job-1") is True
    assert table.discard("job-1") is False
    assert len(table) == 0


def test_snapshot_is_detached_from_table() -> None:
    table = ActiveJobTable()
    table.add_if_absent(_job("job-1"))
    table.add_if_absent(_job("job-2"))

    snapshot = table.snapshot()
    table.discard("job-1")

    assert [job.job_id for job in snapshot] == ["job-1", "job-2"]
    assert [job.job_id for job in table.snapshot()] == ["job-2"]
