"""Thread-safe table of jobs this process has triggered."""

from __future__ import annotations

import threading

from ctrlplane_agent.poller.models import TrackedJob


class ActiveJobTable:
    """Map of remote job id to ``TrackedJob`` shared by the cycle and listener threads.

    The table lives only in memory: after a restart it starts empty and work
    triggered by the previous process is no longer reconciled.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, TrackedJob] = {}

    def add_if_absent(self, job: TrackedJob) -> bool:
        """Insert ``job`` unless its id is already tracked."""

        with self._lock:
            if job.job_id in self._jobs:
                return False
            self._jobs[job.job_id] = job
            return True

    def get(self, job_id: str) -> TrackedJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def replace(self, job: TrackedJob) -> bool:
        """Overwrite an existing entry; ``False`` if it was removed meanwhile."""

        with self._lock:
            if job.job_id not in self._jobs:
                return False
            self._jobs[job.job_id] = job
            return True

    def discard(self, job_id: str) -> bool:
        """Remove ``job_id``; ``False`` when another path already removed it."""

        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def snapshot(self) -> list[TrackedJob]:
        with self._lock:
            return list(self._jobs.values())

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
