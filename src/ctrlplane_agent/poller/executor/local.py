"""In-process executor that runs configured command lines in a thread pool."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from itertools import count

from ctrlplane_agent.poller.executor.base import (
    CompletionCallback,
    ExecutionState,
    ExecutionView,
    Submission,
    SubmissionState,
    SubmissionView,
    TargetNotFoundError,
    TargetResolution,
)

logger = logging.getLogger(__name__)

RESULT_SUCCESS = "SUCCESS"
RESULT_FAILURE = "FAILURE"
RESULT_ABORTED = "ABORTED"

# Finished executions and cancelled submissions kept per target.
DEFAULT_HISTORY_LIMIT = 100


@dataclass(slots=True)
class _SubmissionRecord:
    handle: str
    target: str
    parameters: dict[str, str]
    cancelled: bool = False
    execution_id: str | None = None
    future: Future[None] | None = None


@dataclass(slots=True)
class _ExecutionRecord:
    target: str
    execution_id: str
    parameters: dict[str, str]
    result: str | None = None
    finished: bool = False


class LocalProcessGateway:
    """Executor gateway backed by subprocesses.

    Each target name maps to a command line. Parameters are exported as
    environment variables, so ``JOB_ID`` is visible to the command. Build
    numbers are assigned per target in start order, and completion callbacks
    fire on the worker thread once the process exits.
    """

    def __init__(
        self,
        *,
        targets: Mapping[str, str],
        max_workers: int = 2,
        timeout_seconds: int = 3_600,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._targets = dict(targets)
        self._timeout_seconds = timeout_seconds
        self._history_limit = max(history_limit, 1)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="local-exec")
        self._lock = threading.Lock()
        self._handles = count(1)
        self._build_numbers: dict[str, int] = {}
        self._submissions: dict[str, _SubmissionRecord] = {}
        self._executions: dict[tuple[str, str], _ExecutionRecord] = {}
        self._listeners: list[CompletionCallback] = []

    def add_completion_listener(self, callback: CompletionCallback) -> None:
        with self._lock:
            self._listeners.append(callback)

    def resolve_target(self, name: str) -> TargetResolution:
        return TargetResolution(name=name, found=name in self._targets, parameterized=True)

    def submit(self, name: str, parameters: Mapping[str, str]) -> Submission | None:
        if name not in self._targets:
            raise TargetNotFoundError(f"Local target not configured: {name}")
        with self._lock:
            handle = str(next(self._handles))
            record = _SubmissionRecord(handle=handle, target=name, parameters=dict(parameters))
            self._submissions[handle] = record
        record.future = self._pool.submit(self._run, record)
        logger.info("Queued local target %s as submission %s", name, handle)
        return Submission(handle=handle)

    def cancel(self, handle: str) -> bool:
        """Cancel a submission that has not started yet."""

        with self._lock:
            record = self._submissions.get(handle)
            if record is None or record.execution_id is not None or record.future is None:
                return False
            if not record.future.cancel():
                return False
            record.cancelled = True
            self._prune(record.target)
        logger.info("Cancelled local submission %s", handle)
        return True

    def get_submission(self, handle: str) -> SubmissionView:
        with self._lock:
            record = self._submissions.get(handle)
            if record is None:
                return SubmissionView(handle=handle, state=SubmissionState.NOT_FOUND)
            if record.cancelled:
                return SubmissionView(handle=handle, state=SubmissionState.CANCELLED)
            if record.execution_id is not None:
                return SubmissionView(
                    handle=handle,
                    state=SubmissionState.STARTED,
                    execution_id=record.execution_id,
                )
            return SubmissionView(handle=handle, state=SubmissionState.PENDING)

    def get_execution(self, target: str, execution_id: str) -> ExecutionView:
        with self._lock:
            record = self._executions.get((target, execution_id))
            if record is None:
                return ExecutionView(
                    target=target,
                    execution_id=execution_id,
                    state=ExecutionState.NOT_FOUND,
                )
            return _view(record)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop the pool; submissions that never started report ``CANCELLED``."""

        self._pool.shutdown(wait=wait, cancel_futures=True)
        with self._lock:
            dropped = [
                record
                for record in self._submissions.values()
                if record.future is not None and record.future.cancelled() and not record.cancelled
            ]
            for record in dropped:
                record.cancelled = True
        if dropped:
            logger.info("Cancelled %d queued local submission(s) on shutdown", len(dropped))

    def _prune(self, target: str) -> None:
        """Forget the oldest finished work of ``target``; caller holds the lock."""

        finished = [
            key
            for key, record in self._executions.items()
            if record.target == target and record.finished
        ]
        expired = set(finished[: max(len(finished) - self._history_limit, 0)])
        for key in expired:
            del self._executions[key]

        cancelled = [
            handle
            for handle, record in self._submissions.items()
            if record.target == target and record.cancelled
        ]
        stale = set(cancelled[: max(len(cancelled) - self._history_limit, 0)])
        for handle, record in list(self._submissions.items()):
            if handle in stale or (record.target, record.execution_id) in expired:
                del self._submissions[handle]

    def _run(self, submission: _SubmissionRecord) -> None:
        with self._lock:
            number = self._build_numbers.get(submission.target, 0) + 1
            self._build_numbers[submission.target] = number
            execution = _ExecutionRecord(
                target=submission.target,
                execution_id=str(number),
                parameters=dict(submission.parameters),
            )
            self._executions[(execution.target, execution.execution_id)] = execution
            submission.execution_id = execution.execution_id

        result, exit_code, output = self._execute(
            command=self._targets[submission.target],
            parameters=submission.parameters,
        )
        with self._lock:
            execution.result = result
            execution.finished = True
            self._prune(execution.target)
            view = _view(execution)
            listeners = list(self._listeners)
        logger.info(
            "Local execution %s finished with %s (exit code %s)",
            view.display_name,
            result,
            exit_code,
        )
        if result != RESULT_SUCCESS and output:
            logger.debug("Last output of %s:\n%s", view.display_name, "\n".join(output))
        for listener in listeners:
            try:
                listener(view)
            except Exception:
                logger.exception("Completion listener failed for %s", view.display_name)

    def _execute(
        self,
        *,
        command: str,
        parameters: Mapping[str, str],
    ) -> tuple[str, int | None, list[str]]:
        env = os.environ.copy()
        env.update(parameters)
        try:
            completed = subprocess.run(  # noqa: S603
                shlex.split(command),
                env=env,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Local command timed out after %ss: %s", self._timeout_seconds, command)
            return RESULT_ABORTED, None, []
        except FileNotFoundError:
            logger.error("Local command not found: %s", command)
            return RESULT_FAILURE, None, []
        except OSError as error:
            logger.error("Local command failed to start: %s (%s)", command, error)
            return RESULT_FAILURE, None, []

        output = (completed.stdout or "").splitlines()[-20:]
        if completed.returncode == 0:
            return RESULT_SUCCESS, 0, output
        if completed.returncode < 0:
            return RESULT_ABORTED, completed.returncode, output
        return RESULT_FAILURE, completed.returncode, output


def _view(record: _ExecutionRecord) -> ExecutionView:
    return ExecutionView(
        target=record.target,
        execution_id=record.execution_id,
        state=ExecutionState.COMPLETED if record.finished else ExecutionState.RUNNING,
        result=record.result,
        parameters=dict(record.parameters),
    )
