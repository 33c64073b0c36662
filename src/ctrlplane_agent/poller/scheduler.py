"""Periodic cycle: validate config, register, reconcile, dispatch."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from ctrlplane_agent.api.base import RemoteQueue
from ctrlplane_agent.api.client import CtrlplaneClient
from ctrlplane_agent.api.models import JobStatus
from ctrlplane_agent.config import DEFAULT_POLL_INTERVAL_SECONDS, AgentSettings
from ctrlplane_agent.poller.active_jobs import ActiveJobTable
from ctrlplane_agent.poller.dispatcher import Dispatcher
from ctrlplane_agent.poller.executor.base import ExecutionView, ExecutorGateway
from ctrlplane_agent.poller.listener import CompletionListener
from ctrlplane_agent.poller.models import CycleReport, ReconcileSummary
from ctrlplane_agent.poller.reconciler import Reconciler
from ctrlplane_agent.poller.registration import AgentRegistration

logger = logging.getLogger(__name__)

QueueFactory = Callable[[AgentSettings], RemoteQueue]


@dataclass(slots=True)
class _Connection:
    """Components bound to one set of connection settings."""

    key: tuple[str, str, str, str]
    queue: RemoteQueue
    registration: AgentRegistration
    reconciler: Reconciler
    dispatcher: Dispatcher
    listener: CompletionListener


class CycleScheduler:
    """Runs polling cycles one at a time on the calling thread.

    ``run_cycle`` never raises. ``run_forever`` repeats it every poll interval
    until SIGINT/SIGTERM or ``request_stop``. After ``request_quiesce`` (or
    SIGUSR1) cycles keep reconciling tracked jobs but claim nothing new.
    """

    def __init__(
        self,
        *,
        gateway: ExecutorGateway,
        settings_provider: Callable[[], AgentSettings] = AgentSettings.from_env,
        queue_factory: QueueFactory = CtrlplaneClient,
        active_jobs: ActiveJobTable | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings_provider = settings_provider
        self.queue_factory = queue_factory
        self.active_jobs = active_jobs if active_jobs is not None else ActiveJobTable()
        self.poll_interval_seconds = DEFAULT_POLL_INTERVAL_SECONDS
        self._connection: _Connection | None = None
        self._connection_lock = threading.Lock()
        self._stop_requested = False
        self._quiesce_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def quiescing(self) -> bool:
        return self._quiesce_requested

    def request_stop(self, *, signal_name: str | None = None) -> None:
        self._stop_requested = True
        logger.info("Shutdown requested%s.", f" by {signal_name}" if signal_name else "")

    def request_quiesce(self) -> None:
        if not self._quiesce_requested:
            logger.info("Quiescing: tracked jobs are still reconciled, no new jobs are claimed.")
        self._quiesce_requested = True

    def run_cycle(self, settings: AgentSettings | None = None) -> CycleReport:
        """Run one cycle; configuration problems and errors skip it."""

        if self._stop_requested:
            return CycleReport(skipped_reason="shutting down")
        try:
            settings = settings or self.settings_provider()
            settings.validate_for_cycle()
        except ValueError as error:
            logger.warning("Configuration incomplete (%s). Skipping polling cycle.", error)
            return CycleReport(skipped_reason=f"configuration: {error}")

        self.poll_interval_seconds = settings.poll_interval_seconds
        try:
            return self._run_cycle(settings)
        except Exception as error:
            logger.exception("Polling cycle failed")
            return CycleReport(skipped_reason=f"error: {error}")

    def run_forever(self, *, max_cycles: int | None = None) -> int:
        """Repeat cycles until stopped; returns the number of cycles run."""

        cycles = 0
        with self._signal_handlers():
            while not self._stop_requested:
                report = self.run_cycle()
                logger.debug("%s", report.describe())
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                self._sleep_with_stop(self.poll_interval_seconds)
        return cycles

    def on_execution_completed(self, execution: ExecutionView) -> JobStatus | None:
        """Executor completion callback; uses the current connection."""

        with self._connection_lock:
            connection = self._connection
        if connection is None:
            logger.warning(
                "Execution %s finished before the first polling cycle; leaving it unreported.",
                execution.display_name,
            )
            return None
        return connection.listener.on_completed(execution)

    def drain(self) -> ReconcileSummary | None:
        """Reconcile tracked jobs once more after the executor has stopped.

        Work the executor dropped while stopping is reported before the
        connection is closed. Returns ``None`` when there was nothing to do.
        """

        with self._connection_lock:
            connection = self._connection
        if connection is None or len(self.active_jobs) == 0:
            return None
        try:
            return connection.reconciler.reconcile()
        except Exception:
            logger.exception("Final reconcile pass failed")
            return None

    def close(self) -> None:
        with self._connection_lock:
            connection, self._connection = self._connection, None
        if connection is not None:
            _close_queue(connection.queue)

    def _run_cycle(self, settings: AgentSettings) -> CycleReport:
        connection = self._connect(settings)
        if not connection.registration.ensure_registered():
            logger.error("Agent registration failed. Skipping polling cycle.")
            return CycleReport(skipped_reason="registration failed")
        agent_id = connection.registration.agent_id
        if agent_id is None:
            return CycleReport(skipped_reason="registration failed")

        reconcile = connection.reconciler.reconcile()
        if self._stop_requested or self._quiesce_requested:
            return CycleReport(reconcile=reconcile)
        dispatch = connection.dispatcher.claim_and_trigger(agent_id)
        return CycleReport(reconcile=reconcile, dispatch=dispatch)

    def _connect(self, settings: AgentSettings) -> _Connection:
        with self._connection_lock:
            current = self._connection
        if current is not None and current.key == settings.connection_key:
            return current

        if current is not None:
            logger.info("Connection settings changed; re-creating API client and registration.")
        queue = self.queue_factory(settings)
        connection = _Connection(
            key=settings.connection_key,
            queue=queue,
            registration=AgentRegistration(
                queue=queue,
                name=settings.agent_name,
                workspace_id=settings.workspace_id,
            ),
            reconciler=Reconciler(queue=queue, gateway=self.gateway, active_jobs=self.active_jobs),
            dispatcher=Dispatcher(
                queue=queue,
                gateway=self.gateway,
                active_jobs=self.active_jobs,
                agent_name=settings.agent_name,
            ),
            listener=CompletionListener(queue=queue, active_jobs=self.active_jobs),
        )
        with self._connection_lock:
            self._connection = connection
        if current is not None:
            _close_queue(current.queue)
        return connection

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        handled = [signal.SIGINT, signal.SIGTERM]
        quiesce_signal = getattr(signal, "SIGUSR1", None)
        originals = {signum: signal.getsignal(signum) for signum in handled}
        if quiesce_signal is not None:
            originals[quiesce_signal] = signal.getsignal(quiesce_signal)

        def _stop_handler(signum: int, _: object | None) -> None:
            self.request_stop(signal_name=signal.Signals(signum).name)

        def _quiesce_handler(_signum: int, _frame: object | None) -> None:
            self.request_quiesce()

        try:
            for signum in handled:
                signal.signal(signum, _stop_handler)
            if quiesce_signal is not None:
                signal.signal(quiesce_signal, _quiesce_handler)
            yield
        finally:
            for signum, original in originals.items():
                signal.signal(signum, original)


def _close_queue(queue: RemoteQueue) -> None:
    close = getattr(queue, "close", None)
    if callable(close):
        close()
