"""Cached agent registration with the remote queue."""

from __future__ import annotations

import logging
import threading

from ctrlplane_agent.api.base import RemoteQueue

logger = logging.getLogger(__name__)


class AgentRegistration:
    """Upserts the agent once and caches the identity it was given.

    A failed attempt leaves the cache empty; the next cycle tries again.
    """

    def __init__(self, *, queue: RemoteQueue, name: str, workspace_id: str) -> None:
        self._queue = queue
        self.name = name
        self.workspace_id = workspace_id
        self._lock = threading.Lock()
        self._agent_id: str | None = None

    @property
    def agent_id(self) -> str | None:
        with self._lock:
            return self._agent_id

    def ensure_registered(self) -> bool:
        with self._lock:
            if self._agent_id is not None:
                return True
        if not self.workspace_id:
            logger.error("Cannot register agent %s: workspace id is missing.", self.name)
            return False
        agent_id = self._queue.register(name=self.name, workspace_id=self.workspace_id)
        if not agent_id:
            return False
        with self._lock:
            self._agent_id = agent_id
        return True
