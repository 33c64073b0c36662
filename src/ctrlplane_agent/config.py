"""Runtime configuration for the job agent."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

DEFAULT_API_URL = "https://app.ctrlplane.dev"
DEFAULT_AGENT_NAME = "jenkins-agent"
DEFAULT_POLL_INTERVAL_SECONDS = 60
MIN_POLL_INTERVAL_SECONDS = 10

EXECUTOR_JENKINS = "jenkins"
EXECUTOR_LOCAL = "local"
SUPPORTED_EXECUTORS = (EXECUTOR_JENKINS, EXECUTOR_LOCAL)


@dataclass(slots=True)
class HttpSettings:
    """Timeouts and transport retries shared by every outbound HTTP client."""

    connect_timeout_seconds: float = 10.0
    request_timeout_seconds: float = 15.0
    max_retries: int = 0


@dataclass(slots=True)
class ExecutorSettings:
    """Local executor selection and connection details."""

    kind: str = EXECUTOR_JENKINS
    jenkins_url: str = ""
    jenkins_user: str = ""
    jenkins_api_token: str = ""
    local_targets: dict[str, str] = field(default_factory=dict)
    local_max_workers: int = 2
    local_timeout_seconds: int = 3_600


@dataclass(slots=True)
class AgentSettings:
    """Settings handed to the scheduler at the start of every cycle."""

    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    agent_name: str = DEFAULT_AGENT_NAME
    workspace_id: str = ""
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    http: HttpSettings = field(default_factory=HttpSettings)
    executor: ExecutorSettings = field(default_factory=ExecutorSettings)

    def __post_init__(self) -> None:
        self.api_url = self.api_url.strip()
        self.api_key = self.api_key.strip()
        self.agent_name = self.agent_name.strip() or DEFAULT_AGENT_NAME
        self.workspace_id = self.workspace_id.strip()
        self.poll_interval_seconds = clamp_poll_interval(self.poll_interval_seconds)

    @classmethod
    def from_env(cls) -> AgentSettings:
        """Load settings from ``CTRLPLANE_*`` environment variables."""

        return cls(
            api_url=os.getenv("CTRLPLANE_API_URL", DEFAULT_API_URL).strip() or DEFAULT_API_URL,
            api_key=os.getenv("CTRLPLANE_API_KEY", ""),
            agent_name=os.getenv("CTRLPLANE_AGENT_NAME", DEFAULT_AGENT_NAME),
            workspace_id=os.getenv("CTRLPLANE_WORKSPACE_ID", ""),
            poll_interval_seconds=_env_int(
                "CTRLPLANE_POLL_INTERVAL_SECONDS",
                DEFAULT_POLL_INTERVAL_SECONDS,
            ),
            http=HttpSettings(
                connect_timeout_seconds=float(
                    os.getenv("CTRLPLANE_CONNECT_TIMEOUT_SECONDS", "10.0"),
                ),
                request_timeout_seconds=float(
                    os.getenv("CTRLPLANE_REQUEST_TIMEOUT_SECONDS", "15.0"),
                ),
                max_retries=_env_int("CTRLPLANE_HTTP_MAX_RETRIES", 0),
            ),
            executor=ExecutorSettings(
                kind=os.getenv("CTRLPLANE_EXECUTOR", EXECUTOR_JENKINS).strip().lower(),
                jenkins_url=os.getenv("CTRLPLANE_JENKINS_URL", "").strip(),
                jenkins_user=os.getenv("CTRLPLANE_JENKINS_USER", "").strip(),
                jenkins_api_token=os.getenv("CTRLPLANE_JENKINS_API_TOKEN", "").strip(),
                local_targets=_collect_local_targets(),
                local_max_workers=_env_int("CTRLPLANE_LOCAL_MAX_WORKERS", 2),
                local_timeout_seconds=_env_int("CTRLPLANE_LOCAL_TIMEOUT_SECONDS", 3_600),
            ),
        )

    @property
    def connection_key(self) -> tuple[str, str, str, str]:
        """Fields whose change requires a fresh API client and registration."""

        return (self.api_url, self.api_key, self.agent_name, self.workspace_id)

    def validate_for_cycle(self) -> None:
        """Raise configuration error if the remote queue cannot be contacted."""

        if not self.api_url:
            raise ValueError("CTRLPLANE_API_URL is not configured.")
        _validate_http_url(self.api_url, name="CTRLPLANE_API_URL")
        if not self.api_key:
            raise ValueError("CTRLPLANE_API_KEY is not configured.")
        if self.http.connect_timeout_seconds <= 0 or self.http.request_timeout_seconds <= 0:
            raise ValueError("CTRLPLANE_*_TIMEOUT_SECONDS must be > 0.")

    def validate_executor(self) -> None:
        """Raise configuration error if the selected executor is unusable."""

        executor = self.executor
        if executor.kind not in SUPPORTED_EXECUTORS:
            raise ValueError(
                f"Unsupported CTRLPLANE_EXECUTOR: {executor.kind!r}. "
                f"Expected one of: {', '.join(SUPPORTED_EXECUTORS)}.",
            )
        if executor.kind == EXECUTOR_JENKINS:
            if not executor.jenkins_url:
                raise ValueError("CTRLPLANE_JENKINS_URL is required for the jenkins executor.")
            _validate_http_url(executor.jenkins_url, name="CTRLPLANE_JENKINS_URL")
            return
        if not executor.local_targets:
            raise ValueError(
                "At least one local target is required. "
                "Set CTRLPLANE_LOCAL_TARGETS='<name>|<command>;...'.",
            )
        if executor.local_max_workers <= 0:
            raise ValueError("CTRLPLANE_LOCAL_MAX_WORKERS must be a positive integer.")
        if executor.local_timeout_seconds <= 0:
            raise ValueError("CTRLPLANE_LOCAL_TIMEOUT_SECONDS must be > 0.")


def clamp_poll_interval(seconds: int) -> int:
    return max(MIN_POLL_INTERVAL_SECONDS, int(seconds))


def _collect_local_targets() -> dict[str, str]:
    raw = os.getenv("CTRLPLANE_LOCAL_TARGETS", "").strip()
    if not raw:
        return {}

    targets: dict[str, str] = {}
    for part in raw.split(";"):
        token = part.strip()
        if not token:
            continue
        if "|" not in token:
            raise ValueError(
                "Invalid CTRLPLANE_LOCAL_TARGETS entry: "
                f"{token!r}. Expected format '<name>|<command>'.",
            )
        name, command = token.split("|", 1)
        name = name.strip().strip("/")
        command = command.strip()
        if not name or not command:
            raise ValueError(
                f"Invalid CTRLPLANE_LOCAL_TARGETS entry: {token!r} (empty name or command)",
            )
        targets[name] = command
    return targets


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error
