"""Runtime configuration for task workers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from conductor_worker.executor import SAMPLE_EXECUTOR_PATH

ENV_PREFIX = "CONDUCTOR_WORKER_"


@dataclass(slots=True)
class WorkerSettings:
    """Worker pool and coordinator connection settings."""

    server_url: str = "http://localhost:8080/api"
    task_type: str = ""
    thread_count: int = 2
    poll_interval_seconds: float = 5.0
    worker_id: str = ""
    domain: str = ""
    request_timeout_seconds: float = 30.0
    executor: str = SAMPLE_EXECUTOR_PATH


@dataclass(slots=True)
class BatchPollSettings:
    """Defaults for ad-hoc batch polling."""

    count: int = 10
    timeout_ms: int = 120


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    worker: WorkerSettings = field(default_factory=WorkerSettings)
    batch: BatchPollSettings = field(default_factory=BatchPollSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``CONDUCTOR_WORKER_*`` environment variables."""

        return cls(
            worker=WorkerSettings(
                server_url=_env("SERVER_URL", "http://localhost:8080/api"),
                task_type=_env("TASK_TYPE", ""),
                thread_count=_env_int("THREAD_COUNT", 2),
                poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", 5.0),
                worker_id=_env("WORKER_ID", ""),
                domain=_env("DOMAIN", ""),
                request_timeout_seconds=_env_float("REQUEST_TIMEOUT_SECONDS", 30.0),
                executor=_env("EXECUTOR", SAMPLE_EXECUTOR_PATH),
            ),
            batch=BatchPollSettings(
                count=_env_int("BATCH_COUNT", 10),
                timeout_ms=_env_int("BATCH_TIMEOUT_MS", 120),
            ),
        )

    def validate_for_client(self) -> None:
        """Raise configuration error if the coordinator URL is unusable."""

        _validate_server_url(self.worker.server_url)
        if self.worker.request_timeout_seconds <= 0:
            raise ValueError(f"{ENV_PREFIX}REQUEST_TIMEOUT_SECONDS must be > 0.")

    def validate_for_worker(self) -> None:
        """Raise configuration error if a worker pool cannot be started."""

        self.validate_for_client()
        if not self.worker.task_type.strip():
            raise ValueError(
                f"Task type is required. Set {ENV_PREFIX}TASK_TYPE or pass --task-type.",
            )
        if self.worker.thread_count < 1:
            raise ValueError(f"{ENV_PREFIX}THREAD_COUNT must be >= 1.")
        if self.worker.poll_interval_seconds < 0:
            raise ValueError(f"{ENV_PREFIX}POLL_INTERVAL_SECONDS must be >= 0.")

    def validate_for_batch(self) -> None:
        self.validate_for_client()
        if self.batch.count < 1:
            raise ValueError(f"{ENV_PREFIX}BATCH_COUNT must be >= 1.")
        if self.batch.timeout_ms < 0:
            raise ValueError(f"{ENV_PREFIX}BATCH_TIMEOUT_MS must be >= 0.")


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {ENV_PREFIX}{name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = _env(name, str(default))
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid number value for {ENV_PREFIX}{name}: {raw!r}") from error


def _validate_server_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid coordinator server URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
