"""Controllers for worker CLI commands."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from conductor_worker.client import QueueClient
from conductor_worker.config import Settings
from conductor_worker.errors import TaskDecodeError
from conductor_worker.executor import load_executor
from conductor_worker.models import Task
from conductor_worker.pool import WorkerPool
from conductor_worker.worker import WorkerLoop


@dataclass(slots=True)
class ConnectionOptions:
    """Coordinator overrides shared by every command."""

    server_url: str | None = None
    worker_id: str | None = None
    domain: str | None = None


@dataclass(slots=True)
class WorkerRunCommand:
    """CLI input for running a worker pool."""

    connection: ConnectionOptions
    task_type: str | None
    executor: str | None
    thread_count: int | None
    poll_interval_seconds: float | None
    once: bool = False


@dataclass(slots=True)
class TaskPollCommand:
    """CLI input for a single poll."""

    connection: ConnectionOptions
    task_type: str


@dataclass(slots=True)
class TaskBatchPollCommand:
    """CLI input for a batch poll."""

    connection: ConnectionOptions
    task_type: str
    count: int | None
    timeout_ms: int | None


@dataclass(slots=True)
class TaskAckCommand:
    """CLI input for acknowledging a task."""

    connection: ConnectionOptions
    task_id: str


@dataclass(slots=True)
class TaskUpdateCommand:
    """CLI input for posting a task JSON file."""

    connection: ConnectionOptions
    task_file: Path


@dataclass(slots=True)
class CommandResult:
    lines: list[str]
    success: bool = True


def build_client(settings: Settings) -> QueueClient:
    return QueueClient(
        settings.worker.server_url,
        timeout_seconds=settings.worker.request_timeout_seconds,
    )


class WorkerCliController:
    """CLI controller for worker and queue operations."""

    def __init__(self, client_factory: Callable[[Settings], QueueClient] = build_client) -> None:
        self.client_factory = client_factory

    def run_worker(self, command: WorkerRunCommand) -> CommandResult:
        """Run a worker pool until interrupted, or one cycle with ``once``."""

        settings = _settings(command.connection)
        settings.worker = replace(
            settings.worker,
            task_type=command.task_type or settings.worker.task_type,
            executor=command.executor or settings.worker.executor,
            thread_count=(
                command.thread_count
                if command.thread_count is not None
                else settings.worker.thread_count
            ),
            poll_interval_seconds=(
                command.poll_interval_seconds
                if command.poll_interval_seconds is not None
                else settings.worker.poll_interval_seconds
            ),
        )
        settings.validate_for_worker()
        executor = load_executor(settings.worker.executor)
        worker = settings.worker

        with self._client(settings) as client:
            if command.once:
                loop = WorkerLoop(
                    client=client,
                    executor=executor,
                    task_type=worker.task_type,
                    stop_event=threading.Event(),
                    worker_id=worker.worker_id,
                    domain=worker.domain,
                    poll_interval_seconds=0,
                )
                summary = loop.run_once()
            else:
                pool = WorkerPool(
                    client=client,
                    executor=executor,
                    task_type=worker.task_type,
                    thread_count=worker.thread_count,
                    worker_id=worker.worker_id,
                    domain=worker.domain,
                    poll_interval_seconds=worker.poll_interval_seconds,
                )
                summary = pool.run_forever()

        lines = [
            f"Task type: {worker.task_type}",
            f"Summary: {summary.describe()}",
        ]
        if summary.processed == 0 and summary.poll_errors == 0:
            lines.insert(1, "No task available")
        return CommandResult(lines=lines, success=not (command.once and summary.poll_errors))

    def poll(self, command: TaskPollCommand) -> CommandResult:
        settings = _settings(command.connection)
        settings.validate_for_client()
        with self._client(settings) as client:
            task = client.poll_one(
                command.task_type,
                worker_id=settings.worker.worker_id,
                domain=settings.worker.domain,
            )
        if task is None:
            return CommandResult(lines=["No task available"])
        return CommandResult(lines=[_render(task.to_dict())])

    def poll_batch(self, command: TaskBatchPollCommand) -> CommandResult:
        settings = _settings(command.connection)
        settings.batch = replace(
            settings.batch,
            count=command.count if command.count is not None else settings.batch.count,
            timeout_ms=(
                command.timeout_ms if command.timeout_ms is not None else settings.batch.timeout_ms
            ),
        )
        settings.validate_for_batch()
        with self._client(settings) as client:
            tasks = client.poll_batch(
                command.task_type,
                count=settings.batch.count,
                timeout=settings.batch.timeout_ms,
                worker_id=settings.worker.worker_id,
                domain=settings.worker.domain,
            )
        lines = [f"Polled {len(tasks)} task(s)"]
        lines.extend(_render(task.to_dict()) for task in tasks)
        return CommandResult(lines=lines)

    def ack(self, command: TaskAckCommand) -> CommandResult:
        settings = _settings(command.connection)
        settings.validate_for_client()
        with self._client(settings) as client:
            result = client.ack(command.task_id, worker_id=settings.worker.worker_id)
        return CommandResult(lines=[f"Ack {command.task_id}: {result}"])

    def update(self, command: TaskUpdateCommand) -> CommandResult:
        settings = _settings(command.connection)
        settings.validate_for_client()
        try:
            payload = json.loads(command.task_file.read_text("utf-8"))
        except json.JSONDecodeError as error:
            raise TaskDecodeError(f"Malformed task JSON in {command.task_file}: {error}") from error
        task = Task.from_dict(payload)
        with self._client(settings) as client:
            result = client.update(task)
        return CommandResult(lines=[f"Update {task.task_id}: {result}"])

    @contextmanager
    def _client(self, settings: Settings) -> Iterator[QueueClient]:
        client = self.client_factory(settings)
        try:
            yield client
        finally:
            client.close()


def _settings(connection: ConnectionOptions) -> Settings:
    settings = Settings.from_env()
    settings.worker = replace(
        settings.worker,
        server_url=connection.server_url or settings.worker.server_url,
        worker_id=connection.worker_id or settings.worker.worker_id,
        domain=connection.domain or settings.worker.domain,
    )
    return settings


def _render(payload: dict[str, object]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
