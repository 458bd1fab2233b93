"""Single polling loop: sleep, poll, ack, execute, update."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, fields, replace
from typing import Protocol

from conductor_worker.errors import QueueClientError
from conductor_worker.executor import TaskExecutor
from conductor_worker.models import REPORTABLE_STATUSES, Task, TaskStatus

DEFAULT_POLL_INTERVAL_SECONDS = 5.0


class QueueOperations(Protocol):
    """Subset of :class:`~conductor_worker.client.QueueClient` a loop drives."""

    def poll_one(
        self,
        task_type: str,
        worker_id: str | None = None,
        domain: str | None = None,
    ) -> Task | None: ...

    def ack(self, task_id: str, worker_id: str | None = None) -> str: ...

    def update(self, task: Task) -> str: ...


@dataclass(slots=True)
class WorkerRunSummary:
    """Counters for one cycle or accumulated over a loop's lifetime."""

    processed: int = 0
    updated: int = 0
    failed: int = 0
    idle_polls: int = 0
    poll_errors: int = 0
    ack_failures: int = 0
    executor_errors: int = 0
    update_failures: int = 0

    def __iadd__(self, other: WorkerRunSummary) -> WorkerRunSummary:
        for item in fields(self):
            setattr(self, item.name, getattr(self, item.name) + getattr(other, item.name))
        return self

    def describe(self) -> str:
        return " ".join(f"{item.name}={getattr(self, item.name)}" for item in fields(self))


class WorkerLoop:
    """Runs poll → ack → execute → update cycles until ``stop_event`` is set.

    The stop event is only checked between cycles, so a task that has been
    polled is always acked, executed and reported before the loop exits.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: QueueOperations,
        executor: TaskExecutor,
        task_type: str,
        stop_event: threading.Event,
        worker_id: str | None = None,
        domain: str | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        logger: logging.Logger | None = None,
        name: str | None = None,
    ) -> None:
        self.client = client
        self.executor = executor
        self.task_type = task_type
        self.worker_id = worker_id or None
        self.domain = domain or None
        self.poll_interval_seconds = poll_interval_seconds
        self.name = name or f"{task_type}-worker"
        self._stop_event = stop_event
        self._logger = logger or logging.getLogger(__name__)
        self._summary = WorkerRunSummary()

    @property
    def summary(self) -> WorkerRunSummary:
        return replace(self._summary)

    def run(self) -> WorkerRunSummary:
        """Loop until stopped; errors inside a cycle never end the loop."""

        self._logger.info(
            "Worker %s polling %r every %.2fs",
            self.name,
            self.task_type,
            self.poll_interval_seconds,
        )
        while not self._stop_event.is_set():
            if self._stop_event.wait(timeout=self.poll_interval_seconds):
                break
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                self._logger.exception("Worker %s cycle crashed", self.name)
        self._logger.info("Worker %s stopped (%s)", self.name, self._summary.describe())
        return self.summary

    def run_once(self) -> WorkerRunSummary:
        """Run one cycle without the leading sleep."""

        cycle = WorkerRunSummary()
        try:
            self._run_cycle(cycle)
        finally:
            self._summary += cycle
        return cycle

    def _run_cycle(self, cycle: WorkerRunSummary) -> None:
        try:
            task = self.client.poll_one(
                self.task_type,
                worker_id=self.worker_id,
                domain=self.domain,
            )
        except QueueClientError as error:
            cycle.poll_errors = 1
            self._logger.warning("Worker %s poll failed: %s", self.name, error)
            return
        if task is None:
            cycle.idle_polls = 1
            return

        cycle.processed = 1
        self._logger.info("Worker %s polled task %s", self.name, task.task_id)
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug("Polled task payload: %s", task.to_dict())

        self._ack(task, cycle)
        result = self._execute(task, cycle)
        if result is None:
            return
        if result.status == TaskStatus.FAILED:
            cycle.failed = 1
        self._update(result, cycle)

    def _ack(self, task: Task, cycle: WorkerRunSummary) -> None:
        try:
            self.client.ack(task.task_id, worker_id=self.worker_id)
        except QueueClientError as error:
            cycle.ack_failures = 1
            self._logger.warning(
                "Ack failed for task %s, executing anyway: %s",
                task.task_id,
                error,
            )

    def _execute(self, task: Task, cycle: WorkerRunSummary) -> Task | None:
        if task.status is None:
            task.status = TaskStatus.IN_PROGRESS
        polled = copy.deepcopy(task)
        try:
            result = self.executor(task)
        except Exception as error:  # noqa: BLE001
            cycle.executor_errors = 1
            self._logger.exception("Executor raised on task %s", task.task_id)
            return polled.fail(f"Executor error: {type(error).__name__}: {error}")

        if not isinstance(result, Task):
            cycle.executor_errors = 1
            self._logger.error(
                "Executor returned %s for task %s; leaving it for redelivery",
                type(result).__name__,
                task.task_id,
            )
            return None
        if result.status not in REPORTABLE_STATUSES:
            cycle.executor_errors = 1
            status = result.status.value if result.status is not None else None
            self._logger.error(
                "Executor returned non-reportable status %s for task %s",
                status,
                task.task_id,
            )
            return result.fail(f"Executor returned non-reportable status {status}")
        return result

    def _update(self, task: Task, cycle: WorkerRunSummary) -> None:
        try:
            self.client.update(task)
        except (QueueClientError, TypeError, ValueError) as error:
            cycle.update_failures = 1
            self._logger.error("Update failed for task %s, dropping it: %s", task.task_id, error)
            return
        cycle.updated = 1
