"""Pool of independent polling loops bound to one task type."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from conductor_worker.client import QueueClient
from conductor_worker.config import Settings
from conductor_worker.executor import TaskExecutor
from conductor_worker.worker import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    QueueOperations,
    WorkerLoop,
    WorkerRunSummary,
)


class WorkerPool:
    """Starts ``thread_count`` worker loops sharing one client and one stop event.

    Loops never wait on each other; each polls on its own and may receive a
    distinct task or nothing. ``stop()`` is cooperative: every loop finishes
    its in-flight cycle before exiting. Loops are not restarted, but they
    only exit on stop since each cycle handles its own errors.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: QueueOperations,
        executor: TaskExecutor,
        task_type: str,
        thread_count: int = 2,
        worker_id: str | None = None,
        domain: str | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        logger: logging.Logger | None = None,
        owns_client: bool = False,
    ) -> None:
        if thread_count < 1:
            raise ValueError("thread_count must be >= 1")
        self.client = client
        self.executor = executor
        self.task_type = task_type
        self.thread_count = thread_count
        self.worker_id = worker_id or None
        self.domain = domain or None
        self.poll_interval_seconds = poll_interval_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._owns_client = owns_client
        self._stop_event = threading.Event()
        self._loops: list[WorkerLoop] = []
        self._threads: list[threading.Thread] = []
        self._stop_signal_name: str | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        executor: TaskExecutor,
        *,
        logger: logging.Logger | None = None,
    ) -> WorkerPool:
        """Build a pool with its own :class:`QueueClient` from settings."""

        worker = settings.worker
        client = QueueClient(
            worker.server_url,
            timeout_seconds=worker.request_timeout_seconds,
            logger=logger,
        )
        return cls(
            client=client,
            executor=executor,
            task_type=worker.task_type,
            thread_count=worker.thread_count,
            worker_id=worker.worker_id,
            domain=worker.domain,
            poll_interval_seconds=worker.poll_interval_seconds,
            logger=logger,
            owns_client=True,
        )

    @property
    def is_running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def summary(self) -> WorkerRunSummary:
        """Totals across all loops of this pool."""

        total = WorkerRunSummary()
        for loop in self._loops:
            total += loop.summary
        return total

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("Worker pool already started")
        for index in range(self.thread_count):
            loop = WorkerLoop(
                client=self.client,
                executor=self.executor,
                task_type=self.task_type,
                stop_event=self._stop_event,
                worker_id=self.worker_id,
                domain=self.domain,
                poll_interval_seconds=self.poll_interval_seconds,
                logger=self._logger,
                name=f"{self.task_type}-worker-{index}",
            )
            thread = threading.Thread(
                target=loop.run,
                daemon=True,
                name=loop.name,
            )
            self._loops.append(loop)
            self._threads.append(thread)
            thread.start()
            self._logger.info("Started worker thread %s", thread.name)

    def stop(self) -> None:
        """Ask every loop to exit after its current cycle."""

        if not self._stop_event.is_set():
            self._logger.info("Stopping worker pool for %r", self.task_type)
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for loops to exit; ``True`` when all of them have."""

        for thread in self._threads:
            thread.join(timeout=timeout)
        return not self.is_running

    def run_forever(self) -> WorkerRunSummary:
        """Run until SIGINT/SIGTERM or ``stop()``, then wait for loops to drain."""

        with self._signal_handlers():
            self.start()
            self._stop_event.wait()
            if self._stop_signal_name is not None:
                self._logger.info("Received %s, finishing in-flight tasks", self._stop_signal_name)
            self.join()
        self.close()
        return self.summary

    def close(self) -> None:
        if self._owns_client and isinstance(self.client, QueueClient):
            self.client.close()

    def __enter__(self) -> WorkerPool:
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()
        self.join()
        self.close()

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                self._stop_signal_name = signal.Signals(signum).name
            except ValueError:
                self._stop_signal_name = str(signum)
            self.stop()

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
