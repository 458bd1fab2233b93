"""Shared test fixtures."""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from typing import Any

import pytest

from conductor_worker.errors import QueueTransportError
from conductor_worker.models import Task

ENV_NAMES = (
    "SERVER_URL",
    "TASK_TYPE",
    "THREAD_COUNT",
    "POLL_INTERVAL_SECONDS",
    "WORKER_ID",
    "DOMAIN",
    "REQUEST_TIMEOUT_SECONDS",
    "BATCH_COUNT",
    "BATCH_TIMEOUT_MS",
    "EXECUTOR",
)


def build_task_payload(task_id: str = "4b7d7e2c-0001", **overrides: Any) -> dict[str, Any]:
    """Task JSON as the coordinator returns it from a poll."""

    payload: dict[str, Any] = {
        "taskType": "resize_image",
        "status": "IN_PROGRESS",
        "inputData": {
            "url": "https://example.com/cat.png",
            "sizes": [64, 128],
            "options": {"keepAspect": True, "quality": 0.85, "watermark": None},
        },
        "referenceTaskName": "resize_image_ref",
        "retryCount": 0,
        "seq": 2,
        "pollCount": 1,
        "taskDefName": "resize_image",
        "scheduledTime": 1718000000000,
        "startTime": 1718000000500,
        "endTime": 0,
        "updateTime": 1718000000500,
        "startDelayInSeconds": 0,
        "retried": False,
        "executed": False,
        "callbackFromWorker": True,
        "responseTimeoutSeconds": 3600,
        "workflowInstanceId": "wf-9f1c",
        "workflowType": "image_pipeline",
        "taskId": task_id,
        "callbackAfterSeconds": 0,
        "workflowTask": {
            "name": "resize_image",
            "taskReferenceName": "resize_image_ref",
            "inputParameters": {"url": "${workflow.input.url}"},
            "type": "SIMPLE",
        },
        "taskStatus": "IN_PROGRESS",
        "queueWaitTime": 500,
        "outputData": {},
        "workerId": "node-1",
    }
    payload.update(overrides)
    return payload


class FakeQueueClient:
    """Thread-safe in-memory stand-in for QueueClient."""

    def __init__(
        self,
        payloads: list[dict[str, Any]] | None = None,
        *,
        fail_ack: bool = False,
        fail_update: bool = False,
        poll_failures: int = 0,
    ) -> None:
        self._lock = threading.Lock()
        self._pending = [copy.deepcopy(payload) for payload in payloads or []]
        self.fail_ack = fail_ack
        self.fail_update = fail_update
        self.poll_failures = poll_failures
        self.polls: list[tuple[str, str | None, str | None]] = []
        self.acks: list[tuple[str, str | None]] = []
        self.updates: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str | None]] = []
        self.updated = threading.Condition(self._lock)

    def poll_one(
        self,
        task_type: str,
        worker_id: str | None = None,
        domain: str | None = None,
    ) -> Task | None:
        with self._lock:
            self.polls.append((task_type, worker_id, domain))
            if self.poll_failures > 0:
                self.poll_failures -= 1
                raise QueueTransportError("connection refused")
            if not self._pending:
                return None
            payload = self._pending.pop(0)
            self.calls.append(("poll", payload["taskId"]))
            return Task.from_dict(payload)

    def ack(self, task_id: str, worker_id: str | None = None) -> str:
        with self._lock:
            self.calls.append(("ack", task_id))
            self.acks.append((task_id, worker_id))
            if self.fail_ack:
                raise QueueTransportError("ack returned HTTP 500", status_code=500)
            return "true"

    def update(self, task: Task) -> str:
        payload = task.to_dict()
        with self._lock:
            self.calls.append(("update", task.task_id))
            if self.fail_update:
                raise QueueTransportError("update returned HTTP 503", status_code=503)
            self.updates.append(payload)
            self.updated.notify_all()
            return task.task_id or ""

    def wait_for_updates(self, count: int, timeout: float = 5.0) -> bool:
        with self._lock:
            return self.updated.wait_for(lambda: len(self.updates) >= count, timeout=timeout)


@pytest.fixture()
def task_payload() -> dict[str, Any]:
    return build_task_payload()


@pytest.fixture()
def make_payload() -> Callable[..., dict[str, Any]]:
    return build_task_payload


@pytest.fixture()
def fake_queue() -> Callable[..., FakeQueueClient]:
    return FakeQueueClient


@pytest.fixture(autouse=True)
def _clean_worker_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CONDUCTOR_WORKER_* from the host environment out of tests."""

    for name in ENV_NAMES:
        monkeypatch.delenv(f"CONDUCTOR_WORKER_{name}", raising=False)
