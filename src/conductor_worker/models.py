"""Task and log entities exchanged with the coordinator."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeAlias

from conductor_worker.errors import TaskDecodeError

JsonValue: TypeAlias = (
    None | bool | int | float | str | list["JsonValue"] | dict[str, "JsonValue"]
)


class TaskStatus(str, Enum):
    """Coordinator task states, serialized by name."""

    IN_PROGRESS = "IN_PROGRESS"
    CANCELED = "CANCELED"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"
    SCHEDULED = "SCHEDULED"
    TIMED_OUT = "TIMED_OUT"
    READY_FOR_RERUN = "READY_FOR_RERUN"
    SKIPPED = "SKIPPED"


REPORTABLE_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.IN_PROGRESS},
)


_LOG_KEYS = frozenset({"log", "taskId", "createdTime"})


@dataclass(slots=True)
class TaskLog:
    """One execution log line attached to a task update.

    Unknown keys, and ``taskId``/``createdTime`` sent as ``null``, are kept in
    ``extra``; absent keys stay absent on the way back.
    """

    message: str
    task_id: str | None
    created_time: int | None
    extra: dict[str, JsonValue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JsonValue]:
        payload: dict[str, JsonValue] = dict(self.extra)
        payload["log"] = self.message
        if self.task_id is not None:
            payload["taskId"] = self.task_id
        if self.created_time is not None:
            payload["createdTime"] = self.created_time
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TaskLog:
        if not isinstance(payload, dict):
            raise TaskDecodeError("task log entry must be an object")
        message = payload.get("log")
        if not isinstance(message, str):
            raise TaskDecodeError("task log entry requires a string 'log' field")
        raw_created = payload.get("createdTime")
        try:
            created_time = int(raw_created) if raw_created is not None else None
        except (TypeError, ValueError) as error:
            raise TaskDecodeError(f"Invalid task log createdTime: {raw_created!r}") from error
        return cls(
            message=message,
            task_id=payload.get("taskId"),
            created_time=created_time,
            extra={
                key: value
                for key, value in payload.items()
                if key not in _LOG_KEYS or (key != "log" and value is None)
            },
        )


# (attribute name, wire key) for scalar fields echoed back verbatim.
_PASSTHROUGH_FIELDS: tuple[tuple[str, str], ...] = (
    ("task_id", "taskId"),
    ("workflow_instance_id", "workflowInstanceId"),
    ("reference_task_name", "referenceTaskName"),
    ("task_type", "taskType"),
    ("task_def_name", "taskDefName"),
    ("workflow_type", "workflowType"),
    ("retry_count", "retryCount"),
    ("seq", "seq"),
    ("poll_count", "pollCount"),
    ("scheduled_time", "scheduledTime"),
    ("start_time", "startTime"),
    ("end_time", "endTime"),
    ("update_time", "updateTime"),
    ("start_delay_in_seconds", "startDelayInSeconds"),
    ("retried", "retried"),
    ("executed", "executed"),
    ("callback_from_worker", "callbackFromWorker"),
    ("response_timeout_seconds", "responseTimeoutSeconds"),
    ("callback_after_seconds", "callbackAfterSeconds"),
    ("queue_wait_time", "queueWaitTime"),
    ("workflow_task", "workflowTask"),
    ("task_status", "taskStatus"),
)
_KNOWN_KEYS = frozenset(
    {key for _, key in _PASSTHROUGH_FIELDS} | {"status", "inputData", "outputData", "logs"},
)


@dataclass(slots=True)
class Task:
    """A polled unit of work.

    Lives for one poll → ack → execute → update cycle. Fields the coordinator
    sent but this model does not name are kept in ``extra`` and re-emitted on
    update, so a task always goes back with everything it arrived with.
    """

    task_id: str | None = None
    workflow_instance_id: str | None = None
    reference_task_name: str | None = None
    task_type: str | None = None
    task_def_name: str | None = None
    workflow_type: str | None = None
    status: TaskStatus | None = None
    input_data: dict[str, JsonValue] = field(default_factory=dict)
    output_data: dict[str, JsonValue] = field(default_factory=dict)
    retry_count: int | None = None
    seq: int | None = None
    poll_count: int | None = None
    scheduled_time: int | None = None
    start_time: int | None = None
    end_time: int | None = None
    update_time: int | None = None
    start_delay_in_seconds: int | None = None
    retried: bool | None = None
    executed: bool | None = None
    callback_from_worker: bool | None = None
    response_timeout_seconds: int | None = None
    callback_after_seconds: int | None = None
    queue_wait_time: int | None = None
    workflow_task: JsonValue = None
    task_status: str | None = None
    logs: list[TaskLog] = field(default_factory=list)
    extra: dict[str, JsonValue] = field(default_factory=dict)
    # Named keys the coordinator sent as explicit null.
    _null_keys: frozenset[str] = field(default=frozenset(), repr=False, compare=False)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Task:
        """Build a task from a decoded coordinator JSON object."""

        if not isinstance(payload, dict):
            raise TaskDecodeError(f"Expected task JSON object, got {type(payload).__name__}")

        raw_status = payload.get("status")
        try:
            status = TaskStatus(raw_status) if raw_status is not None else None
        except ValueError as error:
            raise TaskDecodeError(f"Unknown task status: {raw_status!r}") from error

        input_data = payload.get("inputData") or {}
        output_data = payload.get("outputData") or {}
        if not isinstance(input_data, dict):
            raise TaskDecodeError("task.inputData must be an object")
        if not isinstance(output_data, dict):
            raise TaskDecodeError("task.outputData must be an object")

        raw_logs = payload.get("logs") or []
        if not isinstance(raw_logs, list):
            raise TaskDecodeError("task.logs must be an array")

        task = cls(
            status=status,
            input_data=dict(input_data),
            output_data=dict(output_data),
            logs=[TaskLog.from_dict(entry) for entry in raw_logs],
            extra={key: value for key, value in payload.items() if key not in _KNOWN_KEYS},
            _null_keys=frozenset(
                key for key, value in payload.items() if key in _KNOWN_KEYS and value is None
            ),
        )
        for attribute, key in _PASSTHROUGH_FIELDS:
            setattr(task, attribute, payload.get(key))
        return task

    def to_dict(self) -> dict[str, JsonValue]:
        """Serialize for ``POST tasks/``.

        Fields that were never set are omitted; fields the coordinator sent as
        ``null`` go back as ``null``.
        """

        payload: dict[str, JsonValue] = dict(self.extra)
        for attribute, key in _PASSTHROUGH_FIELDS:
            value = getattr(self, attribute)
            if value is not None or key in self._null_keys:
                payload[key] = value
        if self.status is not None:
            payload["status"] = self.status.value
        elif "status" in self._null_keys:
            payload["status"] = None
        if not self.input_data and "inputData" in self._null_keys:
            payload["inputData"] = None
        else:
            payload["inputData"] = self.input_data
        payload["outputData"] = self.output_data
        payload["logs"] = [entry.to_dict() for entry in self.logs]
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def add_log(self, message: str) -> TaskLog:
        """Append a log entry stamped with the current UTC epoch second."""

        entry = TaskLog(
            message=message,
            task_id=self.task_id,
            created_time=int(datetime.now(tz=UTC).timestamp()),
        )
        self.logs.append(entry)
        return entry

    def complete(self, output: dict[str, JsonValue] | None = None) -> Task:
        self.status = TaskStatus.COMPLETED
        if output:
            self.output_data.update(output)
        return self

    def fail(self, reason: str, output: dict[str, JsonValue] | None = None) -> Task:
        """Mark the task FAILED, recording ``reason`` in output and logs."""

        self.status = TaskStatus.FAILED
        if output:
            self.output_data.update(output)
        self.output_data["error"] = reason
        self.add_log(reason)
        return self

    def keep_in_progress(
        self,
        callback_after_seconds: int,
        output: dict[str, JsonValue] | None = None,
    ) -> Task:
        """Report IN_PROGRESS so the coordinator re-delivers after a delay."""

        if callback_after_seconds < 0:
            raise ValueError("callback_after_seconds must be >= 0")
        self.status = TaskStatus.IN_PROGRESS
        self.callback_after_seconds = callback_after_seconds
        if output:
            self.output_data.update(output)
        return self


def decode_task(body: str) -> Task | None:
    """Decode a single-poll body; an empty body means no task is available."""

    if not body.strip():
        return None
    payload = _load_json(body)
    if payload is None:
        return None
    return _polled_task(payload)


def decode_task_list(body: str) -> list[Task]:
    """Decode a batch-poll body; an empty body is an empty batch."""

    if not body.strip():
        return []
    payload = _load_json(body)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise TaskDecodeError("Expected JSON array of tasks for batch poll")
    return [_polled_task(item) for item in payload]


def _polled_task(payload: Any) -> Task:
    task = Task.from_dict(payload)
    if not task.task_id:
        raise TaskDecodeError("Polled task is missing taskId")
    return task


def _load_json(body: str) -> Any:
    try:
        return json.loads(body)
    except json.JSONDecodeError as error:
        raise TaskDecodeError(f"Malformed task JSON: {error}") from error
