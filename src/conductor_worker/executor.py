"""Task executor contract and helpers for resolving executors."""

from __future__ import annotations

import importlib
import logging
from typing import Protocol

from conductor_worker.models import Task

logger = logging.getLogger(__name__)

SAMPLE_EXECUTOR_PATH = "conductor_worker.executor:sample_executor"


class TaskExecutor(Protocol):
    """Business logic invoked once per polled task.

    Receives the task with ``status=IN_PROGRESS`` and populated ``input_data``
    and returns it with a reportable status, final ``output_data`` and any
    appended logs. Must not poll, ack or update on its own, and must be safe
    to call concurrently with different task instances.
    """

    def __call__(self, task: Task) -> Task:
        """Execute ``task`` and return the task to report."""


def sample_executor(task: Task) -> Task:
    """Complete every task without doing any work."""

    logger.info("Running sample executor for task %s", task.task_id)
    task.complete({"result": "Nothing to return"})
    task.add_log("Nothing to do")
    return task


def load_executor(reference: str) -> TaskExecutor:
    """Resolve ``package.module:attribute`` to a callable executor."""

    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name.strip() or not attribute.strip():
        raise ValueError(
            f"Invalid executor reference {reference!r}. Expected format 'package.module:callable'.",
        )
    try:
        module = importlib.import_module(module_name.strip())
    except ImportError as error:
        raise ValueError(f"Cannot import executor module {module_name!r}: {error}") from error

    target: object = module
    for part in attribute.strip().split("."):
        try:
            target = getattr(target, part)
        except AttributeError as error:
            raise ValueError(f"Executor {reference!r} not found: {error}") from error
    if not callable(target):
        raise ValueError(f"Executor {reference!r} is not callable.")
    return target
