"""CLI entrypoint for conductor-worker."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import rich_click as click

from conductor_worker import __version__
from conductor_worker.controllers import (
    CommandResult,
    ConnectionOptions,
    TaskAckCommand,
    TaskBatchPollCommand,
    TaskPollCommand,
    TaskUpdateCommand,
    WorkerCliController,
    WorkerRunCommand,
)
from conductor_worker.errors import QueueClientError

click.rich_click.USE_MARKDOWN = True
WORKER_CONTROLLER = WorkerCliController()


def connection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach coordinator connection overrides to a command."""

    func = click.option(
        "--domain",
        default=None,
        help="Task domain filter. Defaults to CONDUCTOR_WORKER_DOMAIN.",
    )(func)
    func = click.option(
        "--worker-id",
        default=None,
        help="Worker identity sent with poll and ack. Defaults to CONDUCTOR_WORKER_WORKER_ID.",
    )(func)
    return click.option(
        "--server-url",
        default=None,
        help="Coordinator base URL, e.g. http://localhost:8080/api. "
        "Defaults to CONDUCTOR_WORKER_SERVER_URL.",
    )(func)


@click.group()
@click.version_option(version=__version__, prog_name="conductor-worker")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging level.",
)
def conductor_worker(log_level: str) -> None:
    """Conductor task worker CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )


@conductor_worker.command("run")
@connection_options
@click.option(
    "--task-type",
    default=None,
    help="Task type to poll. Defaults to CONDUCTOR_WORKER_TASK_TYPE.",
)
@click.option(
    "--executor",
    default=None,
    help="Executor as `package.module:callable`. Defaults to the built-in sample executor.",
)
@click.option(
    "--threads",
    "thread_count",
    type=click.IntRange(min=1, max=256),
    default=None,
    help="Number of polling threads. Defaults to CONDUCTOR_WORKER_THREAD_COUNT.",
)
@click.option(
    "--poll-interval",
    "poll_interval_seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to sleep before each poll. Defaults to CONDUCTOR_WORKER_POLL_INTERVAL_SECONDS.",
)
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run one poll-ack-execute-update cycle or loop until SIGINT/SIGTERM.",
)
def run(  # noqa: PLR0913
    server_url: str | None,
    worker_id: str | None,
    domain: str | None,
    task_type: str | None,
    executor: str | None,
    thread_count: int | None,
    poll_interval_seconds: float | None,
    once: bool,
) -> None:
    """Run a pool of task workers."""

    _emit(
        lambda: WORKER_CONTROLLER.run_worker(
            WorkerRunCommand(
                connection=ConnectionOptions(
                    server_url=server_url,
                    worker_id=worker_id,
                    domain=domain,
                ),
                task_type=task_type,
                executor=executor,
                thread_count=thread_count,
                poll_interval_seconds=poll_interval_seconds,
                once=once,
            ),
        ),
        failure_message="Worker cycle failed.",
    )


@conductor_worker.group()
def tasks() -> None:
    """Direct task queue operations."""


@tasks.command("poll")
@connection_options
@click.option("--task-type", required=True, help="Task type to poll.")
def tasks_poll(
    server_url: str | None,
    worker_id: str | None,
    domain: str | None,
    task_type: str,
) -> None:
    """Poll one task and print it without acking."""

    _emit(
        lambda: WORKER_CONTROLLER.poll(
            TaskPollCommand(
                connection=ConnectionOptions(server_url, worker_id, domain),
                task_type=task_type,
            ),
        ),
    )


@tasks.command("poll-batch")
@connection_options
@click.option("--task-type", required=True, help="Task type to poll.")
@click.option(
    "--count",
    type=click.IntRange(min=1, max=1000),
    default=None,
    help="Max tasks to poll. Defaults to CONDUCTOR_WORKER_BATCH_COUNT.",
)
@click.option(
    "--timeout",
    "timeout_ms",
    type=click.IntRange(min=0),
    default=None,
    help="Long-poll timeout in milliseconds. Defaults to CONDUCTOR_WORKER_BATCH_TIMEOUT_MS.",
)
def tasks_poll_batch(  # noqa: PLR0913
    server_url: str | None,
    worker_id: str | None,
    domain: str | None,
    task_type: str,
    count: int | None,
    timeout_ms: int | None,
) -> None:
    """Poll a batch of tasks and print them without acking."""

    _emit(
        lambda: WORKER_CONTROLLER.poll_batch(
            TaskBatchPollCommand(
                connection=ConnectionOptions(server_url, worker_id, domain),
                task_type=task_type,
                count=count,
                timeout_ms=timeout_ms,
            ),
        ),
    )


@tasks.command("ack")
@connection_options
@click.option("--task-id", required=True, help="Task id.")
def tasks_ack(
    server_url: str | None,
    worker_id: str | None,
    domain: str | None,
    task_id: str,
) -> None:
    """Acknowledge a polled task."""

    _emit(
        lambda: WORKER_CONTROLLER.ack(
            TaskAckCommand(
                connection=ConnectionOptions(server_url, worker_id, domain),
                task_id=task_id,
            ),
        ),
    )


@tasks.command("update")
@connection_options
@click.option(
    "--task-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="JSON file with the full task to report.",
)
def tasks_update(
    server_url: str | None,
    worker_id: str | None,
    domain: str | None,
    task_file: Path,
) -> None:
    """Report a task's status, output and logs from a JSON file."""

    _emit(
        lambda: WORKER_CONTROLLER.update(
            TaskUpdateCommand(
                connection=ConnectionOptions(server_url, worker_id, domain),
                task_file=task_file,
            ),
        ),
    )


def _emit(
    action: Callable[[], CommandResult],
    *,
    failure_message: str = "Command failed.",
) -> None:
    try:
        result = action()
    except QueueClientError as error:
        raise click.ClickException(f"Coordinator request failed: {error}") from error
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    for line in result.lines:
        click.echo(line)
    if not result.success:
        raise click.ClickException(failure_message)


if __name__ == "__main__":  # pragma: no cover
    conductor_worker()
