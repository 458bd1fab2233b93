"""Blocking HTTP client for the coordinator task queue."""

from __future__ import annotations

import logging

import httpx

from conductor_worker.errors import QueueClientError, QueueTransportError, TaskDecodeError
from conductor_worker.models import Task, decode_task, decode_task_list

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_BATCH_COUNT = 10
DEFAULT_BATCH_TIMEOUT_MS = 120

__all__ = [
    "QueueClient",
    "QueueClientError",
    "QueueTransportError",
    "TaskDecodeError",
]


class QueueClient:
    """Stateless poll/ack/update operations against the coordinator REST API.

    One instance may be shared by every worker loop of a pool: the underlying
    ``httpx.Client`` pools connections and each call carries no session state.
    No retries are attempted; failures surface as :class:`QueueClientError`.
    """

    def __init__(
        self,
        server_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.server_url = server_url
        self._logger = logger or logging.getLogger(__name__)
        base_url = server_url if server_url.endswith("/") else f"{server_url}/"
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def poll_one(
        self,
        task_type: str,
        worker_id: str | None = None,
        domain: str | None = None,
    ) -> Task | None:
        """Poll one task; ``None`` when the coordinator has nothing ready."""

        response = self._send(
            "GET",
            f"tasks/poll/{task_type}",
            params=_filters(worker_id=worker_id, domain=domain),
        )
        if response.status_code == httpx.codes.NO_CONTENT:
            return None
        return decode_task(response.text)

    def poll_batch(  # noqa: PLR0913
        self,
        task_type: str,
        count: int = DEFAULT_BATCH_COUNT,
        timeout: int = DEFAULT_BATCH_TIMEOUT_MS,
        worker_id: str | None = None,
        domain: str | None = None,
    ) -> list[Task]:
        """Long-poll up to ``count`` tasks, waiting at most ``timeout`` ms server-side."""

        params = {"count": count, "timeout": timeout}
        params.update(_filters(worker_id=worker_id, domain=domain))
        response = self._send(
            "GET",
            f"tasks/poll/batch/{task_type}",
            params=params,
            read_timeout_extra=timeout / 1000,
        )
        if response.status_code == httpx.codes.NO_CONTENT:
            return []
        return decode_task_list(response.text)

    def ack(self, task_id: str, worker_id: str | None = None) -> str:
        """Claim a polled task so it is not redelivered before its lease ends."""

        response = self._send(
            "POST",
            f"tasks/{task_id}/ack",
            params=_filters(worker_id=worker_id),
        )
        self._logger.info("Sent ack for task %s, result: %s", task_id, response.text)
        return response.text

    def update(self, task: Task) -> str:
        """Report status, output and logs for ``task``."""

        response = self._send(
            "POST",
            "tasks/",
            content=task.to_json().encode("utf-8"),
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        self._logger.info(
            "Updated task %s (%s), result: %s",
            task.task_id,
            _status_name(task),
            response.text,
        )
        return response.text

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> QueueClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str | int] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        read_timeout_extra: float = 0.0,
    ) -> httpx.Response:
        overrides: dict[str, httpx.Timeout] = {}
        if read_timeout_extra > 0:
            timeout = self._client.timeout
            overrides["timeout"] = httpx.Timeout(
                timeout.read + read_timeout_extra if timeout.read is not None else None,
                connect=timeout.connect,
            )
        try:
            request = self._client.build_request(
                method,
                path,
                params=params,
                content=content,
                headers=headers,
                **overrides,
            )
            response = self._client.send(request)
        except httpx.TimeoutException as error:
            raise QueueTransportError(f"Timeout on {method} {path}") from error
        except httpx.HTTPError as error:
            raise QueueTransportError(f"{method} {path} failed: {error}") from error

        if not response.is_success:
            raise QueueTransportError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response


def _filters(*, worker_id: str | None = None, domain: str | None = None) -> dict[str, str | int]:
    params: dict[str, str | int] = {}
    if worker_id:
        params["workerid"] = worker_id
    if domain:
        params["domain"] = domain
    return params


def _status_name(task: Task) -> str:
    return task.status.value if task.status is not None else "no status"
