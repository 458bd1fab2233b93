from __future__ import annotations

import json
from collections.abc import Callable

import allure
import httpx
import pytest

from conductor_worker.client import QueueClient
from conductor_worker.errors import QueueClientError, QueueTransportError, TaskDecodeError
from conductor_worker.models import Task, TaskStatus

pytestmark = [
    allure.epic("Queue Client"),
    allure.feature("Coordinator REST Surface"),
]

SERVER_URL = "http://conductor.test/api"


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    requests: list[httpx.Request] | None = None,
) -> QueueClient:
    def _record(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return handler(request)

    return QueueClient(SERVER_URL, transport=httpx.MockTransport(_record))


def test_poll_one_returns_task_and_sends_filters(task_payload) -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _: httpx.Response(200, json=task_payload), requests)

    task = client.poll_one("resize_image", worker_id="node-1", domain="eu")

    assert task is not None
    assert task.task_id == task_payload["taskId"]
    assert task.status == TaskStatus.IN_PROGRESS
    request = requests[0]
    assert request.method == "GET"
    assert request.url.path == "/api/tasks/poll/resize_image"
    assert dict(request.url.params) == {"workerid": "node-1", "domain": "eu"}


def test_poll_one_omits_empty_filters(task_payload) -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _: httpx.Response(200, json=task_payload), requests)

    client.poll_one("resize_image", worker_id="", domain=None)

    assert dict(requests[0].url.params) == {}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b""),
        httpx.Response(204),
        httpx.Response(200, content=b"null"),
    ],
)
def test_poll_one_empty_response_is_absent(response: httpx.Response) -> None:
    client = _client(lambda _: response)

    assert client.poll_one("resize_image") is None


def test_poll_one_http_error_is_not_absent() -> None:
    client = _client(lambda _: httpx.Response(500, text="boom"))

    with pytest.raises(QueueTransportError) as excinfo:
        client.poll_one("resize_image")

    assert excinfo.value.status_code == 500


def test_poll_one_connection_error_is_transport_error() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(_refuse)

    with pytest.raises(QueueTransportError, match="failed"):
        client.poll_one("resize_image")


def test_poll_one_timeout_is_transport_error() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(_timeout)

    with pytest.raises(QueueTransportError, match="Timeout"):
        client.poll_one("resize_image")


def test_poll_one_malformed_body_is_decode_error() -> None:
    client = _client(lambda _: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(TaskDecodeError):
        client.poll_one("resize_image")


def test_poll_batch_sends_count_and_timeout(make_payload) -> None:
    requests: list[httpx.Request] = []
    body = [make_payload("a"), make_payload("b")]
    client = _client(lambda _: httpx.Response(200, json=body), requests)

    tasks = client.poll_batch("resize_image", count=5, timeout=200, worker_id="node-1")

    assert [task.task_id for task in tasks] == ["a", "b"]
    request = requests[0]
    assert request.url.path == "/api/tasks/poll/batch/resize_image"
    assert dict(request.url.params) == {"count": "5", "timeout": "200", "workerid": "node-1"}


@pytest.mark.parametrize("content", [b"", b"[]"])
def test_poll_batch_empty_is_empty_list(content: bytes) -> None:
    client = _client(lambda _: httpx.Response(200, content=content))

    assert client.poll_batch("resize_image") == []


def test_ack_posts_to_task_path() -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _: httpx.Response(200, text="true"), requests)

    result = client.ack("t-1", worker_id="node-1")

    assert result == "true"
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/tasks/t-1/ack"
    assert dict(request.url.params) == {"workerid": "node-1"}


def test_ack_failure_raises() -> None:
    client = _client(lambda _: httpx.Response(404, text="not found"))

    with pytest.raises(QueueClientError):
        client.ack("t-1")


def test_update_posts_full_task_json(task_payload) -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _: httpx.Response(200, text="t-1"), requests)
    task = Task.from_dict(task_payload).complete({"result": "ok"})
    task.add_log("done")

    result = client.update(task)

    assert result == "t-1"
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/tasks/"
    assert request.headers["content-type"].startswith("application/json")
    sent = json.loads(request.content)
    assert sent == task.to_dict()
    for key in task_payload:
        assert key in sent


def test_update_twice_with_terminal_status_is_harmless(task_payload) -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _: httpx.Response(200, text="t-1"), requests)
    task = Task.from_dict(task_payload).complete({"result": "ok"})
    before = task.to_dict()

    client.update(task)
    client.update(task)

    assert task.to_dict() == before
    assert len(requests) == 2
    assert json.loads(requests[0].content) == json.loads(requests[1].content)


def test_client_is_a_context_manager(task_payload) -> None:
    with _client(lambda _: httpx.Response(200, json=task_payload)) as client:
        assert client.poll_one("resize_image") is not None
