"""Task worker runtime for a Conductor-style workflow coordinator.

A :class:`WorkerPool` runs independent polling loops against the coordinator's
REST queue. Each loop sleeps, polls one task, acks it, hands it to a
user-supplied executor and reports the returned task back:

    pool = WorkerPool(
        client=QueueClient("http://localhost:8080/api"),
        executor=my_executor,
        task_type="resize_image",
        thread_count=4,
    )
    pool.run_forever()

Delivery is at-least-once: an ack failure does not stop execution, and a task
that is never updated is redelivered by the coordinator when its lease ends.
"""

from conductor_worker.client import QueueClient
from conductor_worker.errors import QueueClientError, QueueTransportError, TaskDecodeError
from conductor_worker.executor import TaskExecutor, load_executor, sample_executor
from conductor_worker.models import REPORTABLE_STATUSES, Task, TaskLog, TaskStatus
from conductor_worker.pool import WorkerPool
from conductor_worker.worker import WorkerLoop, WorkerRunSummary

__version__ = "0.1.0"

__all__ = [
    "REPORTABLE_STATUSES",
    "QueueClient",
    "QueueClientError",
    "QueueTransportError",
    "Task",
    "TaskDecodeError",
    "TaskExecutor",
    "TaskLog",
    "TaskStatus",
    "WorkerLoop",
    "WorkerPool",
    "WorkerRunSummary",
    "__version__",
    "load_executor",
    "sample_executor",
]
