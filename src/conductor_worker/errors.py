"""Errors raised while talking to the coordinator."""

from __future__ import annotations


class QueueClientError(Exception):
    """Base class for failed coordinator round trips."""


class QueueTransportError(QueueClientError):
    """Connection failure, timeout, or non-success HTTP status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TaskDecodeError(QueueClientError, ValueError):
    """Coordinator body could not be decoded into tasks."""
