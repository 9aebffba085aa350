"""Errors raised by the task runtime."""

from __future__ import annotations

from typing import Any


class TaskError(Exception):
    """Base class for task runtime errors."""


class TaskAbortError(TaskError):
    """Raised when a task run has been cancelled.

    This is the only error produced by cancellation, by a destroyed owner,
    or by a reset while a run is pending, so callers need a single check.
    """

    def __init__(self, reason: Any = None):
        super().__init__("Task was aborted.")
        self.reason = reason


class TaskStateError(TaskError):
    """Raised on an illegal status transition."""
