"""Task record and status state machine."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from asynctask.core.errors import TaskStateError

if TYPE_CHECKING:
    from asynctask.core.cancellation import CancellationScope

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    INIT = "init"
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    ABORTED = "aborted"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (
            TaskStatus.COMPLETE,
            TaskStatus.FAILED,
            TaskStatus.ABORTED,
        )

    def is_active(self) -> bool:
        """Check if a run is in flight."""
        return self is TaskStatus.PENDING


# Valid state transitions
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.INIT: {TaskStatus.PENDING, TaskStatus.INIT},
    TaskStatus.PENDING: {
        TaskStatus.COMPLETE,
        TaskStatus.FAILED,
        TaskStatus.ABORTED,
        TaskStatus.INIT,
    },
    TaskStatus.COMPLETE: {TaskStatus.PENDING, TaskStatus.INIT},
    TaskStatus.FAILED: {TaskStatus.PENDING, TaskStatus.INIT},
    TaskStatus.ABORTED: {TaskStatus.PENDING, TaskStatus.INIT},
}


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: TaskStatus
    to_state: TaskStatus
    timestamp: datetime
    message: str = ""


class TaskRecord:
    """
    Observable state of one task.

    Status, error and result are only ever written by the runtime: the
    active run, abort() and reset(). Everything else reads them.
    """

    def __init__(
        self,
        name: str = "",
        *,
        owner: Any = None,
        strict_reset: bool = False,
        history_limit: int = 50,
        on_transition: Callable[[TaskRecord, TaskStatus, TaskStatus], None] | None = None,
    ):
        self.name = name
        self._owner = owner
        self._strict_reset = strict_reset
        self._on_transition = on_transition

        self._status = TaskStatus.INIT
        self._error: BaseException | None = None
        self._result: Any = None
        self._active_scope: CancellationScope | None = None
        self._destroyed = False

        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.transitions: deque[StateTransition] = deque(maxlen=max(1, history_limit))

    def __repr__(self) -> str:
        return f"<TaskRecord {self.name or hex(id(self))} {self._status.value}>"

    @property
    def status(self) -> TaskStatus:
        """Current task status."""
        return self._status

    @property
    def error(self) -> BaseException | None:
        """Error that settled the last run (FAILED or ABORTED)."""
        return self._error

    @property
    def result(self) -> Any:
        """Value returned by the last run (COMPLETE)."""
        return self._result

    @property
    def active_scope(self) -> CancellationScope | None:
        """Cancellation scope of the in-flight run."""
        return self._active_scope

    @property
    def live(self) -> bool:
        """Whether the record and its owner still accept writes."""
        if self._destroyed:
            return False
        if self._owner is not None:
            return bool(getattr(self._owner, "alive", True))
        return True

    @property
    def clean(self) -> bool:
        return self._status is TaskStatus.INIT

    @property
    def pending(self) -> bool:
        return self._status is TaskStatus.PENDING

    @property
    def complete(self) -> bool:
        return self._status is TaskStatus.COMPLETE

    @property
    def failed(self) -> bool:
        return self._status is TaskStatus.FAILED

    @property
    def aborted(self) -> bool:
        return self._status is TaskStatus.ABORTED

    @property
    def unresolved(self) -> bool:
        """Not started yet, or still running."""
        return self._status in (TaskStatus.INIT, TaskStatus.PENDING)

    @property
    def resolved(self) -> bool:
        """Settled with a terminal status."""
        return self._status.is_terminal()

    def can_transition_to(self, new_state: TaskStatus) -> bool:
        """Check if transition to new state is valid."""
        return new_state in VALID_TRANSITIONS.get(self._status, set())

    def abort(self, reason: Any = None) -> None:
        """
        Cancel the in-flight run.

        No-op unless pending. Only the abort flag is set here; the run's own
        abort listener moves the record to ABORTED.
        """
        if self._status is not TaskStatus.PENDING or self._active_scope is None:
            return
        logger.debug(f"Aborting {self!r}")
        self._active_scope.abort(reason)

    def reset(self) -> None:
        """
        Abort any in-flight run and return to INIT immediately.

        Raises:
            TaskStateError: if pending and the strict reset policy is on
        """
        if self._status is TaskStatus.PENDING and self._strict_reset:
            raise TaskStateError("Task cannot be reset while pending.")

        self.abort()
        if not self.live or self._status is TaskStatus.INIT:
            return
        self._apply(TaskStatus.INIT, "Reset")

    def destroy(self) -> None:
        """Stop accepting writes and abort the in-flight run."""
        if self._destroyed:
            return
        self._destroyed = True
        scope = self._active_scope
        if scope is not None:
            scope.abort("destroyed")

    def _begin(self, scope: CancellationScope) -> bool:
        """Enter PENDING for a new run. Used by the runner only."""
        if not self.live:
            return False
        self._apply(TaskStatus.PENDING, "Run started", scope=scope)
        return True

    def _settle(
        self,
        scope: CancellationScope,
        status: TaskStatus,
        error: BaseException | None = None,
        result: Any = None,
    ) -> bool:
        """
        Write a terminal status for the run owning scope.

        Returns False, without writing, when the record is no longer live or
        the run is stale (a reset or a newer run replaced it).
        """
        if not self.live or self._status is not TaskStatus.PENDING or self._active_scope is not scope:
            logger.debug(f"Discarding stale {status.value} settlement for {self!r}")
            return False
        self._apply(status, status.value.capitalize(), error=error, result=result)
        return True

    def _apply(
        self,
        new_state: TaskStatus,
        message: str,
        *,
        error: BaseException | None = None,
        result: Any = None,
        scope: CancellationScope | None = None,
    ) -> None:
        if not self.can_transition_to(new_state):
            raise TaskStateError(
                f"Invalid transition {self._status.value} -> {new_state.value} for {self!r}"
            )

        old_state = self._status
        self._status = new_state
        self._error = error
        self._result = result
        self._active_scope = scope

        now = datetime.now()
        if new_state is TaskStatus.PENDING:
            self.started_at = now
            self.completed_at = None
        elif new_state.is_terminal():
            self.completed_at = now
        else:
            self.started_at = None
            self.completed_at = None

        self.transitions.append(
            StateTransition(from_state=old_state, to_state=new_state, timestamp=now, message=message)
        )

        if self._on_transition:
            self._on_transition(self, old_state, new_state)

    def get_status_display(self) -> str:
        """Get human-readable status string."""
        state_display = {
            TaskStatus.INIT: "Not started",
            TaskStatus.PENDING: "Running...",
            TaskStatus.COMPLETE: "Completed",
            TaskStatus.FAILED: f"Failed: {self._error}" if self._error else "Failed",
            TaskStatus.ABORTED: "Aborted",
        }
        return state_display.get(self._status, str(self._status))

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "status": self._status.value,
            "error": str(self._error) if self._error is not None else None,
            "error_type": type(self._error).__name__ if self._error is not None else None,
            "result": self._result,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


def is_live(record: TaskRecord) -> bool:
    """Liveness probe: False once the record or its owner is destroyed."""
    return record.live
