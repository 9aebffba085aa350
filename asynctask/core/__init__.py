"""Core module - task lifecycle runtime."""

from .cancellation import CancellationScope, current_scope
from .errors import TaskAbortError, TaskError, TaskStateError
from .state_machine import StateTransition, TaskRecord, TaskStatus, is_live
from .store import TaskStore
from .task_runner import ExecGate, TaskContext, TaskResult, TaskRunner, run_task

__all__ = [
    "CancellationScope",
    "current_scope",
    "ExecGate",
    "StateTransition",
    "TaskAbortError",
    "TaskContext",
    "TaskError",
    "TaskRecord",
    "TaskResult",
    "TaskRunner",
    "TaskStateError",
    "TaskStatus",
    "TaskStore",
    "is_live",
    "run_task",
]
