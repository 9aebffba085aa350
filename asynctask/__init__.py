"""Observable, cancellable, composable asyncio tasks."""

from asynctask.core import (
    CancellationScope,
    ExecGate,
    TaskAbortError,
    TaskContext,
    TaskError,
    TaskRecord,
    TaskResult,
    TaskRunner,
    TaskStateError,
    TaskStatus,
    TaskStore,
    is_live,
    run_task,
)

__version__ = "1.0.0"

__all__ = [
    "CancellationScope",
    "ExecGate",
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
