"""Task store owning task records and their liveness."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from asynctask.config import Settings, get_settings
from asynctask.core.cancellation import CancellationScope
from asynctask.core.state_machine import TaskRecord, TaskStatus
from asynctask.core.task_runner import TaskBody, TaskResult, run_task

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Owns a set of named task records.

    Features:
    - Records created in INIT on first use
    - Liveness: once destroyed, no run writes to its records again
    - Bulk abort and reset
    - Tracking of in-flight runs
    """

    def __init__(
        self,
        settings: Settings | None = None,
        on_task_update: Callable[[str, TaskStatus], None] | None = None,
    ):
        self._settings = settings if settings is not None else get_settings()
        self._records: dict[str, TaskRecord] = {}
        self._active_runs: dict[str, asyncio.Task[TaskResult]] = {}
        self._alive = True
        self._on_task_update = on_task_update

    @property
    def alive(self) -> bool:
        """Whether the store still accepts writes."""
        return self._alive

    @property
    def active_count(self) -> int:
        """Number of runs in flight."""
        return len(self._active_runs)

    @property
    def names(self) -> list[str]:
        return list(self._records)

    def __contains__(self, name: str) -> bool:
        return name in self._records

    def __getitem__(self, name: str) -> TaskRecord:
        return self._records[name]

    def task(self, name: str) -> TaskRecord:
        """Get the record for name, creating it in INIT if needed."""
        record = self._records.get(name)
        if record is None:
            record = self._new_record(name)
            self._records[name] = record
        return record

    def _new_record(self, name: str) -> TaskRecord:
        runtime = self._settings.runtime
        return TaskRecord(
            name,
            owner=self,
            strict_reset=runtime.strict_reset,
            history_limit=runtime.history_limit,
            on_transition=self._handle_transition,
        )

    def _handle_transition(self, record: TaskRecord, old: TaskStatus, new: TaskStatus) -> None:
        """Handle state change of an owned record."""
        if self._settings.runtime.log_transitions:
            logger.debug(f"Task {record.name}: {old.value} -> {new.value}")
        if self._on_task_update:
            self._on_task_update(record.name, new)

    def run(
        self,
        name: str,
        body: TaskBody,
        *,
        parent: CancellationScope | None = None,
    ) -> asyncio.Task[TaskResult]:
        """
        Run body against the named record.

        Args:
            name: Task name
            body: Coroutine function performing the work
            parent: Scope to chain to (defaults to the enclosing exec() scope)

        Returns:
            asyncio.Task resolving to the run's TaskResult
        """
        run = run_task(self.task(name), body, parent=parent)
        self._active_runs[name] = run
        run.add_done_callback(lambda t: self._forget_run(name, t))
        return run

    def _forget_run(self, name: str, run: asyncio.Task) -> None:
        if self._active_runs.get(name) is run:
            del self._active_runs[name]

    def abort_task(self, name: str, reason: Any = None) -> bool:
        """
        Abort a pending task.

        Returns:
            True if the task was pending
        """
        record = self._records.get(name)
        if record is None or not record.pending:
            return False
        record.abort(reason)
        logger.info(f"Task {name} aborted")
        return True

    def abort_all(self, reason: Any = None) -> None:
        """Abort every pending task."""
        for record in list(self._records.values()):
            record.abort(reason)

    def reset_all(self) -> None:
        """Reset every task to INIT."""
        for record in list(self._records.values()):
            record.reset()

    def destroy(self) -> None:
        """
        Destroy the store.

        Records stop accepting writes first, then in-flight runs are
        aborted, so awaiting callers get ABORTED while records stay as they
        were.
        """
        if not self._alive:
            return
        self._alive = False
        self.abort_all("destroyed")
        logger.info(f"Task store destroyed ({len(self._records)} tasks)")

    def replace(self) -> None:
        """
        Start a fresh generation of records with the same names.

        Old records are destroyed, so runs still in flight against them can
        no longer write anywhere.
        """
        old = self._records
        for record in old.values():
            record.destroy()
        self._records = {name: self._new_record(name) for name in old}
        logger.debug(f"Task store replaced ({len(old)} tasks)")

    def get_active_status(self) -> list[dict]:
        """Get in-flight runs status."""
        return [
            {"name": name, "running": not run.done()}
            for name, run in self._active_runs.items()
        ]

    def to_dict(self) -> dict[str, dict]:
        """Snapshot of every record."""
        return {name: record.to_dict() for name, record in self._records.items()}
