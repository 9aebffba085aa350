"""Task runner for executing a single run of a task body."""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from asynctask.core.cancellation import CancellationScope, _enclosing_scope, current_scope
from asynctask.core.errors import TaskAbortError
from asynctask.core.state_machine import TaskRecord, TaskStatus
from asynctask.utils.logger import TaskLogger

logger = logging.getLogger(__name__)


@dataclass
class TaskResult:
    """Settlement of one task run."""

    status: TaskStatus
    error: BaseException | None = None
    value: Any = None

    @property
    def ok(self) -> bool:
        """Whether the run completed normally."""
        return self.status is TaskStatus.COMPLETE

    @property
    def aborted(self) -> bool:
        return self.status is TaskStatus.ABORTED

    @property
    def failed(self) -> bool:
        return self.status is TaskStatus.FAILED

    def unwrap(self) -> Any:
        """Return the value, or raise the error that settled the run."""
        if self.error is not None:
            raise self.error
        return self.value


def _unwrap(value: Any) -> Any:
    if isinstance(value, TaskResult):
        return value.unwrap()
    return value


async def _unwrap_awaitable(awaitable: Awaitable[Any]) -> Any:
    return _unwrap(await awaitable)


def _retrieve_exception(future: asyncio.Future) -> None:
    # Unawaited exec() futures must not warn; the nested record keeps the error.
    if not future.cancelled():
        future.exception()


class ExecGate:
    """
    Guarded entry point handed to a running task body as ``exec``.

    Refuses to run once the owning run is cancelled or stale, links tasks
    started by the callback to the run's scope, and raises a nested task's
    failure as an ordinary exception.
    """

    def __init__(self, record: TaskRecord, scope: CancellationScope):
        self._record = record
        self._scope = scope

    def check(self) -> None:
        """Raise TaskAbortError if the run may no longer act."""
        if not self._record.live or not self._record.pending or self._scope.aborted:
            raise TaskAbortError(self._scope.reason)

    def __call__(self, callback: Callable[..., Any], *args: Any, **kwargs: Any) -> asyncio.Future:
        """
        Invoke callback under the run's cancellation scope.

        Returns:
            Future resolving to the callback's (awaited, unwrapped) value

        Raises:
            TaskAbortError: if the run was cancelled, reset or destroyed
        """
        self.check()

        token = _enclosing_scope.set(self._scope)
        try:
            ret = callback(*args, **kwargs)
            context = contextvars.copy_context()
        finally:
            _enclosing_scope.reset(token)

        if inspect.isawaitable(ret):
            # A coroutine callback runs under the scope it was called with.
            future = context.run(asyncio.ensure_future, _unwrap_awaitable(ret))
            future.add_done_callback(_retrieve_exception)
            return future

        future = asyncio.get_running_loop().create_future()
        future.set_result(_unwrap(ret))
        return future


@dataclass
class TaskContext:
    """What a task body receives."""

    signal: CancellationScope
    exec: ExecGate
    record: TaskRecord


TaskBody = Callable[[TaskContext], Awaitable[Any]]


class TaskRunner:
    """
    Runs a single task body and keeps its record in sync:
    PENDING -> (COMPLETE | FAILED | ABORTED)

    Every write to the record goes through the stale-run guard, so a run
    that was reset, superseded or whose owner was destroyed never touches
    the record again.
    """

    def __init__(
        self,
        record: TaskRecord,
        body: TaskBody,
        *,
        parent: CancellationScope | None = None,
    ):
        self._record = record
        self._body = body
        self._parent = parent
        self._scope = CancellationScope(record.name)
        self._log = TaskLogger(record.name or "task")
        self._settled: asyncio.Future[TaskResult] | None = None
        self._body_task: asyncio.Task | None = None

    @property
    def record(self) -> TaskRecord:
        return self._record

    @property
    def scope(self) -> CancellationScope:
        """Cancellation scope of this run."""
        return self._scope

    def start(self) -> asyncio.Task[TaskResult]:
        """
        Start the run.

        Everything up to scheduling the body happens synchronously, so the
        record is PENDING as soon as this returns.

        Returns:
            asyncio.Task resolving to the run's TaskResult. Cancelling it
            aborts the run.
        """
        if self._settled is not None:
            raise RuntimeError("TaskRunner can only be started once")

        loop = asyncio.get_running_loop()
        record = self._record
        scope = self._scope
        parent = self._parent if self._parent is not None else current_scope()

        record.abort("superseded")

        self._settled = loop.create_future()
        started = record._begin(scope)
        if started:
            self._log.debug("Run started")

        context = TaskContext(signal=scope, exec=ExecGate(record, scope), record=record)
        self._body_task = loop.create_task(self._drive(context))
        self._body_task.add_done_callback(self._on_body_done)

        scope.add_listener(self._on_abort)
        if parent is not None:
            scope.link(parent)
        if not started:
            scope.abort("not live")

        waiter = loop.create_task(self._wait())
        waiter.add_done_callback(self._on_waiter_done)
        return waiter

    async def _drive(self, context: TaskContext) -> Any:
        # Nested bodies never inherit the enclosing exec() window.
        _enclosing_scope.set(None)
        return await self._body(context)

    async def _wait(self) -> TaskResult:
        try:
            return await asyncio.shield(self._settled)
        except asyncio.CancelledError:
            self._scope.abort("cancelled")
            raise

    def _on_waiter_done(self, waiter: asyncio.Task) -> None:
        # Cancelled before its first step, so _wait never saw it.
        if waiter.cancelled():
            self._scope.abort("cancelled")

    def _on_abort(self, scope: CancellationScope) -> None:
        error = TaskAbortError(scope.reason)
        if self._record._settle(scope, TaskStatus.ABORTED, error=error):
            self._log.state_change(TaskStatus.PENDING.value, TaskStatus.ABORTED.value)
        self._finish(TaskResult(TaskStatus.ABORTED, error))

        if self._body_task is not None and not self._body_task.done():
            self._body_task.cancel()

    def _on_body_done(self, task: asyncio.Task) -> None:
        scope = self._scope

        if task.cancelled():
            if not scope.aborted:
                scope.abort("cancelled")
            result = TaskResult(TaskStatus.ABORTED, TaskAbortError(scope.reason))
        else:
            exc = task.exception()
            if isinstance(exc, TaskAbortError):
                result = TaskResult(TaskStatus.ABORTED, exc)
            elif scope.aborted:
                result = TaskResult(TaskStatus.ABORTED, TaskAbortError(scope.reason))
            elif exc is not None:
                result = TaskResult(TaskStatus.FAILED, exc)
            else:
                result = TaskResult(TaskStatus.COMPLETE, value=task.result())

        if self._record._settle(scope, result.status, error=result.error, result=result.value):
            self._log.state_change(TaskStatus.PENDING.value, result.status.value)
            if result.failed:
                self._log.error(f"Run failed: {result.error!r}")

        self._finish(result)

        scope.remove_listener(self._on_abort)
        scope.unlink()

    def _finish(self, result: TaskResult) -> None:
        if self._settled is not None and not self._settled.done():
            self._settled.set_result(result)


def run_task(
    record: TaskRecord,
    body: TaskBody,
    *,
    parent: CancellationScope | None = None,
) -> asyncio.Task[TaskResult]:
    """
    Run an async task body while keeping record's lifecycle up to date.

    The body is an ``async def`` receiving a TaskContext with two tools:

    ``signal`` is the run's CancellationScope. Check ``signal.aborted``,
    subscribe with ``signal.add_listener()`` or await ``signal.wait()`` to
    stop external work when the run is cancelled.

    ``exec`` guards state updates and nested task calls. A callback passed
    to ``exec`` is not invoked once the run is aborted, and a task started
    from inside the callback, including from an ``async def`` callback, is
    cancelled together with this one. If that task fails, the failure is
    raised from ``await exec(...)``; an exec() future that is never awaited
    does not report it to the body.

    Example::

        class ItemStore(TaskStore):
            def load_item(self, item_id):
                async def body(ctx):
                    data = await api.fetch_item(item_id)
                    ctx.exec(setattr, self, "item", data)

                return self.run("load_item", body)

            def load_user(self):
                async def body(ctx):
                    user = await api.fetch_user()
                    # A failure in load_item propagates here.
                    await ctx.exec(self.load_item, user.item_id)

                return self.run("load_user", body)

    Args:
        record: TaskRecord holding the task status
        body: Coroutine function performing the work
        parent: Scope to chain to. Defaults to the scope of the enclosing
            exec() call, if any.

    Returns:
        asyncio.Task resolving to a TaskResult
    """
    return TaskRunner(record, body, parent=parent).start()
