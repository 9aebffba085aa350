"""Cancellation scopes with parent/child chaining."""

from __future__ import annotations

import asyncio
import logging
from contextvars import ContextVar
from typing import Any, Callable

from asynctask.core.errors import TaskAbortError

logger = logging.getLogger(__name__)

AbortListener = Callable[["CancellationScope"], None]

# Set by ExecGate only while it synchronously invokes a callback.
_enclosing_scope: ContextVar[CancellationScope | None] = ContextVar(
    "asynctask_enclosing_scope", default=None
)


def current_scope() -> CancellationScope | None:
    """Scope of the exec() call currently invoking a callback, if any."""
    return _enclosing_scope.get()


class CancellationScope:
    """
    Abort flag for one task run.

    Listeners fire exactly once, synchronously and in registration order,
    when the scope aborts. A scope linked to a parent aborts together with
    it, so aborting an outer run cancels everything started inside it.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._aborted = False
        self._reason: Any = None
        self._listeners: list[AbortListener] = []
        self._parent: CancellationScope | None = None
        self._waiter: asyncio.Future[None] | None = None

    def __repr__(self) -> str:
        state = "aborted" if self._aborted else "active"
        return f"<CancellationScope {self.name or hex(id(self))} {state}>"

    @property
    def aborted(self) -> bool:
        """Whether the scope has been aborted."""
        return self._aborted

    @property
    def reason(self) -> Any:
        """Reason passed to the first abort() call."""
        return self._reason

    @property
    def parent(self) -> CancellationScope | None:
        """Enclosing scope this one is chained to."""
        return self._parent

    def add_listener(self, listener: AbortListener) -> None:
        """
        Register a callback invoked with this scope when it aborts.

        If the scope is already aborted the listener runs immediately.
        """
        if self._aborted:
            listener(self)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def link(self, parent: CancellationScope) -> None:
        """
        Chain this scope under parent.

        Aborting the parent aborts this scope too. Linking to a parent that
        is already aborted aborts this scope immediately.
        """
        if parent is self:
            raise ValueError("A scope cannot be linked to itself")
        self.unlink()
        self._parent = parent
        parent.add_listener(self._on_parent_abort)

    def unlink(self) -> None:
        """Detach from the parent scope, if any."""
        if self._parent is not None:
            self._parent.remove_listener(self._on_parent_abort)
            self._parent = None

    def _on_parent_abort(self, parent: CancellationScope) -> None:
        self.abort(parent.reason)

    def abort(self, reason: Any = None) -> None:
        """
        Abort the scope and, depth-first, every scope linked under it.

        Idempotent: only the first call records a reason and fires listeners.
        """
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        logger.debug(f"Scope {self!r} aborted (reason: {reason!r})")

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(self)

        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    def raise_if_aborted(self) -> None:
        """Raise TaskAbortError if the scope has been aborted."""
        if self._aborted:
            raise TaskAbortError(self._reason)

    async def wait(self) -> None:
        """Wait until the scope is aborted."""
        if self._aborted:
            return
        if self._waiter is None:
            self._waiter = asyncio.get_running_loop().create_future()
        await asyncio.shield(self._waiter)
