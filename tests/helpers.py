# tests/helpers.py

from __future__ import annotations

import asyncio
from typing import Callable


async def wait_until(predicate: Callable[[], bool], *, max_iterations: int = 100) -> None:
    """
    Spin the event loop until predicate() holds.

    Tests gate task bodies with asyncio.Event, so a handful of loop
    iterations is always enough; the bound only turns a hang into a failure.
    """
    for _ in range(max_iterations):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def drain(iterations: int = 20) -> None:
    """Let pending callbacks and cancelled bodies finish unwinding."""
    for _ in range(iterations):
        await asyncio.sleep(0)
