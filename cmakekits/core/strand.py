"""
Ordered execution of asynchronous work.

A Strand runs the tasks handed to it one at a time, in the order they were
submitted. Each submission returns its own task handle which resolves (or
fails) with that task's outcome. A failing task never blocks or cancels the
tasks queued behind it.

Usage:
    from cmakekits.core.strand import Strand

    strand = Strand()
    first = strand.execute(lambda: add_project(root_a))
    second = strand.execute(lambda: add_project(root_b))
    await second  # first has already finished
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Strand:
    """
    FIFO serializer for asynchronous tasks.

    Every task waits for the completion (successful or not) of the task
    submitted before it. Tasks are started immediately as asyncio tasks, so
    they make progress even if the submitter never awaits the handle.

    Attributes:
        name: Label used in log messages
    """

    def __init__(self, name: str = "strand"):
        self.name = name
        self._tail: Optional[asyncio.Task] = None
        self._submitted = 0

    def execute(self, fn: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """
        Enqueue an asynchronous task.

        Must be called from a running event loop.

        Args:
            fn: Zero-argument callable returning an awaitable

        Returns:
            Task resolving with the result of ``fn()``
        """
        previous = self._tail
        self._submitted += 1
        seq = self._submitted

        async def _run() -> T:
            if previous is not None and not previous.done():
                # asyncio.wait never raises the awaited task's exception
                await asyncio.wait([previous])
            logger.debug(f"[{self.name}] running task #{seq}")
            return await fn()

        task = asyncio.ensure_future(_run())
        self._tail = task
        return task

    @property
    def idle(self) -> bool:
        """True when no submitted task is pending."""
        return self._tail is None or self._tail.done()

    async def drain(self) -> None:
        """Wait until every task submitted so far has finished."""
        tail = self._tail
        if tail is not None and not tail.done():
            await asyncio.wait([tail])


__all__ = ["Strand"]
