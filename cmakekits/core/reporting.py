"""
Default error-tracking channel.

Consistency violations and failures of background tasks are reported here
instead of being raised into callers. Reports go to the ``cmakekits.errors``
logger.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from cmakekits.core.interfaces import ErrorReporter

logger = logging.getLogger("cmakekits.errors")

T = TypeVar("T")


def _format_context(context: dict) -> str:
    if not context:
        return ""
    return " " + " ".join(f"{k}={v!r}" for k, v in sorted(context.items()))


class LoggingErrorReporter(ErrorReporter):
    """ErrorReporter writing to the standard logging system."""

    def __init__(self):
        self.error_count = 0

    def error(self, message: str, **context: Any) -> None:
        self.error_count += 1
        logger.error(f"{message}{_format_context(context)}")

    def exception(self, message: str, exc: BaseException, **context: Any) -> None:
        self.error_count += 1
        logger.error(
            f"{message}: {type(exc).__name__}: {exc}{_format_context(context)}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def take_task(
    reporter: ErrorReporter, what: str, task: "asyncio.Future", **context: Any
) -> "asyncio.Future":
    """
    Route the failure of a background task to ``reporter``.

    Cancellation is not reported.

    Returns:
        The same task, for chaining
    """

    def _done(t: "asyncio.Future"):
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            reporter.exception(what, exc, **context)

    task.add_done_callback(_done)
    return task


async def invoke_reported(
    reporter: ErrorReporter, what: str, aw: Awaitable[T], **context: Any
) -> Optional[T]:
    """
    Await ``aw``; on failure report it and return None.
    """
    try:
        return await aw
    except asyncio.CancelledError:
        raise
    except Exception as e:
        reporter.exception(what, e, **context)
        return None


__all__ = ["LoggingErrorReporter", "take_task", "invoke_reported"]
