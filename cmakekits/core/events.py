"""
Change notifications with disposable subscriptions.

Drivers publish changes (project name, busy flag, targets, ...) through
``Event`` instances. Subscribers register a callback and get back a
``Subscription`` whose ``dispose()`` removes the callback again.
"""

import logging
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by ``Event.subscribe``."""

    def __init__(self, dispose_fn: Optional[Callable[[], None]] = None):
        self._dispose_fn = dispose_fn

    def dispose(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self._dispose_fn is not None:
            self._dispose_fn()
            self._dispose_fn = None


class Event(Generic[T]):
    """
    A list of labelled callbacks fired with a single value.

    A callback that raises is logged and skipped; the remaining callbacks
    still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Tuple[str, Callable[[T], None]]] = []

    def subscribe(
        self, callback: Callable[[T], None], *, label: Optional[str] = None
    ) -> Subscription:
        entry = (label or f"{self.name}.callback_{len(self._callbacks)}", callback)
        self._callbacks.append(entry)

        def _remove():
            if entry in self._callbacks:
                self._callbacks.remove(entry)

        return Subscription(_remove)

    def fire(self, value: T) -> None:
        for label, callback in list(self._callbacks):
            try:
                callback(value)
            except Exception as e:
                logger.warning(f"{self.name}: subscriber {label} failed: {e}")

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)


__all__ = ["Event", "Subscription"]
