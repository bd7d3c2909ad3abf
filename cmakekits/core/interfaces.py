"""
Collaborator interfaces for CMakeKits.

This module defines the abstract interfaces that the core depends on. The
editor layer (or the command line host) implements them; the core never
knows which concrete host it is running under.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence


@dataclass
class WatchEvent:
    """A change notification for one watched path."""

    path: Path
    kind: str = "changed"  # 'created', 'changed', 'deleted'


class WatchSubscription(ABC):
    """
    A channel of change events for a fixed set of paths.

    Events are consumed sequentially with ``async for``. Iteration ends once
    the subscription is disposed.
    """

    @abstractmethod
    def dispose(self) -> None:
        """Stop delivering events and release the underlying watches."""
        pass

    @abstractmethod
    def __aiter__(self):
        pass


class WatchBridge(ABC):
    """Provides change notifications for a set of paths."""

    @abstractmethod
    def watch(self, *paths: Path) -> WatchSubscription:
        """
        Subscribe to changes of the given files.

        Args:
            *paths: Files to watch. They need not exist yet.

        Returns:
            Subscription delivering a ``WatchEvent`` per change
        """
        pass


@dataclass
class PickItem:
    """One entry of a selection menu."""

    label: str
    description: str = ""
    value: Any = field(default=None, repr=False)


class Prompter(ABC):
    """
    Asks the user for decisions.

    Every method may return ``None`` to signal the user dismissed the prompt.
    """

    @abstractmethod
    async def ask(
        self, message: str, choices: Sequence[str], modal: bool = False
    ) -> Optional[str]:
        """
        Show a message with a set of choices.

        Returns:
            The chosen entry of ``choices``, or None if dismissed
        """
        pass

    @abstractmethod
    async def pick(
        self, placeholder: str, items: Sequence[PickItem]
    ) -> Optional[PickItem]:
        """Show a selection menu and return the chosen item, or None."""
        pass

    @abstractmethod
    def show_error(self, message: str) -> None:
        """Show a non-blocking error message."""
        pass

    async def save_all_documents(self) -> bool:
        """Save dirty documents. Returns False if some could not be saved."""
        return True


class ErrorReporter(ABC):
    """Error-tracking channel for consistency violations and failed tasks."""

    @abstractmethod
    def error(self, message: str, **context: Any) -> None:
        pass

    @abstractmethod
    def exception(self, message: str, exc: BaseException, **context: Any) -> None:
        pass


class SuiteEnvironmentProvider(ABC):
    """Resolves the environment variables of an IDE-suite installation."""

    @abstractmethod
    async def get_environment(
        self, suite_id: str, architecture: str
    ) -> Optional[Dict[str, str]]:
        """
        Args:
            suite_id: Installation identifier
            architecture: Target architecture (e.g. 'amd64', 'x86')

        Returns:
            Environment mapping, or None if it cannot be resolved
        """
        pass


class Scaffolder(ABC):
    """Creates a new project skeleton in a source directory."""

    @abstractmethod
    async def quick_start(self, source_dir: Path) -> int:
        pass


__all__ = [
    "WatchEvent",
    "WatchSubscription",
    "WatchBridge",
    "PickItem",
    "Prompter",
    "ErrorReporter",
    "SuiteEnvironmentProvider",
    "Scaffolder",
]
