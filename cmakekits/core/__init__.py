"""
Core functionality for CMakeKits.

This package contains the foundational modules that other components depend on.
"""

from .exceptions import (
    CMakeKitsError,
    KitError,
    KitFileError,
    UnknownKitTypeError,
    CacheError,
    CacheParseError,
    DriverError,
    DriverBusyError,
    ConfigureError,
    ConfigError,
    StateError,
    OrchestratorError,
)

from .strand import Strand

from .events import Event, Subscription

from .interfaces import (
    WatchEvent,
    WatchSubscription,
    WatchBridge,
    PickItem,
    Prompter,
    ErrorReporter,
    SuiteEnvironmentProvider,
    Scaffolder,
)

from .reporting import LoggingErrorReporter, take_task, invoke_reported

from .state import DriverState, StateManager

__all__ = [
    "CMakeKitsError",
    "KitError",
    "KitFileError",
    "UnknownKitTypeError",
    "CacheError",
    "CacheParseError",
    "DriverError",
    "DriverBusyError",
    "ConfigureError",
    "ConfigError",
    "StateError",
    "OrchestratorError",
    "Strand",
    "Event",
    "Subscription",
    "WatchEvent",
    "WatchSubscription",
    "WatchBridge",
    "PickItem",
    "Prompter",
    "ErrorReporter",
    "SuiteEnvironmentProvider",
    "Scaffolder",
    "LoggingErrorReporter",
    "take_task",
    "invoke_reported",
    "DriverState",
    "StateManager",
]
