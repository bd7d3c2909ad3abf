"""
Centralized exception hierarchy for CMakeKits.

This module defines all custom exceptions used across the codebase
to provide clear exception semantics.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class CMakeKitsError(Exception):
    """Base exception for all CMakeKits errors."""

    pass


# ============================================================================
# Kit Exceptions
# ============================================================================


class KitError(CMakeKitsError):
    """Base exception for kit-related errors."""

    pass


class KitFileError(KitError):
    """Raised when a kits descriptor file cannot be read or written."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Kits file {path}: {reason}")


class UnknownKitTypeError(KitError):
    """Raised when a kit record does not describe any known kit variant."""

    pass


# ============================================================================
# Cache Exceptions
# ============================================================================


class CacheError(CMakeKitsError):
    """Base exception for CMake cache errors."""

    pass


class CacheParseError(CacheError):
    """Raised when a CMakeCache.txt file is malformed."""

    def __init__(self, path, line_number: int, line: str):
        self.path = path
        self.line_number = line_number
        self.line = line
        super().__init__(f"Malformed cache entry at {path}:{line_number}: {line!r}")


# ============================================================================
# Driver Exceptions
# ============================================================================


class DriverError(CMakeKitsError):
    """Base exception for driver errors."""

    pass


class DriverBusyError(DriverError):
    """Raised when an operation is requested while the driver is busy."""

    pass


class ConfigureError(DriverError):
    """Raised when configure arguments cannot be prepared."""

    pass


# ============================================================================
# Configuration / State Exceptions
# ============================================================================


class ConfigError(CMakeKitsError):
    """Settings parsing or validation error."""

    pass


class StateError(CMakeKitsError):
    """Base exception for state management errors."""

    pass


class OrchestratorError(CMakeKitsError):
    """Consistency violation inside the orchestrator."""

    pass
