"""
Shared utilities for CLI commands.

Output helpers plus ``run_session``, which assembles the orchestrator for
the project root given on the command line, runs one command against it
and tears everything down again.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================================
# Output
# ============================================================================


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def safe_print(message: str, file=None):
    """Print, replacing characters the console encoding cannot represent."""
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        encoding = getattr(file or sys.stdout, "encoding", None) or "ascii"
        print(message.encode(encoding, errors="replace").decode(encoding), file=file)


def exit_code(retc: Optional[int]) -> int:
    """Map a command result (``-1`` when it did not run) to a process exit code."""
    if retc is None or retc < 0:
        return 1
    return retc


# ============================================================================
# Session
# ============================================================================


async def _session(args, action: Callable[..., Awaitable[T]]) -> T:
    # Imported here so that `--help` stays cheap
    from cmakekits.cli.prompt import ConsolePrompter
    from cmakekits.config import load_settings
    from cmakekits.core.reporting import LoggingErrorReporter
    from cmakekits.core.watcher import FileWatchBridge
    from cmakekits.driver.legacy import CommandLineDriver
    from cmakekits.kits.environment import VsWhereEnvironmentProvider
    from cmakekits.kits.registry import KitRegistry
    from cmakekits.orchestrator import Orchestrator

    reporter = LoggingErrorReporter()
    prompter = ConsolePrompter()
    bridge = FileWatchBridge()
    env_provider = VsWhereEnvironmentProvider()
    registry = KitRegistry(prompter, reporter)

    async def driver_factory(root: Path):
        settings = load_settings(root)
        return await CommandLineDriver.create(
            root, settings, bridge, prompter, reporter, env_provider
        )

    orchestrator = Orchestrator(
        driver_factory,
        registry,
        bridge,
        prompter,
        reporter,
        log_path=getattr(args, "log_file", None),
    )
    try:
        await orchestrator.add_project_root(Path(args.project_root))
        return await action(orchestrator)
    finally:
        await orchestrator.async_dispose()
        bridge.close()


def run_session(args, action: Callable[..., Awaitable[T]]) -> T:
    """
    Run ``action(orchestrator)`` for the project root of ``args``.

    Args:
        args: Parsed arguments (``project_root``, ``log_file``)
        action: Coroutine function receiving the orchestrator

    Returns:
        The result of ``action``
    """
    return asyncio.run(_session(args, action))


__all__ = ["print_error", "safe_print", "exit_code", "run_session"]
