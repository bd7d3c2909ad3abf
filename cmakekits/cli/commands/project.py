"""
Project commands dispatched to the active driver.

Each ``run_*`` function returns a process exit code. Commands that need a
kit ask for one first; declining returns a non-zero code.
"""

import logging

from cmakekits.cli.utils import exit_code, print_error, run_session, safe_print

logger = logging.getLogger(__name__)


def run_configure(args) -> int:
    extra = list(getattr(args, "cmake_args", None) or [])
    return exit_code(run_session(args, lambda o: o.configure(extra)))


def run_clean_configure(args) -> int:
    return exit_code(run_session(args, lambda o: o.clean_configure()))


def run_build(args) -> int:
    return exit_code(run_session(args, lambda o: o.build(args.target)))


def run_install(args) -> int:
    return exit_code(run_session(args, lambda o: o.install()))


def run_clean(args) -> int:
    return exit_code(run_session(args, lambda o: o.clean()))


def run_clean_rebuild(args) -> int:
    return exit_code(run_session(args, lambda o: o.clean_rebuild()))


def run_ctest(args) -> int:
    return exit_code(run_session(args, lambda o: o.ctest()))


def run_set_variant(args) -> int:
    """Select the build variant by name, or from a menu."""

    async def _set(orchestrator):
        if not await orchestrator.set_variant(args.name):
            return 1
        driver = orchestrator.active_driver
        safe_print(f"Variant: {driver.variant.name} ({driver.current_build_type})")
        return 0

    return run_session(args, _set)


def run_edit_cache(args) -> int:
    """Print the path of the cache file."""
    path = run_session(args, lambda o: o.edit_cache())
    if path is None:
        return 1
    safe_print(str(path))
    return 0


def run_reset_state(args) -> int:
    run_session(args, lambda o: o.reset_state())
    safe_print("Project state reset")
    return 0


def run_view_log(args) -> int:
    """Print the path of the log file of this invocation."""
    if not args.log_file:
        print_error("No log file in use", "Pass --log-file PATH to write one")
        return 1
    safe_print(str(args.log_file))
    return 0


__all__ = [
    "run_configure",
    "run_clean_configure",
    "run_build",
    "run_install",
    "run_clean",
    "run_clean_rebuild",
    "run_ctest",
    "run_set_variant",
    "run_edit_cache",
    "run_reset_state",
    "run_view_log",
]
