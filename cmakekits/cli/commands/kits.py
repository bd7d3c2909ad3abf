"""
Kit commands: ``kits scan``, ``kits list``, ``kits edit`` and ``select-kit``.
"""

import logging

from cmakekits.cli.utils import run_session, safe_print
from cmakekits.kits.model import describe_kit, kit_label

logger = logging.getLogger(__name__)


def run_scan(args) -> int:
    """Scan the host for toolchains and save them to the user kits file."""

    async def _scan(orchestrator):
        discovered = await orchestrator.scan_for_kits()
        for kit in discovered:
            safe_print(f"  {kit.name}")
        safe_print(f"Found {len(discovered)} kit(s)")
        return 0

    return run_session(args, _scan)


def run_list(args) -> int:
    """List the kits known for the project, marking the active one."""

    async def _list(orchestrator):
        driver = orchestrator.active_driver
        active = driver.kit.name if driver is not None and driver.kit else None
        for kit in orchestrator.registry.all_kits:
            marker = "*" if kit.name == active else " "
            safe_print(f"{marker} {kit_label(kit)}")
            if not args.quiet:
                safe_print(f"    {describe_kit(kit)}")
        return 0

    return run_session(args, _list)


def run_edit(args) -> int:
    """Print the user kits file path, offering a scan when it is missing."""

    async def _edit(orchestrator):
        path = await orchestrator.edit_kits()
        if path is None:
            return 1
        safe_print(str(path))
        return 0

    return run_session(args, _edit)


def run_select(args) -> int:
    """Select the active kit by name, or from a menu."""

    async def _select(orchestrator):
        chosen = await orchestrator.select_kit(args.name)
        if not chosen:
            return 1
        kit = orchestrator.active_driver.kit
        safe_print(f"Active kit: {kit_label(kit)}")
        return 0

    return run_session(args, _select)


__all__ = ["run_scan", "run_list", "run_edit", "run_select"]
