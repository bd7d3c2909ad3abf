"""
CMakeKits CLI argument parser.

This module implements the command-line interface for CMakeKits using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Get version from package
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("cmakekits")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)

PROJECT_COMMANDS = "cmakekits.cli.commands.project"
KITS_COMMANDS = "cmakekits.cli.commands.kits"

# Command → (module, handler)
COMMAND_MAP = {
    "select-kit": (KITS_COMMANDS, "run_select"),
    "set-variant": (PROJECT_COMMANDS, "run_set_variant"),
    "configure": (PROJECT_COMMANDS, "run_configure"),
    "clean-configure": (PROJECT_COMMANDS, "run_clean_configure"),
    "build": (PROJECT_COMMANDS, "run_build"),
    "install": (PROJECT_COMMANDS, "run_install"),
    "clean": (PROJECT_COMMANDS, "run_clean"),
    "clean-rebuild": (PROJECT_COMMANDS, "run_clean_rebuild"),
    "ctest": (PROJECT_COMMANDS, "run_ctest"),
    "edit-cache": (PROJECT_COMMANDS, "run_edit_cache"),
    "reset-state": (PROJECT_COMMANDS, "run_reset_state"),
    "view-log": (PROJECT_COMMANDS, "run_view_log"),
}

KITS_COMMAND_MAP = {
    "scan": "run_scan",
    "list": "run_list",
    "edit": "run_edit",
}


class CLI:
    """CMakeKits command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="cmakekits",
            description="CMakeKits - kit, variant and build management for CMake projects",
            epilog='Use "cmakekits COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"CMakeKits {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--log-file",
            type=Path,
            metavar="PATH",
            help="Also write the log to PATH",
        )
        parser.add_argument(
            "--project-root",
            type=Path,
            metavar="PATH",
            default=Path.cwd(),
            help="Project root directory (default: current directory)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_kits_command(subparsers)
        self._add_select_kit_command(subparsers)
        self._add_set_variant_command(subparsers)
        self._add_configure_commands(subparsers)
        self._add_build_commands(subparsers)
        self._add_state_commands(subparsers)

        return parser

    def _add_kits_command(self, subparsers):
        """Add 'kits' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "kits",
            help="Manage kits",
            description="Scan for, list and edit the available kits",
        )
        kits_subparsers = parser.add_subparsers(
            dest="kits_command", help="Kit management commands", metavar="COMMAND"
        )
        kits_subparsers.add_parser(
            "scan",
            help="Scan for installed toolchains",
            description="Scan the host for compilers and IDE suites and save them as kits",
        )
        kits_subparsers.add_parser(
            "list",
            help="List available kits",
            description="Show the user and project kits; the active kit is marked with *",
        )
        kits_subparsers.add_parser(
            "edit",
            help="Show the user kits file",
            description="Print the path of the user kits file, offering a scan if it is missing",
        )

    def _add_select_kit_command(self, subparsers):
        """Add 'select-kit' subcommand."""
        parser = subparsers.add_parser(
            "select-kit",
            help="Select the active kit",
            description="Select the kit used to configure the project",
        )
        parser.add_argument(
            "name",
            nargs="?",
            metavar="NAME",
            help="Kit name (default: choose from a menu)",
        )

    def _add_set_variant_command(self, subparsers):
        """Add 'set-variant' subcommand."""
        parser = subparsers.add_parser(
            "set-variant",
            help="Select the build variant",
            description="Select the build variant (debug, release, ...)",
        )
        parser.add_argument(
            "name",
            nargs="?",
            metavar="NAME",
            help="Variant name (default: choose from a menu)",
        )

    def _add_configure_commands(self, subparsers):
        """Add 'configure' and 'clean-configure' subcommands."""
        parser = subparsers.add_parser(
            "configure",
            help="Configure the project",
            description="Run CMake configuration with the active kit and variant",
        )
        parser.add_argument(
            "--cmake-args",
            action="append",
            metavar="ARG",
            help="Additional CMake arguments (can be used multiple times)",
        )
        subparsers.add_parser(
            "clean-configure",
            help="Remove the CMake cache and configure again",
            description="Remove CMakeCache.txt and CMakeFiles, then configure",
        )

    def _add_build_commands(self, subparsers):
        """Add build related subcommands."""
        parser = subparsers.add_parser(
            "build",
            help="Build the project",
            description="Build a target (default: the default target)",
        )
        parser.add_argument("--target", metavar="TARGET", help="Target to build")
        subparsers.add_parser("install", help="Build the install target")
        subparsers.add_parser("clean", help="Build the clean target")
        subparsers.add_parser("clean-rebuild", help="Clean, then build")
        subparsers.add_parser("ctest", help="Build, then run the tests")

    def _add_state_commands(self, subparsers):
        """Add cache, state and log subcommands."""
        subparsers.add_parser("edit-cache", help="Show the CMake cache file")
        subparsers.add_parser(
            "reset-state", help="Forget the saved kit, variant and targets"
        )
        subparsers.add_parser("view-log", help="Show the log file in use")

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        # Configure logging
        self._configure_logging(parsed_args)

        # Check if command specified
        if not parsed_args.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet/log_file
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

        if args.log_file:
            Path(args.log_file).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(args.log_file, encoding="utf-8")
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
            )
            logging.getLogger().addHandler(handler)

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        if args.command == "kits":
            return self._dispatch_kits_command(args)

        entry = COMMAND_MAP.get(args.command)
        if entry is None:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module_name, handler_name = entry
        module = importlib.import_module(module_name)
        return getattr(module, handler_name)(args)

    def _dispatch_kits_command(self, args) -> int:
        """
        Dispatch kits sub-commands.

        Args:
            args: Parsed arguments with kits_command field

        Returns:
            Exit code from command handler
        """
        if not getattr(args, "kits_command", None):
            logger.error("No kits sub-command specified")
            self.parser.parse_args(["kits", "--help"])
            return 1

        handler_name = KITS_COMMAND_MAP.get(args.kits_command)
        if handler_name is None:
            logger.error(f"Unknown kits command: {args.kits_command}")
            return 1

        module = importlib.import_module(KITS_COMMANDS)
        return getattr(module, handler_name)(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
