"""
Directory layout for CMakeKits.

Directory Structure:
    User-global (~/.cmakekits/ or %USERPROFILE%\\.cmakekits\\, or $CMAKEKITS_HOME):
        - cmake-kits.json : User kits
        - settings.yaml   : User settings
        - lock/           : Cross-process lock files
        - cmakekits.log   : Log file written by the command line host

    Project-local (<project-root>/.cmakekits/):
        - cmake-kits.json : Project kits
        - settings.yaml   : Project settings
        - state.json      : Persisted driver state
"""

import os
from pathlib import Path

from cmakekits.core.exceptions import CMakeKitsError

KITS_FILENAME = "cmake-kits.json"
SETTINGS_FILENAME = "settings.yaml"
STATE_FILENAME = "state.json"
LOG_FILENAME = "cmakekits.log"
PROJECT_DIRNAME = ".cmakekits"


class DirectoryError(CMakeKitsError):
    """Base exception for directory-related errors."""

    pass


def get_user_dir() -> Path:
    """
    Get the user-global CMakeKits directory.

    Returns:
        Path: ``$CMAKEKITS_HOME`` if set, otherwise
            - Windows: %USERPROFILE%\\.cmakekits
            - Linux/macOS: ~/.cmakekits
    """
    override = os.environ.get("CMAKEKITS_HOME")
    if override:
        return Path(override)

    if os.name == "nt":
        user_profile = os.environ.get("USERPROFILE")
        if not user_profile:
            raise DirectoryError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine user directory."
            )
        return Path(user_profile) / ".cmakekits"
    return Path.home() / ".cmakekits"


def user_kits_path() -> Path:
    """Path to the user-global kits file."""
    return get_user_dir() / KITS_FILENAME


def user_settings_path() -> Path:
    return get_user_dir() / SETTINGS_FILENAME


def default_log_path() -> Path:
    return get_user_dir() / LOG_FILENAME


def get_project_local_dir(project_root: Path) -> Path:
    """
    Get the project-local .cmakekits directory path.

    Args:
        project_root: Root directory of the project.
    """
    return Path(project_root) / PROJECT_DIRNAME


def project_kits_path(project_root: Path) -> Path:
    """Path to the project-local kits file."""
    return get_project_local_dir(project_root) / KITS_FILENAME


def project_settings_path(project_root: Path) -> Path:
    return get_project_local_dir(project_root) / SETTINGS_FILENAME


def project_state_path(project_root: Path) -> Path:
    return get_project_local_dir(project_root) / STATE_FILENAME


__all__ = [
    "DirectoryError",
    "KITS_FILENAME",
    "get_user_dir",
    "user_kits_path",
    "user_settings_path",
    "default_log_path",
    "get_project_local_dir",
    "project_kits_path",
    "project_settings_path",
    "project_state_path",
]
