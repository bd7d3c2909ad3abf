"""YAML settings for CMakeKits.

Settings are read from the user-global ``settings.yaml`` and then from the
project-local ``.cmakekits/settings.yaml``; project keys override user keys.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cmakekits.core.directory import project_settings_path, user_settings_path
from cmakekits.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Effective settings for one project root."""

    cmake_path: str = "cmake"
    ctest_path: str = "ctest"
    source_directory: str = "${workspaceRoot}"
    build_directory: str = "${workspaceRoot}/build"
    install_prefix: Optional[str] = None
    configure_settings: Dict[str, Any] = field(default_factory=dict)
    configure_args: List[str] = field(default_factory=list)
    build_args: List[str] = field(default_factory=list)
    preferred_generators: List[str] = field(
        default_factory=lambda: ["Ninja", "Unix Makefiles"]
    )
    generator: Optional[str] = None
    save_before_build: bool = True
    mingw_search_dirs: List[str] = field(default_factory=list)
    default_variant: str = "debug"
    environment: Dict[str, str] = field(default_factory=dict)


_FIELD_TYPES = {
    "cmake_path": str,
    "ctest_path": str,
    "source_directory": str,
    "build_directory": str,
    "install_prefix": (str, type(None)),
    "configure_settings": dict,
    "configure_args": list,
    "build_args": list,
    "preferred_generators": list,
    "generator": (str, type(None)),
    "save_before_build": bool,
    "mingw_search_dirs": list,
    "default_variant": str,
    "environment": dict,
}


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


def _validate(data: Dict[str, Any], source: Path) -> Dict[str, Any]:
    """Check known keys have the right type; unknown keys are ignored."""
    valid = {}
    for key, value in data.items():
        expected = _FIELD_TYPES.get(key)
        if expected is None:
            logger.warning(f"{source}: ignoring unknown setting '{key}'")
            continue
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: setting '{key}' has invalid type {type(value).__name__}"
            )
        valid[key] = value
    return valid


def load_settings(
    project_root: Optional[Path] = None, user_path: Optional[Path] = None
) -> Settings:
    """
    Load layered settings.

    Args:
        project_root: Project whose local settings apply, if any
        user_path: Override for the user-global settings file

    Returns:
        Effective settings

    Raises:
        ConfigError: If a settings file is invalid
    """
    user_path = user_path or user_settings_path()
    merged = _validate(_read_yaml(user_path), user_path)

    if project_root is not None:
        local_path = project_settings_path(project_root)
        merged.update(_validate(_read_yaml(local_path), local_path))

    return Settings(**merged)


def replace_vars(value: str, project_root: Path, build_type: str = "") -> str:
    """
    Substitute ``${...}`` variables in a settings value.

    Supported: workspaceRoot, workspaceFolder, workspaceRootFolderName,
    buildType.
    """
    root = Path(project_root)
    replacements = {
        "${workspaceRoot}": str(root),
        "${workspaceFolder}": str(root),
        "${workspaceRootFolderName}": root.name,
        "${buildType}": build_type,
    }
    for key, repl in replacements.items():
        value = value.replace(key, repl)
    return value


__all__ = ["Settings", "load_settings", "replace_vars"]
