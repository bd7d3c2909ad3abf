"""
Build variants.

A variant bundles a build type, configure-argument overrides and an optional
library linkage. Four variants are built in; a project can define its own in
``cmake-variants.yaml`` at the project root::

    debug:
      short: Debug
      long: Emit debug information without performing optimizations
      buildType: Debug
    asan:
      short: ASan
      buildType: Debug
      linkage: static
      settings:
        ENABLE_ASAN: true

Selecting a variant never touches disk; the resulting configuration is
applied on every configure.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from cmakekits.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

VARIANTS_FILENAME = "cmake-variants.yaml"
LINKAGES = ("static", "shared")


@dataclass
class Variant:
    """A named, selectable set of variant options."""

    name: str
    short: str
    long: str = ""
    build_type: Optional[str] = None
    linkage: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


BUILTIN_VARIANTS: Dict[str, Variant] = {
    "debug": Variant(
        "debug",
        "Debug",
        "Emit debug information without performing optimizations",
        build_type="Debug",
    ),
    "release": Variant(
        "release",
        "Release",
        "Enable optimizations, omit debug info",
        build_type="Release",
    ),
    "minsize": Variant(
        "minsize",
        "MinSizeRel",
        "Optimize for smallest binary size",
        build_type="MinSizeRel",
    ),
    "reldeb": Variant(
        "reldeb",
        "RelWithDebInfo",
        "Perform optimizations AND include debugging information",
        build_type="RelWithDebInfo",
    ),
}


@dataclass
class VariantConfiguration:
    """
    The variant state applied by a driver on configure.

    Attributes:
        build_type: Value of CMAKE_BUILD_TYPE (or ``--config``)
        settings: Ordered (key, value) configure overrides
        linkage: 'static', 'shared' or None to leave BUILD_SHARED_LIBS alone
        name: Name of the variant this configuration came from
    """

    build_type: str = "Debug"
    settings: List[Tuple[str, Any]] = field(default_factory=list)
    linkage: Optional[str] = None
    name: Optional[str] = None

    def with_options(self, variant: Variant) -> "VariantConfiguration":
        """
        Apply ``variant`` over this configuration.

        The build type and settings keep their current value when the variant
        does not set them; the linkage resets when it is absent.
        """
        if variant.settings is not None:
            settings = list(variant.settings.items())
        else:
            settings = list(self.settings)
        return VariantConfiguration(
            build_type=variant.build_type or self.build_type,
            settings=settings,
            linkage=variant.linkage,
            name=variant.name,
        )


def _variant_from_yaml(name: str, data: Any, source: Path) -> Variant:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: variant '{name}' must be a mapping")

    linkage = data.get("linkage")
    if linkage is not None and linkage not in LINKAGES:
        raise ConfigError(
            f"{source}: variant '{name}' has invalid linkage '{linkage}' "
            f"(expected one of {', '.join(LINKAGES)})"
        )

    settings = data.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise ConfigError(f"{source}: settings of variant '{name}' must be a mapping")

    return Variant(
        name=name,
        short=str(data.get("short", name)),
        long=str(data.get("long", "")),
        build_type=data.get("buildType"),
        linkage=linkage,
        settings=settings,
    )


def load_variants(project_root: Path) -> Dict[str, Variant]:
    """
    Load the variants available for a project.

    Returns:
        Variants of ``cmake-variants.yaml`` if present, the built-in ones otherwise

    Raises:
        ConfigError: If the variants file is invalid
    """
    path = Path(project_root) / VARIANTS_FILENAME
    if not path.exists():
        return dict(BUILTIN_VARIANTS)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}: {e}")

    if not data:
        logger.warning(f"{path} defines no variants, using the built-in ones")
        return dict(BUILTIN_VARIANTS)
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must map variant names to variants")

    variants = {str(name): _variant_from_yaml(str(name), body, path) for name, body in data.items()}
    logger.debug(f"Loaded {len(variants)} variants from {path}")
    return variants


__all__ = [
    "VARIANTS_FILENAME",
    "Variant",
    "BUILTIN_VARIANTS",
    "VariantConfiguration",
    "load_variants",
]
