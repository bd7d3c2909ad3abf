"""
Kit descriptors.

A kit names a toolchain that can configure a project. ``Kit`` is a closed
union of four variants:

- ``CompilerKit``: language identifier (``C``, ``CXX``, ...) → compiler path
- ``ToolchainFileKit``: path to a CMake toolchain file
- ``SuiteKit``: an IDE-suite installation id plus target architecture; its
  environment is resolved externally
- ``UnspecifiedKit``: the ``__unspec__`` sentinel, "let CMake decide"

Kits are converted to and from the JSON records of ``cmake-kits.json``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from cmakekits.core.exceptions import UnknownKitTypeError

logger = logging.getLogger(__name__)

UNSPECIFIED_KIT_NAME = "__unspec__"


@dataclass
class CompilerKit:
    """Kit selecting explicit compilers per language."""

    name: str
    compilers: Dict[str, str] = field(default_factory=dict)
    keep: Optional[bool] = None
    preferred_generator: Optional[str] = None


@dataclass
class ToolchainFileKit:
    """Kit delegating to a CMake toolchain file."""

    name: str
    toolchain_file: str = ""
    keep: Optional[bool] = None
    preferred_generator: Optional[str] = None


@dataclass
class SuiteKit:
    """Kit using an installed IDE suite (Visual Studio) for a target architecture."""

    name: str
    suite: str = ""
    architecture: str = ""
    keep: Optional[bool] = None
    preferred_generator: Optional[str] = None


@dataclass
class UnspecifiedKit:
    """The sentinel kit: no explicit toolchain selection."""

    name: str = UNSPECIFIED_KIT_NAME
    keep: Optional[bool] = None
    preferred_generator: Optional[str] = None


Kit = Union[CompilerKit, ToolchainFileKit, SuiteKit, UnspecifiedKit]


def is_unspecified(kit: Kit) -> bool:
    return isinstance(kit, UnspecifiedKit) or kit.name == UNSPECIFIED_KIT_NAME


def kit_type(kit: Kit) -> str:
    """Stable tag of the kit variant, used in logs and clean decisions."""
    match kit:
        case CompilerKit():
            return "compilerKit"
        case ToolchainFileKit():
            return "toolchainKit"
        case SuiteKit():
            return "vsKit"
        case UnspecifiedKit():
            return "unspecifiedKit"
    raise UnknownKitTypeError(f"Not a kit: {kit!r}")


def kit_from_record(record: Dict[str, Any]) -> Optional[Kit]:
    """
    Build a kit from a ``cmake-kits.json`` record.

    Variant fields are checked in order ``compilers``, ``toolchainFile``,
    ``visualStudio``. A record named ``__unspec__`` is the sentinel.

    Args:
        record: Decoded JSON object

    Returns:
        The kit, or None if the record describes no known variant

    Raises:
        UnknownKitTypeError: If the record has no usable ``name``
    """
    if not isinstance(record, dict):
        raise UnknownKitTypeError(f"Kit record is not an object: {record!r}")

    name = record.get("name")
    if not isinstance(name, str) or not name:
        raise UnknownKitTypeError(f"Kit record without a name: {record!r}")

    keep = record.get("keep")
    if keep is not None and not isinstance(keep, bool):
        raise UnknownKitTypeError(f"Kit '{name}': 'keep' must be a boolean")

    preferred = record.get("preferredGenerator")
    if isinstance(preferred, dict):
        preferred = preferred.get("name")
    if preferred is not None and not isinstance(preferred, str):
        raise UnknownKitTypeError(f"Kit '{name}': invalid 'preferredGenerator'")

    if name == UNSPECIFIED_KIT_NAME:
        return UnspecifiedKit(keep=keep, preferred_generator=preferred)

    if "compilers" in record:
        compilers = record["compilers"]
        if not isinstance(compilers, dict) or not all(
            isinstance(v, str) for v in compilers.values()
        ):
            raise UnknownKitTypeError(
                f"Kit '{name}': 'compilers' must map languages to paths"
            )
        return CompilerKit(
            name=name,
            compilers=dict(compilers),
            keep=keep,
            preferred_generator=preferred,
        )

    if "toolchainFile" in record:
        return ToolchainFileKit(
            name=name,
            toolchain_file=str(record["toolchainFile"]),
            keep=keep,
            preferred_generator=preferred,
        )

    if "visualStudio" in record:
        return SuiteKit(
            name=name,
            suite=str(record["visualStudio"]),
            architecture=str(record.get("visualStudioArchitecture", "")),
            keep=keep,
            preferred_generator=preferred,
        )

    logger.warning(f"Kit '{name}' has no compilers, toolchain file or suite; ignored")
    return None


def kit_to_record(kit: Kit) -> Dict[str, Any]:
    """Convert a kit to its ``cmake-kits.json`` record."""
    record: Dict[str, Any] = {"name": kit.name}
    match kit:
        case CompilerKit(compilers=compilers):
            record["compilers"] = dict(compilers)
        case ToolchainFileKit(toolchain_file=toolchain_file):
            record["toolchainFile"] = toolchain_file
        case SuiteKit(suite=suite, architecture=architecture):
            record["visualStudio"] = suite
            record["visualStudioArchitecture"] = architecture
        case UnspecifiedKit():
            pass
    if kit.keep is not None:
        record["keep"] = kit.keep
    if kit.preferred_generator:
        record["preferredGenerator"] = kit.preferred_generator
    return record


def describe_kit(kit: Kit) -> str:
    """Human readable one-line description of a kit."""
    match kit:
        case CompilerKit(compilers=compilers):
            names = ", ".join(f"{lang} = {path}" for lang, path in compilers.items())
            return f"Using compilers: {names}"
        case ToolchainFileKit(toolchain_file=toolchain_file):
            return f"Kit for toolchain file {toolchain_file}"
        case SuiteKit(suite=suite, architecture=architecture):
            return f"Using compilers for {suite} ({architecture} architecture)"
        case UnspecifiedKit():
            return "Unspecified (Let CMake guess what compilers and environment to use)"
    raise UnknownKitTypeError(f"Not a kit: {kit!r}")


def kit_label(kit: Kit) -> str:
    """Label shown in the selection menu."""
    return "[Unspecified]" if is_unspecified(kit) else kit.name


__all__ = [
    "UNSPECIFIED_KIT_NAME",
    "CompilerKit",
    "ToolchainFileKit",
    "SuiteKit",
    "UnspecifiedKit",
    "Kit",
    "is_unspecified",
    "kit_type",
    "kit_from_record",
    "kit_to_record",
    "describe_kit",
    "kit_label",
]
