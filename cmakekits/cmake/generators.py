"""
Generator selection and toolchain identification.

Knows which generators are available on this host, which of them are
multi-configuration generators (build type chosen per build, not per
configure), and how to recognise the compiler and linker family from an
executable path.
"""

import logging
import re
import shutil
from pathlib import PurePath
from typing import Callable, Iterable, Optional

from cmakekits.core.filesystem import IS_WINDOWS

logger = logging.getLogger(__name__)

# Generator name → program that must be on PATH for it to work
GENERATOR_PROGRAMS = {
    "Ninja": "ninja",
    "Ninja Multi-Config": "ninja",
    "Unix Makefiles": "make",
    "MinGW Makefiles": "mingw32-make",
    "NMake Makefiles": "nmake",
}

_GNU_RE = re.compile(r"(^|[-_.])(gcc|g\+\+|c\+\+|cc)(-\d+(\.\d+)*)?(\.exe)?$")


def is_multi_config_generator(name: str) -> bool:
    """True for Visual Studio, Xcode and Ninja Multi-Config."""
    return name.startswith("Visual Studio") or name in ("Xcode", "Ninja Multi-Config")


def is_generator_available(
    name: str, which: Callable[[str], Optional[str]] = shutil.which
) -> bool:
    """
    Check whether a generator can be used on this host.

    IDE generators are assumed available on their platform; makefile style
    generators need their build program on PATH.
    """
    if name.startswith("Visual Studio"):
        return IS_WINDOWS
    if name == "Xcode":
        return which("xcodebuild") is not None
    program = GENERATOR_PROGRAMS.get(name)
    if program is None:
        logger.debug(f"Unknown generator '{name}', assuming unavailable")
        return False
    return which(program) is not None


def pick_generator(
    preferred: Iterable[str], which: Callable[[str], Optional[str]] = shutil.which
) -> Optional[str]:
    """
    Return the first available generator of ``preferred``.

    Returns:
        Generator name, or None to let the generator tool choose
    """
    for name in preferred:
        if is_generator_available(name, which):
            logger.debug(f"Selected generator: {name}")
            return name
    logger.debug("None of the preferred generators is available")
    return None


def compiler_id(path: str) -> Optional[str]:
    """
    Infer the compiler family from a compiler path.

    Returns:
        'MSVC', 'GNU', 'Clang' or None
    """
    name = PurePath(path.replace("\\", "/")).name.lower()
    if "clang" in name:
        return "Clang"
    if name.endswith("cl.exe"):
        return "MSVC"
    if _GNU_RE.search(name):
        return "GNU"
    return None


def linker_id(path: str) -> Optional[str]:
    """
    Infer the linker family from a linker path.

    Returns:
        'MSVC', 'Clang', 'GNU' or None
    """
    name = PurePath(path.replace("\\", "/")).name.lower()
    if name.endswith(".exe"):
        stem = name[: -len(".exe")]
    else:
        stem = name
    if stem == "link":
        return "MSVC"
    if "lld" in stem:
        return "Clang"
    if stem.endswith("ld"):
        return "GNU"
    return None


__all__ = [
    "GENERATOR_PROGRAMS",
    "is_multi_config_generator",
    "is_generator_available",
    "pick_generator",
    "compiler_id",
    "linker_id",
]
