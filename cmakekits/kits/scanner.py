"""
cmakekits/kits/scanner.py

Kit discovery - finds compilers and IDE suites already installed on the host
and describes them as kits.
"""

import asyncio
import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from cmakekits.core.filesystem import IS_WINDOWS
from cmakekits.kits.model import CompilerKit, Kit, SuiteKit

logger = logging.getLogger(__name__)

# C compiler names such as gcc, gcc-13, x86_64-w64-mingw32-gcc, clang-17, clang.exe
_GCC_RE = re.compile(r"^((?:[\w.]+-)*)gcc(-\d+(?:\.\d+){0,2})?(\.exe)?$")
_CLANG_RE = re.compile(r"^clang(-\d+(?:\.\d+){0,2})?(\.exe)?$")

VSWHERE_PATH = Path(
    os.environ.get("ProgramFiles(x86)", "C:/Program Files (x86)")
) / "Microsoft Visual Studio" / "Installer" / "vswhere.exe"

SUITE_ARCHITECTURES = ["x86", "amd64"]


@dataclass
class ScanHints:
    """
    Where to look for toolchains.

    Attributes:
        search_paths: Directories searched for compilers (default: PATH)
        mingw_search_dirs: MinGW roots; their ``bin`` directories are searched
        include_suites: Whether to look for IDE suites (Windows only)
    """

    search_paths: Optional[List[Path]] = None
    mingw_search_dirs: List[str] = field(default_factory=list)
    include_suites: bool = True

    def directories(self) -> List[Path]:
        if self.search_paths is not None:
            dirs = [Path(p) for p in self.search_paths]
        else:
            path_env = os.environ.get("PATH", "")
            dirs = [Path(p) for p in path_env.split(os.pathsep) if p]
        dirs.extend(Path(d) / "bin" for d in self.mingw_search_dirs)

        unique: List[Path] = []
        for d in dirs:
            if d not in unique:
                unique.append(d)
        return unique


class CompilerVersionExtractor:
    """
    Extract version and target from compiler executables.

    Runs compilers with ``--version`` and ``-dumpmachine``.
    """

    def extract_version(self, compiler_path: Path) -> Optional[str]:
        """
        Extract version from compiler.

        Args:
            compiler_path: Path to compiler executable

        Returns:
            Version string (e.g., "13.2.0") or None if extraction failed
        """
        try:
            result = subprocess.run(
                [str(compiler_path), "--version"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            )

            if result.returncode != 0:
                logger.debug(
                    f"Compiler {compiler_path} --version returned {result.returncode}"
                )
                return None

            output = result.stdout + result.stderr

            match = re.search(r"\b(\d+\.\d+\.\d+(?:\.\d+)?)\b", output)
            if match:
                return match.group(1)

            match = re.search(r"\b(\d+\.\d+)\b", output)
            if match:
                return match.group(1)

            logger.debug(f"Could not parse version from output: {output[:200]}")
            return None

        except subprocess.TimeoutExpired:
            logger.debug(f"Timeout extracting version from {compiler_path}")
            return None
        except OSError as e:
            logger.debug(f"Failed to extract version from {compiler_path}: {e}")
            return None

    def extract_target(self, compiler_path: Path) -> Optional[str]:
        """
        Extract target triplet (e.g. x86_64-linux-gnu) from compiler.

        Returns:
            Target triplet string or None if extraction failed
        """
        try:
            result = subprocess.run(
                [str(compiler_path), "-dumpmachine"],
                capture_output=True,
                text=True,
                timeout=5,
                check=False,
            )
            if result.returncode == 0:
                target = result.stdout.strip()
                if target:
                    return target
            return None

        except subprocess.TimeoutExpired:
            logger.debug(f"Timeout extracting target from {compiler_path}")
            return None
        except OSError as e:
            logger.debug(f"Failed to extract target from {compiler_path}: {e}")
            return None


class CompilerSearcher:
    """
    Search directories for GCC and Clang compiler pairs.

    A kit is produced for every C compiler whose C++ counterpart
    (``g++`` / ``clang++`` with the same prefix and suffix) lives next to it.
    """

    def __init__(self, extractor: Optional[CompilerVersionExtractor] = None):
        self.extractor = extractor or CompilerVersionExtractor()

    def search(self, directories: List[Path]) -> List[CompilerKit]:
        kits: List[CompilerKit] = []
        for directory in directories:
            if not directory.is_dir():
                logger.debug(f"Search directory does not exist: {directory}")
                continue
            try:
                entries = sorted(directory.iterdir())
            except OSError as e:
                logger.debug(f"Error iterating {directory}: {e}")
                continue
            for entry in entries:
                kit = self._kit_for(entry)
                if kit is not None:
                    kits.append(kit)
        return kits

    def _kit_for(self, c_compiler: Path) -> Optional[CompilerKit]:
        name = c_compiler.name
        gcc = _GCC_RE.match(name)
        clang = _CLANG_RE.match(name) if gcc is None else None
        if gcc is None and clang is None:
            return None
        if not c_compiler.is_file():
            return None

        if gcc is not None:
            family = "GCC"
            prefix, suffix, ext = gcc.groups()
            cxx_name = f"{prefix}g++{suffix or ''}{ext or ''}"
        else:
            family = "Clang"
            suffix, ext = clang.groups()
            cxx_name = f"clang++{suffix or ''}{ext or ''}"

        cxx_compiler = c_compiler.parent / cxx_name

        version = self.extractor.extract_version(c_compiler)
        if not version:
            logger.debug(f"Could not extract version from {c_compiler}")
            return None
        target = self.extractor.extract_target(c_compiler)

        kit_name = f"{family} {version}" + (f" {target}" if target else "")
        compilers: Dict[str, str] = {"C": str(c_compiler)}
        if cxx_compiler.is_file():
            compilers["CXX"] = str(cxx_compiler)

        logger.info(f"Found {kit_name} at {c_compiler}")
        return CompilerKit(name=kit_name, compilers=compilers)


class SuiteSearcher:
    """
    Search for Visual Studio installations using vswhere.exe.

    Windows only. Produces one kit per installation and target architecture.
    """

    def __init__(self, vswhere_path: Path = VSWHERE_PATH):
        self.vswhere_path = vswhere_path

    def installations(self) -> List[dict]:
        if not self.vswhere_path.exists():
            logger.debug("vswhere not found, skipping suite detection")
            return []
        try:
            result = subprocess.run(
                [
                    str(self.vswhere_path),
                    "-all",
                    "-format",
                    "json",
                    "-products",
                    "*",
                    "-legacy",
                    "-prerelease",
                ],
                capture_output=True,
                text=True,
                timeout=10,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.debug("vswhere timed out")
            return []
        except OSError as e:
            logger.debug(f"vswhere failed: {e}")
            return []

        if result.returncode != 0:
            logger.debug(f"vswhere returned {result.returncode}")
            return []
        try:
            data = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            logger.debug(f"vswhere output is not JSON: {e}")
            return []
        return [d for d in data if isinstance(d, dict) and d.get("instanceId")]

    def search(self) -> List[SuiteKit]:
        kits = []
        for inst in self.installations():
            display = inst.get("displayName") or inst["instanceId"]
            for arch in SUITE_ARCHITECTURES:
                kits.append(
                    SuiteKit(
                        name=f"{display} - {arch}",
                        suite=inst["instanceId"],
                        architecture=arch,
                    )
                )
                logger.info(f"Found {display} ({arch})")
        return kits


def scan_sync(
    hints: Optional[ScanHints] = None,
    compiler_searcher: Optional[CompilerSearcher] = None,
    suite_searcher: Optional[SuiteSearcher] = None,
) -> List[Kit]:
    """
    Discover installed toolchains.

    Results are deduplicated by kit name, first occurrence wins.
    """
    hints = hints or ScanHints()
    compiler_searcher = compiler_searcher or CompilerSearcher()

    logger.info("Scanning for kits")
    found: List[Kit] = list(compiler_searcher.search(hints.directories()))

    if hints.include_suites and IS_WINDOWS:
        suite_searcher = suite_searcher or SuiteSearcher()
        found.extend(suite_searcher.search())

    unique: Dict[str, Kit] = {}
    for kit in found:
        unique.setdefault(kit.name, kit)

    logger.info(f"Found {len(unique)} kits")
    return list(unique.values())


async def scan(hints: Optional[ScanHints] = None, **kwargs) -> List[Kit]:
    """Asynchronous ``scan_sync``; the search runs in a worker thread."""
    return await asyncio.to_thread(scan_sync, hints, **kwargs)


__all__ = [
    "ScanHints",
    "CompilerVersionExtractor",
    "CompilerSearcher",
    "SuiteSearcher",
    "scan_sync",
    "scan",
]
