"""
Parser for the generated configuration cache (``CMakeCache.txt``).

The cache is line oriented::

    // Help text for the entry below
    CMAKE_BUILD_TYPE:STRING=Debug
    # Comment lines are ignored
    CMAKE_LINKER-ADVANCED:INTERNAL=1

Help-text lines (``//``) attach to the next entry. ``KEY-ADVANCED`` entries
mark ``KEY`` as advanced and are not entries themselves. A missing cache file
is an empty cache.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from cmakekits.core.exceptions import CacheParseError

logger = logging.getLogger(__name__)

ENTRY_TYPES = ("BOOL", "STRING", "PATH", "FILEPATH", "INTERNAL", "STATIC", "UNINITIALIZED")

# KEY:TYPE=VALUE, where KEY may be double-quoted
_ENTRY_RE = re.compile(r'^(?:"(?P<qkey>[^"]*)"|(?P<key>[^:=]+)):(?P<type>[A-Z]+)=(?P<value>.*)$')

_FALSE_VALUES = {"", "0", "OFF", "NO", "FALSE", "N", "IGNORE", "NOTFOUND"}


def is_truthy(value: str) -> bool:
    """CMake truthiness of a string value."""
    upper = value.strip().upper()
    return upper not in _FALSE_VALUES and not upper.endswith("-NOTFOUND")


@dataclass(frozen=True)
class CacheEntry:
    """One ``KEY:TYPE=VALUE`` record of the cache."""

    key: str
    type: str
    value: str
    advanced: bool = False
    help_string: str = ""

    def as_bool(self) -> bool:
        return is_truthy(self.value)

    def as_list(self) -> List[str]:
        return [v for v in self.value.split(";") if v]

    def typed_value(self) -> Any:
        """Value converted according to the declared type."""
        if self.type == "BOOL":
            return self.as_bool()
        return self.value


class CMakeCache:
    """
    Immutable snapshot of a cache file.

    A new instance is created on every reload; instances are never patched.
    """

    def __init__(self, path: Path, entries: Optional[Dict[str, CacheEntry]] = None):
        self.path = Path(path)
        self._entries: Dict[str, CacheEntry] = dict(entries or {})

    @classmethod
    def parse(cls, path: Path, text: str) -> "CMakeCache":
        """
        Parse cache file content.

        Raises:
            CacheParseError: On a line that is neither a comment nor an entry
        """
        entries: Dict[str, CacheEntry] = {}
        advanced = set()
        help_lines: List[str] = []

        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line:
                help_lines = []
                continue
            if line.startswith("//"):
                help_lines.append(line[2:].strip())
                continue
            if line.startswith("#"):
                continue

            match = _ENTRY_RE.match(line)
            if match is None:
                raise CacheParseError(path, line_number, raw)

            key = match.group("qkey") if match.group("qkey") is not None else match.group("key")
            entry_type = match.group("type")
            if entry_type not in ENTRY_TYPES:
                raise CacheParseError(path, line_number, raw)

            if key.endswith("-ADVANCED"):
                if is_truthy(match.group("value")):
                    advanced.add(key[: -len("-ADVANCED")])
                help_lines = []
                continue

            entries[key] = CacheEntry(
                key=key,
                type=entry_type,
                value=match.group("value"),
                help_string=" ".join(help_lines),
            )
            help_lines = []

        for key in advanced:
            entry = entries.get(key)
            if entry is not None:
                entries[key] = CacheEntry(
                    key=entry.key,
                    type=entry.type,
                    value=entry.value,
                    advanced=True,
                    help_string=entry.help_string,
                )

        return cls(path, entries)

    @classmethod
    def load(cls, path: Path) -> "CMakeCache":
        """
        Read and parse a cache file. A missing file yields an empty cache.

        Raises:
            CacheParseError: If the file is malformed
        """
        path = Path(path)
        if not path.exists():
            logger.debug(f"No cache file at {path}")
            return cls(path)
        text = path.read_text(encoding="utf-8", errors="replace")
        cache = cls.parse(path, text)
        logger.debug(f"Loaded {len(cache)} cache entries from {path}")
        return cache

    @classmethod
    async def from_path(cls, path: Path) -> "CMakeCache":
        """Asynchronous ``load``."""
        return await asyncio.to_thread(cls.load, path)

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    @property
    def all_entries(self) -> List[CacheEntry]:
        return list(self._entries.values())

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(self._entries.values())


__all__ = ["ENTRY_TYPES", "is_truthy", "CacheEntry", "CMakeCache"]
