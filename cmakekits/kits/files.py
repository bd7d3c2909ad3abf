"""
Reading and writing kits descriptor files (``cmake-kits.json``).

The persisted form never contains the ``__unspec__`` sentinel and lists kits
sorted by name, so rewrites produce stable diffs.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable, List

from cmakekits.core.exceptions import KitFileError, UnknownKitTypeError
from cmakekits.core.filesystem import atomic_write
from cmakekits.core.locking import LockTimeout, file_lock
from cmakekits.kits.model import Kit, is_unspecified, kit_from_record, kit_to_record

logger = logging.getLogger(__name__)


def read_kits_file(path: Path) -> List[Kit]:
    """
    Parse a kits file.

    Args:
        path: Path to ``cmake-kits.json``

    Returns:
        Kits in file order. A missing file yields an empty list.

    Raises:
        KitFileError: If the file is unreadable or not a JSON list. Invalid
            records are skipped with a warning.
    """
    path = Path(path)
    if not path.exists():
        logger.debug(f"Kits file not present: {path}")
        return []

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise KitFileError(path, f"cannot read: {e}") from e

    if not text.strip():
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise KitFileError(path, f"invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise KitFileError(path, "expected a list of kits")

    kits: List[Kit] = []
    for record in data:
        try:
            kit = kit_from_record(record)
        except UnknownKitTypeError as e:
            logger.warning(f"Skipping invalid kit in {path}: {e}")
            continue
        if kit is not None:
            kits.append(kit)

    logger.debug(f"Read {len(kits)} kits from {path}")
    return kits


async def load(path: Path) -> List[Kit]:
    """Asynchronous ``read_kits_file``."""
    return await asyncio.to_thread(read_kits_file, path)


def serialize_kits(kits: Iterable[Kit]) -> str:
    """Strip the sentinel, sort by name and render JSON."""
    stripped = [k for k in kits if not is_unspecified(k)]
    ordered = sorted(stripped, key=lambda k: k.name)
    return json.dumps([kit_to_record(k) for k in ordered], indent=2) + "\n"


def write_kits_file(kits: Iterable[Kit], path: Path) -> None:
    """
    Persist kits to ``path``.

    Raises:
        KitFileError: If the file cannot be written
    """
    path = Path(path)
    content = serialize_kits(kits)
    try:
        with file_lock(path):
            atomic_write(path, content)
    except (OSError, LockTimeout) as e:
        raise KitFileError(path, f"cannot write: {e}") from e
    logger.info(f"Saved kits to {path}")


async def persist(kits: Iterable[Kit], path: Path) -> None:
    """Asynchronous ``write_kits_file``."""
    kits = list(kits)
    await asyncio.to_thread(write_kits_file, kits, path)


__all__ = [
    "read_kits_file",
    "load",
    "serialize_kits",
    "write_kits_file",
    "persist",
]
