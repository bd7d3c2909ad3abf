"""
Small file helpers shared by the kits files, the state file and the drivers.
"""

import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Union

from cmakekits.core.exceptions import CMakeKitsError

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"

_WINDOWS_SUFFIXES = ("", ".exe", ".bat", ".cmd")


class FilesystemError(CMakeKitsError):
    """Raised when a guarded file operation is refused."""

    pass


def find_executable(
    name: str, search_dirs: Optional[Iterable[Union[str, Path]]] = None
) -> Optional[Path]:
    """
    Resolve a compiler or tool name to an executable file.

    Args:
        name: Bare program name, e.g. ``gcc`` or ``cl``
        search_dirs: Directories to look in instead of ``PATH``

    Returns:
        The first match, or None

    Example:
        >>> find_executable('cmake')
        PosixPath('/usr/bin/cmake')
    """
    if search_dirs is None:
        search_dirs = os.environ.get("PATH", "").split(os.pathsep)
    suffixes = _WINDOWS_SUFFIXES if IS_WINDOWS else ("",)

    for entry in search_dirs:
        if not entry:
            continue
        for suffix in suffixes:
            candidate = Path(entry) / (name + suffix)
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return candidate
    return None


def atomic_write(
    target: Union[str, Path], data: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Replace ``target`` with ``data`` without ever exposing a half-written file.

    The data goes to a hidden temp file in the same directory, which is then
    renamed over the target. Parent directories are created.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        data = data.encode(encoding)

    fd, tmp_name = tempfile.mkstemp(
        dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as stream:
            stream.write(data)
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug(f"Wrote {target}")


def _make_writable_and_retry(func, target, _exc_info):
    # Read-only files under CMakeFiles/ on Windows
    os.chmod(target, stat.S_IWRITE)
    func(target)


def safe_rmtree(path: Union[str, Path], within: Optional[Union[str, Path]] = None) -> None:
    """
    Delete a directory tree; a missing tree is not an error.

    Args:
        path: Tree to delete
        within: When given, ``path`` must be this directory or lie below it

    Raises:
        FilesystemError: ``path`` is outside ``within``
    """
    path = Path(path)
    if not path.exists():
        return

    if within is not None:
        boundary = Path(within).resolve()
        resolved = path.resolve()
        if resolved != boundary and boundary not in resolved.parents:
            raise FilesystemError(f"Refusing to delete {resolved} outside of {boundary}")

    logger.debug(f"Removing {path}")
    shutil.rmtree(path, onerror=_make_writable_and_retry)


__all__ = [
    "IS_WINDOWS",
    "FilesystemError",
    "find_executable",
    "atomic_write",
    "safe_rmtree",
]
